"""
Admin Settlement Routes
Transaction status changes go through the wallet ledger; commission
approve/reverse only touches the commission record.
"""
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from earnko.middleware.auth import require_admin
from earnko.routes.dependencies import get_commission_engine, get_settlement
from earnko.services.commission_engine import CommissionEngine
from earnko.services.settlement_service import SettlementService

router = APIRouter(prefix="/api/admin", tags=["Admin"])


class TransactionStatusRequest(BaseModel):
    status: str
    note: Optional[str] = None


class ReverseCommissionRequest(BaseModel):
    reason: Optional[str] = None


@router.patch("/transactions/{transaction_id}/status")
def update_transaction_status(
    transaction_id: str,
    body: TransactionStatusRequest,
    admin: Dict[str, Any] = Depends(require_admin),
    settlement: SettlementService = Depends(get_settlement),
):
    """pending | under_review | confirmed | cancelled (approved / rejected / reversed accepted)"""
    note = body.note or f"Status set by admin {admin['user_id']}"
    tx = settlement.change_status(transaction_id, body.status, note=note)
    return {"success": True, "data": tx}


@router.put("/commissions/{commission_id}/approve")
def approve_commission(
    commission_id: str,
    admin: Dict[str, Any] = Depends(require_admin),
    engine: CommissionEngine = Depends(get_commission_engine),
):
    return {"success": True, "data": engine.approve(commission_id)}


@router.put("/commissions/{commission_id}/reverse")
def reverse_commission(
    commission_id: str,
    body: Optional[ReverseCommissionRequest] = None,
    admin: Dict[str, Any] = Depends(require_admin),
    engine: CommissionEngine = Depends(get_commission_engine),
):
    reason = body.reason if body else None
    return {"success": True, "data": engine.reverse(commission_id, reason)}
