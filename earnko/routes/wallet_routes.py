"""
Wallet Routes
"""
from typing import Any, Dict

from fastapi import APIRouter, Depends

from earnko.core.errors import NotFoundError
from earnko.middleware.auth import get_current_user
from earnko.routes.dependencies import get_wallet_ledger
from earnko.services.wallet_ledger import WalletLedger

router = APIRouter(prefix="/api/wallet", tags=["Wallet"])


@router.get("/me")
def my_wallet(
    user: Dict[str, Any] = Depends(get_current_user),
    ledger: WalletLedger = Depends(get_wallet_ledger),
):
    """Wallet buckets plus affiliate commission counters"""
    wallet = ledger.get_wallet(user["user_id"])
    if wallet is None:
        raise NotFoundError("Wallet not found")
    return {"success": True, "data": wallet}
