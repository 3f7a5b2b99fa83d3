"""
Commission Schema
Definitive record for affiliate ledger and payouts.
At most one Commission per Transaction (unique transaction_id).
"""
import uuid
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, Field

from earnko.utils.timezone import now_iso


class CommissionEarned(BaseModel):
    """
    Affiliate commission record
    Purpose: Track all commissions for payout processing
    """
    commission_id: str = Field(default_factory=lambda: f"comm_{uuid.uuid4().hex[:12]}", description="Commission UUID")
    affiliate_id: str = Field(..., description="User credited with the sale")
    store_id: Optional[str] = None
    transaction_id: str = Field(..., description="Transaction this commission settles")

    # Commission calculation
    amount: float = Field(..., description="Commission amount (INR)")
    rate: Optional[float] = Field(default=None, description="Rate used: percent for percentage, flat amount for fixed")
    type: Literal["percentage", "fixed"] = "percentage"

    # Status tracking (mirrors the transaction lifecycle)
    status: Literal["pending", "confirmed", "paid", "cancelled", "under_review"] = Field(default="pending")
    reason: Optional[str] = None

    # applied_rule: {source, rule_id?, category_key?}
    metadata: Dict[str, Any] = Field(default_factory=dict)

    # Timestamps
    created_at: str = Field(default_factory=now_iso, description="Commission earned timestamp")
    approved_at: Optional[str] = None
    paid_at: Optional[str] = None
    reversed_at: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {
                "commission_id": "comm_abc123def456",
                "affiliate_id": "usr_ab12cd34ef56",
                "store_id": "store_ajio",
                "transaction_id": "txn_9f8e7d6c5b4a",
                "amount": 50.0,
                "rate": 5.0,
                "type": "percentage",
                "status": "pending",
                "metadata": {"applied_rule": {"source": "category_store", "category_key": "Electronics"}},
                "created_at": "2025-11-05T15:30:00+00:00"
            }
        }
