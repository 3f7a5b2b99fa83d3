"""
Transaction Schema
One document per merchant order reported by a network.
order_id is namespaced "<network>:<orderId>" and unique.
"""
import uuid
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, Field

from earnko.utils.timezone import now_iso


class Transaction(BaseModel):
    transaction_id: str = Field(default_factory=lambda: f"txn_{uuid.uuid4().hex[:12]}")
    order_id: str = Field(..., description="Network-namespaced order id, e.g. trackier:AJ-1001")
    network: str = Field(..., description="Postback source network")

    # Attribution
    user_id: Optional[str] = None
    store_id: Optional[str] = None
    product_id: Optional[str] = None
    click_id: Optional[str] = None

    # Money
    product_amount: float = 0.0
    commission_amount: float = 0.0
    commission_rate: Optional[float] = None
    commission_type: Optional[Literal["percentage", "fixed"]] = None
    commission_source: Literal["network", "rules"] = "network"
    currency: Optional[str] = None

    status: Literal["pending", "confirmed", "cancelled", "under_review"] = "pending"

    # Raw provider context for audit
    tracking_data: Dict[str, Any] = Field(default_factory=dict)
    affiliate_data: Dict[str, Any] = Field(default_factory=dict)
    notes: Optional[str] = None

    # Optimistic concurrency token, bumped on every update
    version: int = 0

    created_at: str = Field(default_factory=now_iso)
    updated_at: str = Field(default_factory=now_iso)
