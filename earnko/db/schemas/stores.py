"""
Store & Product Schemas
Store carries the flat default commission; Product may override it.
"""
import uuid
from typing import Literal, Optional

from pydantic import BaseModel, Field

from earnko.config import DEFAULT_COOKIE_DAYS
from earnko.utils.timezone import now_iso


class StoreStats(BaseModel):
    total_clicks: int = 0
    total_conversions: int = 0
    total_commission: float = 0.0


class Store(BaseModel):
    store_id: str = Field(default_factory=lambda: f"store_{uuid.uuid4().hex[:10]}")
    name: str
    affiliate_network: Literal["cuelinks", "extrape", "trackier", "manual", "custom"] = "manual"
    base_url: Optional[str] = None

    # Flat default used when no product or category rule applies
    commission_rate: float = 0.0
    commission_type: Literal["percentage", "fixed"] = "percentage"
    max_commission: Optional[float] = None

    cookie_duration: int = Field(default=DEFAULT_COOKIE_DAYS, description="Attribution cookie lifetime in days")
    is_active: bool = True
    stats: StoreStats = Field(default_factory=StoreStats)
    created_at: str = Field(default_factory=now_iso)


class CommissionOverride(BaseModel):
    rate: Optional[float] = None
    type: Optional[Literal["percentage", "fixed"]] = None
    max_cap: Optional[float] = None


class Product(BaseModel):
    product_id: str = Field(default_factory=lambda: f"prod_{uuid.uuid4().hex[:12]}")
    title: str
    store_id: str
    deeplink: str = Field(..., description="Merchant product page URL")
    price: float = 0.0
    category_key: str = ""
    is_active: bool = True
    # Takes precedence over category and store rules when rate is set
    commission_override: CommissionOverride = Field(default_factory=CommissionOverride)
    created_at: str = Field(default_factory=now_iso)
