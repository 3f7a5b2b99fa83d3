"""
User Schema
Wallet buckets and embedded share links.
Wallet fields are only ever changed through $inc by the wallet ledger.
"""
import uuid
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from earnko.utils.timezone import now_iso


class Wallet(BaseModel):
    total_earnings: float = 0.0
    pending_cashback: float = 0.0
    confirmed_cashback: float = 0.0
    available_balance: float = 0.0
    total_withdrawn: float = 0.0
    referral_earnings: float = 0.0


class UniqueLink(BaseModel):
    """One generated share link"""
    store_id: Optional[str] = None
    custom_slug: str = Field(..., description="Redirect slug, /api/affiliate/redirect/{slug}")
    clicks: int = 0
    conversions: int = 0
    # provider, mode, original_url, resolved_url, destination_url,
    # generated_link (eager), campaign_id, click_id (eager), short_code
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: str = Field(default_factory=now_iso)


class AffiliateInfo(BaseModel):
    is_affiliate: bool = False
    affiliate_since: Optional[str] = None
    unique_links: List[UniqueLink] = Field(default_factory=list)
    total_commissions: float = 0.0
    pending_commissions: float = 0.0
    paid_commissions: float = 0.0


class User(BaseModel):
    user_id: str = Field(default_factory=lambda: f"usr_{uuid.uuid4().hex[:12]}")
    name: str = ""
    email: Optional[str] = None
    role: Literal["user", "admin", "affiliate"] = "user"
    referred_by: Optional[str] = Field(default=None, description="user_id of the referrer")
    wallet: Wallet = Field(default_factory=Wallet)
    affiliate_info: AffiliateInfo = Field(default_factory=AffiliateInfo)
    created_at: str = Field(default_factory=now_iso)
