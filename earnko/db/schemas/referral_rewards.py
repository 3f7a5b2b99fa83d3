"""
Referral Reward Schema
One per (transaction_id, referrer_id); reversed, never deleted.
"""
import uuid
from typing import Literal, Optional

from pydantic import BaseModel, Field

from earnko.utils.timezone import now_iso


class ReferralReward(BaseModel):
    reward_id: str = Field(default_factory=lambda: f"ref_{uuid.uuid4().hex[:12]}")
    referrer_id: str
    referred_id: str
    transaction_id: str
    amount: float = 0.0
    status: Literal["credited", "reversed"] = "credited"
    notes: str = ""
    created_at: str = Field(default_factory=now_iso)
    reversed_at: Optional[str] = None
