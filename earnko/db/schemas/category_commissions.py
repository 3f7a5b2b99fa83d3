"""
Category Commission Rule Schema
store_id None marks a global rule for the category.
"""
import uuid
from typing import Literal, Optional

from pydantic import BaseModel, Field

from earnko.utils.timezone import now_iso


class CategoryCommission(BaseModel):
    rule_id: str = Field(default_factory=lambda: f"rule_{uuid.uuid4().hex[:12]}")
    store_id: Optional[str] = Field(default=None, description="None = global fallback rule")
    category_key: str
    label: Optional[str] = None
    commission_rate: float = 0.0
    commission_type: Literal["percentage", "fixed"] = "percentage"
    max_cap: Optional[float] = None
    is_active: bool = True
    created_at: str = Field(default_factory=now_iso)
