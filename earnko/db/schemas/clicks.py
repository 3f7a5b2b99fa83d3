"""
Click Schema
One document per attribution event; click_id is the join key postbacks echo back
"""
import uuid
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from earnko.utils.timezone import now_iso


def new_click_id() -> str:
    """Opaque random token (128 bits), never sequential"""
    return f"clk_{uuid.uuid4().hex}"


class Click(BaseModel):
    click_id: str = Field(default_factory=new_click_id, description="Attribution token embedded as provider subid")
    user_id: Optional[str] = Field(default=None, description="Link owner; None for anonymous product clicks")
    store_id: Optional[str] = None
    product_id: Optional[str] = None
    custom_slug: Optional[str] = Field(default=None, description="Share link slug the click came through")

    # Set once, possibly after a deferred (lazy) build
    affiliate_link: Optional[str] = None

    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    referrer: Optional[str] = None

    # provider, original_url, resolved_url, destination_url, campaign_id, category_key
    metadata: Dict[str, Any] = Field(default_factory=dict)

    created_at: str = Field(default_factory=now_iso)
    updated_at: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {
                "click_id": "clk_5f0c3e1a9b2d4c6e8f7a1b2c3d4e5f60",
                "user_id": "usr_ab12cd34ef56",
                "store_id": "store_ajio",
                "custom_slug": "k3x9qp2m",
                "affiliate_link": "https://track.vcommission.com/click?campaign_id=1234&p1=clk_5f0c...&url=https%3A%2F%2Fwww.ajio.com%2Fp%2F469581",
                "metadata": {"provider": "trackier", "campaign_id": "1234"},
                "created_at": "2025-11-05T15:30:00+00:00"
            }
        }
