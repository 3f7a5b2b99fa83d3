"""
Short URL Schema
/r/{code} resolves to the share link slug so the tracking pipeline stays intact.
"""
from typing import Optional

from pydantic import BaseModel, Field

from earnko.utils.timezone import now_iso


class ShortUrl(BaseModel):
    code: str
    slug: str
    user_id: Optional[str] = None
    provider: str = ""
    created_at: str = Field(default_factory=now_iso)
