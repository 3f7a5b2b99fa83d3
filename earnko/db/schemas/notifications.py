"""
Notification Schema
In-app notification for a user
"""
import uuid
from typing import Any, Dict

from pydantic import BaseModel, Field

from earnko.utils.timezone import now_iso


class Notification(BaseModel):
    notification_id: str = Field(default_factory=lambda: f"notif_{uuid.uuid4().hex[:12]}")
    user_id: str
    type: str
    message: str
    data: Dict[str, Any] = Field(default_factory=dict)
    read: bool = False
    created_at: str = Field(default_factory=now_iso)
