"""
Webhook Event Schema
Append-only audit log of inbound postbacks, written before any validation.
"""
import uuid
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, Field

from earnko.utils.timezone import now_iso


class WebhookEvent(BaseModel):
    event_id: str = Field(default_factory=lambda: f"wh_{uuid.uuid4().hex[:12]}")
    source: str = Field(..., description="Network name")
    payload: Dict[str, Any] = Field(default_factory=dict, description="Merged query + body parameters")
    headers: Dict[str, Any] = Field(default_factory=dict)
    status: Literal["received", "processed", "error"] = "received"
    error: Optional[str] = None
    error_code: Optional[str] = None
    transaction_id: Optional[str] = None
    created_at: str = Field(default_factory=now_iso)
    processed_at: Optional[str] = None
