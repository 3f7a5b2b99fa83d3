"""
Timezone Utility Module
All persisted timestamps are UTC ISO-8601 strings
"""
from datetime import datetime
from zoneinfo import ZoneInfo

UTC_TZ = ZoneInfo("UTC")


def now_utc() -> datetime:
    """Get current datetime in UTC timezone."""
    return datetime.now(UTC_TZ)


def now_iso() -> str:
    return now_utc().isoformat()
