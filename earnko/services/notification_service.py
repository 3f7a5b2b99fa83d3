"""
Notification Service
User-facing conversion notices and operational alerts.

The composition root (main.py) builds one Notifier and passes it into every
service that emits events; nothing reaches for a module-level handle.
"""
import logging
from datetime import datetime
from typing import Any, Dict, Optional

import requests
from pymongo.database import Database

from earnko.config import SLACK_WEBHOOK_URL
from earnko.db.schemas.notifications import Notification

logger = logging.getLogger(__name__)


class Notifier:
    """Interface: notify a user, or raise an operational alert"""

    def notify(self, user_id: str, kind: str, message: str, data: Optional[Dict[str, Any]] = None) -> None:
        raise NotImplementedError

    def alert(self, severity: str, title: str, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        raise NotImplementedError


class LoggingNotifier(Notifier):
    """Default notifier: everything goes to the log"""

    def notify(self, user_id: str, kind: str, message: str, data: Optional[Dict[str, Any]] = None) -> None:
        logger.info(f"📬 [{kind}] user={user_id} {message}")

    def alert(self, severity: str, title: str, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        level = logging.ERROR if severity == "CRITICAL" else logging.WARNING
        logger.log(level, f"🚨 [{severity}] {title}: {message} {details or ''}")


class MongoNotifier(LoggingNotifier):
    """Persists in-app notifications and posts alerts to Slack when configured"""

    # Color coding
    COLORS = {
        "CRITICAL": "#FF0000",
        "WARNING": "#FFA500",
        "INFO": "#0000FF",
    }

    def __init__(self, database: Database, slack_webhook_url: Optional[str] = SLACK_WEBHOOK_URL, timeout: float = 5):
        self.notifications = database["notifications"]
        self.webhook_url = slack_webhook_url
        self.timeout = timeout

    def notify(self, user_id: str, kind: str, message: str, data: Optional[Dict[str, Any]] = None) -> None:
        if not user_id:
            return
        notification = Notification(user_id=user_id, type=kind, message=message, data=data or {})
        self.notifications.insert_one(notification.model_dump())
        logger.info(f"📬 Created notification {notification.notification_id} for user {user_id}")

    def alert(self, severity: str, title: str, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().alert(severity, title, message, details)
        if not self.webhook_url:
            return

        payload = {
            "attachments": [{
                "color": self.COLORS.get(severity, "#808080"),
                "title": f"[{severity}] {title}",
                "text": message,
                "fields": [
                    {"title": key, "value": str(value), "short": True}
                    for key, value in (details or {}).items()
                ],
                "footer": "Earnko Monitoring",
                "ts": int(datetime.now().timestamp()),
            }]
        }

        # Alert delivery must never break the request that raised it
        try:
            resp = requests.post(self.webhook_url, json=payload, timeout=self.timeout)
            if resp.status_code != 200:
                logger.warning(f"Slack notification failed: {resp.status_code}")
        except requests.RequestException as e:
            logger.warning(f"Slack notification error: {e}")
