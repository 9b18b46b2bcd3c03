# core/collaborators.py
"""
Outbound interfaces the pipeline calls but does not implement: notification
delivery and content moderation.

The default implementations only log and record what they were asked to do.
Production deployments inject real adapters (pager, email, moderation API)
through the DependencyContainer.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List

from utils.logging_utils import get_logger

logger = get_logger("collaborators")

NOTIFICATION_CHANNELS = ("emergency", "moderation", "support")


class NotificationService(ABC):
    @abstractmethod
    async def notify(self, channel: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Deliver `payload` on `channel`. Returns {"success": bool, "method": str}."""


class ModerationService(ABC):
    @abstractmethod
    async def flag_content(self, content_id: str, content_type: str) -> bool:
        ...

    @abstractmethod
    async def remove_content(self, content_id: str, content_type: str) -> bool:
        ...

    @abstractmethod
    async def record_warning(self, user_id: str, reason: str) -> int:
        """Returns the user's warning count after recording."""

    @abstractmethod
    async def suspend_user(self, user_id: str, days: int, reason: str) -> bool:
        ...


class LoggingNotificationService(NotificationService):
    """Logs each notification and keeps it in `sent` for inspection."""

    def __init__(self):
        self.sent: List[Dict[str, Any]] = []

    async def notify(self, channel: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        if channel not in NOTIFICATION_CHANNELS:
            logger.warning(f"[Notify] Unknown channel '{channel}'")
            return {"success": False, "method": "log"}
        entry = {"channel": channel, "payload": payload, "sent_at": datetime.now().isoformat()}
        self.sent.append(entry)
        log = logger.critical if channel == "emergency" else logger.info
        log(f"[Notify] {channel.upper()}: {payload.get('summary') or payload.get('type', 'notification')}")
        return {"success": True, "method": "log"}


class InMemoryModerationService(ModerationService):
    """Records moderation actions in memory."""

    def __init__(self):
        self.flagged: List[Dict[str, str]] = []
        self.removed: List[Dict[str, str]] = []
        self.warnings: Dict[str, List[str]] = {}
        self.suspensions: Dict[str, Dict[str, Any]] = {}

    async def flag_content(self, content_id: str, content_type: str) -> bool:
        self.flagged.append({"id": content_id, "type": content_type})
        logger.info(f"[Moderation] Flagged {content_type} {content_id}")
        return True

    async def remove_content(self, content_id: str, content_type: str) -> bool:
        self.removed.append({"id": content_id, "type": content_type})
        logger.info(f"[Moderation] Removed {content_type} {content_id}")
        return True

    async def record_warning(self, user_id: str, reason: str) -> int:
        self.warnings.setdefault(user_id, []).append(reason)
        return len(self.warnings[user_id])

    async def suspend_user(self, user_id: str, days: int, reason: str) -> bool:
        self.suspensions[user_id] = {"days": days, "reason": reason, "at": datetime.now().isoformat()}
        logger.warning(f"[Moderation] Suspended user for {days} days: {reason}")
        return True
