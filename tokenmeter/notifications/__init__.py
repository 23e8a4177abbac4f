"""Notification payloads and repeat suppression.

Builds ``{type, title, message}`` payloads for:
- Usage alerts from the monitoring orchestrator (see ``orchestrator.monitor``)
- Usage status transitions (safe → warning → critical)
- Daily usage summaries

Delivery (OS toast, tray balloon, webhook) belongs to the caller; this
module only decides *what* to say and *whether* to say it again.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)

NOTIFICATION_COOLDOWN = timedelta(minutes=5)


class NotificationType(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


_SEVERITY = {
    NotificationType.INFO: 0,
    NotificationType.WARNING: 1,
    NotificationType.ERROR: 2,
}

# Emoji/icon mapping
_EMOJI = {
    NotificationType.INFO: "ℹ️",
    NotificationType.WARNING: "⚠️",
    NotificationType.ERROR: "🚨",
}


@dataclass(frozen=True)
class Notification:
    type: NotificationType
    title: str
    message: str

    @property
    def severity(self) -> int:
        return _SEVERITY[self.type]

    @property
    def emoji(self) -> str:
        return _EMOJI[self.type]


def notification_to_dict(n: Notification | None) -> dict[str, Any] | None:
    if n is None:
        return None
    return {"type": n.type.value, "title": n.title, "message": n.message}


# -- Payload builders -----------------------------------------------------


def usage_status_notification(status: str, percentage_used: float) -> Notification | None:
    """Alert for a usage status from ``daily.usage_status``; ``safe`` says nothing."""
    pct = round(percentage_used)
    if status == "critical":
        return Notification(
            NotificationType.ERROR,
            "Usage Critical",
            f"You've used {pct}% of your tokens. Consider upgrading your plan.",
        )
    if status == "warning":
        return Notification(
            NotificationType.WARNING,
            "Usage Warning",
            f"You've used {pct}% of your tokens. Monitor your usage carefully.",
        )
    return None


def daily_summary_notification(tokens_used: int, cost: float) -> Notification:
    return Notification(
        NotificationType.INFO,
        "Daily Usage Summary",
        f"Today: {tokens_used:,} tokens used, ${cost:.3f} spent",
    )


# -- Repeat suppression ---------------------------------------------------


class NotificationGate:
    """Lets a notification through when it is worse than the last one sent,
    or when the cooldown since the last one has elapsed.

    Same-or-lower severity inside the cooldown is suppressed.
    """

    def __init__(self, cooldown: timedelta = NOTIFICATION_COOLDOWN) -> None:
        self.cooldown = cooldown
        self._last_sent: datetime | None = None
        self._last_severity: int | None = None

    @property
    def last_sent(self) -> datetime | None:
        return self._last_sent

    def should_send(self, notification: Notification | None, now: datetime) -> bool:
        if notification is None:
            return False
        if self._last_sent is None or self._last_severity is None:
            return True
        if notification.severity > self._last_severity:
            return True
        return now - self._last_sent >= self.cooldown

    def offer(self, notification: Notification | None, now: datetime) -> Notification | None:
        """Return the notification if it should go out now, recording it as sent."""
        if notification is None:
            return None
        if not self.should_send(notification, now):
            logger.debug("Suppressed notification %r (cooldown)", notification.title)
            return None
        self._last_sent = now
        self._last_severity = notification.severity
        logger.info("%s %s: %s", notification.emoji, notification.title, notification.message)
        return notification

    def reset(self) -> None:
        self._last_sent = None
        self._last_severity = None
