"""
Transient user-facing notifications (toasts).

Views and the mutation dispatcher report outcomes here as plain,
human-readable strings. The surface (CLI, UI) drains them.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

logger = logging.getLogger(__name__)


class NotificationLevel(str, Enum):
    SUCCESS = "success"
    INFO = "info"
    ERROR = "error"


@dataclass(frozen=True)
class Notification:
    level: NotificationLevel
    message: str
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class Notifier:
    """Collects notifications until the surface drains them."""

    def __init__(self, max_pending: int = 50):
        self._pending: deque[Notification] = deque(maxlen=max_pending)

    def success(self, message: str) -> Notification:
        return self._push(NotificationLevel.SUCCESS, message)

    def info(self, message: str) -> Notification:
        return self._push(NotificationLevel.INFO, message)

    def error(self, message: str) -> Notification:
        return self._push(NotificationLevel.ERROR, message)

    def drain(self) -> list[Notification]:
        """Return and clear all pending notifications, oldest first."""
        items = list(self._pending)
        self._pending.clear()
        return items

    @property
    def pending(self) -> list[Notification]:
        return list(self._pending)

    def _push(self, level: NotificationLevel, message: str) -> Notification:
        note = Notification(level=level, message=message)
        self._pending.append(note)
        log = logger.error if level is NotificationLevel.ERROR else logger.info
        log(f"[{level.value}] {message}")
        return note
