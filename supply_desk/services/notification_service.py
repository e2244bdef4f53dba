from __future__ import annotations

import logging
import threading
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum

logger = logging.getLogger(__name__)


class NotificationLevel(str, Enum):
    INFO = 'info'
    SUCCESS = 'success'
    ERROR = 'error'


_LOG_LEVELS = {
    NotificationLevel.INFO: logging.INFO,
    NotificationLevel.SUCCESS: logging.INFO,
    NotificationLevel.ERROR: logging.ERROR,
}


@dataclass(frozen=True)
class Notification:
    level: NotificationLevel
    message: str
    created_at: datetime


class Notifier:
    """Keeps the most recent user-facing messages for whatever surface renders them."""

    def __init__(self, *, max_messages: int = 50) -> None:
        self._messages: deque[Notification] = deque(maxlen=max_messages)
        self._lock = threading.Lock()

    def notify(self, message: str, level: NotificationLevel = NotificationLevel.INFO) -> Notification:
        notification = Notification(level=level, message=message, created_at=datetime.now(tz=timezone.utc))
        logger.log(_LOG_LEVELS[level], message)
        with self._lock:
            self._messages.append(notification)
        return notification

    def info(self, message: str) -> Notification:
        return self.notify(message, NotificationLevel.INFO)

    def success(self, message: str) -> Notification:
        return self.notify(message, NotificationLevel.SUCCESS)

    def error(self, message: str) -> Notification:
        return self.notify(message, NotificationLevel.ERROR)

    def recent(self, *, limit: int = 20) -> list[Notification]:
        if limit <= 0:
            return []
        with self._lock:
            messages = list(self._messages)
        return messages[-limit:][::-1]
