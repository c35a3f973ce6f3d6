"""
Notification sink for user-facing messages.

Every notification is also written to the unified logger, so the CLI gets the
same messages on the console that the web UI shows as toasts.
"""

import itertools
import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, Deque, List, Optional

from src.utils.unified_logger import get_logger, LogLevel


class NotificationType(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


_LOG_LEVELS = {
    NotificationType.INFO: LogLevel.INFO,
    NotificationType.SUCCESS: LogLevel.INFO,
    NotificationType.WARNING: LogLevel.WARNING,
    NotificationType.ERROR: LogLevel.ERROR,
}


@dataclass
class Notification:
    notification_id: int
    type: NotificationType
    message: str
    timestamp: str = field(default_factory=lambda: datetime.now().isoformat())

    def to_dict(self) -> dict:
        return {
            'id': self.notification_id,
            'type': self.type.value,
            'message': self.message,
            'timestamp': self.timestamp,
        }


class NotificationCenter:
    """Bounded in-memory list of notifications with listener fan-out."""

    def __init__(self, max_items: int = 200, log_to_console: bool = True):
        self._items: Deque[Notification] = deque(maxlen=max_items)
        self._ids = itertools.count(1)
        self._lock = threading.Lock()
        self._listeners: List[Callable[[Notification], None]] = []
        self.log_to_console = log_to_console

    def add_listener(self, callback: Callable[[Notification], None]) -> None:
        self._listeners.append(callback)

    def notify(self, type: NotificationType, message: str) -> Notification:
        with self._lock:
            notification = Notification(next(self._ids), NotificationType(type), message)
            self._items.append(notification)

        if self.log_to_console:
            get_logger().log(_LOG_LEVELS[notification.type], message)
        for listener in list(self._listeners):
            try:
                listener(notification)
            except Exception as e:
                get_logger().error(f"Notification listener failed: {e}")
        return notification

    def info(self, message: str) -> Notification:
        return self.notify(NotificationType.INFO, message)

    def success(self, message: str) -> Notification:
        return self.notify(NotificationType.SUCCESS, message)

    def warning(self, message: str) -> Notification:
        return self.notify(NotificationType.WARNING, message)

    def error(self, message: str) -> Notification:
        return self.notify(NotificationType.ERROR, message)

    def recent(self, since_id: int = 0, type: Optional[NotificationType] = None) -> List[Notification]:
        with self._lock:
            items = [n for n in self._items if n.notification_id > since_id]
        if type is not None:
            items = [n for n in items if n.type == NotificationType(type)]
        return items

    def clear(self) -> None:
        with self._lock:
            self._items.clear()
