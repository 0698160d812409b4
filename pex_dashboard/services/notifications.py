"""Transient user-facing notifications."""

import itertools
import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List

LEVELS = ("success", "error", "warning", "info")


@dataclass(frozen=True)
class Notification:
    id: int
    title: str
    message: str
    level: str = "info"
    created_at: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "message": self.message,
            "level": self.level,
            "created_at": self.created_at.isoformat(),
        }


class NotificationFeed:
    """Bounded, newest-last feed of notifications."""

    def __init__(self, maxlen: int = 50):
        self._items: deque = deque(maxlen=maxlen)
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def publish(self, title: str, message: str, level: str = "info") -> Notification:
        if level not in LEVELS:
            level = "info"
        with self._lock:
            notification = Notification(next(self._ids), title, message, level)
            self._items.append(notification)
        return notification

    def success(self, title: str, message: str) -> Notification:
        return self.publish(title, message, "success")

    def error(self, title: str, message: str) -> Notification:
        return self.publish(title, message, "error")

    def recent(self, since_id: int = 0) -> List[Notification]:
        with self._lock:
            return [n for n in self._items if n.id > since_id]

    def clear(self) -> None:
        with self._lock:
            self._items.clear()
