from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Literal

NotificationLevel = Literal["success", "info", "warning", "error"]


@dataclass(frozen=True, slots=True)
class Notification:
    level: NotificationLevel
    message: str
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))


class NotificationCenter:
    """Transient, non-blocking messages for one user session."""

    def __init__(self, maxlen: int = 50) -> None:
        self._items: deque[Notification] = deque(maxlen=maxlen)

    def push(self, level: NotificationLevel, message: str) -> Notification:
        notification = Notification(level=level, message=message)
        self._items.append(notification)
        return notification

    def success(self, message: str) -> Notification:
        return self.push("success", message)

    def info(self, message: str) -> Notification:
        return self.push("info", message)

    def warning(self, message: str) -> Notification:
        return self.push("warning", message)

    def error(self, message: str) -> Notification:
        return self.push("error", message)

    def drain(self) -> list[Notification]:
        items = list(self._items)
        self._items.clear()
        return items

    def __len__(self) -> int:
        return len(self._items)
