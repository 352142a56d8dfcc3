"""Transient user-visible notices (success/info/error toasts)."""
from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Deque, List

from .timeutils import utc_now


class NoticeLevel(str, Enum):
    SUCCESS = "success"
    INFO = "info"
    ERROR = "error"


@dataclass(frozen=True)
class Notice:
    level: NoticeLevel
    message: str
    created_at: datetime = field(default_factory=utc_now)


class NoticeBoard:
    """Bounded queue of pending notices for one subject."""

    def __init__(self, limit: int = 20) -> None:
        self._pending: Deque[Notice] = deque(maxlen=limit)

    def post(self, level: NoticeLevel, message: str) -> Notice:
        notice = Notice(level=level, message=message)
        self._pending.append(notice)
        return notice

    def success(self, message: str) -> Notice:
        return self.post(NoticeLevel.SUCCESS, message)

    def info(self, message: str) -> Notice:
        return self.post(NoticeLevel.INFO, message)

    def error(self, message: str) -> Notice:
        return self.post(NoticeLevel.ERROR, message)

    def pending(self) -> List[Notice]:
        return list(self._pending)

    def drain(self) -> List[Notice]:
        notices = list(self._pending)
        self._pending.clear()
        return notices
