"""Review-time edits to a stopped session's start time and duration."""
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Optional

from .errors import InvalidTransitionError, SessionValidationError
from .schemas import EditDraft, TimerState
from .timeutils import parse_instant
from .timer_engine import SessionTimerEngine

logger = logging.getLogger(__name__)


def _positive_minutes(value: Any) -> int:
    if isinstance(value, bool):
        raise SessionValidationError("Duration must be a positive number of minutes")
    if isinstance(value, str) and value.strip().isdigit():
        value = int(value.strip())
    if not isinstance(value, int) or value <= 0:
        raise SessionValidationError("Duration must be a positive number of minutes")
    return value


class PreCommitEditor:
    """Edits only the engine's review scratch; nothing is written until commit."""

    def __init__(self, engine: SessionTimerEngine) -> None:
        self.engine = engine

    def _require_review(self, action: str) -> None:
        if self.engine.state != TimerState.REVIEW:
            raise InvalidTransitionError(action, self.engine.state.value)

    def open(self, now: Optional[datetime] = None) -> EditDraft:
        self._require_review("edit")
        now = now or self.engine.now()
        elapsed = self.engine.review_elapsed
        start = self.engine.edited_start_time
        if start is None and self.engine.session is not None:
            start = self.engine.session.start_time
        if start is None:
            start = now - timedelta(seconds=elapsed)
        return EditDraft(start_time=start, duration_minutes=elapsed // 60)

    def apply(self, start_time: Any, duration_minutes: Any, now: Optional[datetime] = None) -> EditDraft:
        self._require_review("edit")
        now = now or self.engine.now()
        start = parse_instant(start_time, self.engine.tz)
        if start is None:
            raise SessionValidationError("Start time is required")
        minutes = _positive_minutes(duration_minutes)
        if start > now:
            raise SessionValidationError("Start time cannot be in the future")

        self.engine.edited_start_time = start
        original = self.engine.review_elapsed
        if minutes != original // 60:
            self.engine.set_review_elapsed(minutes * 60)
        logger.info(
            "review edited",
            extra={
                "session_id": self.engine.session_id,
                "start_time": start.isoformat(),
                "duration_minutes": minutes,
            },
        )
        return EditDraft(start_time=start, duration_minutes=self.engine.review_elapsed // 60)
