"""Abandoned-timer detection."""
from __future__ import annotations

from typing import Optional

STALE_TIMER_THRESHOLD = 5 * 60 * 60


class StaleSessionMonitor:
    """Raises a one-time prompt when a running timer has gone on too long.

    Dismissal ("Continue") is remembered for the session id that was
    running at the time, so the same timer is not nagged again while a new
    session started later can still be flagged.
    """

    def __init__(self, threshold_seconds: int = STALE_TIMER_THRESHOLD) -> None:
        self.threshold_seconds = threshold_seconds
        self.prompt_open = False
        self._dismissed_for: Optional[str] = None

    @property
    def dismissed_for(self) -> Optional[str]:
        return self._dismissed_for

    def evaluate(self, session_id: Optional[str], elapsed: int, *, in_review: bool = False) -> bool:
        if session_id is None or in_review:
            self.prompt_open = False
            return False
        if self._dismissed_for == session_id:
            return False
        if elapsed >= self.threshold_seconds:
            self.prompt_open = True
        return self.prompt_open

    def dismiss(self, session_id: Optional[str]) -> None:
        self._dismissed_for = session_id
        self.prompt_open = False

    def close(self) -> None:
        self.prompt_open = False

    def reset_for_new_session(self) -> None:
        self._dismissed_for = None
        self.prompt_open = False
