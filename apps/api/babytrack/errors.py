"""Error taxonomy and the result type returned by store-backed actions."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


class BabyTrackError(Exception):
    """Base class for every error raised by the tracking core."""


class InvalidTransitionError(BabyTrackError):
    """An action was invoked from a state that does not allow it."""

    def __init__(self, action: str, state: str) -> None:
        super().__init__(f"Cannot {action} while {state}")
        self.action = action
        self.state = state


class SessionValidationError(BabyTrackError):
    """Input rejected locally before any store call."""


class StoreError(BabyTrackError):
    """A document store operation failed."""

    def __init__(self, operation: str, detail: str = "") -> None:
        message = f"Store {operation} failed"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
        self.operation = operation
        self.detail = detail


@dataclass(frozen=True)
class ActionResult:
    ok: bool
    error: Optional[str] = None
    session_id: Optional[str] = None

    @classmethod
    def success(cls, session_id: Optional[str] = None) -> "ActionResult":
        return cls(ok=True, session_id=session_id)

    @classmethod
    def failure(cls, error: str, session_id: Optional[str] = None) -> "ActionResult":
        return cls(ok=False, error=error, session_id=session_id)
