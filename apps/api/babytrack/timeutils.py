"""Timestamp parsing and formatting helpers shared by the timer and dosing code."""
from __future__ import annotations

import logging
from datetime import date, datetime, timezone, tzinfo
from typing import Any, Optional

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)


def parse_instant(value: Any, tz: Optional[tzinfo] = None) -> Optional[datetime]:
    """Parse an ISO string or datetime into an aware datetime.

    Naive values are read in ``tz`` (UTC when omitted). Anything unparsable
    returns None so a corrupted record never takes the caller down with it.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        raw = value.strip()
        if raw.endswith("Z"):
            raw = raw[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(raw)
        except ValueError:
            logger.warning("unparsable timestamp", extra={"value": value})
            return None
    else:
        logger.warning("unexpected timestamp type", extra={"type": type(value).__name__})
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=tz or timezone.utc)
    return parsed


def to_iso(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def local_date(value: datetime, tz: Optional[tzinfo] = None) -> date:
    """Calendar date of ``value`` in ``tz`` (or in ``value``'s own zone)."""
    if tz is not None:
        return value.astimezone(tz).date()
    return value.date()


def format_duration(seconds: float) -> str:
    seconds = max(0, int(seconds))
    hours, remainder = divmod(seconds, 3600)
    minutes, secs = divmod(remainder, 60)
    if hours > 0:
        return f"{hours}h {minutes}m" if minutes > 0 else f"{hours}h"
    if minutes > 0:
        return f"{minutes}m {secs}s" if secs > 0 else f"{minutes}m"
    return f"{secs}s"
