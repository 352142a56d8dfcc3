"""Elapsed-time calculation for timed activity sessions."""
from __future__ import annotations

import math
from datetime import datetime
from typing import Optional

from .schemas import ActivitySession
from .timeutils import utc_now


def elapsed_seconds(session: ActivitySession, reference_time: Optional[datetime] = None) -> int:
    """Running time of ``session`` as of ``reference_time`` (default now).

    A paused session is measured up to ``paused_at`` so its value stays frozen
    until resumed. Time already spent paused is subtracted. The result is
    floored to whole seconds and never negative: a future start, a paused
    total larger than the wall-clock span, or an unparsable start all give 0.
    """
    if session.start_time is None:
        return 0
    reference = reference_time or utc_now()
    if session.is_paused and session.paused_at is not None:
        reference = session.paused_at
    span = (reference - session.start_time).total_seconds() - session.total_paused_duration
    if math.isnan(span) or span <= 0:
        return 0
    return int(math.floor(span))
