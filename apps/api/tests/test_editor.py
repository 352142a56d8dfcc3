import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from babytrack.activities import FEEDING
from babytrack.config import AppConfig
from babytrack.editor import PreCommitEditor
from babytrack.errors import InvalidTransitionError, SessionValidationError
from babytrack.timer_engine import SessionTimerEngine
from babytrack.timeutils import to_iso

from conftest import T0


def stopped_engine(store, clock, run_for=timedelta(minutes=30, seconds=20)):
    engine = SessionTimerEngine(FEEDING, store, baby_id="baby-1", clock=clock, tz=timezone.utc)
    engine.mount()
    asyncio.run(engine.start())
    clock.advance(seconds=run_for.total_seconds())
    engine.stop()
    return engine, PreCommitEditor(engine)


def test_open_presents_session_start_and_minutes(store, clock):
    engine, editor = stopped_engine(store, clock)
    draft = editor.open()
    assert draft.start_time == T0
    assert draft.duration_minutes == 30


def test_unchanged_minutes_keep_sub_minute_precision(store, clock):
    engine, editor = stopped_engine(store, clock)
    new_start = T0 - timedelta(hours=1)

    draft = editor.apply(new_start, 30)

    assert engine.edited_start_time == new_start
    assert engine.review_elapsed == 1820
    assert draft.duration_minutes == 30


def test_changed_minutes_replace_elapsed(store, clock):
    engine, editor = stopped_engine(store, clock)
    editor.apply(T0, 45)
    assert engine.review_elapsed == 45 * 60


def test_digit_string_minutes_are_accepted(store, clock):
    engine, editor = stopped_engine(store, clock)
    editor.apply(to_iso(T0), "15")
    assert engine.review_elapsed == 15 * 60


@pytest.mark.parametrize("minutes", [0, -5, "abc", 2.5, True, None])
def test_rejects_non_positive_or_non_integer_minutes(store, clock, minutes):
    engine, editor = stopped_engine(store, clock)
    with pytest.raises(SessionValidationError):
        editor.apply(T0, minutes)
    assert engine.edited_start_time is None
    assert engine.review_elapsed == 1820


def test_rejects_future_start(store, clock):
    engine, editor = stopped_engine(store, clock)
    with pytest.raises(SessionValidationError):
        editor.apply(clock() + timedelta(minutes=1), 10)
    assert engine.edited_start_time is None
    assert engine.review_elapsed == 1820


def test_rejects_missing_start(store, clock):
    engine, editor = stopped_engine(store, clock)
    with pytest.raises(SessionValidationError):
        editor.apply("not a time", 10)


def test_only_available_in_review(store, clock):
    engine = SessionTimerEngine(FEEDING, store, baby_id="baby-1", clock=clock, tz=timezone.utc)
    engine.mount()
    editor = PreCommitEditor(engine)
    with pytest.raises(InvalidTransitionError):
        editor.open()
    asyncio.run(engine.start())
    with pytest.raises(InvalidTransitionError):
        editor.apply(T0, 10)


def test_commit_uses_edited_start(store, clock):
    engine, editor = stopped_engine(store, clock)
    session_id = engine.session_id
    edited = T0 - timedelta(hours=2)
    editor.apply(edited, 45)

    assert asyncio.run(engine.commit()).ok

    record = store.get("feeding_sessions", session_id)
    assert record["start_time"] == to_iso(edited)
    assert record["end_time"] == to_iso(edited + timedelta(minutes=45))
    assert record["duration"] == 2700
    assert engine.notices.drain()[-1].message == "45m Left side logged"


def test_naive_start_is_read_in_caregiver_zone(store, clock):
    config = AppConfig(timezone="America/New_York")
    clock.set(datetime(2024, 3, 4, 14, 0, tzinfo=timezone.utc))
    engine = SessionTimerEngine(FEEDING, store, baby_id="baby-1", clock=clock, tz=config.tz)
    engine.mount()
    asyncio.run(engine.start())
    clock.advance(minutes=30)
    engine.stop()
    session_id = engine.session_id
    editor = PreCommitEditor(engine)

    draft = editor.apply(datetime(2024, 3, 4, 8, 45), 10)

    assert draft.start_time.astimezone(config.tz).hour == 8
    assert engine.edited_start_time == datetime(2024, 3, 4, 13, 45, tzinfo=timezone.utc)

    editor.apply("2024-03-04T09:15", 10)
    assert engine.edited_start_time == datetime(2024, 3, 4, 14, 15, tzinfo=timezone.utc)

    assert asyncio.run(engine.commit()).ok
    record = store.get("feeding_sessions", session_id)
    assert record["start_time"] == "2024-03-04T14:15:00+00:00"
    assert record["date"] == "2024-03-04"


def test_naive_local_past_start_is_not_future_east_of_utc(store, clock):
    config = AppConfig(timezone="Asia/Tokyo")
    clock.set(datetime(2024, 3, 4, 14, 0, tzinfo=timezone.utc))
    engine = SessionTimerEngine(FEEDING, store, baby_id="baby-1", clock=clock, tz=config.tz)
    engine.mount()
    asyncio.run(engine.start())
    clock.advance(minutes=30)
    engine.stop()

    # 22:45 in Tokyo is 13:45 UTC, before the clock's 14:30 UTC
    draft = PreCommitEditor(engine).apply("2024-03-04T22:45", 20)

    assert draft.start_time == datetime(2024, 3, 4, 13, 45, tzinfo=timezone.utc)
    assert draft.duration_minutes == 20
