import unittest
from datetime import datetime, timedelta, timezone

from babytrack.elapsed import elapsed_seconds
from babytrack.schemas import ActivitySession, ActivityType

START = datetime(2024, 3, 4, 8, 0, tzinfo=timezone.utc)


def make_session(**overrides) -> ActivitySession:
    fields = {
        "id": "s1",
        "activity_type": ActivityType.FEEDING,
        "start_time": START,
        "is_active": True,
    }
    fields.update(overrides)
    return ActivitySession(**fields)


class ElapsedSecondsTests(unittest.TestCase):
    def test_running_session_counts_wall_clock(self):
        session = make_session()
        self.assertEqual(elapsed_seconds(session, START + timedelta(minutes=3, seconds=12)), 192)

    def test_floors_fractional_seconds(self):
        session = make_session()
        self.assertEqual(elapsed_seconds(session, START + timedelta(seconds=59, milliseconds=999)), 59)

    def test_paused_session_is_frozen_at_paused_at(self):
        paused_at = START + timedelta(minutes=5)
        session = make_session(is_paused=True, paused_at=paused_at)
        first = elapsed_seconds(session, paused_at + timedelta(minutes=1))
        later = elapsed_seconds(session, paused_at + timedelta(hours=2))
        self.assertEqual(first, 300)
        self.assertEqual(later, 300)

    def test_subtracts_accumulated_pause(self):
        session = make_session(total_paused_duration=120)
        self.assertEqual(elapsed_seconds(session, START + timedelta(minutes=10)), 480)

    def test_future_start_clamps_to_zero(self):
        session = make_session(start_time=START + timedelta(hours=1))
        self.assertEqual(elapsed_seconds(session, START), 0)

    def test_paused_total_larger_than_span_clamps_to_zero(self):
        session = make_session(total_paused_duration=3600)
        self.assertEqual(elapsed_seconds(session, START + timedelta(minutes=5)), 0)

    def test_missing_start_is_zero(self):
        session = make_session(start_time=None)
        self.assertEqual(elapsed_seconds(session, START), 0)

    def test_non_decreasing_while_running(self):
        session = make_session(total_paused_duration=30)
        values = [elapsed_seconds(session, START + timedelta(seconds=s)) for s in range(0, 600, 7)]
        self.assertEqual(values, sorted(values))
        self.assertTrue(all(value >= 0 for value in values))

    def test_corrupted_record_parses_to_zero(self):
        session = ActivitySession.from_record(
            {"id": "bad", "start_time": "yesterday-ish", "total_paused_duration": "NaN", "is_active": True},
            ActivityType.PLAY,
        )
        self.assertIsNotNone(session)
        self.assertEqual(elapsed_seconds(session, START), 0)


if __name__ == "__main__":
    unittest.main()
