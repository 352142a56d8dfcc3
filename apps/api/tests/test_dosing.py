from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from babytrack.dosing import (
    can_give_dose,
    deny_reason,
    describe_wait,
    doses_given_today,
    hours_until_next_dose,
    is_missed,
    max_doses_per_day,
    missed_medicines,
    next_dose_time,
)
from babytrack.schemas import MedicationFrequency, Medicine, MedicineLog

NOW = datetime(2024, 3, 4, 12, 0, tzinfo=timezone.utc)


def medicine(frequency, interval=None, medicine_id="med-1", name="Vitamin D", active=True) -> Medicine:
    return Medicine(
        id=medicine_id,
        name=name,
        frequency=frequency,
        hours_interval=interval,
        is_active=active,
    )


def dose(at: datetime, medicine_id="med-1", log_id=None) -> MedicineLog:
    return MedicineLog(id=log_id or f"log-{at.isoformat()}", medicine_id=medicine_id, timestamp=at)


def test_max_doses_per_day():
    assert max_doses_per_day(MedicationFrequency.ONCE_DAILY) == 1
    assert max_doses_per_day(MedicationFrequency.TWICE_DAILY) == 2
    assert max_doses_per_day(MedicationFrequency.THREE_TIMES_DAILY) == 3
    assert max_doses_per_day(MedicationFrequency.FOUR_TIMES_DAILY) == 4
    assert max_doses_per_day(MedicationFrequency.AS_NEEDED) is None
    assert max_doses_per_day(MedicationFrequency.EVERY_HOURS) is None


def test_once_daily_blocks_second_dose_today():
    med = medicine(MedicationFrequency.ONCE_DAILY)
    assert can_give_dose(med, [], NOW) is True
    assert can_give_dose(med, [dose(NOW - timedelta(hours=3))], NOW) is False


def test_yesterdays_dose_does_not_count():
    med = medicine(MedicationFrequency.ONCE_DAILY)
    logs = [dose(NOW - timedelta(hours=16))]
    assert doses_given_today(med, logs, NOW) == 0
    assert can_give_dose(med, logs, NOW) is True


def test_twice_daily_allows_two():
    med = medicine(MedicationFrequency.TWICE_DAILY)
    one = [dose(NOW - timedelta(hours=4))]
    two = one + [dose(NOW - timedelta(hours=1))]
    assert can_give_dose(med, one, NOW) is True
    assert can_give_dose(med, two, NOW) is False


def test_other_medicines_logs_are_ignored():
    med = medicine(MedicationFrequency.ONCE_DAILY)
    logs = [dose(NOW - timedelta(hours=1), medicine_id="med-2")]
    assert can_give_dose(med, logs, NOW) is True


def test_local_calendar_day_is_used():
    la = ZoneInfo("America/Los_Angeles")
    now = datetime(2024, 3, 4, 20, 0, tzinfo=timezone.utc)
    # 18:00 on the 3rd in Los Angeles, already the 4th in UTC
    logs = [dose(datetime(2024, 3, 4, 2, 0, tzinfo=timezone.utc))]
    med = medicine(MedicationFrequency.ONCE_DAILY)
    assert can_give_dose(med, logs, now, la) is True
    assert can_give_dose(med, logs, now) is False


def test_every_hours_interval_boundary():
    med = medicine(MedicationFrequency.EVERY_HOURS, interval=4)
    waiting = [dose(NOW - timedelta(hours=3, minutes=50))]
    due = [dose(NOW - timedelta(hours=4, minutes=1))]
    assert can_give_dose(med, waiting, NOW) is False
    assert hours_until_next_dose(med, waiting, NOW) == pytest.approx(10 / 60, abs=1e-6)
    assert can_give_dose(med, due, NOW) is True
    assert hours_until_next_dose(med, due, NOW) == 0


def test_every_hours_uses_most_recent_dose():
    med = medicine(MedicationFrequency.EVERY_HOURS, interval=4)
    logs = [dose(NOW - timedelta(hours=9)), dose(NOW - timedelta(hours=1))]
    assert can_give_dose(med, logs, NOW) is False


def test_tylenol_every_six_hours():
    tylenol = medicine(MedicationFrequency.EVERY_HOURS, interval=6, name="Tylenol")
    morning = datetime(2024, 3, 4, 8, 0, tzinfo=timezone.utc)
    assert can_give_dose(tylenol, [], morning) is True

    logs = [dose(morning)]
    almost = morning + timedelta(hours=5, minutes=59)
    after = morning + timedelta(hours=6, minutes=1)
    assert can_give_dose(tylenol, logs, almost) is False
    assert hours_until_next_dose(tylenol, logs, almost) == pytest.approx(1 / 60, abs=1e-6)
    assert can_give_dose(tylenol, logs, after) is True


def test_as_needed_is_always_allowed():
    med = medicine(MedicationFrequency.AS_NEEDED)
    logs = [dose(NOW - timedelta(minutes=m)) for m in range(1, 10)]
    assert can_give_dose(med, logs, NOW) is True
    assert hours_until_next_dose(med, logs, NOW) == 0


def test_no_logs_means_no_wait():
    med = medicine(MedicationFrequency.EVERY_HOURS, interval=8)
    assert hours_until_next_dose(med, [], NOW) == 0


def test_next_dose_time():
    last = NOW - timedelta(hours=1)
    assert next_dose_time(last, MedicationFrequency.TWICE_DAILY) == last + timedelta(hours=12)
    assert next_dose_time(last, MedicationFrequency.FOUR_TIMES_DAILY) == last + timedelta(hours=6)
    assert next_dose_time(last, MedicationFrequency.EVERY_HOURS, 6) == last + timedelta(hours=6)
    assert next_dose_time(last, MedicationFrequency.EVERY_HOURS) == last + timedelta(hours=4)
    assert next_dose_time(last, MedicationFrequency.AS_NEEDED) is None
    assert next_dose_time(None, MedicationFrequency.ONCE_DAILY) is None


def test_describe_wait():
    assert describe_wait(1.5) == "1h 30m"
    assert describe_wait(10 / 60) == "0h 10m"
    assert describe_wait(-2) == "0h 0m"


def test_deny_reason_messages():
    tylenol = medicine(MedicationFrequency.EVERY_HOURS, interval=6, name="Tylenol")
    assert deny_reason(tylenol, [dose(NOW - timedelta(hours=4, minutes=30))], NOW) == (
        "Next dose of Tylenol allowed in 1h 30m"
    )
    vitamin = medicine(MedicationFrequency.ONCE_DAILY)
    assert deny_reason(vitamin, [dose(NOW - timedelta(hours=1))], NOW) == (
        "Maximum of 1 daily doses of Vitamin D already given"
    )
    assert deny_reason(vitamin, [], NOW) is None


class TestMissedSet:
    evening = datetime(2024, 3, 4, 21, 0, tzinfo=timezone.utc)

    def test_fixed_count_below_max_is_missed(self):
        med = medicine(MedicationFrequency.TWICE_DAILY)
        assert is_missed(med, [dose(self.evening - timedelta(hours=10))], self.evening) is True
        logs = [dose(self.evening - timedelta(hours=10)), dose(self.evening - timedelta(hours=2))]
        assert is_missed(med, logs, self.evening) is False

    def test_every_hours_without_dose_today_is_missed(self):
        med = medicine(MedicationFrequency.EVERY_HOURS, interval=6)
        assert is_missed(med, [], self.evening) is True
        yesterday = [dose(self.evening - timedelta(days=1))]
        assert is_missed(med, yesterday, self.evening) is True

    def test_every_hours_within_interval_is_not_missed(self):
        med = medicine(MedicationFrequency.EVERY_HOURS, interval=6)
        assert is_missed(med, [dose(self.evening - timedelta(hours=2))], self.evening) is False

    def test_every_hours_overdue_is_missed(self):
        med = medicine(MedicationFrequency.EVERY_HOURS, interval=6)
        assert is_missed(med, [dose(self.evening - timedelta(hours=7))], self.evening) is True

    def test_as_needed_and_inactive_are_never_missed(self):
        assert is_missed(medicine(MedicationFrequency.AS_NEEDED), [], self.evening) is False
        inactive = medicine(MedicationFrequency.ONCE_DAILY, active=False)
        assert is_missed(inactive, [], self.evening) is False

    def test_missed_medicines_filters(self):
        meds = [
            medicine(MedicationFrequency.ONCE_DAILY, medicine_id="a"),
            medicine(MedicationFrequency.ONCE_DAILY, medicine_id="b"),
            medicine(MedicationFrequency.AS_NEEDED, medicine_id="c"),
        ]
        logs = [dose(self.evening - timedelta(hours=1), medicine_id="a")]
        assert [m.id for m in missed_medicines(meds, logs, self.evening)] == ["b"]
