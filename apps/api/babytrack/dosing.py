"""Medication dosing rules.

Pure functions over a medicine and its dose logs. ``logs`` are expected
newest first (as delivered by the store), but the most recent dose is found
by timestamp so an unsorted list still gives the right answer.
"""
from __future__ import annotations

from datetime import datetime, timedelta, tzinfo
from typing import Iterable, List, Optional

from .schemas import MedicationFrequency, Medicine, MedicineLog
from .timeutils import local_date

DEFAULT_HOURS_INTERVAL = 4

MAX_DOSES_PER_DAY = {
    MedicationFrequency.ONCE_DAILY: 1,
    MedicationFrequency.TWICE_DAILY: 2,
    MedicationFrequency.THREE_TIMES_DAILY: 3,
    MedicationFrequency.FOUR_TIMES_DAILY: 4,
}

# spacing used to suggest the next dose for fixed-count schedules
_FIXED_SPACING_HOURS = {
    MedicationFrequency.ONCE_DAILY: 24,
    MedicationFrequency.TWICE_DAILY: 12,
    MedicationFrequency.THREE_TIMES_DAILY: 8,
    MedicationFrequency.FOUR_TIMES_DAILY: 6,
}


def max_doses_per_day(frequency: MedicationFrequency) -> Optional[int]:
    """Daily cap, or None when the schedule is not count-based."""
    return MAX_DOSES_PER_DAY.get(frequency)


def _own_logs(medicine: Medicine, logs: Iterable[MedicineLog]) -> List[MedicineLog]:
    return [log for log in logs if log.medicine_id == medicine.id and log.timestamp is not None]


def last_dose(medicine: Medicine, logs: Iterable[MedicineLog]) -> Optional[MedicineLog]:
    own = _own_logs(medicine, logs)
    if not own:
        return None
    return max(own, key=lambda log: log.timestamp)


def hours_since(moment: datetime, now: datetime) -> float:
    return (now - moment).total_seconds() / 3600


def doses_given_today(
    medicine: Medicine,
    logs: Iterable[MedicineLog],
    now: datetime,
    tz: Optional[tzinfo] = None,
) -> int:
    today = local_date(now, tz)
    return sum(1 for log in _own_logs(medicine, logs) if local_date(log.timestamp, tz) == today)


def _valid_interval(medicine: Medicine) -> Optional[int]:
    interval = medicine.hours_interval
    if interval is None or interval <= 0:
        return None
    return interval


def can_give_dose(
    medicine: Medicine,
    logs: Iterable[MedicineLog],
    now: datetime,
    tz: Optional[tzinfo] = None,
) -> bool:
    logs = list(logs)
    if medicine.frequency == MedicationFrequency.AS_NEEDED:
        return True
    if medicine.frequency == MedicationFrequency.EVERY_HOURS:
        interval = _valid_interval(medicine)
        latest = last_dose(medicine, logs)
        if interval is None or latest is None:
            return True
        return hours_since(latest.timestamp, now) >= interval
    limit = max_doses_per_day(medicine.frequency)
    if limit is None:
        return True
    return doses_given_today(medicine, logs, now, tz) < limit


def hours_until_next_dose(medicine: Medicine, logs: Iterable[MedicineLog], now: datetime) -> float:
    """Remaining wait for interval-based schedules; 0 when a dose is due."""
    interval = _valid_interval(medicine)
    latest = last_dose(medicine, logs)
    if interval is None or latest is None:
        return 0.0
    return max(0.0, interval - hours_since(latest.timestamp, now))


def next_dose_time(
    last_dose_at: Optional[datetime],
    frequency: MedicationFrequency,
    hours_interval: Optional[int] = None,
) -> Optional[datetime]:
    if last_dose_at is None or frequency == MedicationFrequency.AS_NEEDED:
        return None
    if frequency == MedicationFrequency.EVERY_HOURS:
        return last_dose_at + timedelta(hours=hours_interval or DEFAULT_HOURS_INTERVAL)
    spacing = _FIXED_SPACING_HOURS.get(frequency)
    if spacing is None:
        return None
    return last_dose_at + timedelta(hours=spacing)


def describe_wait(hours: float) -> str:
    total_minutes = max(0, int(round(hours * 60)))
    whole_hours, minutes = divmod(total_minutes, 60)
    return f"{whole_hours}h {minutes}m"


def deny_reason(
    medicine: Medicine,
    logs: Iterable[MedicineLog],
    now: datetime,
    tz: Optional[tzinfo] = None,
) -> Optional[str]:
    """Human-readable reason a dose is not allowed, or None when it is."""
    logs = list(logs)
    if can_give_dose(medicine, logs, now, tz):
        return None
    if medicine.frequency == MedicationFrequency.EVERY_HOURS:
        wait = describe_wait(hours_until_next_dose(medicine, logs, now))
        return f"Next dose of {medicine.name} allowed in {wait}"
    limit = max_doses_per_day(medicine.frequency)
    return f"Maximum of {limit} daily doses of {medicine.name} already given"


def is_missed(
    medicine: Medicine,
    logs: Iterable[MedicineLog],
    now: datetime,
    tz: Optional[tzinfo] = None,
) -> bool:
    """Whether an active medicine still owes a dose today.

    Interval schedules are missed when nothing was given today or the
    caregiver is already past the interval since today's latest dose.
    """
    if not medicine.is_active or medicine.frequency == MedicationFrequency.AS_NEEDED:
        return False
    logs = list(logs)
    if medicine.frequency == MedicationFrequency.EVERY_HOURS:
        interval = _valid_interval(medicine)
        if interval is None:
            return False
        today = local_date(now, tz)
        todays = [log for log in _own_logs(medicine, logs) if local_date(log.timestamp, tz) == today]
        if not todays:
            return True
        latest = max(todays, key=lambda log: log.timestamp)
        return hours_since(latest.timestamp, now) >= interval
    limit = max_doses_per_day(medicine.frequency)
    if limit is None:
        return False
    return doses_given_today(medicine, logs, now, tz) < limit


def missed_medicines(
    medicines: Iterable[Medicine],
    logs: Iterable[MedicineLog],
    now: datetime,
    tz: Optional[tzinfo] = None,
) -> List[Medicine]:
    logs = list(logs)
    return [medicine for medicine in medicines if is_missed(medicine, logs, now, tz)]
