"""Pydantic schemas shared across the API."""
from __future__ import annotations

import logging
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from .timeutils import parse_instant

logger = logging.getLogger(__name__)


class ActivityType(str, Enum):
    FEEDING = "feeding"
    PUMP = "pump"
    PLAY = "play"


class TimerState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    REVIEW = "review"
    COMMITTED = "committed"
    DISCARDED = "discarded"


class MedicationFrequency(str, Enum):
    AS_NEEDED = "as_needed"
    ONCE_DAILY = "once_daily"
    TWICE_DAILY = "twice_daily"
    THREE_TIMES_DAILY = "three_times_daily"
    FOUR_TIMES_DAILY = "four_times_daily"
    EVERY_HOURS = "every_hours"


MEDICATION_FREQUENCY_LABELS = {
    MedicationFrequency.AS_NEEDED: "As Needed",
    MedicationFrequency.ONCE_DAILY: "Once Daily",
    MedicationFrequency.TWICE_DAILY: "Twice Daily",
    MedicationFrequency.THREE_TIMES_DAILY: "3x Daily",
    MedicationFrequency.FOUR_TIMES_DAILY: "4x Daily",
    MedicationFrequency.EVERY_HOURS: "Every X Hours",
}


class BabyMood(str, Enum):
    HAPPY = "happy"
    FUSSY = "fussy"
    CALM = "calm"
    CRYING = "crying"
    SLEEPY = "sleepy"


class MomMood(str, Enum):
    ENERGIZED = "energized"
    TIRED = "tired"
    STRESSED = "stressed"
    HAPPY = "happy"
    OVERWHELMED = "overwhelmed"


SESSION_CORE_FIELDS = {
    "id",
    "activity_type",
    "baby_id",
    "user_id",
    "date",
    "start_time",
    "end_time",
    "is_active",
    "is_paused",
    "paused_at",
    "total_paused_duration",
    "duration",
    "notes",
    "baby_mood",
    "mom_mood",
    "created_at",
    "updated_at",
}


def _non_negative_number(value: Any) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if number != number or number < 0:  # NaN or negative
        return 0.0
    return number


class ActivitySession(BaseModel):
    id: str
    activity_type: ActivityType
    baby_id: Optional[str] = None
    user_id: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    is_active: bool = False
    is_paused: bool = False
    paused_at: Optional[datetime] = None
    total_paused_duration: float = Field(default=0, description="Seconds spent paused, accumulated on resume")
    duration: int = Field(default=0, description="Committed duration in seconds")
    notes: Optional[str] = None
    baby_mood: Optional[str] = None
    mom_mood: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict, description="Side, volume, play type, ...")

    @classmethod
    def from_record(cls, record: Dict[str, Any], activity_type: ActivityType) -> Optional["ActivitySession"]:
        """Build a session from a raw store document, tolerating corrupted fields."""
        record_id = record.get("id")
        if not record_id:
            logger.warning("session record without id", extra={"activity_type": activity_type.value})
            return None
        return cls(
            id=str(record_id),
            activity_type=activity_type,
            baby_id=record.get("baby_id"),
            user_id=record.get("user_id"),
            start_time=parse_instant(record.get("start_time")),
            end_time=parse_instant(record.get("end_time")),
            is_active=bool(record.get("is_active")),
            is_paused=bool(record.get("is_paused")),
            paused_at=parse_instant(record.get("paused_at")),
            total_paused_duration=_non_negative_number(record.get("total_paused_duration")),
            duration=int(_non_negative_number(record.get("duration"))),
            notes=record.get("notes"),
            baby_mood=record.get("baby_mood"),
            mom_mood=record.get("mom_mood"),
            metadata={k: v for k, v in record.items() if k not in SESSION_CORE_FIELDS},
        )


class Medicine(BaseModel):
    id: str
    baby_id: Optional[str] = None
    user_id: Optional[str] = None
    name: str = ""
    dosage: str = ""
    frequency: MedicationFrequency = MedicationFrequency.AS_NEEDED
    hours_interval: Optional[int] = None
    instructions: Optional[str] = None
    is_active: bool = True

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> Optional["Medicine"]:
        record_id = record.get("id")
        if not record_id:
            logger.warning("medicine record without id")
            return None
        try:
            frequency = MedicationFrequency(record.get("frequency") or MedicationFrequency.AS_NEEDED.value)
        except ValueError:
            logger.warning("unknown medication frequency", extra={"medicine_id": record_id})
            frequency = MedicationFrequency.AS_NEEDED
        interval = record.get("hours_interval")
        try:
            interval = int(interval) if interval is not None else None
        except (TypeError, ValueError):
            interval = None
        return cls(
            id=str(record_id),
            baby_id=record.get("baby_id"),
            user_id=record.get("user_id"),
            name=record.get("name") or "",
            dosage=record.get("dosage") or "",
            frequency=frequency,
            hours_interval=interval if interval and interval > 0 else None,
            instructions=record.get("instructions"),
            is_active=bool(record.get("is_active", True)),
        )


class MedicineLog(BaseModel):
    id: str
    medicine_id: str
    baby_id: Optional[str] = None
    user_id: Optional[str] = None
    timestamp: Optional[datetime] = None
    given_by: Optional[str] = None
    notes: Optional[str] = None

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> Optional["MedicineLog"]:
        if not record.get("id") or not record.get("medicine_id"):
            logger.warning("medicine log record missing ids")
            return None
        return cls(
            id=str(record["id"]),
            medicine_id=str(record["medicine_id"]),
            baby_id=record.get("baby_id"),
            user_id=record.get("user_id"),
            timestamp=parse_instant(record.get("timestamp")),
            given_by=record.get("given_by"),
            notes=record.get("notes"),
        )


class CreateMedicinePayload(BaseModel):
    name: str = Field(..., min_length=1)
    dosage: str = ""
    frequency: MedicationFrequency = MedicationFrequency.AS_NEEDED
    hours_interval: Optional[int] = Field(default=None, description="Required for every_hours")
    instructions: Optional[str] = None

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("name is required")
        return value

    @model_validator(mode="after")
    def _interval_matches_frequency(self) -> "CreateMedicinePayload":
        if self.frequency == MedicationFrequency.EVERY_HOURS:
            if self.hours_interval is None or self.hours_interval <= 0:
                raise ValueError("hours_interval must be a positive number of hours for every_hours")
        else:
            self.hours_interval = None
        return self


class TimerView(BaseModel):
    activity_type: ActivityType
    state: TimerState
    elapsed_seconds: int = 0
    is_paused: bool = False
    session_id: Optional[str] = None
    stale_prompt: bool = False
    edited_start_time: Optional[datetime] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class EditDraft(BaseModel):
    start_time: datetime
    duration_minutes: int


class MedicineStatus(BaseModel):
    medicine: Medicine
    can_give: bool
    doses_today: int
    max_doses_per_day: Optional[int] = None
    hours_until_next_dose: float = 0
    next_dose_time: Optional[datetime] = None


class ReminderView(BaseModel):
    is_showing: bool = False
    missed_medicines: List[Medicine] = Field(default_factory=list)
    last_reminder_date: Optional[str] = None


class NoticeOut(BaseModel):
    level: str
    message: str
    created_at: datetime
