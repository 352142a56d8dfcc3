"""Per-activity configuration for the shared session timer engine."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Tuple

from .errors import SessionValidationError
from .schemas import ActivityType, BabyMood, MomMood

BREAST_SIDE_LABELS = {"left": "Left", "right": "Right"}
PUMP_SIDE_LABELS = {"left": "Left", "right": "Right", "both": "Both"}
PLAY_TYPE_LABELS = {
    "tummy_time": "Tummy Time",
    "free_play": "Free Play",
    "sensory": "Sensory Play",
    "reading": "Reading",
    "outdoor": "Outdoor Play",
}
VOLUME_UNITS = ("oz", "ml")

MOOD_CHOICES = {
    "baby_mood": tuple(mood.value for mood in BabyMood),
    "mom_mood": tuple(mood.value for mood in MomMood),
}


def _as_volume(value: Any) -> float:
    try:
        volume = float(value)
    except (TypeError, ValueError) as exc:
        raise SessionValidationError("volume must be a number") from exc
    if volume < 0:
        raise SessionValidationError("volume cannot be negative")
    return volume


@dataclass(frozen=True)
class MetadataField:
    name: str
    default: Any = None
    choices: Optional[Tuple[str, ...]] = None
    coerce: Optional[Callable[[Any], Any]] = None

    def clean(self, value: Any) -> Any:
        if value is None:
            return self.default
        if self.coerce is not None:
            value = self.coerce(value)
        if self.choices is not None and value not in self.choices:
            raise SessionValidationError(
                f"{self.name} must be one of {', '.join(self.choices)}"
            )
        return value


@dataclass(frozen=True)
class ActivityConfig:
    activity_type: ActivityType
    collection: str
    label: str
    fields: Tuple[MetadataField, ...]
    mood_fields: Tuple[str, ...]
    describe: Callable[[Dict[str, Any]], str]
    alternating_field: Optional[str] = None

    @property
    def field_names(self) -> Tuple[str, ...]:
        return tuple(f.name for f in self.fields)

    def defaults(self) -> Dict[str, Any]:
        return {f.name: f.default for f in self.fields}

    def clean_metadata(self, metadata: Optional[Dict[str, Any]], *, partial: bool = False) -> Dict[str, Any]:
        """Validate activity metadata; ``partial`` keeps only the supplied keys."""
        metadata = dict(metadata or {})
        unknown = set(metadata) - set(self.field_names)
        if unknown:
            raise SessionValidationError(
                f"Unknown {self.activity_type.value} fields: {', '.join(sorted(unknown))}"
            )
        cleaned: Dict[str, Any] = {}
        for f in self.fields:
            if partial and f.name not in metadata:
                continue
            cleaned[f.name] = f.clean(metadata.get(f.name))
        return cleaned

    def clean_mood(self, name: str, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        if name not in self.mood_fields:
            raise SessionValidationError(f"{name} is not recorded for {self.activity_type.value}")
        if value not in MOOD_CHOICES[name]:
            raise SessionValidationError(f"{name} must be one of {', '.join(MOOD_CHOICES[name])}")
        return value

    def suggested_metadata(self, last_completed: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        """Defaults for a new session; feeding alternates sides."""
        suggested = self.defaults()
        if self.alternating_field and last_completed:
            previous = last_completed.get(self.alternating_field)
            if previous == "left":
                suggested[self.alternating_field] = "right"
            elif previous == "right":
                suggested[self.alternating_field] = "left"
        return suggested


FEEDING = ActivityConfig(
    activity_type=ActivityType.FEEDING,
    collection="feeding_sessions",
    label="Breastfeeding",
    fields=(MetadataField("breast_side", default="left", choices=tuple(BREAST_SIDE_LABELS)),),
    mood_fields=("baby_mood", "mom_mood"),
    describe=lambda meta: f"{BREAST_SIDE_LABELS.get(meta.get('breast_side'), 'Left')} side",
    alternating_field="breast_side",
)

PUMP = ActivityConfig(
    activity_type=ActivityType.PUMP,
    collection="pump_sessions",
    label="Pump",
    fields=(
        MetadataField("side", default="both", choices=tuple(PUMP_SIDE_LABELS)),
        MetadataField("volume", default=0.0, coerce=_as_volume),
        MetadataField("volume_unit", default="oz", choices=VOLUME_UNITS),
    ),
    mood_fields=("mom_mood",),
    describe=lambda meta: f"{PUMP_SIDE_LABELS.get(meta.get('side'), 'Both')} pump",
)

PLAY = ActivityConfig(
    activity_type=ActivityType.PLAY,
    collection="play_sessions",
    label="Play",
    fields=(MetadataField("type", default="tummy_time", choices=tuple(PLAY_TYPE_LABELS)),),
    mood_fields=("baby_mood",),
    describe=lambda meta: PLAY_TYPE_LABELS.get(meta.get("type"), "Play"),
)

ACTIVITY_CONFIGS: Dict[ActivityType, ActivityConfig] = {
    config.activity_type: config for config in (FEEDING, PUMP, PLAY)
}


def get_activity_config(activity_type: ActivityType | str) -> ActivityConfig:
    try:
        return ACTIVITY_CONFIGS[ActivityType(activity_type)]
    except ValueError as exc:
        raise SessionValidationError(f"Unknown activity type: {activity_type}") from exc
