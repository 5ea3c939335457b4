"""Episode record, its enumerations, and the wire <-> application mapping.

Rows in the ``headache_logs`` table use snake_case columns and the enum
strings the table has always stored. ``episode_from_row`` is the single place
where absent or null fields get their defaults.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional, Union

logger = logging.getLogger(__name__)


class PainQuality(str, Enum):
    PULSING = "Pulsante/Martellante"
    PRESSING = "Costrittivo/Casco"
    STABBING = "Trafittivo/Pugnalata"
    EXPLOSIVE = "Esplosivo"
    DULL = "Sordo/Continuo"
    OTHER = "Altro"

    @property
    def label(self) -> str:
        return _QUALITY_LABELS[self]


_QUALITY_LABELS = {
    PainQuality.PULSING: "Pulsing / throbbing",
    PainQuality.PRESSING: "Pressing / band-like",
    PainQuality.STABBING: "Stabbing",
    PainQuality.EXPLOSIVE: "Explosive",
    PainQuality.DULL: "Dull / constant",
    PainQuality.OTHER: "Other",
}


class Zone(str, Enum):
    FOREHEAD = "Fronte"
    LEFT_TEMPLE = "Tempia SX"
    RIGHT_TEMPLE = "Tempia DX"
    BEHIND_EYES = "Dietro gli occhi"
    TOP_HEAD = "Sommità"
    BACK_HEAD = "Nuca/Occipitale"
    NECK = "Collo"

    @property
    def label(self) -> str:
        return _ZONE_LABELS[self]

    @property
    def color(self) -> str:
        return ZONE_COLORS[self]


_ZONE_LABELS = {
    Zone.FOREHEAD: "Forehead",
    Zone.LEFT_TEMPLE: "Left temple",
    Zone.RIGHT_TEMPLE: "Right temple",
    Zone.BEHIND_EYES: "Behind the eyes",
    Zone.TOP_HEAD: "Top of head",
    Zone.BACK_HEAD: "Back of head",
    Zone.NECK: "Neck",
}

ZONE_COLORS = {
    Zone.FOREHEAD: "#6366f1",
    Zone.LEFT_TEMPLE: "#a855f7",
    Zone.RIGHT_TEMPLE: "#d946ef",
    Zone.BEHIND_EYES: "#f59e0b",
    Zone.TOP_HEAD: "#06b6d4",
    Zone.BACK_HEAD: "#f43f5e",
    Zone.NECK: "#10b981",
}
DEFAULT_ZONE_COLOR = "#94a3b8"

COMMON_TRIGGERS = [
    "Stress",
    "Lack of sleep",
    "Dehydration",
    "Screens/Lights",
    "Weather",
    "Alcohol",
    "Fasting",
    "Caffeine",
    "Strong smells",
    "Neck tension",
]

SYMPTOM_FLAGS = [
    ("has_aura", "Aura"),
    ("is_light_sensitive", "Light sensitivity"),
    ("is_sound_sensitive", "Sound sensitivity"),
    ("is_smell_sensitive", "Smell sensitivity"),
    ("has_nausea", "Nausea"),
    ("worsened_by_movement", "Worse with movement"),
]

# A stored zone outside the Zone enum is kept verbatim.
Location = Union[Zone, str]


@dataclass
class Episode:
    id: str
    started_at: Optional[datetime]
    ended_at: Optional[datetime] = None
    intensity: int = 5
    quality: PainQuality = PainQuality.PULSING
    locations: list[Location] = field(default_factory=list)
    has_aura: bool = False
    is_light_sensitive: bool = False
    is_sound_sensitive: bool = False
    is_smell_sensitive: bool = False
    has_nausea: bool = False
    worsened_by_movement: bool = False
    triggers: list[str] = field(default_factory=list)
    medication: str = ""
    food: str = ""
    notes: str = ""

    @property
    def is_open(self) -> bool:
        return self.ended_at is None

    @property
    def duration(self) -> Optional[timedelta]:
        if self.ended_at is None or self.started_at is None:
            return None
        return self.ended_at - self.started_at


def parse_timestamp(value) -> Optional[datetime]:
    """ISO-8601 string -> aware datetime; naive values are taken as UTC."""
    if not value:
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        try:
            dt = datetime.fromisoformat(str(value).strip().replace("Z", "+00:00"))
        except ValueError:
            return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def format_timestamp(dt: Optional[datetime]) -> Optional[str]:
    if dt is None:
        return None
    return dt.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def _parse_zone(value) -> Location:
    try:
        return Zone(value)
    except ValueError:
        return str(value)


def _parse_quality(value) -> PainQuality:
    try:
        return PainQuality(value)
    except ValueError:
        logger.warning("Unknown pain quality %r, using %s", value, PainQuality.OTHER.name)
        return PainQuality.OTHER


def _flag(value) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "t", "1", "yes")
    return value is True or value == 1


def _text(value) -> str:
    if value is None:
        return ""
    return str(value)


def _items(value) -> list:
    if not value:
        return []
    if isinstance(value, str):
        return [value]
    try:
        return list(value)
    except TypeError:
        return [value]


def episode_from_row(row: dict) -> Episode:
    started_raw = row.get("started_at")
    started_at = parse_timestamp(started_raw)
    if started_at is None:
        logger.warning("Episode %s has unparseable started_at %r", row.get("id"), started_raw)
    intensity = row.get("intensity")
    try:
        intensity = int(intensity)
    except (TypeError, ValueError):
        intensity = 0
    # zones and triggers are unique per episode, first occurrence wins
    return Episode(
        id=str(row.get("id") or ""),
        started_at=started_at,
        ended_at=parse_timestamp(row.get("ended_at")),
        intensity=intensity,
        quality=_parse_quality(row.get("quality") or PainQuality.OTHER.value),
        locations=list(dict.fromkeys(_parse_zone(z) for z in _items(row.get("locations")))),
        has_aura=_flag(row.get("has_aura")),
        is_light_sensitive=_flag(row.get("is_light_sensitive")),
        is_sound_sensitive=_flag(row.get("is_sound_sensitive")),
        is_smell_sensitive=_flag(row.get("is_smell_sensitive")),
        has_nausea=_flag(row.get("has_nausea")),
        worsened_by_movement=_flag(row.get("worsened_by_movement")),
        triggers=list(dict.fromkeys(str(t) for t in _items(row.get("triggers")))),
        medication=_text(row.get("medication")),
        food=_text(row.get("food")),
        notes=_text(row.get("notes")),
    )


def episode_to_row(episode: Episode, user_id: str) -> dict:
    return {
        "id": episode.id,
        "user_id": user_id,
        "started_at": format_timestamp(episode.started_at),
        "ended_at": format_timestamp(episode.ended_at),
        "intensity": episode.intensity,
        "quality": episode.quality.value,
        "locations": [z.value if isinstance(z, Zone) else z for z in episode.locations],
        "has_aura": episode.has_aura,
        "is_light_sensitive": episode.is_light_sensitive,
        "is_sound_sensitive": episode.is_sound_sensitive,
        "is_smell_sensitive": episode.is_smell_sensitive,
        "has_nausea": episode.has_nausea,
        "worsened_by_movement": episode.worsened_by_movement,
        "triggers": list(episode.triggers),
        "medication": episode.medication,
        "food": episode.food,
        "notes": episode.notes,
    }


def location_label(location: Location) -> str:
    return location.label if isinstance(location, Zone) else location
