from collections import Counter, defaultdict
from dataclasses import dataclass
from datetime import date, datetime, timedelta, tzinfo
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Iterable, Optional

from models import DEFAULT_ZONE_COLOR, Episode, Zone

TREND_MAX_DAYS = 365
TOP_TRIGGERS = 5


class TimeBucket(str, Enum):
    MORNING = "morning"
    AFTERNOON = "afternoon"
    EVENING = "evening"
    NIGHT = "night"

    @property
    def label(self) -> str:
        return self.value.capitalize()


@dataclass(frozen=True)
class TrendPoint:
    day: date
    intensity: float

    @property
    def label(self) -> str:
        return str(self.day.day)


@dataclass(frozen=True)
class ZoneCount:
    zone: Optional[Zone]  # None pools stored values outside the enum
    count: int

    @property
    def name(self) -> str:
        return self.zone.label if self.zone is not None else "Unrecognized"

    @property
    def color(self) -> str:
        return self.zone.color if self.zone is not None else DEFAULT_ZONE_COLOR


@dataclass(frozen=True)
class TimeBucketCount:
    bucket: TimeBucket
    count: int


@dataclass(frozen=True)
class TriggerCount:
    label: str
    count: int
    share: float


def _round1(value: Decimal) -> float:
    return float(value.quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


def _local_start(episode: Episode, tz: Optional[tzinfo]) -> Optional[datetime]:
    if episode.started_at is None:
        return None
    return episode.started_at.astimezone(tz)


def bucket_for_hour(hour: int) -> TimeBucket:
    if 6 <= hour < 12:
        return TimeBucket.MORNING
    if 12 <= hour < 18:
        return TimeBucket.AFTERNOON
    if hour >= 18:
        return TimeBucket.EVENING
    return TimeBucket.NIGHT


def filter_window(episodes: Iterable[Episode], start: date, end: date,
                  tz: Optional[tzinfo] = None) -> list[Episode]:
    result = []
    for ep in episodes:
        local = _local_start(ep, tz)
        if local is not None and start <= local.date() <= end:
            result.append(ep)
    return result


def daily_trend(episodes: Iterable[Episode], start: date, end: date,
                tz: Optional[tzinfo] = None) -> list[TrendPoint]:
    """Mean intensity per local calendar day over ``[start, end]``."""
    by_day = defaultdict(list)
    for ep in episodes:
        local = _local_start(ep, tz)
        if local is not None:
            by_day[local.date()].append(ep.intensity)
    points = []
    day = start
    while day <= end and len(points) < TREND_MAX_DAYS:
        values = by_day.get(day)
        if values:
            points.append(TrendPoint(day, _round1(Decimal(sum(values)) / len(values))))
        else:
            points.append(TrendPoint(day, 0.0))
        if day == end:
            break
        day += timedelta(days=1)
    return points


def zone_frequency(episodes: Iterable[Episode]) -> list[ZoneCount]:
    # Counter keeps first-seen order; sorted() is stable, so ties stay in that order.
    counts: Counter = Counter()
    for ep in episodes:
        for loc in ep.locations:
            counts[loc if isinstance(loc, Zone) else None] += 1
    ranked = sorted(counts.items(), key=lambda kv: kv[1], reverse=True)
    return [ZoneCount(zone, n) for zone, n in ranked]


def time_of_day_distribution(episodes: Iterable[Episode],
                             tz: Optional[tzinfo] = None) -> list[TimeBucketCount]:
    counts = {bucket: 0 for bucket in TimeBucket}
    for ep in episodes:
        local = _local_start(ep, tz)
        if local is not None:
            counts[bucket_for_hour(local.hour)] += 1
    return [TimeBucketCount(bucket, n) for bucket, n in counts.items()]


def active_time_buckets(distribution: list[TimeBucketCount]) -> list[TimeBucketCount]:
    return [b for b in distribution if b.count > 0]


def top_triggers(episodes: Iterable[Episode], limit: int = TOP_TRIGGERS) -> list[TriggerCount]:
    episodes = list(episodes)
    counts: Counter = Counter()
    for ep in episodes:
        for trigger in ep.triggers:
            counts[trigger] += 1
    ranked = sorted(counts.items(), key=lambda kv: kv[1], reverse=True)[:limit]
    total = len(episodes)
    return [TriggerCount(label, n, n / total) for label, n in ranked]


def max_intensity_by_day(episodes: Iterable[Episode], tz: Optional[tzinfo] = None) -> dict[date, int]:
    result: dict[date, int] = {}
    for ep in episodes:
        local = _local_start(ep, tz)
        if local is None:
            continue
        day = local.date()
        result[day] = max(result.get(day, 0), ep.intensity)
    return result


def summary_stats(episodes: list[Episode], now: datetime) -> dict:
    """Dashboard numbers; ``episodes`` is newest first."""
    total = len(episodes)
    if not total:
        return {"total": 0, "avg_intensity": 0.0, "days_since_last": None}
    avg = _round1(Decimal(sum(ep.intensity for ep in episodes)) / total)
    starts = [ep.started_at for ep in episodes if ep.started_at is not None]
    days_since = None
    if starts:
        days_since = max(0, (now - max(starts)).days)
    return {"total": total, "avg_intensity": avg, "days_since_last": days_since}
