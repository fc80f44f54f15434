from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import List

from ..models import BUCKETS, Bucket

# Upper bound hour (exclusive) of each day-part, in UTC.
_BUCKET_ENDS: tuple[tuple[int, Bucket], ...] = (
    (5, "night"),
    (12, "morning"),
    (18, "afternoon"),
    (24, "evening"),
)


@dataclass(slots=True)
class DaySegment:
    date_key: str
    bucket: Bucket
    total_minutes: int
    weekend_minutes: int
    bucket_minutes: dict[str, int] = field(default_factory=dict)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def floor_minute(value: datetime) -> datetime:
    return _as_utc(value).replace(second=0, microsecond=0)


def date_key(value: datetime) -> str:
    return _as_utc(value).strftime("%Y-%m-%d")


def is_weekend(value: datetime) -> bool:
    return _as_utc(value).weekday() >= 5


def bucket_for(value: datetime) -> Bucket:
    hour = _as_utc(value).hour
    for end_hour, name in _BUCKET_ENDS:
        if hour < end_hour:
            return name
    return "evening"


def _bucket_end(value: datetime) -> datetime:
    day_start = value.replace(hour=0, minute=0, second=0, microsecond=0)
    for end_hour, _ in _BUCKET_ENDS:
        boundary = day_start + timedelta(hours=end_hour)
        if value < boundary:
            return boundary
    return day_start + timedelta(days=1)


def whole_minutes(start: datetime, end: datetime) -> int:
    delta = floor_minute(end) - floor_minute(start)
    return max(0, int(delta.total_seconds() // 60))


def split_interval(start: datetime, end: datetime) -> List[DaySegment]:
    """Partition ``[start, end)`` at UTC midnight and at each day-part boundary.

    Both ends are truncated to whole minutes first; an empty or inverted
    interval yields no segments.
    """
    cursor = floor_minute(start)
    stop = floor_minute(end)
    segments: list[DaySegment] = []
    while cursor < stop:
        segment_end = min(_bucket_end(cursor), stop)
        minutes = int((segment_end - cursor).total_seconds() // 60)
        if minutes > 0:
            name = bucket_for(cursor)
            segments.append(
                DaySegment(
                    date_key=date_key(cursor),
                    bucket=name,
                    total_minutes=minutes,
                    weekend_minutes=minutes if is_weekend(cursor) else 0,
                    bucket_minutes={key: minutes if key == name else 0 for key in BUCKETS},
                )
            )
        cursor = segment_end
    return segments
