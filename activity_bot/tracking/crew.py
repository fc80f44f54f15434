from __future__ import annotations

from typing import Literal

from ..models import ActivityTotals

Crew = Literal["Night Crew", "Morning Crew", "Afternoon Crew", "Evening Crew", "Weekend Crew", "Mixed"]

WEEKEND_SHARE_THRESHOLD = 0.55
BUCKET_SHARE_THRESHOLD = 0.4

_BUCKET_CREWS: tuple[tuple[str, Crew], ...] = (
    ("night", "Night Crew"),
    ("morning", "Morning Crew"),
    ("afternoon", "Afternoon Crew"),
    ("evening", "Evening Crew"),
)


def classify_crew(totals: ActivityTotals) -> Crew:
    total = totals.bucket_total
    if total <= 0:
        return "Mixed"
    if totals.weekend / total > WEEKEND_SHARE_THRESHOLD:
        return "Weekend Crew"
    for bucket, crew in _BUCKET_CREWS:
        if totals.bucket(bucket) / total > BUCKET_SHARE_THRESHOLD:
            return crew
    return "Mixed"
