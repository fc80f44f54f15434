from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Callable, List

from .models import ActivityTotals, LeaderboardEntry, MomentRecord
from .storage.utils import to_iso
from .tracking.timebuckets import date_key

if TYPE_CHECKING:
    from .storage import ActivityStore

logger = logging.getLogger("activity_bot")

RECAP_HIGHLIGHTS = 2


@dataclass(slots=True)
class RecapWindow:
    start_key: str
    end_key: str
    end_exclusive_key: str

    @property
    def start_iso(self) -> str:
        return f"{self.start_key}T00:00:00.000Z"

    @property
    def end_iso(self) -> str:
        return f"{self.end_exclusive_key}T00:00:00.000Z"


@dataclass(slots=True)
class WeeklyRecap:
    window: RecapWindow
    top_chat: List[LeaderboardEntry] = field(default_factory=list)
    top_voice: List[LeaderboardEntry] = field(default_factory=list)
    totals: ActivityTotals = field(default_factory=ActivityTotals)
    notes_count: int = 0
    highlights: List[MomentRecord] = field(default_factory=list)


def recap_window(now: datetime) -> RecapWindow:
    """The seven UTC days ending with ``now``'s day, end exclusive."""
    today = now.astimezone(timezone.utc) if now.tzinfo else now.replace(tzinfo=timezone.utc)
    return RecapWindow(
        start_key=date_key(today - timedelta(days=6)),
        end_key=date_key(today),
        end_exclusive_key=date_key(today + timedelta(days=1)),
    )


def format_minutes(minutes: int) -> str:
    if minutes <= 0:
        return "0m"
    hours, rest = divmod(int(minutes), 60)
    if hours <= 0:
        return f"{rest}m"
    if rest <= 0:
        return f"{hours}h"
    return f"{hours}h {rest}m"


class WeeklyRecapBuilder:
    def __init__(
        self,
        store: "ActivityStore",
        *,
        top_n: int = 10,
        include_moments: bool = True,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.store = store
        self.top_n = max(1, int(top_n))
        self.include_moments = include_moments
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def build(self) -> WeeklyRecap | None:
        """Collect this week's recap, or None when it was already posted."""
        window = recap_window(self._clock())
        if await self.store.has_recap_run(window.start_key):
            logger.info("Weekly recap skipped (already posted) week_start=%s", window.start_key)
            return None

        recap = WeeklyRecap(window=window)
        recap.top_chat = await self.store.top_messages(
            self.top_n,
            start_key=window.start_key,
            end_key=window.end_exclusive_key,
        )
        recap.top_voice = await self.store.top_voice(
            self.top_n,
            start_key=window.start_key,
            end_key=window.end_exclusive_key,
        )
        recap.totals = await self.store.totals_between(window.start_key, window.end_exclusive_key)
        if self.include_moments:
            recap.notes_count = await self.store.count_notes_between(window.start_iso, window.end_iso)
            recap.highlights = await self.store.list_notes_between(
                window.start_iso,
                window.end_iso,
                RECAP_HIGHLIGHTS,
            )
        return recap

    async def mark_posted(self, recap: WeeklyRecap, channel_id: str, message_id: str | None = None) -> bool:
        saved = await self.store.mark_recap_run(
            recap.window.start_key,
            to_iso(self._clock()),
            channel_id,
            message_id,
        )
        if saved:
            logger.info("Weekly recap recorded week_start=%s channel=%s", recap.window.start_key, channel_id)
        return saved
