from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Collection, List, Literal, Sequence

from .models import (
    VIBE_KEYS,
    InteractionPair,
    InteractionSummary,
    LeaderboardEntry,
    MomentRecord,
    UserRecord,
    interaction_score,
)
from .tracking.crew import Crew, classify_crew
from .vibes.summary import ServerVibes, display_vibes, server_vibe_counts

if TYPE_CHECKING:
    from .config import Settings
    from .storage import ActivityStore


LeaderboardMode = Literal["chat", "voice", "night", "connections"]
LEADERBOARD_MODES: tuple[LeaderboardMode, ...] = ("chat", "voice", "night", "connections")


@dataclass(slots=True)
class LinkSummary:
    user_id: str
    other_user_id: str
    mentions: int = 0
    replies: int = 0
    voice_minutes: int = 0
    last_interaction_at: datetime | None = None

    @property
    def score(self) -> int:
        return interaction_score(self.mentions, self.replies, self.voice_minutes)


@dataclass(slots=True)
class ProfileSnapshot:
    user_id: str
    user: UserRecord | None
    crew: Crew
    vibes: list[str] = field(default_factory=list)
    first_memory: MomentRecord | None = None
    most_seen_with: list[InteractionPair] = field(default_factory=list)
    interactions: InteractionSummary = field(default_factory=InteractionSummary)


class ActivityQueries:
    """Read-side facade used by the commands layer."""

    def __init__(
        self,
        store: "ActivityStore",
        *,
        scoped_message_category_ids: Collection[str] = (),
        scoped_voice_category_ids: Collection[str] = (),
        leaderboard_default_size: int = 10,
        leaderboard_max_size: int = 25,
        max_most_seen_with: int = 3,
    ) -> None:
        self.store = store
        self.scoped_message_category_ids = frozenset(str(item) for item in scoped_message_category_ids)
        self.scoped_voice_category_ids = frozenset(str(item) for item in scoped_voice_category_ids)
        self.leaderboard_default_size = leaderboard_default_size
        self.leaderboard_max_size = leaderboard_max_size
        self.max_most_seen_with = max_most_seen_with

    @classmethod
    def from_settings(cls, store: "ActivityStore", settings: "Settings") -> "ActivityQueries":
        return cls(
            store,
            scoped_message_category_ids=settings.scoped_message_category_ids,
            scoped_voice_category_ids=settings.scoped_voice_category_ids,
            leaderboard_default_size=settings.leaderboard_default_size,
            leaderboard_max_size=settings.leaderboard_max_size,
            max_most_seen_with=settings.max_most_seen_with,
        )

    def clamp_limit(self, limit: int | None) -> int:
        if limit is None:
            limit = self.leaderboard_default_size
        return max(1, min(int(limit), self.leaderboard_max_size))

    async def leaderboard(self, mode: LeaderboardMode, limit: int | None = None) -> List[LeaderboardEntry]:
        size = self.clamp_limit(limit)
        if mode == "chat":
            return await self.store.top_messages(size, category_ids=self._scope(self.scoped_message_category_ids))
        if mode == "voice":
            return await self.store.top_voice(size, category_ids=self._scope(self.scoped_voice_category_ids))
        if mode == "night":
            return await self.store.top_night(size, category_ids=self._scope(self.scoped_message_category_ids))
        if mode == "connections":
            return await self.store.top_users_by_score(size)
        raise ValueError(f"Unknown leaderboard mode: {mode!r}")

    @staticmethod
    def _scope(category_ids: frozenset[str]) -> frozenset[str] | None:
        # An empty allowlist means "no scoping", not "nothing matches".
        return category_ids or None

    async def link(self, user_id: str, other_user_id: str) -> LinkSummary:
        forward = await self.store.get_interaction_pair(user_id, other_user_id)
        backward = await self.store.get_interaction_pair(other_user_id, user_id)
        summary = LinkSummary(user_id=user_id, other_user_id=other_user_id)
        for pair in (forward, backward):
            if pair is None:
                continue
            summary.mentions += pair.mentions
            summary.replies += pair.replies
            summary.voice_minutes += pair.voice_minutes
            if pair.last_interaction_at is not None and (
                summary.last_interaction_at is None or pair.last_interaction_at > summary.last_interaction_at
            ):
                summary.last_interaction_at = pair.last_interaction_at
        return summary

    async def server_vibes(self) -> ServerVibes:
        return server_vibe_counts(await self.store.list_user_vibes())

    async def set_chosen_vibes(self, user_id: str, vibes: Sequence[str]) -> tuple[str, ...]:
        picked: list[str] = []
        for item in vibes:
            key = str(item).strip().lower()
            if key in VIBE_KEYS and key not in picked:
                picked.append(key)
        if not picked:
            raise ValueError("Pick at least one vibe (chat/game/movie/music)")
        await self.store.upsert_user(user_id)
        await self.store.set_chosen_vibe(user_id, picked)
        return tuple(picked)

    async def profile(self, user_id: str) -> ProfileSnapshot:
        user = await self.store.get_user(user_id)
        totals = await self.store.get_totals(user_id)
        vibes = display_vibes(user.chosen_vibes, user.inferred_vibes) if user is not None else []
        return ProfileSnapshot(
            user_id=user_id,
            user=user,
            crew=classify_crew(totals),
            vibes=vibes,
            first_memory=await self.store.get_earliest_moment(user_id),
            most_seen_with=await self.store.top_counterparties(user_id, self.max_most_seen_with),
            interactions=await self.store.get_interaction_summary(user_id),
        )
