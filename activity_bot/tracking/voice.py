from __future__ import annotations

import asyncio
import logging
import contextlib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, AsyncIterator, Callable, Collection

from ..models import FirstVoiceMeta, MomentType
from ..storage.utils import to_iso
from .events import ChannelInfo, VoiceStateChange
from .timebuckets import split_interval, whole_minutes

if TYPE_CHECKING:
    from ..moments import MomentsService
    from ..storage import ActivityStore
    from .ownership import ChannelOwnershipPolicy

logger = logging.getLogger("activity_bot")


@dataclass(slots=True)
class VoiceSession:
    channel: ChannelInfo
    guild_id: str
    started_at: datetime


@dataclass(slots=True)
class ClosedSession:
    user_id: str
    channel: ChannelInfo
    minutes: int
    overlaps: dict[str, int]


@dataclass(slots=True)
class _UserLock:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    holders: int = 0


class VoiceSessionTracker:
    """In-memory voice presence per user; sessions are lost on restart."""

    def __init__(
        self,
        store: "ActivityStore",
        moments: "MomentsService",
        policy: "ChannelOwnershipPolicy",
        *,
        track_voice: bool = True,
        track_interactions: bool = True,
        min_first_vc_minutes: int = 5,
        scoped_category_ids: Collection[str] = (),
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.store = store
        self.moments = moments
        self.policy = policy
        self.track_voice = track_voice
        self.track_interactions = track_interactions
        self.min_first_vc_minutes = max(0, int(min_first_vc_minutes))
        self.scoped_category_ids = frozenset(str(item) for item in scoped_category_ids)
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._sessions: dict[str, VoiceSession] = {}
        self._user_locks: dict[str, _UserLock] = {}

    def active_session(self, user_id: str) -> VoiceSession | None:
        return self._sessions.get(user_id)

    @property
    def active_count(self) -> int:
        return len(self._sessions)

    async def on_voice_state(self, change: VoiceStateChange) -> ClosedSession | None:
        if change.user_bot:
            return None
        before_id = change.before_id
        after_id = change.after_id
        # Mute/deafen/stream toggles keep the same channel.
        if before_id == after_id:
            return None

        # A move closes and reopens at the same instant.
        now = self._clock()
        async with self._user_lock(change.user_id):
            closed: ClosedSession | None = None
            if change.before_channel is not None:
                closed = await self._close_session(change.user_id, change.before_channel, now)
            if change.after_channel is not None:
                await self._open_session(change, now)
            return closed

    @contextlib.asynccontextmanager
    async def _user_lock(self, user_id: str) -> AsyncIterator[None]:
        entry = self._user_locks.get(user_id)
        if entry is None:
            entry = self._user_locks[user_id] = _UserLock()
        entry.holders += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.holders -= 1
            if entry.holders == 0:
                del self._user_locks[user_id]

    async def _open_session(self, change: VoiceStateChange, started_at: datetime) -> None:
        assert change.after_channel is not None
        self._sessions[change.user_id] = VoiceSession(
            channel=change.after_channel,
            guild_id=change.guild_id,
            started_at=started_at,
        )
        join_date = to_iso(change.joined_at) if change.joined_at else None
        await self.store.upsert_user(change.user_id, join_date)

    def _pop_with_peers(self, user_id: str, channel_id: str) -> tuple[VoiceSession | None, dict[str, datetime]]:
        # Runs without awaiting so concurrent closers see a consistent map.
        session = self._sessions.get(user_id)
        if session is None:
            return None, {}
        if session.channel.channel_id != channel_id:
            logger.debug(
                "Discarding stale voice session user=%s tracked=%s left=%s",
                user_id,
                session.channel.channel_id,
                channel_id,
            )
            del self._sessions[user_id]
            return None, {}
        del self._sessions[user_id]
        peers = {
            other_id: other.started_at
            for other_id, other in self._sessions.items()
            if other.channel.channel_id == channel_id
        }
        return session, peers

    async def _close_session(self, user_id: str, channel: ChannelInfo, ended_at: datetime) -> ClosedSession | None:
        session, peers = self._pop_with_peers(user_id, channel.channel_id)
        if session is None:
            return None

        minutes = whole_minutes(session.started_at, ended_at)
        if minutes <= 0:
            return None

        ended_iso = to_iso(ended_at)
        channel_id = session.channel.channel_id
        await self.store.set_last_voice(user_id, ended_iso, channel_id, minutes)
        await self.store.set_last_seen(user_id, ended_iso, "voice", channel_id)

        if self.track_voice:
            await self._record_activity(user_id, session, ended_at)

        if minutes >= self.min_first_vc_minutes:
            await self.moments.ensure_moment(
                user_id,
                MomentType.FIRST_VC,
                FirstVoiceMeta(channel_id=channel_id, channel_name=session.channel.name, minutes=minutes),
                ended_at,
            )

        overlaps: dict[str, int] = {}
        if self.track_interactions:
            overlaps = await self._record_overlaps(user_id, session.started_at, ended_at, peers)

        logger.debug("Closed voice session user=%s channel=%s minutes=%s", user_id, channel_id, minutes)
        return ClosedSession(user_id=user_id, channel=session.channel, minutes=minutes, overlaps=overlaps)

    async def _record_activity(self, user_id: str, session: VoiceSession, ended_at: datetime) -> None:
        if not await self.policy.should_count(session.guild_id, session.channel, user_id):
            logger.debug("Voice activity in owned channel=%s skipped for user=%s", session.channel.channel_id, user_id)
            return
        category_id = session.channel.category_id
        scoped = category_id is not None and category_id in self.scoped_category_ids
        for segment in split_interval(session.started_at, ended_at):
            await self.store.add_voice(
                user_id,
                segment.date_key,
                segment.total_minutes,
                segment.bucket_minutes,
                segment.weekend_minutes,
            )
            if scoped:
                await self.store.add_voice(
                    user_id,
                    segment.date_key,
                    segment.total_minutes,
                    segment.bucket_minutes,
                    segment.weekend_minutes,
                    category_id=category_id,
                )

    async def _record_overlaps(
        self,
        user_id: str,
        started_at: datetime,
        ended_at: datetime,
        peers: dict[str, datetime],
    ) -> dict[str, int]:
        overlaps: dict[str, int] = {}
        at = to_iso(ended_at)
        for other_id, other_started_at in peers.items():
            window_start = max(started_at, other_started_at)
            overlap = int((ended_at - window_start).total_seconds() // 60)
            if overlap <= 0:
                continue
            await self.store.add_interaction_delta(user_id, other_id, voice_minutes=overlap, at=at)
            await self.store.add_interaction_delta(other_id, user_id, voice_minutes=overlap, at=at)
            overlaps[other_id] = overlap
        return overlaps
