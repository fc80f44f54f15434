from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Collection

from ..models import FirstConnectionMeta, FirstMessageMeta, MomentType
from ..storage.utils import to_iso
from .events import MessageEvent
from .interactions import ConnectionCandidates, InteractionTracker
from .timebuckets import bucket_for, date_key, is_weekend

if TYPE_CHECKING:
    from ..moments import MomentsService
    from ..storage import ActivityStore
    from ..vibes import VibeInference
    from .ownership import ChannelOwnershipPolicy

logger = logging.getLogger("activity_bot")


class MessageTracker:
    def __init__(
        self,
        store: "ActivityStore",
        moments: "MomentsService",
        policy: "ChannelOwnershipPolicy",
        interactions: InteractionTracker,
        vibes: "VibeInference | None" = None,
        *,
        track_messages: bool = True,
        track_interactions: bool = True,
        scoped_category_ids: Collection[str] = (),
    ) -> None:
        self.store = store
        self.moments = moments
        self.policy = policy
        self.interactions = interactions
        self.vibes = vibes
        self.track_messages = track_messages
        self.track_interactions = track_interactions
        self.scoped_category_ids = frozenset(str(item) for item in scoped_category_ids)

    async def on_message(self, event: MessageEvent) -> bool:
        """Run per-message bookkeeping. Returns False for ignored (bot or DM) messages."""
        if event.author_bot or not event.guild_id:
            return False

        user_id = event.author_id
        channel = event.channel
        at = to_iso(event.created_at)

        join_date = to_iso(event.author_joined_at) if event.author_joined_at else None
        await self.store.upsert_user(user_id, join_date)

        await self.store.set_last_message(user_id, at, channel.channel_id)
        await self.store.set_last_seen(user_id, at, "message", channel.channel_id)

        await self.moments.ensure_moment(
            user_id,
            MomentType.FIRST_MESSAGE,
            FirstMessageMeta(channel_id=channel.channel_id, channel_name=channel.name),
            event.created_at,
        )

        if self.track_messages:
            await self._count_message(event)

        if self.track_interactions:
            candidates = await self.interactions.record_from_message(event)
            await self._apply_connection(event, candidates)

        if self.vibes is not None:
            try:
                await self.vibes.on_message(event)
            except Exception:
                logger.exception("Vibe inference failed for message=%s", event.message_id)
        return True

    async def _count_message(self, event: MessageEvent) -> None:
        if not await self.policy.should_count(event.guild_id, event.channel, event.author_id):
            logger.debug(
                "Message in owned channel=%s not counted for user=%s",
                event.channel.channel_id,
                event.author_id,
            )
            return
        day = date_key(event.created_at)
        bucket = bucket_for(event.created_at)
        weekend = is_weekend(event.created_at)
        await self.store.add_message(event.author_id, day, bucket, weekend)

        category_id = event.channel.category_id
        if category_id is not None and category_id in self.scoped_category_ids:
            await self.store.add_message(event.author_id, day, bucket, weekend, category_id=category_id)

    async def _apply_connection(self, event: MessageEvent, candidates: ConnectionCandidates) -> None:
        user_id = event.author_id
        if candidates.first is not None:
            await self.moments.ensure_moment(
                user_id,
                MomentType.FIRST_CONNECTION,
                FirstConnectionMeta(
                    other_user_id=candidates.first.other_user_id,
                    via=candidates.first.via,
                    channel_id=event.channel.channel_id,
                ),
                event.created_at,
            )
        if candidates.last is not None:
            at = to_iso(event.created_at)
            await self.store.set_last_connection(
                user_id,
                at,
                candidates.last.other_user_id,
                candidates.last.via,
            )
            await self.store.set_last_seen(user_id, at, "connection", event.channel.channel_id)
