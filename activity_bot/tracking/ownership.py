from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable

from ..storage import ActivityStore
from ..storage.utils import to_iso
from .events import ChannelCreatorResolver, ChannelInfo

logger = logging.getLogger("activity_bot")


class ChannelOwnershipPolicy:
    """Decides whether a user's activity inside a channel counts toward aggregates.

    A user's activity in a channel they created (or hold an explicit manage
    overwrite on) is excluded. Creator identity is cached in the store and
    resolved through ``resolver`` at most once per channel per process. Any
    failure or ambiguity counts the activity.
    """

    def __init__(
        self,
        store: ActivityStore,
        resolver: ChannelCreatorResolver | None = None,
        *,
        enabled: bool = True,
        use_audit_logs: bool = True,
        use_manage_overwrites: bool = True,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.store = store
        self.resolver = resolver
        self.enabled = enabled
        self.use_audit_logs = use_audit_logs
        self.use_manage_overwrites = use_manage_overwrites
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._lookup_attempted: set[str] = set()

    async def should_count(self, guild_id: str | None, channel: ChannelInfo, user_id: str) -> bool:
        if not self.enabled:
            return True
        if self.use_manage_overwrites and user_id in channel.manage_override_user_ids:
            return False
        try:
            creator_id = await self._creator_for(guild_id, channel)
        except Exception:
            logger.warning(
                "Channel owner lookup failed for channel=%s; counting activity",
                channel.channel_id,
                exc_info=True,
            )
            return True
        if creator_id is None:
            return True
        return creator_id != user_id

    async def _creator_for(self, guild_id: str | None, channel: ChannelInfo) -> str | None:
        cached = await self.store.get_channel_owner(channel.channel_id)
        if cached:
            return cached
        if not self.use_audit_logs or self.resolver is None or not guild_id:
            return None
        if channel.channel_id in self._lookup_attempted:
            return None
        self._lookup_attempted.add(channel.channel_id)

        creator_id = await self.resolver.resolve_channel_creator(guild_id, channel.channel_id)
        if not creator_id:
            logger.debug("No creator resolved for channel=%s", channel.channel_id)
            return None
        await self.store.upsert_channel_owner(
            channel.channel_id,
            guild_id,
            creator_id,
            channel.kind,
            to_iso(self._clock()),
        )
        return creator_id
