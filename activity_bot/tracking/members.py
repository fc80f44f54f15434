from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Callable

from ..models import JoinedMeta, MomentType
from ..storage.utils import to_iso
from .events import MemberJoinEvent

if TYPE_CHECKING:
    from ..moments import MomentsService
    from ..storage import ActivityStore


class MemberJoinTracker:
    def __init__(
        self,
        store: "ActivityStore",
        moments: "MomentsService",
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.store = store
        self.moments = moments
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def on_member_join(self, event: MemberJoinEvent) -> bool:
        if event.bot:
            return False
        joined_at = event.joined_at or self._clock()
        await self.store.upsert_user(event.user_id, to_iso(joined_at))
        return await self.moments.ensure_moment(
            event.user_id,
            MomentType.JOINED,
            JoinedMeta(guild_id=event.guild_id),
            joined_at,
        )
