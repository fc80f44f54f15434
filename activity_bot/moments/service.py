from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, List, Optional

from ..models import MomentMeta, MomentNoteMeta, MomentRecord, MomentType
from ..storage.utils import to_iso

if TYPE_CHECKING:
    from ..storage import ActivityStore

logger = logging.getLogger("activity_bot")

MAX_NOTE_CHARS = 280


class MomentsService:
    def __init__(self, store: "ActivityStore") -> None:
        self.store = store

    async def ensure_moment(
        self,
        user_id: str,
        moment_type: MomentType,
        meta: MomentMeta | None,
        at: datetime,
    ) -> bool:
        """Record a once-only moment unless the user already has one of that type.

        Returns True when a new row was written. Check-then-insert is not
        atomic; a duplicate produced by a concurrent caller is tolerated and
        readers always pick the earliest row.
        """
        if not moment_type.once_only:
            raise ValueError(f"{moment_type.value} is not a once-only moment")
        existing = await self.store.get_moment_by_type(user_id, moment_type)
        if existing is not None:
            return False
        moment_id = await self.store.insert_moment(user_id, moment_type, meta, to_iso(at))
        if moment_id is None:
            return False
        logger.debug("Recorded %s moment for user=%s", moment_type.value, user_id)
        return True

    async def add_note(self, user_id: str, text: str, at: datetime) -> Optional[int]:
        cleaned = " ".join(str(text or "").split())
        if not cleaned:
            return None
        cleaned = cleaned[:MAX_NOTE_CHARS]
        return await self.store.insert_moment(
            user_id,
            MomentType.MOMENT_NOTE,
            MomentNoteMeta(text=cleaned),
            to_iso(at),
        )

    async def list_notes(self, user_id: str, limit: int = 5) -> List[MomentRecord]:
        return await self.store.list_recent_notes(user_id, max(1, int(limit)))

    async def delete_note(self, user_id: str, moment_id: int) -> bool:
        return await self.store.delete_note(moment_id, user_id)

    async def earliest(self, user_id: str) -> Optional[MomentRecord]:
        return await self.store.get_earliest_moment(user_id)

    async def get_by_type(self, user_id: str, moment_type: MomentType) -> Optional[MomentRecord]:
        return await self.store.get_moment_by_type(user_id, moment_type)
