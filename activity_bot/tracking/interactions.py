from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from ..models import ConnectionVia
from ..storage.utils import to_iso
from .events import MessageEvent, ReplyAuthor

if TYPE_CHECKING:
    from ..storage import ActivityStore

logger = logging.getLogger("activity_bot")


@dataclass(slots=True, frozen=True)
class ConnectionCandidate:
    other_user_id: str
    via: ConnectionVia


@dataclass(slots=True, frozen=True)
class ConnectionCandidates:
    first: ConnectionCandidate | None = None
    last: ConnectionCandidate | None = None


class InteractionTracker:
    def __init__(self, store: "ActivityStore") -> None:
        self.store = store

    async def _resolve_reply_author(self, event: MessageEvent) -> ReplyAuthor | None:
        if not event.reply_to_message_id or event.reference_loader is None:
            return None
        try:
            return await event.reference_loader()
        except Exception as exc:
            logger.debug(
                "Reply reference %s could not be resolved (ignored): %s",
                event.reply_to_message_id,
                exc,
            )
            return None

    async def record_from_message(self, event: MessageEvent) -> ConnectionCandidates:
        author_id = event.author_id
        at = to_iso(event.created_at)

        reply_target: str | None = None
        reply_author = await self._resolve_reply_author(event)
        if reply_author is not None and not reply_author.bot and reply_author.user_id != author_id:
            reply_target = reply_author.user_id
            await self.store.add_interaction_delta(author_id, reply_target, replies=1, at=at)

        first_mention: str | None = None
        seen: set[str] = set()
        for mentioned in event.mentions:
            if mentioned.bot or mentioned.user_id == author_id or mentioned.user_id in seen:
                continue
            seen.add(mentioned.user_id)
            if first_mention is None:
                first_mention = mentioned.user_id
            await self.store.add_interaction_delta(author_id, mentioned.user_id, mentions=1, at=at)

        if reply_target is not None:
            candidate = ConnectionCandidate(other_user_id=reply_target, via="reply")
        elif first_mention is not None:
            candidate = ConnectionCandidate(other_user_id=first_mention, via="mention")
        else:
            return ConnectionCandidates()
        return ConnectionCandidates(first=candidate, last=candidate)
