from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from ..models import VIBE_KEYS
from .rules import VibeRules

if TYPE_CHECKING:
    from ..storage import ActivityStore
    from ..tracking.events import MessageEvent

logger = logging.getLogger("activity_bot")


def score_message(rules: VibeRules, channel_id: str, content: str) -> dict[str, int]:
    """Per-vibe deltas for one message: +1 for a channel match, +1 for any keyword hit."""
    deltas = {key: 0 for key in VIBE_KEYS}
    for vibe, channel_ids in rules.channels.items():
        if channel_id in channel_ids:
            deltas[vibe] += 1
    text = (content or "").lower()
    if text:
        for vibe, words in rules.keywords.items():
            if any(word and word in text for word in words):
                deltas[vibe] += 1
    return deltas


class VibeInference:
    def __init__(self, store: "ActivityStore", rules: VibeRules) -> None:
        self.store = store
        self.rules = rules

    async def on_message(self, event: "MessageEvent") -> bool:
        if not event.guild_id or event.author_bot:
            return False
        deltas = score_message(self.rules, event.channel.channel_id, event.content)
        if not any(deltas.values()):
            return False

        saved = await self.store.add_inferred_vibe(event.author_id, deltas)
        if saved:
            logger.debug("Inferred vibe deltas for user=%s: %s", event.author_id, deltas)
        else:
            logger.warning("Inferred vibe update dropped for user=%s", event.author_id)
        return saved
