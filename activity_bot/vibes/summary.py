from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Mapping, Sequence

from ..models import VIBE_KEYS, UserVibes

VIBE_LABELS: dict[str, str] = {
    "chat": "💬 Late Chats",
    "game": "🎮 Games",
    "movie": "🎬 Movies",
    "music": "🎵 Music",
}


@dataclass(slots=True)
class ServerVibes:
    counts: dict[str, int] = field(default_factory=lambda: {key: 0 for key in VIBE_KEYS})
    users_counted: int = 0


def top_inferred_vibe(scores: Mapping[str, int]) -> str | None:
    best: str | None = None
    best_score = 0
    # VIBE_KEYS order breaks ties.
    for key in VIBE_KEYS:
        value = int(scores.get(key, 0))
        if value > best_score:
            best, best_score = key, value
    return best


def effective_vibes(user: UserVibes) -> tuple[str, ...]:
    """Chosen vibes when the user declared any, otherwise the strongest inferred vibe."""
    if user.chosen:
        return tuple(key for key in user.chosen if key in VIBE_KEYS)
    top = top_inferred_vibe(user.inferred)
    return (top,) if top else ()


def server_vibe_counts(users: Iterable[UserVibes]) -> ServerVibes:
    summary = ServerVibes()
    for user in users:
        picked = effective_vibes(user)
        if not picked:
            continue
        summary.users_counted += 1
        for key in picked:
            summary.counts[key] += 1
    return summary


def display_vibes(chosen: Sequence[str], inferred: Mapping[str, int], max_inferred: int = 2) -> list[str]:
    chosen_keys = [key for key in chosen if key in VIBE_KEYS]
    extra = sorted(
        (key for key in VIBE_KEYS if key not in chosen_keys and int(inferred.get(key, 0)) > 0),
        key=lambda key: -int(inferred.get(key, 0)),
    )
    return chosen_keys + extra[:max_inferred]


def format_vibe_display(keys: Sequence[str]) -> str:
    if not keys:
        return "—"
    return " + ".join(VIBE_LABELS[key] for key in keys)
