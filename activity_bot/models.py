from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Literal, Union

Bucket = Literal["night", "morning", "afternoon", "evening"]
BUCKETS: tuple[Bucket, ...] = ("night", "morning", "afternoon", "evening")

VIBE_KEYS: tuple[str, ...] = ("chat", "game", "movie", "music")

SeenType = Literal["message", "voice", "connection", "command"]
ConnectionVia = Literal["reply", "mention", "vc"]

MENTION_WEIGHT = 2
REPLY_WEIGHT = 3
VOICE_MINUTE_WEIGHT = 1


def interaction_score(mentions: int, replies: int, voice_minutes: int) -> int:
    return mentions * MENTION_WEIGHT + replies * REPLY_WEIGHT + voice_minutes * VOICE_MINUTE_WEIGHT


class MomentType(str, Enum):
    JOINED = "JOINED"
    FIRST_MESSAGE = "FIRST_MESSAGE"
    FIRST_VC = "FIRST_VC"
    FIRST_CONNECTION = "FIRST_CONNECTION"
    MOMENT_NOTE = "MOMENT_NOTE"

    @property
    def once_only(self) -> bool:
        return self is not MomentType.MOMENT_NOTE


@dataclass(slots=True, frozen=True)
class JoinedMeta:
    guild_id: str


@dataclass(slots=True, frozen=True)
class FirstMessageMeta:
    channel_id: str
    channel_name: str = "unknown"


@dataclass(slots=True, frozen=True)
class FirstVoiceMeta:
    channel_id: str
    channel_name: str = "unknown"
    minutes: int = 0


@dataclass(slots=True, frozen=True)
class FirstConnectionMeta:
    other_user_id: str
    via: ConnectionVia
    channel_id: str | None = None


@dataclass(slots=True, frozen=True)
class MomentNoteMeta:
    text: str


MomentMeta = Union[JoinedMeta, FirstMessageMeta, FirstVoiceMeta, FirstConnectionMeta, MomentNoteMeta]

MOMENT_META_TYPES: dict[MomentType, type] = {
    MomentType.JOINED: JoinedMeta,
    MomentType.FIRST_MESSAGE: FirstMessageMeta,
    MomentType.FIRST_VC: FirstVoiceMeta,
    MomentType.FIRST_CONNECTION: FirstConnectionMeta,
    MomentType.MOMENT_NOTE: MomentNoteMeta,
}


@dataclass(slots=True)
class MomentRecord:
    moment_id: int
    user_id: str
    moment_type: MomentType
    meta: MomentMeta | None
    created_at: datetime | None


@dataclass(slots=True)
class UserRecord:
    user_id: str
    join_date: datetime | None = None
    chosen_vibes: tuple[str, ...] = ()
    inferred_vibes: dict[str, int] = field(default_factory=dict)

    last_message_at: datetime | None = None
    last_message_channel_id: str | None = None

    last_vc_at: datetime | None = None
    last_vc_channel_id: str | None = None
    last_vc_minutes: int | None = None

    last_connection_at: datetime | None = None
    last_connection_user_id: str | None = None
    last_connection_via: str | None = None

    last_seen_at: datetime | None = None
    last_seen_type: str | None = None
    last_seen_channel_id: str | None = None

    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass(slots=True)
class UserVibes:
    user_id: str
    chosen: tuple[str, ...]
    inferred: dict[str, int]


@dataclass(slots=True)
class ActivityTotals:
    night: int = 0
    morning: int = 0
    afternoon: int = 0
    evening: int = 0
    weekend: int = 0
    messages: int = 0
    voice: int = 0

    @property
    def bucket_total(self) -> int:
        return self.night + self.morning + self.afternoon + self.evening

    def bucket(self, name: Bucket) -> int:
        return int(getattr(self, name))


@dataclass(slots=True, frozen=True)
class LeaderboardEntry:
    user_id: str
    value: int


@dataclass(slots=True)
class InteractionPair:
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
class InteractionSummary:
    links: int = 0
    score: int = 0
