from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Callable, Optional, Protocol, Sequence


@dataclass(slots=True, frozen=True)
class ChannelInfo:
    channel_id: str
    name: str = "unknown"
    category_id: str | None = None
    kind: str = "text"
    # Users holding an explicit manage-channel/manage-messages overwrite on this channel.
    manage_override_user_ids: frozenset[str] = field(default_factory=frozenset)


@dataclass(slots=True, frozen=True)
class MentionedUser:
    user_id: str
    bot: bool = False


@dataclass(slots=True, frozen=True)
class ReplyAuthor:
    user_id: str
    bot: bool = False


ReferenceLoader = Callable[[], Awaitable[Optional[ReplyAuthor]]]


@dataclass(slots=True)
class MessageEvent:
    message_id: str
    guild_id: str | None
    author_id: str
    author_bot: bool
    created_at: datetime
    channel: ChannelInfo
    content: str = ""
    mentions: Sequence[MentionedUser] = ()
    reply_to_message_id: str | None = None
    reference_loader: ReferenceLoader | None = None
    author_joined_at: datetime | None = None


@dataclass(slots=True)
class VoiceStateChange:
    guild_id: str
    user_id: str
    user_bot: bool
    before_channel: ChannelInfo | None
    after_channel: ChannelInfo | None
    joined_at: datetime | None = None

    @property
    def before_id(self) -> str | None:
        return self.before_channel.channel_id if self.before_channel else None

    @property
    def after_id(self) -> str | None:
        return self.after_channel.channel_id if self.after_channel else None


@dataclass(slots=True)
class MemberJoinEvent:
    guild_id: str
    user_id: str
    bot: bool
    joined_at: datetime | None = None


class ChannelCreatorResolver(Protocol):
    async def resolve_channel_creator(self, guild_id: str, channel_id: str) -> str | None:
        ...
