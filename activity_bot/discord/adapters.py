from __future__ import annotations

import logging
from typing import Any

import discord

from ..tracking.events import (
    ChannelInfo,
    MemberJoinEvent,
    MentionedUser,
    MessageEvent,
    ReplyAuthor,
    VoiceStateChange,
)

logger = logging.getLogger("activity_bot")

AUDIT_LOG_SCAN_LIMIT = 50


def manage_override_user_ids(channel: Any) -> frozenset[str]:
    """Users with an explicit member overwrite granting manage channel/messages."""
    overwrites = getattr(channel, "overwrites", None)
    if not overwrites:
        return frozenset()
    holders: set[str] = set()
    for target, overwrite in overwrites.items():
        if isinstance(target, discord.Role):
            continue
        if overwrite.manage_channels is True or overwrite.manage_messages is True:
            holders.add(str(target.id))
    return frozenset(holders)


def channel_info(channel: Any) -> ChannelInfo:
    category_id = getattr(channel, "category_id", None)
    if category_id is None:
        # Threads inherit the parent channel's category.
        parent = getattr(channel, "parent", None)
        category_id = getattr(parent, "category_id", None)
    name = getattr(channel, "name", None)
    kind = getattr(channel, "type", None)
    return ChannelInfo(
        channel_id=str(channel.id),
        name=name if isinstance(name, str) and name else "unknown",
        category_id=str(category_id) if category_id is not None else None,
        kind=str(kind) if kind is not None else "text",
        manage_override_user_ids=manage_override_user_ids(channel),
    )


def _reference_loader(message: discord.Message):
    reference = message.reference
    if reference is None or reference.message_id is None:
        return None

    async def load() -> ReplyAuthor | None:
        resolved = reference.resolved if isinstance(reference.resolved, discord.Message) else None
        if resolved is None:
            cached = reference.cached_message
            resolved = cached if isinstance(cached, discord.Message) else None
        if resolved is None:
            resolved = await message.channel.fetch_message(reference.message_id)
        if resolved is None or resolved.author is None:
            return None
        return ReplyAuthor(user_id=str(resolved.author.id), bot=bool(resolved.author.bot))

    return load


def message_event(message: discord.Message) -> MessageEvent:
    author = message.author
    joined_at = getattr(author, "joined_at", None) if isinstance(author, discord.Member) else None
    reference = message.reference
    return MessageEvent(
        message_id=str(message.id),
        guild_id=str(message.guild.id) if message.guild else None,
        author_id=str(author.id),
        author_bot=bool(author.bot),
        created_at=message.created_at,
        channel=channel_info(message.channel),
        content=message.content or "",
        mentions=tuple(MentionedUser(user_id=str(user.id), bot=bool(user.bot)) for user in message.mentions),
        reply_to_message_id=str(reference.message_id) if reference and reference.message_id else None,
        reference_loader=_reference_loader(message),
        author_joined_at=joined_at,
    )


def voice_state_change(
    member: discord.Member,
    before: discord.VoiceState,
    after: discord.VoiceState,
) -> VoiceStateChange:
    return VoiceStateChange(
        guild_id=str(member.guild.id),
        user_id=str(member.id),
        user_bot=bool(member.bot),
        before_channel=channel_info(before.channel) if before.channel is not None else None,
        after_channel=channel_info(after.channel) if after.channel is not None else None,
        joined_at=member.joined_at,
    )


def member_join_event(member: discord.Member) -> MemberJoinEvent:
    return MemberJoinEvent(
        guild_id=str(member.guild.id),
        user_id=str(member.id),
        bot=bool(member.bot),
        joined_at=member.joined_at,
    )


class AuditLogCreatorResolver:
    """Resolves channel creators from the guild audit log (needs View Audit Log)."""

    def __init__(self, client: discord.Client, *, scan_limit: int = AUDIT_LOG_SCAN_LIMIT) -> None:
        self.client = client
        self.scan_limit = scan_limit

    async def resolve_channel_creator(self, guild_id: str, channel_id: str) -> str | None:
        guild = self.client.get_guild(int(guild_id))
        if guild is None:
            logger.debug("Audit log lookup skipped, guild %s not cached", guild_id)
            return None
        try:
            async for entry in guild.audit_logs(
                limit=self.scan_limit,
                action=discord.AuditLogAction.channel_create,
            ):
                target_id = getattr(entry.target, "id", None)
                if target_id is not None and str(target_id) == channel_id and entry.user is not None:
                    return str(entry.user.id)
        except discord.Forbidden:
            logger.debug("Audit log access denied in guild=%s", guild_id)
        except discord.HTTPException as exc:
            logger.debug("Audit log lookup failed in guild=%s: %s", guild_id, exc)
        return None
