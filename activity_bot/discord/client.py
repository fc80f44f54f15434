from __future__ import annotations

import asyncio
import logging

import discord

from ..config import Settings
from ..moments import MomentsService
from ..queries import ActivityQueries
from ..recap import WeeklyRecapBuilder
from ..storage import ActivityStore
from ..tracking import (
    ChannelOwnershipPolicy,
    InteractionTracker,
    MemberJoinTracker,
    MessageTracker,
    VoiceSessionTracker,
)
from ..vibes import VibeInference, VibeRules
from .adapters import AuditLogCreatorResolver, member_join_event, message_event, voice_state_change

logger = logging.getLogger("activity_bot")


class ActivityDiscordBot(discord.Client):
    def __init__(self, settings: Settings, store: ActivityStore, vibe_rules: VibeRules) -> None:
        intents = discord.Intents.default()
        intents.message_content = settings.discord_message_content_intent
        intents.members = settings.discord_members_intent
        intents.voice_states = True

        super().__init__(intents=intents)

        self.settings = settings
        self.store = store
        self.moments = MomentsService(store)
        self.ownership = ChannelOwnershipPolicy(
            store,
            AuditLogCreatorResolver(self),
            enabled=settings.exclude_creator_activity,
            use_audit_logs=settings.ownership_use_audit_logs,
            use_manage_overwrites=settings.ownership_use_manage_overwrites,
        )
        self.vibes = VibeInference(store, vibe_rules)
        self.message_tracker = MessageTracker(
            store,
            self.moments,
            self.ownership,
            InteractionTracker(store),
            self.vibes,
            track_messages=settings.track_messages,
            track_interactions=settings.track_interactions,
            scoped_category_ids=settings.scoped_message_category_ids,
        )
        self.voice_tracker = VoiceSessionTracker(
            store,
            self.moments,
            self.ownership,
            track_voice=settings.track_voice,
            track_interactions=settings.track_interactions,
            min_first_vc_minutes=settings.min_first_vc_minutes,
            scoped_category_ids=settings.scoped_voice_category_ids,
        )
        self.member_tracker = MemberJoinTracker(store, self.moments)
        self.queries = ActivityQueries.from_settings(store, settings)
        self.recap = WeeklyRecapBuilder(
            store,
            top_n=settings.recap_top_n,
            include_moments=settings.recap_include_moments,
        )

    async def setup_hook(self) -> None:
        await self.store.init()
        logger.info("Activity store ready (backend=%s path=%s)", self.store.backend_name, self.store.db_path)

    async def close(self) -> None:
        if self.voice_tracker.active_count:
            logger.info("Dropping %s open voice sessions on shutdown", self.voice_tracker.active_count)
        await self._run_shutdown_step("discord.Client.close", super().close(), timeout=6.0)

    async def _run_shutdown_step(self, label: str, coro: object, *, timeout: float) -> None:
        try:
            await asyncio.wait_for(coro, timeout=timeout)  # type: ignore[arg-type]
        except asyncio.TimeoutError:
            logger.warning("Shutdown step timed out: %s", label)
        except Exception as exc:
            logger.warning("Shutdown step failed: %s (%s)", label, exc)

    async def on_ready(self) -> None:
        if self.user:
            logger.info("Connected as %s (%s)", self.user, self.user.id)

    async def on_message(self, message: discord.Message) -> None:
        if message.author.bot or message.guild is None:
            return
        try:
            await self.message_tracker.on_message(message_event(message))
        except Exception as exc:
            logger.exception("Message tracking failed for message=%s: %s", message.id, exc)

    async def on_voice_state_update(
        self,
        member: discord.Member,
        before: discord.VoiceState,
        after: discord.VoiceState,
    ) -> None:
        if member.bot:
            return
        try:
            await self.voice_tracker.on_voice_state(voice_state_change(member, before, after))
        except Exception as exc:
            logger.exception("Voice tracking failed for user=%s: %s", member.id, exc)

    async def on_member_join(self, member: discord.Member) -> None:
        if member.bot:
            return
        try:
            await self.member_tracker.on_member_join(member_join_event(member))
        except Exception as exc:
            logger.exception("Member join tracking failed for user=%s: %s", member.id, exc)
