"""
Voice Events Cog

Translates Discord guild and voice-state events into service calls.
"""

from typing import TYPE_CHECKING

import discord
from discord.ext import commands

from services.activity_log_service import VoiceStateSnapshot
from services.voice import VoicePresenceEvent
from utils.log_context import get_context_extra, get_voice_extra
from utils.logging import get_logger

if TYPE_CHECKING:
    from services.service_container import ServiceContainer

logger = get_logger(__name__)


def to_presence_event(
    member: discord.Member,
    before: discord.VoiceState,
    after: discord.VoiceState,
) -> VoicePresenceEvent:
    return VoicePresenceEvent(
        member_id=member.id,
        guild_id=member.guild.id,
        previous_channel_id=before.channel.id if before.channel else None,
        new_channel_id=after.channel.id if after.channel else None,
        is_bot=member.bot,
    )


def to_snapshot(state: discord.VoiceState) -> VoiceStateSnapshot:
    channel = state.channel
    return VoiceStateSnapshot(
        channel_id=channel.id if channel else None,
        channel_name=channel.name if channel else None,
        self_mute=bool(state.self_mute),
        self_deaf=bool(state.self_deaf),
        server_mute=bool(state.mute),
        server_deaf=bool(state.deaf),
    )


class VoiceEvents(commands.Cog):
    """Handles guild lifecycle and voice state change events."""

    def __init__(self, bot: commands.Bot) -> None:
        self.bot = bot

    @property
    def services(self) -> "ServiceContainer":
        services = getattr(self.bot, "services", None)
        if services is None:
            raise RuntimeError("Bot services not initialized")
        return services

    @commands.Cog.listener()
    async def on_ready(self) -> None:
        """Attach every guild the bot is in; already attached guilds are skipped."""
        for guild in self.bot.guilds:
            try:
                await self.services.voice.attach_guild(guild.id)
            except Exception as e:
                logger.exception("Error attaching guild", extra=get_context_extra(guild), exc_info=e)

    @commands.Cog.listener()
    async def on_guild_join(self, guild: discord.Guild) -> None:
        logger.info(f"Joined guild '{guild.name}'", extra=get_context_extra(guild))
        try:
            await self.services.voice.attach_guild(guild.id)
        except Exception as e:
            logger.exception("Error attaching guild", extra=get_context_extra(guild), exc_info=e)

    @commands.Cog.listener()
    async def on_guild_remove(self, guild: discord.Guild) -> None:
        logger.info(f"Removed from guild '{guild.name}'", extra=get_context_extra(guild))
        try:
            await self.services.voice.detach_guild(guild.id)
        except Exception as e:
            logger.exception("Error detaching guild", extra=get_context_extra(guild), exc_info=e)

    @commands.Cog.listener()
    async def on_voice_state_update(
        self,
        member: discord.Member,
        before: discord.VoiceState,
        after: discord.VoiceState,
    ) -> None:
        event = to_presence_event(member, before, after)
        log_extra = get_voice_extra(member, before, after)

        try:
            await self.services.voice.handle_voice_presence_event(event)
        except Exception as e:
            logger.exception("Error handling dynamic voice channels", extra=log_extra, exc_info=e)

        if member.bot:
            return

        username = member.display_name
        session_seconds = 0
        try:
            session_seconds = await self.services.voice_time.handle_presence(
                event, username, after.channel.name if after.channel else None
            )
        except Exception as e:
            logger.exception("Error tracking voice time", extra=log_extra, exc_info=e)

        if session_seconds:
            try:
                await self.services.leveling.award_voice_time(member.guild.id, member.id, session_seconds)
            except Exception as e:
                logger.exception("Error awarding voice XP", extra=log_extra, exc_info=e)

        try:
            await self.services.activity_log.record_update(
                member.guild.id,
                member.id,
                username,
                to_snapshot(before),
                to_snapshot(after),
                session_duration=session_seconds or None,
            )
        except Exception as e:
            logger.exception("Error recording voice activity", extra=log_extra, exc_info=e)

    @commands.Cog.listener()
    async def on_guild_channel_delete(self, channel: discord.abc.GuildChannel) -> None:
        """Forget tracked channels that were deleted by anyone but the reaper."""
        if not isinstance(channel, discord.VoiceChannel):
            return

        try:
            await self.services.voice.handle_channel_deleted(
                guild_id=channel.guild.id, channel_id=channel.id
            )
        except Exception as e:
            logger.exception(
                "Error handling channel deletion",
                extra=get_context_extra(channel.guild, channel=channel),
                exc_info=e,
            )


async def setup(bot: commands.Bot) -> None:
    """Set up the Voice Events cog."""
    await bot.add_cog(VoiceEvents(bot))
