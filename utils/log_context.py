"""
Structured logging context built from discord.py objects.
"""

from typing import Any

import discord


def get_context_extra(
    guild: discord.Guild | None = None,
    user: discord.abc.User | None = None,
    channel: discord.abc.GuildChannel | None = None,
    **additional: Any,
) -> dict[str, Any]:
    """
    Build the ``extra`` dict for a log call.

    Examples:
        logger.info("Voice update", extra=get_context_extra(member.guild, member))
    """
    extra: dict[str, Any] = {}
    if guild is not None:
        extra["guild_id"] = guild.id
    if user is not None:
        extra["user_id"] = user.id
    if channel is not None:
        extra["channel_id"] = channel.id
    extra.update(additional)
    return extra


def get_voice_extra(
    member: discord.Member,
    before: discord.VoiceState,
    after: discord.VoiceState,
) -> dict[str, Any]:
    """Logging context for a voice-state update."""
    return get_context_extra(
        member.guild,
        member,
        after.channel or before.channel,
    )
