"""
Chat-platform surface used by the voice core.

The core only talks to ``VoicePlatform``; ``DiscordVoicePlatform`` implements
it on top of discord.py and translates Discord exceptions into the bot's
error taxonomy (see utils.errors).
"""

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Iterable
from typing import Any, TypeVar

import aiohttp
import discord
from aiolimiter import AsyncLimiter

from helpers.retry import RetryConfig, retry_async
from utils.errors import (
    MissingPermissionsError,
    NotFoundError,
    PlatformError,
    RateLimitError,
)
from utils.logging import get_logger

from .models import PermissionGrant, VoiceChannelSnapshot

logger = get_logger(__name__)

T = TypeVar("T")


class VoicePlatform(ABC):
    """Capabilities the voice core needs from the chat platform."""

    @abstractmethod
    async def create_voice_channel(
        self,
        guild_id: int,
        name: str,
        category_id: int | None = None,
        grants: Iterable[PermissionGrant] = (),
    ) -> int:
        """Create a voice channel and return its id."""

    @abstractmethod
    async def delete_channel(self, channel_id: int, reason: str) -> None: ...

    @abstractmethod
    async def set_channel_position(self, channel_id: int, position: int) -> None: ...

    @abstractmethod
    async def get_channel_position(self, channel_id: int) -> int | None: ...

    @abstractmethod
    async def move_member(self, guild_id: int, member_id: int, channel_id: int) -> None: ...

    @abstractmethod
    async def get_channel_member_count(self, channel_id: int) -> int | None:
        """Current member count, or None when the channel no longer exists."""

    @abstractmethod
    async def find_category(self, guild_id: int, name: str) -> int | None: ...

    @abstractmethod
    async def create_category(self, guild_id: int, name: str) -> int: ...

    @abstractmethod
    async def find_voice_channel(self, guild_id: int, name: str) -> int | None: ...

    @abstractmethod
    async def list_voice_channels(self, guild_id: int) -> list[VoiceChannelSnapshot]: ...


class DiscordVoicePlatform(VoicePlatform):
    """VoicePlatform backed by a discord.py client's cache and REST calls."""

    def __init__(
        self,
        bot: discord.Client,
        limiter: AsyncLimiter | None = None,
        retry_config: RetryConfig | None = None,
    ) -> None:
        self.bot = bot
        self._limiter = limiter or AsyncLimiter(max_rate=45, time_period=1)
        self._retry_config = retry_config

    async def _call(self, op: str, func: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        async def _attempt() -> T:
            async with self._limiter:
                return await func(*args, **kwargs)

        _attempt.__name__ = op
        try:
            return await retry_async(_attempt, config=self._retry_config)
        except discord.Forbidden as e:
            raise MissingPermissionsError(f"{op}: {e.text or e}") from e
        except discord.NotFound as e:
            raise NotFoundError(f"{op}: {e.text or e}") from e
        except discord.HTTPException as e:
            if e.status == 429:
                raise RateLimitError(f"{op}: rate limited", getattr(e, "retry_after", None)) from e
            raise PlatformError(f"{op}: HTTP {e.status}: {e.text or e}") from e
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise PlatformError(f"{op}: {type(e).__name__}: {e}") from e

    def _guild(self, guild_id: int) -> discord.Guild:
        guild = self.bot.get_guild(guild_id)
        if guild is None:
            raise NotFoundError(f"Guild {guild_id} is not available")
        return guild

    def _channel(self, channel_id: int) -> Any:
        channel = self.bot.get_channel(channel_id)
        if channel is None:
            raise NotFoundError(f"Channel {channel_id} not found")
        return channel

    def _overwrites(
        self, guild: discord.Guild, grants: Iterable[PermissionGrant]
    ) -> dict[Any, discord.PermissionOverwrite]:
        overwrites: dict[Any, discord.PermissionOverwrite] = {}
        for grant in grants:
            target: Any
            if grant.target_type == "role":
                target = guild.get_role(grant.target_id) or discord.Object(id=grant.target_id)
            else:
                target = guild.get_member(grant.target_id) or discord.Object(id=grant.target_id)
            overwrites[target] = discord.PermissionOverwrite(**{cap: True for cap in grant.allow})
        return overwrites

    async def create_voice_channel(
        self,
        guild_id: int,
        name: str,
        category_id: int | None = None,
        grants: Iterable[PermissionGrant] = (),
    ) -> int:
        guild = self._guild(guild_id)
        category = guild.get_channel(category_id) if category_id else None
        channel = await self._call(
            "create_voice_channel",
            guild.create_voice_channel,
            name,
            category=category,
            overwrites=self._overwrites(guild, grants),
            reason="Dynamic voice channel",
        )
        return channel.id

    async def delete_channel(self, channel_id: int, reason: str) -> None:
        channel = self._channel(channel_id)
        await self._call("delete_channel", channel.delete, reason=reason)

    async def set_channel_position(self, channel_id: int, position: int) -> None:
        channel = self._channel(channel_id)
        await self._call("set_channel_position", channel.edit, position=position)

    async def get_channel_position(self, channel_id: int) -> int | None:
        channel = self.bot.get_channel(channel_id)
        return getattr(channel, "position", None) if channel is not None else None

    async def move_member(self, guild_id: int, member_id: int, channel_id: int) -> None:
        guild = self._guild(guild_id)
        member = guild.get_member(member_id)
        if member is None or member.voice is None or member.voice.channel is None:
            # Not connected any more; moving would fail (or disconnect) anyway
            raise NotFoundError(f"Member {member_id} is not connected to voice")
        channel = self._channel(channel_id)
        await self._call("move_member", member.move_to, channel)

    async def get_channel_member_count(self, channel_id: int) -> int | None:
        channel = self.bot.get_channel(channel_id)
        if channel is None:
            return None
        return len(getattr(channel, "members", []))

    async def find_category(self, guild_id: int, name: str) -> int | None:
        category = discord.utils.get(self._guild(guild_id).categories, name=name)
        return category.id if category else None

    async def create_category(self, guild_id: int, name: str) -> int:
        guild = self._guild(guild_id)
        category = await self._call("create_category", guild.create_category, name)
        return category.id

    async def find_voice_channel(self, guild_id: int, name: str) -> int | None:
        channel = discord.utils.get(self._guild(guild_id).voice_channels, name=name)
        return channel.id if channel else None

    async def list_voice_channels(self, guild_id: int) -> list[VoiceChannelSnapshot]:
        return [
            VoiceChannelSnapshot(channel.id, channel.name, len(channel.members))
            for channel in self._guild(guild_id).voice_channels
        ]
