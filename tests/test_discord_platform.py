"""
Discord Platform Adapter Tests

DiscordVoicePlatform against fake discord.py objects: cache lookups,
overwrite construction, and translation of Discord errors into the bot's
error types.
"""

from unittest.mock import AsyncMock, MagicMock

import discord
import pytest
from aiolimiter import AsyncLimiter

from helpers.retry import RetryConfig
from services.voice import (
    CREW_CAPABILITIES,
    OWNER_CAPABILITIES,
    DiscordVoicePlatform,
    PermissionGrant,
)
from tests.factories import FakeBot, make_guild, make_member, make_voice_channel
from utils.errors import (
    MissingPermissionsError,
    NotFoundError,
    PlatformError,
    RateLimitError,
)

FAST_RETRY = RetryConfig(max_attempts=2, base_delay=0.0, max_delay=0.0, jitter=False)


def _http_error(cls, status: int, text: str = "error"):
    return cls(MagicMock(status=status, reason="Error"), text)


@pytest.fixture
def guild():
    return make_guild(guild_id=500)


@pytest.fixture
def adapter(guild):
    bot = FakeBot(guilds=[guild])
    return DiscordVoicePlatform(bot, limiter=AsyncLimiter(1000, 1), retry_config=FAST_RETRY)


class TestCacheLookups:
    @pytest.mark.asyncio
    async def test_member_count_and_missing_channel(self, adapter, guild):
        member = make_member(1, guild=guild)
        channel = make_voice_channel(10, "Going Merry", guild=guild, members=[member])

        assert await adapter.get_channel_member_count(channel.id) == 1
        assert await adapter.get_channel_member_count(999) is None

    @pytest.mark.asyncio
    async def test_find_and_list_voice_channels(self, adapter, guild):
        make_voice_channel(10, "Going Merry", guild=guild)
        make_voice_channel(11, "Trigger", guild=guild)

        assert await adapter.find_voice_channel(guild.id, "Trigger") == 11
        assert await adapter.find_voice_channel(guild.id, "Nope") is None
        snapshots = await adapter.list_voice_channels(guild.id)
        assert [(s.channel_id, s.name, s.member_count) for s in snapshots] == [
            (10, "Going Merry", 0),
            (11, "Trigger", 0),
        ]

    @pytest.mark.asyncio
    async def test_unknown_guild_raises_not_found(self, adapter):
        with pytest.raises(NotFoundError):
            await adapter.list_voice_channels(12345)

    @pytest.mark.asyncio
    async def test_channel_position(self, adapter, guild):
        make_voice_channel(10, "Trigger", guild=guild, position=6)
        assert await adapter.get_channel_position(10) == 6
        assert await adapter.get_channel_position(11) is None


class TestMutations:
    @pytest.mark.asyncio
    async def test_create_voice_channel_with_overwrites(self, adapter, guild):
        owner = make_member(42, guild=guild)
        category_id = await adapter.create_category(guild.id, "Grand Line")

        channel_id = await adapter.create_voice_channel(
            guild.id,
            "Going Merry",
            category_id,
            [
                PermissionGrant(owner.id, "member", OWNER_CAPABILITIES),
                PermissionGrant(guild.id, "role", CREW_CAPABILITIES),
            ],
        )

        channel = guild.get_channel(channel_id)
        assert channel.name == "Going Merry"
        assert channel.category_id == category_id
        owner_overwrite = channel.overwrites[owner]
        assert owner_overwrite.manage_channels is True
        assert owner_overwrite.move_members is True
        everyone_overwrite = channel.overwrites[guild.get_role(guild.id)]
        assert everyone_overwrite.connect is True
        assert everyone_overwrite.manage_channels is None

    @pytest.mark.asyncio
    async def test_move_member(self, adapter, guild):
        member = make_member(1, guild=guild)
        make_voice_channel(10, "Trigger", guild=guild, members=[member])
        target = make_voice_channel(11, "Going Merry", guild=guild)

        await adapter.move_member(guild.id, member.id, target.id)

        assert member in target.members
        assert member.voice.channel is target

    @pytest.mark.asyncio
    async def test_move_disconnected_member_is_not_found(self, adapter, guild):
        make_member(1, guild=guild)
        make_voice_channel(11, "Going Merry", guild=guild)

        with pytest.raises(NotFoundError):
            await adapter.move_member(guild.id, 1, 11)

    @pytest.mark.asyncio
    async def test_delete_channel(self, adapter, guild):
        channel = make_voice_channel(10, "Going Merry", guild=guild)

        await adapter.delete_channel(channel.id, reason="test")

        assert channel._deleted
        assert guild.get_channel(10) is None


class TestErrorTranslation:
    @pytest.mark.asyncio
    async def test_forbidden_becomes_missing_permissions(self, adapter, guild):
        channel = make_voice_channel(10, "Going Merry", guild=guild)
        channel.delete = AsyncMock(side_effect=_http_error(discord.Forbidden, 403))

        with pytest.raises(MissingPermissionsError):
            await adapter.delete_channel(10, reason="test")
        channel.delete.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_not_found_becomes_not_found(self, adapter, guild):
        channel = make_voice_channel(10, "Going Merry", guild=guild)
        channel.delete = AsyncMock(side_effect=_http_error(discord.NotFound, 404))

        with pytest.raises(NotFoundError):
            await adapter.delete_channel(10, reason="test")

    @pytest.mark.asyncio
    async def test_rate_limit_retried_then_raised(self, adapter, guild):
        channel = make_voice_channel(10, "Going Merry", guild=guild)
        channel.edit = AsyncMock(side_effect=_http_error(discord.HTTPException, 429))

        with pytest.raises(RateLimitError):
            await adapter.set_channel_position(10, 3)
        assert channel.edit.await_count == FAST_RETRY.max_attempts

    @pytest.mark.asyncio
    async def test_server_error_recovers_on_retry(self, adapter, guild):
        channel = make_voice_channel(10, "Going Merry", guild=guild)
        channel.edit = AsyncMock(side_effect=[_http_error(discord.HTTPException, 503), None])

        await adapter.set_channel_position(10, 3)

        assert channel.edit.await_count == 2

    @pytest.mark.asyncio
    async def test_other_http_errors_become_platform_errors(self, adapter, guild):
        channel = make_voice_channel(10, "Going Merry", guild=guild)
        channel.edit = AsyncMock(side_effect=_http_error(discord.HTTPException, 400))

        with pytest.raises(PlatformError) as exc_info:
            await adapter.set_channel_position(10, 3)
        assert not isinstance(exc_info.value, (NotFoundError, MissingPermissionsError))
        # Client errors are not retried
        assert channel.edit.await_count == 1
