"""
Test Factories Module

Centralized factory functions for creating test objects: Discord fakes, an
in-memory voice platform, config dicts and DB seeding.
"""

from .config_factories import (
    make_config,
    make_voice_config,
    temp_config_file,
)
from .db_factories import (
    count_rows,
    fetch_rows,
    seed_activity_log,
    seed_user_xp,
)
from .discord_factories import (
    FakeBot,
    FakeCategory,
    FakeGuild,
    FakeMember,
    FakeMessage,
    FakeRole,
    FakeUser,
    FakeVoiceChannel,
    FakeVoiceState,
    make_guild,
    make_member,
    make_voice_channel,
    make_voice_state,
)
from .platform_factories import FakeVoicePlatform, PlatformChannel

__all__ = [
    "FakeBot",
    "FakeCategory",
    "FakeGuild",
    "FakeMember",
    "FakeMessage",
    "FakeRole",
    "FakeUser",
    "FakeVoiceChannel",
    "FakeVoicePlatform",
    "FakeVoiceState",
    "PlatformChannel",
    "count_rows",
    "fetch_rows",
    "make_config",
    "make_guild",
    "make_member",
    "make_voice_channel",
    "make_voice_config",
    "make_voice_state",
    "seed_activity_log",
    "seed_user_xp",
    "temp_config_file",
]
