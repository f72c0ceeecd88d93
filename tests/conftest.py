import random
import sys
from pathlib import Path

import pytest
import pytest_asyncio

# Ensure project root is on sys.path for CI environments where
# Python might not automatically include it.
PROJECT_ROOT = Path(__file__).parent.parent.resolve()
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from config.config_loader import ConfigLoader
from services.db.database import Database
from services.voice import GuildRuntimeState, NamePool, VoiceSettings
from services.voice_service import VoiceService
from tests.factories import FakeVoicePlatform
from tests.factories.config_factories import CATALOG, GUILD_ID


@pytest.fixture(autouse=True)
def reset_config_loader():
    """Each test starts from an unloaded ConfigLoader."""
    ConfigLoader.reset()
    yield
    ConfigLoader.reset()


@pytest_asyncio.fixture()
async def temp_db(tmp_path):
    """Initialize Database to a temporary file for isolation across tests."""
    orig_path = Database._db_path
    orig_initialized = Database._initialized

    Database._initialized = False
    Database._db_path = None
    db_file = tmp_path / "test.db"
    await Database.initialize(str(db_file))

    assert Database._initialized is True
    assert Database._db_path == str(db_file)

    yield str(db_file)

    Database._db_path = orig_path
    Database._initialized = orig_initialized


@pytest.fixture
def voice_settings() -> VoiceSettings:
    """Settings with a short debounce so timer tests stay fast."""
    return VoiceSettings(
        trigger_channel_name="🏴 Set Sail Together",
        category_name="🌊 Grand Line Voice Channels",
        delete_delay_ms=50,
        name_catalog=CATALOG,
    )


@pytest.fixture
def platform() -> FakeVoicePlatform:
    return FakeVoicePlatform()


@pytest.fixture
def guild_state(platform) -> GuildRuntimeState:
    """Runtime state for a guild whose trigger channel already exists."""
    trigger_id = platform.add_voice_channel(GUILD_ID, "🏴 Set Sail Together", position=3)
    return GuildRuntimeState(
        guild_id=GUILD_ID,
        name_pool=NamePool(CATALOG, random.Random(7)),
        trigger_channel_id=trigger_id,
    )


@pytest_asyncio.fixture()
async def voice_service(voice_settings, platform):
    """An initialized VoiceService over the in-memory platform."""
    service = VoiceService(voice_settings, platform, rng=random.Random(7))
    await service.initialize()
    yield service
    await service.shutdown()
