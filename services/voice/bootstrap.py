"""
One-time setup when the bot attaches to a guild.

Ensures the trigger channel exists and removes empty leftovers from a
previous run: voice channels named from the catalog that nobody occupies.
The lifecycle store and name pool are neither consulted nor populated here.
"""

from utils.errors import NotFoundError, PlatformError
from utils.logging import get_logger

from .placement import CategoryPlacer
from .platform import VoicePlatform
from .settings import VoiceSettings

logger = get_logger(__name__)


class GuildBootstrapper:
    def __init__(
        self,
        platform: VoicePlatform,
        settings: VoiceSettings,
        placer: CategoryPlacer,
    ) -> None:
        self.platform = platform
        self.settings = settings
        self.placer = placer

    async def on_guild_attach(self, guild_id: int) -> int:
        """Return the trigger channel id after sweeping stale channels.

        Raises:
            PlatformError: if the trigger channel cannot be found or created.
        """
        trigger_id = await self.ensure_trigger_channel(guild_id)
        await self.sweep_stale_channels(guild_id, trigger_id)
        return trigger_id

    async def ensure_trigger_channel(self, guild_id: int) -> int:
        name = self.settings.trigger_channel_name
        existing = await self.platform.find_voice_channel(guild_id, name)
        if existing is not None:
            logger.debug(f"Using existing trigger channel '{name}'", extra={"guild_id": guild_id, "channel_id": existing})
            return existing

        placement = await self.placer.resolve(guild_id)
        channel_id = await self.platform.create_voice_channel(guild_id, name, placement.category_id)
        logger.info(f"Created trigger channel '{name}'", extra={"guild_id": guild_id, "channel_id": channel_id})
        return channel_id

    async def sweep_stale_channels(self, guild_id: int, trigger_channel_id: int) -> int:
        """Delete empty catalog-named voice channels. Returns how many were removed."""
        catalog = set(self.settings.name_catalog)
        deleted = 0

        for snapshot in await self.platform.list_voice_channels(guild_id):
            if snapshot.channel_id == trigger_channel_id:
                continue
            if snapshot.name not in catalog or snapshot.member_count > 0:
                continue

            log_extra = {"guild_id": guild_id, "channel_id": snapshot.channel_id, "assigned_name": snapshot.name}
            try:
                await self.platform.delete_channel(snapshot.channel_id, reason="Stale dynamic voice channel")
            except NotFoundError:
                logger.debug("Stale channel already gone", extra=log_extra)
                continue
            except PlatformError as e:
                logger.warning(f"Could not delete stale channel: {e}", extra=log_extra)
                continue
            deleted += 1
            logger.info(f"Deleted stale voice channel '{snapshot.name}'", extra=log_extra)

        if deleted:
            logger.info(f"Startup sweep removed {deleted} stale channel(s)", extra={"guild_id": guild_id})
        return deleted
