"""
Category placement for created voice channels.

Two explicit strategies are tried in order: place the channel under the
configured category (finding or creating it), then place it at the guild
root. Falling through to the second one is a degraded mode, not an error.
"""

from typing import NamedTuple

from utils.errors import MissingPermissionsError
from utils.logging import get_logger

from .platform import VoicePlatform
from .settings import VoiceSettings

logger = get_logger(__name__)


class CategoryPlacement(NamedTuple):
    category_id: int | None
    degraded: bool = False


class CategoryPlacer:
    def __init__(self, platform: VoicePlatform, settings: VoiceSettings) -> None:
        self.platform = platform
        self.settings = settings

    async def resolve(self, guild_id: int) -> CategoryPlacement:
        for strategy in (self._try_with_category, self._try_without_category):
            placement = await strategy(guild_id)
            if placement is not None:
                return placement
        return CategoryPlacement(None, degraded=True)  # pragma: no cover

    async def _try_with_category(self, guild_id: int) -> CategoryPlacement | None:
        name = self.settings.category_name
        if not name:
            return None

        category_id = await self.platform.find_category(guild_id, name)
        if category_id is not None:
            return CategoryPlacement(category_id)

        try:
            category_id = await self.platform.create_category(guild_id, name)
        except MissingPermissionsError as e:
            logger.warning(
                f"Cannot create category '{name}'; placing channels without a category: {e}",
                extra={"guild_id": guild_id},
            )
            return None

        logger.info(f"Created category '{name}'", extra={"guild_id": guild_id, "channel_id": category_id})
        return CategoryPlacement(category_id)

    async def _try_without_category(self, guild_id: int) -> CategoryPlacement:
        return CategoryPlacement(None, degraded=bool(self.settings.category_name))
