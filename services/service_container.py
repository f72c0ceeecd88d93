"""
Service Container

Central registry for the bot's services: builds them from configuration in
dependency order and tears them down in reverse.
"""

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, Optional

from config.config_loader import ConfigLoader
from utils.logging import get_logger

from .activity_log_service import DEFAULT_RETENTION_DAYS, ActivityLogService
from .base import BaseService
from .leveling_service import LevelingService, LevelingSettings
from .voice import DiscordVoicePlatform, VoicePlatform, VoiceSettings
from .voice_service import VoiceService
from .voice_time_service import VoiceTimeService

if TYPE_CHECKING:
    from discord.ext.commands import Bot


class ServiceContainer:
    """
    Central container for managing all bot services.

    ``platform`` replaces the Discord-backed voice platform (tests); without
    it a bot instance is required.
    """

    def __init__(
        self,
        bot: Optional["Bot"] = None,
        config: Mapping[str, Any] | None = None,
        platform: VoicePlatform | None = None,
    ) -> None:
        self.logger = get_logger("services.container")
        self.bot = bot
        self._config = config
        self._platform = platform
        self._voice: VoiceService | None = None
        self._voice_time: VoiceTimeService | None = None
        self._leveling: LevelingService | None = None
        self._activity_log: ActivityLogService | None = None
        self._initialized = False

    @property
    def voice(self) -> VoiceService:
        """Get the voice service."""
        if self._voice is None:
            raise RuntimeError("VoiceService not initialized")
        return self._voice

    @property
    def voice_time(self) -> VoiceTimeService:
        """Get the voice time service."""
        if self._voice_time is None:
            raise RuntimeError("VoiceTimeService not initialized")
        return self._voice_time

    @property
    def leveling(self) -> LevelingService:
        """Get the leveling service."""
        if self._leveling is None:
            raise RuntimeError("LevelingService not initialized")
        return self._leveling

    @property
    def activity_log(self) -> ActivityLogService:
        """Get the activity log service."""
        if self._activity_log is None:
            raise RuntimeError("ActivityLogService not initialized")
        return self._activity_log

    def get_all_services(self) -> list[BaseService]:
        """Get all constructed services, in initialization order."""
        return [
            service
            for service in (self._voice, self._voice_time, self._leveling, self._activity_log)
            if service is not None
        ]

    async def initialize(self) -> None:
        """Initialize all services in dependency order."""
        if self._initialized:
            self.logger.warning("ServiceContainer already initialized")
            return

        config = self._config if self._config is not None else ConfigLoader.load_config()

        try:
            self.logger.info("Initializing services")

            platform = self._platform
            if platform is None:
                if self.bot is None:
                    raise RuntimeError("Bot instance required for the Discord voice platform")
                platform = DiscordVoicePlatform(self.bot)

            self._voice = VoiceService(VoiceSettings.from_config(config), platform)
            await self._voice.initialize()

            voice_time_cfg = config.get("voice_time") or {}
            self._voice_time = VoiceTimeService(enabled=bool(voice_time_cfg.get("enabled", True)))
            await self._voice_time.initialize()

            self._leveling = LevelingService(LevelingSettings.from_config(config))
            await self._leveling.initialize()

            activity_cfg = config.get("activity_log") or {}
            self._activity_log = ActivityLogService(
                enabled=bool(activity_cfg.get("enabled", True)),
                retention_days=int(activity_cfg.get("retention_days", DEFAULT_RETENTION_DAYS)),
            )
            await self._activity_log.initialize()

            self._initialized = True
            self.logger.info("All services initialized successfully")

        except Exception as e:
            self.logger.exception("Failed to initialize services", exc_info=e)
            raise

    async def cleanup(self) -> None:
        """Shut services down in reverse dependency order."""
        if not self._initialized:
            return

        self.logger.info("Cleaning up services")
        for service in reversed(self.get_all_services()):
            await service.shutdown()

        self._voice = None
        self._voice_time = None
        self._leveling = None
        self._activity_log = None
        self._initialized = False
        self.logger.info("Services cleaned up")

    async def health_check(self) -> dict[str, Any]:
        return {service.name: await service.health_check() for service in self.get_all_services()}
