import asyncio
import os
import time

import discord
from discord.ext import commands
from dotenv import load_dotenv

from config.config_loader import ConfigLoader
from utils.logging import get_logger, setup_logging
from utils.tasks import spawn

logger = get_logger(__name__)

# Load environment variables
load_dotenv()

config = ConfigLoader.load_config()

# Daily sweep of expired voice activity log rows
ACTIVITY_LOG_PURGE_INTERVAL = 24 * 60 * 60

# Start from none and enable only what's required
intents = discord.Intents.none()
intents.guilds = True  # Guild join/remove, channel create/delete
intents.members = True  # Member cache for moving members between channels
intents.voice_states = True  # Voice channel join/leave/move
intents.guild_messages = True  # Message XP

initial_extensions = [
    "cogs.voice.events",
    "cogs.leveling.events",
]


class MyBot(commands.Bot):
    """Bot with project-specific attributes and helpers."""

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.config = config
        self.services = None
        self.start_time = time.monotonic()
        self._background_tasks: set[asyncio.Task] = set()

    def _track_task(self, task: asyncio.Task) -> None:
        """Keep a reference to a background task until it finishes."""
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    async def setup_hook(self) -> None:
        """Initialize the database and services, then load cogs."""
        from services.db.database import Database
        from services.service_container import ServiceContainer

        await Database.initialize()

        self.services = ServiceContainer(self, config=self.config)
        await self.services.initialize()
        logger.info("ServiceContainer initialized")

        for ext in initial_extensions:
            try:
                await self.load_extension(ext)
                logger.info(f"Loaded extension: {ext}")
            except Exception as e:
                logger.exception(f"Failed to load extension {ext}", exc_info=e)

        self._track_task(spawn(self.activity_log_purge_task(), name="activity_log_purge"))

    async def on_ready(self) -> None:
        if not self.user:
            logger.warning("Bot user is not initialized")
            return
        logger.info(f"Logged in as {self.user} (ID: {self.user.id})")
        for guild in self.guilds:
            self.check_bot_permissions(guild)

    def check_bot_permissions(self, guild: discord.Guild) -> None:
        """Log any guild-level permission the voice features depend on but lack."""
        required_permissions = ["view_channel", "manage_channels", "move_members", "connect"]
        if guild.me is None:
            return
        permissions = guild.me.guild_permissions
        missing = [perm for perm in required_permissions if not getattr(permissions, perm, False)]
        if missing:
            logger.warning(
                f"Missing permissions in guild '{guild.name}': {', '.join(missing)}",
                extra={"guild_id": guild.id},
            )

    async def activity_log_purge_task(self) -> None:
        await self.wait_until_ready()
        while not self.is_closed():
            await asyncio.sleep(ACTIVITY_LOG_PURGE_INTERVAL)
            activity_log = self.services.activity_log
            if not activity_log.enabled or activity_log.retention_days <= 0:
                continue
            try:
                await activity_log.purge_older_than(activity_log.retention_days)
            except Exception as e:
                logger.exception("Failed to purge voice activity logs", exc_info=e)

    def uptime(self) -> str:
        delta = int(time.monotonic() - self.start_time)
        hours, remainder = divmod(delta, 3600)
        minutes, seconds = divmod(remainder, 60)
        return f"{hours}h {minutes}m {seconds}s"

    async def close(self) -> None:
        """Shut services down (cancelling pending channel deletions) and disconnect."""
        logger.info(f"Shutting down after {self.uptime()}")

        for task in list(self._background_tasks):
            task.cancel()
        if self._background_tasks:
            await asyncio.gather(*self._background_tasks, return_exceptions=True)
            self._background_tasks.clear()

        if self.services is not None:
            try:
                await self.services.cleanup()
            except Exception as e:
                logger.exception("Error cleaning up services", exc_info=e)

        await super().close()


def main() -> None:
    setup_logging()

    token = os.getenv("DISCORD_TOKEN")
    if not token:
        logger.critical("DISCORD_TOKEN not found in environment variables.")
        raise SystemExit(1)

    bot = MyBot(command_prefix=commands.when_mentioned, intents=intents)
    # Logging is already configured; keep discord.py from adding its own handler
    bot.run(token, log_handler=None)


if __name__ == "__main__":
    main()
