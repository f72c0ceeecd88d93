"""
Leveling Events Cog

Feeds guild messages to the LevelingService.
"""

import discord
from discord.ext import commands

from utils.log_context import get_context_extra
from utils.logging import get_logger

logger = get_logger(__name__)


class LevelingEvents(commands.Cog):
    """Awards XP for messages."""

    def __init__(self, bot: commands.Bot) -> None:
        self.bot = bot

    @commands.Cog.listener()
    async def on_message(self, message: discord.Message) -> None:
        if message.guild is None or message.author.bot:
            return

        services = getattr(self.bot, "services", None)
        if services is None:
            return

        try:
            await services.leveling.handle_message(message.guild.id, message.author.id)
        except Exception as e:
            logger.exception(
                "Error awarding message XP",
                extra=get_context_extra(message.guild, message.author, message.channel),
                exc_info=e,
            )


async def setup(bot: commands.Bot) -> None:
    """Set up the Leveling Events cog."""
    await bot.add_cog(LevelingEvents(bot))
