"""
XP leveling.

Members earn XP for chatting (rate-limited by a per-member cooldown) and for
time spent in voice. Everything is scoped per guild.

``get_user_xp``, ``get_rank`` and ``get_leaderboard`` are read-only queries
for command handlers outside this bot (rank cards, leaderboards); nothing in
the bot itself calls them.
"""

import time
from collections.abc import Callable, Mapping
from typing import Any, NamedTuple

from helpers.leveling import DEFAULT_LEVEL_BASE_XP, level_from_xp
from services.db.repository import BaseRepository

from .base import BaseService

MAX_LEADERBOARD_SIZE = 25
# Prune expired cooldown entries once the map grows past this
COOLDOWN_PRUNE_THRESHOLD = 5000


class LevelingSettings(NamedTuple):
    enabled: bool = True
    xp_per_message: int = 15
    message_cooldown_seconds: float = 60
    xp_per_voice_minute: int = 10
    level_base_xp: int = DEFAULT_LEVEL_BASE_XP

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "LevelingSettings":
        section = config.get("leveling") or {}
        defaults = cls()
        return cls(
            enabled=bool(section.get("enabled", defaults.enabled)),
            xp_per_message=int(section.get("xp_per_message", defaults.xp_per_message)),
            message_cooldown_seconds=float(
                section.get("message_cooldown_seconds", defaults.message_cooldown_seconds)
            ),
            xp_per_voice_minute=int(section.get("xp_per_voice_minute", defaults.xp_per_voice_minute)),
            level_base_xp=max(1, int(section.get("level_base_xp", defaults.level_base_xp))),
        )


class XPChange(NamedTuple):
    old_level: int
    new_level: int
    total_xp: int

    @property
    def leveled_up(self) -> bool:
        return self.new_level > self.old_level


class LevelingService(BaseService):
    def __init__(
        self,
        settings: LevelingSettings | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        settings = settings or LevelingSettings()
        super().__init__("leveling", enabled=settings.enabled)
        self.settings = settings
        self._clock = clock
        self._message_cooldowns: dict[tuple[int, int], float] = {}

    async def _initialize_impl(self) -> None:
        self.logger.debug(
            f"{self.settings.xp_per_message} XP per message, "
            f"{self.settings.xp_per_voice_minute} XP per voice minute"
        )

    async def _shutdown_impl(self) -> None:
        self._message_cooldowns.clear()

    def _on_cooldown(self, guild_id: int, user_id: int, now: float) -> bool:
        last = self._message_cooldowns.get((guild_id, user_id))
        return last is not None and now - last < self.settings.message_cooldown_seconds

    def _prune_cooldowns(self, now: float) -> None:
        cutoff = now - self.settings.message_cooldown_seconds
        self._message_cooldowns = {
            key: stamp for key, stamp in self._message_cooldowns.items() if stamp > cutoff
        }

    async def handle_message(self, guild_id: int | None, user_id: int, is_bot: bool = False) -> XPChange | None:
        """Award message XP unless the author is a bot, in DMs, or on cooldown."""
        if not self.enabled or is_bot or guild_id is None:
            return None

        now = self._clock()
        if self._on_cooldown(guild_id, user_id, now):
            return None
        self._message_cooldowns[(guild_id, user_id)] = now
        if len(self._message_cooldowns) > COOLDOWN_PRUNE_THRESHOLD:
            self._prune_cooldowns(now)

        change = await self.add_xp(guild_id, user_id, self.settings.xp_per_message, messages=1)
        if change.leveled_up:
            self.logger.info(
                f"Member reached level {change.new_level}",
                extra={"guild_id": guild_id, "user_id": user_id},
            )
        return change

    async def award_voice_time(self, guild_id: int, user_id: int, seconds: int) -> XPChange | None:
        """Award XP for each whole minute of a finished voice session."""
        if not self.enabled:
            return None
        minutes = int(seconds) // 60
        if minutes <= 0:
            return None
        return await self.add_xp(
            guild_id,
            user_id,
            minutes * self.settings.xp_per_voice_minute,
            voice_minutes=minutes,
        )

    async def add_xp(
        self,
        guild_id: int,
        user_id: int,
        amount: int,
        *,
        messages: int = 0,
        voice_minutes: int = 0,
    ) -> XPChange:
        base = self.settings.level_base_xp
        async with BaseRepository.transaction() as db:
            cursor = await db.execute(
                "SELECT xp FROM user_xp WHERE guild_id = ? AND user_id = ?",
                (guild_id, user_id),
            )
            row = await cursor.fetchone()
            old_xp = row["xp"] if row else 0
            total = max(0, old_xp + amount)
            new_level = level_from_xp(total, base)

            await db.execute(
                """
                INSERT INTO user_xp (guild_id, user_id, xp, level, total_messages, voice_minutes, last_updated)
                VALUES (?, ?, ?, ?, ?, ?, strftime('%s','now'))
                ON CONFLICT(guild_id, user_id) DO UPDATE SET
                    xp = excluded.xp,
                    level = excluded.level,
                    total_messages = user_xp.total_messages + excluded.total_messages,
                    voice_minutes = user_xp.voice_minutes + excluded.voice_minutes,
                    last_updated = excluded.last_updated
                """,
                (guild_id, user_id, total, new_level, messages, voice_minutes),
            )

        return XPChange(level_from_xp(old_xp, base), new_level, total)

    async def get_user_xp(self, guild_id: int, user_id: int) -> dict[str, Any] | None:
        row = await BaseRepository.fetch_one(
            """
            SELECT xp, level, total_messages, voice_minutes, last_updated
            FROM user_xp WHERE guild_id = ? AND user_id = ?
            """,
            (guild_id, user_id),
        )
        return dict(row) if row else None

    async def get_rank(self, guild_id: int, user_id: int) -> int | None:
        """1-based rank by XP within the guild, or None if the member has no XP row."""
        return await BaseRepository.fetch_value(
            """
            SELECT 1 + (
                SELECT COUNT(*) FROM user_xp AS other
                WHERE other.guild_id = me.guild_id AND other.xp > me.xp
            )
            FROM user_xp AS me
            WHERE me.guild_id = ? AND me.user_id = ?
            """,
            (guild_id, user_id),
        )

    async def get_leaderboard(self, guild_id: int, limit: int = 10) -> list[dict[str, Any]]:
        limit = max(1, min(limit, MAX_LEADERBOARD_SIZE))
        rows = await BaseRepository.fetch_all(
            """
            SELECT user_id, xp, level, total_messages, voice_minutes
            FROM user_xp
            WHERE guild_id = ?
            ORDER BY xp DESC, user_id ASC
            LIMIT ?
            """,
            (guild_id, limit),
        )
        return [dict(row) for row in rows]
