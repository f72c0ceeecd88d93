"""
Voice time tracking.

Keeps one in-memory session per (guild, member) while they are connected
and adds the elapsed time to ``user_voice_time`` when the session ends.

``get_user_voice_time`` and ``get_top_voice_users`` are read-only queries
for command handlers outside this bot; nothing in the bot itself calls them.
"""

import time
from collections.abc import Callable
from typing import Any, NamedTuple

from services.db.repository import BaseRepository

from .base import BaseService
from .voice import Joined, Left, MovedBetween, VoicePresenceEvent, normalize

MAX_TOP_USERS = 20


class VoiceSession(NamedTuple):
    guild_id: int
    user_id: int
    username: str
    channel_id: int
    channel_name: str | None
    started_at: float


def format_duration(seconds: int) -> str:
    """Render seconds as ``1h 2m 3s``, ``2m 3s`` or ``3s``."""
    seconds = max(0, int(seconds))
    hours, remainder = divmod(seconds, 3600)
    minutes, secs = divmod(remainder, 60)
    if hours:
        return f"{hours}h {minutes}m {secs}s"
    if minutes:
        return f"{minutes}m {secs}s"
    return f"{secs}s"


class VoiceTimeService(BaseService):
    def __init__(
        self,
        enabled: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        super().__init__("voice_time", enabled=enabled)
        self._clock = clock
        self._sessions: dict[tuple[int, int], VoiceSession] = {}

    async def _initialize_impl(self) -> None:
        # Sessions from a previous process cannot be resumed
        self._sessions.clear()

    async def _shutdown_impl(self) -> None:
        await self.end_all_sessions()

    def start_session(
        self,
        guild_id: int,
        user_id: int,
        username: str,
        channel_id: int,
        channel_name: str | None = None,
    ) -> None:
        self._sessions[(guild_id, user_id)] = VoiceSession(
            guild_id, user_id, username, channel_id, channel_name, self._clock()
        )
        self.logger.debug(
            f"Started voice session for {username}",
            extra={"guild_id": guild_id, "user_id": user_id, "channel_id": channel_id},
        )

    def get_session(self, guild_id: int, user_id: int) -> VoiceSession | None:
        return self._sessions.get((guild_id, user_id))

    async def end_session(self, guild_id: int, user_id: int, username: str | None = None) -> int:
        """End a session and persist it. Returns its length in whole seconds."""
        session = self._sessions.pop((guild_id, user_id), None)
        if session is None:
            return 0

        duration = int(self._clock() - session.started_at)
        if duration > 0:
            await self.add_voice_time(guild_id, user_id, username or session.username, duration)

        self.logger.debug(
            f"Ended voice session for {session.username}: {format_duration(duration)}",
            extra={"guild_id": guild_id, "user_id": user_id, "channel_id": session.channel_id},
        )
        return duration

    async def handle_presence(
        self,
        event: VoicePresenceEvent,
        username: str,
        channel_name: str | None = None,
    ) -> int:
        """
        Start, end or restart the member's session for one voice update.

        Returns:
            Length in seconds of the session that ended, 0 if none did.
        """
        if not self.enabled or event.is_bot:
            return 0

        transition = normalize(event)
        if isinstance(transition, Joined):
            self.start_session(event.guild_id, event.member_id, username, transition.channel_id, channel_name)
            return 0
        if isinstance(transition, Left):
            return await self.end_session(event.guild_id, event.member_id, username)
        if isinstance(transition, MovedBetween):
            duration = await self.end_session(event.guild_id, event.member_id, username)
            self.start_session(event.guild_id, event.member_id, username, transition.to_channel_id, channel_name)
            return duration
        return 0

    async def add_voice_time(self, guild_id: int, user_id: int, username: str, seconds: int) -> None:
        await BaseRepository.execute(
            """
            INSERT INTO user_voice_time (guild_id, user_id, username, total_seconds, last_updated)
            VALUES (?, ?, ?, ?, strftime('%s','now'))
            ON CONFLICT(guild_id, user_id) DO UPDATE SET
                total_seconds = user_voice_time.total_seconds + excluded.total_seconds,
                username = excluded.username,
                last_updated = excluded.last_updated
            """,
            (guild_id, user_id, username, seconds),
        )

    async def get_user_voice_time(self, guild_id: int, user_id: int) -> dict[str, Any] | None:
        row = await BaseRepository.fetch_one(
            """
            SELECT username, total_seconds, last_updated
            FROM user_voice_time
            WHERE guild_id = ? AND user_id = ?
            """,
            (guild_id, user_id),
        )
        return dict(row) if row else None

    async def get_top_voice_users(self, guild_id: int, limit: int = 10) -> list[dict[str, Any]]:
        limit = max(1, min(limit, MAX_TOP_USERS))
        rows = await BaseRepository.fetch_all(
            """
            SELECT user_id, username, total_seconds, last_updated
            FROM user_voice_time
            WHERE guild_id = ?
            ORDER BY total_seconds DESC
            LIMIT ?
            """,
            (guild_id, limit),
        )
        return [dict(row) for row in rows]

    async def end_all_sessions(self) -> int:
        """Persist and close every open session. Returns how many were closed."""
        keys = list(self._sessions)
        if keys:
            self.logger.info(f"Ending {len(keys)} active voice session(s)")
        for guild_id, user_id in keys:
            try:
                await self.end_session(guild_id, user_id)
            except Exception as e:
                self.logger.exception(
                    "Failed to persist voice session",
                    extra={"guild_id": guild_id, "user_id": user_id},
                    exc_info=e,
                )
        return len(keys)

    def active_session_count(self) -> int:
        return len(self._sessions)

    async def health_check(self) -> dict[str, Any]:
        base_health = await super().health_check()
        return {**base_health, "active_sessions": len(self._sessions)}
