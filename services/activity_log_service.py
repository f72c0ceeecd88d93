"""
Voice activity audit log.

Every voice-state update of a human member is classified into JOIN, LEAVE,
MOVE, MUTE or UNMUTE rows and stored in ``voice_activity_logs``.

``get_recent_logs`` and ``get_user_activity_stats`` are read-only queries for
command handlers outside this bot; only the retention purge runs in-process.
"""

import time
from collections.abc import Callable
from enum import Enum
from typing import Any, NamedTuple

from services.db.repository import BaseRepository, encode_json, parse_json_dict

from .base import BaseService

DEFAULT_RETENTION_DAYS = 30


class VoiceAction(str, Enum):
    JOIN = "JOIN"
    LEAVE = "LEAVE"
    MOVE = "MOVE"
    MUTE = "MUTE"
    UNMUTE = "UNMUTE"


class VoiceStateSnapshot(NamedTuple):
    """The parts of a member's voice state the audit log cares about."""

    channel_id: int | None = None
    channel_name: str | None = None
    self_mute: bool = False
    self_deaf: bool = False
    server_mute: bool = False
    server_deaf: bool = False


class ActivityEntry(NamedTuple):
    action: VoiceAction
    channel_id: int | None
    channel_name: str | None
    additional_info: dict[str, Any]


# (snapshot attribute, label stored as muteType)
_MUTE_FLAGS = (
    ("self_mute", "Self Mute"),
    ("self_deaf", "Self Deafen"),
    ("server_mute", "Server Mute"),
    ("server_deaf", "Server Deafen"),
)


def classify(
    before: VoiceStateSnapshot,
    after: VoiceStateSnapshot,
    session_duration: int | None = None,
) -> list[ActivityEntry]:
    if before.channel_id is None and after.channel_id is not None:
        return [ActivityEntry(VoiceAction.JOIN, after.channel_id, after.channel_name, {})]

    if before.channel_id is not None and after.channel_id is None:
        return [
            ActivityEntry(
                VoiceAction.LEAVE,
                before.channel_id,
                before.channel_name,
                {"sessionDuration": session_duration},
            )
        ]

    if before.channel_id is None:
        return []

    if before.channel_id != after.channel_id:
        return [
            ActivityEntry(
                VoiceAction.MOVE,
                after.channel_id,
                after.channel_name,
                {"oldChannelId": before.channel_id, "oldChannelName": before.channel_name},
            )
        ]

    entries = []
    for attr, label in _MUTE_FLAGS:
        was, now = getattr(before, attr), getattr(after, attr)
        if was != now:
            action = VoiceAction.MUTE if now else VoiceAction.UNMUTE
            entries.append(ActivityEntry(action, after.channel_id, after.channel_name, {"muteType": label}))
    return entries


class ActivityLogService(BaseService):
    def __init__(
        self,
        enabled: bool = True,
        retention_days: int = DEFAULT_RETENTION_DAYS,
        wall_clock: Callable[[], float] = time.time,
    ) -> None:
        super().__init__("activity_log", enabled=enabled)
        self.retention_days = retention_days
        self._wall_clock = wall_clock

    async def _initialize_impl(self) -> None:
        if self.enabled and self.retention_days > 0:
            await self.purge_older_than(self.retention_days)

    async def record_update(
        self,
        guild_id: int,
        user_id: int,
        username: str,
        before: VoiceStateSnapshot,
        after: VoiceStateSnapshot,
        *,
        session_duration: int | None = None,
        is_bot: bool = False,
    ) -> list[ActivityEntry]:
        """Classify and store one voice-state update. Returns the stored entries."""
        if not self.enabled or is_bot:
            return []

        entries = classify(before, after, session_duration)
        if not entries:
            return []

        timestamp = int(self._wall_clock())
        async with BaseRepository.transaction() as db:
            await db.executemany(
                """
                INSERT INTO voice_activity_logs
                    (guild_id, user_id, username, channel_id, channel_name, action, additional_info, timestamp)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    (
                        guild_id,
                        user_id,
                        username,
                        entry.channel_id,
                        entry.channel_name,
                        entry.action.value,
                        encode_json(entry.additional_info),
                        timestamp,
                    )
                    for entry in entries
                ],
            )

        self.logger.debug(
            f"Recorded {', '.join(entry.action.value for entry in entries)}",
            extra={"guild_id": guild_id, "user_id": user_id},
        )
        return entries

    async def get_recent_logs(self, guild_id: int, limit: int = 50) -> list[dict[str, Any]]:
        rows = await BaseRepository.fetch_all(
            """
            SELECT user_id, username, channel_id, channel_name, action, timestamp, additional_info
            FROM voice_activity_logs
            WHERE guild_id = ?
            ORDER BY timestamp DESC, id DESC
            LIMIT ?
            """,
            (guild_id, max(1, limit)),
        )

        logs = []
        for row in rows:
            entry = dict(row)
            entry["additional_info"] = parse_json_dict(entry["additional_info"])
            logs.append(entry)
        return logs

    async def get_user_activity_stats(
        self, guild_id: int, user_id: int, days: int = 7
    ) -> list[dict[str, Any]]:
        """Per-day action counts for a member over the last ``days`` days, newest first."""
        since = int(self._wall_clock()) - days * 86400
        rows = await BaseRepository.fetch_all(
            """
            SELECT action, COUNT(*) AS count, date(timestamp, 'unixepoch') AS date
            FROM voice_activity_logs
            WHERE user_id = ? AND guild_id = ? AND timestamp >= ?
            GROUP BY action, date
            ORDER BY date DESC, action
            """,
            (user_id, guild_id, since),
        )
        return [dict(row) for row in rows]

    async def purge_older_than(self, days: int) -> int:
        cutoff = int(self._wall_clock()) - days * 86400
        deleted = await BaseRepository.execute(
            "DELETE FROM voice_activity_logs WHERE timestamp < ?", (cutoff,)
        )
        if deleted:
            self.logger.info(f"Purged {deleted} voice activity log row(s) older than {days} days")
        return deleted
