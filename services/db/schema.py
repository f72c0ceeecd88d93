"""
Canonical schema definition (version=1).

Schema definitions for the bot's database. This module centralizes
all table creation logic to ensure consistency and avoid duplication.
"""

import aiosqlite

from utils.logging import get_logger

logger = get_logger(__name__)

SCHEMA_VERSION = 1


async def init_schema(db: aiosqlite.Connection) -> None:
    """
    Initialize the database schema with all required tables.

    Args:
        db: An open database connection
    """
    await db.execute(
        """
        CREATE TABLE IF NOT EXISTS schema_migrations (
            version INTEGER PRIMARY KEY,
            applied_at INTEGER DEFAULT (strftime('%s','now'))
        )
        """
    )

    # Seed canonical version row (idempotent)
    await db.execute(
        "INSERT OR IGNORE INTO schema_migrations (version, applied_at) VALUES (?, strftime('%s','now'))",
        (SCHEMA_VERSION,),
    )

    # XP / leveling, scoped per guild
    await db.execute(
        """
        CREATE TABLE IF NOT EXISTS user_xp (
            guild_id INTEGER NOT NULL,
            user_id INTEGER NOT NULL,
            xp INTEGER NOT NULL DEFAULT 0,
            level INTEGER NOT NULL DEFAULT 0,
            total_messages INTEGER NOT NULL DEFAULT 0,
            voice_minutes INTEGER NOT NULL DEFAULT 0,
            last_updated INTEGER DEFAULT (strftime('%s','now')),
            PRIMARY KEY (guild_id, user_id)
        )
        """
    )
    await db.execute(
        "CREATE INDEX IF NOT EXISTS idx_user_xp_guild_xp ON user_xp(guild_id, xp DESC)"
    )

    # Accumulated time spent in voice
    await db.execute(
        """
        CREATE TABLE IF NOT EXISTS user_voice_time (
            guild_id INTEGER NOT NULL,
            user_id INTEGER NOT NULL,
            username TEXT NOT NULL,
            total_seconds INTEGER NOT NULL DEFAULT 0,
            last_updated INTEGER DEFAULT (strftime('%s','now')),
            PRIMARY KEY (guild_id, user_id)
        )
        """
    )
    await db.execute(
        "CREATE INDEX IF NOT EXISTS idx_user_voice_time_guild_total ON user_voice_time(guild_id, total_seconds DESC)"
    )

    # Voice activity audit trail
    await db.execute(
        """
        CREATE TABLE IF NOT EXISTS voice_activity_logs (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            guild_id INTEGER NOT NULL,
            user_id INTEGER NOT NULL,
            username TEXT NOT NULL,
            channel_id INTEGER,
            channel_name TEXT,
            action TEXT NOT NULL,
            additional_info TEXT,
            timestamp INTEGER DEFAULT (strftime('%s','now'))
        )
        """
    )
    await db.execute(
        "CREATE INDEX IF NOT EXISTS idx_voice_logs_timestamp ON voice_activity_logs(timestamp)"
    )
    await db.execute(
        "CREATE INDEX IF NOT EXISTS idx_voice_logs_user_guild ON voice_activity_logs(user_id, guild_id)"
    )

    logger.debug("Schema version %s ensured", SCHEMA_VERSION)
