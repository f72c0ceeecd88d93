"""
Base Repository Pattern for Database Access.

Provides a unified interface for database operations, eliminating
repetitive connection/cursor patterns throughout the codebase.

Usage:
    class VoiceTimeRepository(BaseRepository):
        async def total(self, guild_id: int, user_id: int) -> int:
            return await self.fetch_value(
                "SELECT total_seconds FROM user_voice_time WHERE guild_id = ? AND user_id = ?",
                (guild_id, user_id),
                default=0,
            )
"""

from __future__ import annotations

import json
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any, TypeVar

from .database import Database

if TYPE_CHECKING:
    from aiosqlite import Row

T = TypeVar("T")


class BaseRepository:
    """
    Base class for repository pattern database access.

    Provides common query methods that handle connection management,
    cursor operations, and result processing uniformly.
    """

    @staticmethod
    @asynccontextmanager
    async def transaction():
        """
        Context manager for explicit transaction control.

        Usage:
            async with BaseRepository.transaction() as db:
                await db.execute("INSERT ...", params)
                await db.execute("UPDATE ...", params)
                # Auto-commits on success, rolls back on exception
        """
        async with Database.get_connection() as db:
            try:
                yield db
                await db.commit()
            except Exception:
                await db.rollback()
                raise

    @staticmethod
    async def fetch_one(
        query: str,
        params: tuple[Any, ...] = (),
    ) -> Row | None:
        """Execute a query and return a single row (or None)."""
        async with Database.get_connection() as db:
            cursor = await db.execute(query, params)
            return await cursor.fetchone()

    @staticmethod
    async def fetch_all(
        query: str,
        params: tuple[Any, ...] = (),
    ) -> list[Row]:
        """Execute a query and return all rows (empty list if none found)."""
        async with Database.get_connection() as db:
            cursor = await db.execute(query, params)
            return list(await cursor.fetchall())

    @staticmethod
    async def fetch_value(
        query: str,
        params: tuple[Any, ...] = (),
        default: T = None,
    ) -> T | Any:
        """Execute a query and return the first column of the first row, or default."""
        row = await BaseRepository.fetch_one(query, params)
        return row[0] if row else default

    @staticmethod
    async def execute(
        query: str,
        params: tuple[Any, ...] = (),
        commit: bool = True,
    ) -> int:
        """
        Execute a write query (INSERT, UPDATE, DELETE).

        Returns:
            Number of rows affected
        """
        async with Database.get_connection() as db:
            cursor = await db.execute(query, params)
            if commit:
                await db.commit()
            return cursor.rowcount


# -----------------------------------------------------------------------------
# JSON Parsing Utilities
# -----------------------------------------------------------------------------


def parse_json_dict(value: str | None, default: dict | None = None) -> dict:
    """
    Safely parse a JSON string into a dict.

    Args:
        value: JSON string or None
        default: Default value if parsing fails (default: empty dict)

    Returns:
        Parsed dict or default
    """
    if default is None:
        default = {}
    if not value:
        return default
    try:
        result = json.loads(value)
        return result if isinstance(result, dict) else default
    except (json.JSONDecodeError, TypeError):
        return default


def encode_json(value: Any) -> str:
    """Encode a value as a JSON string."""
    return json.dumps(value, ensure_ascii=False)
