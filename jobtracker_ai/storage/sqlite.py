"""SQLite-backed storage for caches that survive a process restart."""

import json
import logging
import os
from pathlib import Path
from typing import Any, Optional

import aiosqlite

from .base import KeyValueStorage

logger = logging.getLogger(__name__)

# Default database path in project data folder
DEFAULT_DB_PATH = Path(__file__).parent.parent.parent / "data" / "jobtracker.db"

SCHEMA = """
-- Key/value entries, one namespace per browsing session
CREATE TABLE IF NOT EXISTS kv_store (
    scope TEXT NOT NULL,
    key TEXT NOT NULL,
    value TEXT NOT NULL,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    PRIMARY KEY (scope, key)
);
"""


def get_db_path() -> Path:
    """Get database file path.

    Can be overridden via JOBTRACKER_DB_PATH environment variable.
    """
    env_path = os.environ.get("JOBTRACKER_DB_PATH")
    if env_path:
        return Path(env_path)
    return DEFAULT_DB_PATH


class SqliteStorage(KeyValueStorage):
    """Key/value storage in a SQLite table.

    Usage:
        storage = SqliteStorage(scope="tab-1")
        await storage.set("key", {"a": 1})
        value = await storage.get("key")
        await storage.close()
    """

    def __init__(self, db_path: Path | None = None, scope: str = "default"):
        """
        Args:
            db_path: Path to database file. If None, uses default.
            scope: Browsing session the keys belong to
        """
        self.db_path = db_path or get_db_path()
        self.scope = scope
        self._connection: Optional[aiosqlite.Connection] = None

    async def _get_connection(self) -> aiosqlite.Connection:
        """Get or create database connection.

        Reuses single connection for the lifetime of the storage.
        """
        if self._connection is None:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            logger.debug(f"Opening storage database at {self.db_path}")
            self._connection = await aiosqlite.connect(self.db_path)
            await self._connection.executescript(SCHEMA)
            await self._connection.commit()
        return self._connection

    async def get(self, key: str) -> Optional[Any]:
        db = await self._get_connection()
        cursor = await db.execute(
            "SELECT value FROM kv_store WHERE scope = ? AND key = ?",
            (self.scope, key),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return json.loads(row[0])

    async def set(self, key: str, value: Any) -> None:
        db = await self._get_connection()
        await db.execute(
            """
            INSERT INTO kv_store (scope, key, value, updated_at)
            VALUES (?, ?, ?, CURRENT_TIMESTAMP)
            ON CONFLICT(scope, key) DO UPDATE SET
                value = excluded.value,
                updated_at = excluded.updated_at
            """,
            (self.scope, key, json.dumps(value, ensure_ascii=False)),
        )
        await db.commit()

    async def remove(self, key: str) -> None:
        db = await self._get_connection()
        await db.execute(
            "DELETE FROM kv_store WHERE scope = ? AND key = ?",
            (self.scope, key),
        )
        await db.commit()

    async def clear(self) -> None:
        db = await self._get_connection()
        cursor = await db.execute("DELETE FROM kv_store WHERE scope = ?", (self.scope,))
        await db.commit()
        if cursor.rowcount:
            logger.debug(f"Cleared {cursor.rowcount} storage entries for scope '{self.scope}'")

    async def close(self) -> None:
        """Close database connection."""
        if self._connection is not None:
            await self._connection.close()
            self._connection = None
