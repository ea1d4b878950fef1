"""
KeyValueStore: persistent string key-value storage.

Backs the RefreshGate (last fetch time, rate-limit reset time) and any other
small piece of state that must survive restarts. Values are opaque strings;
callers serialize (decimal epoch ms, JSON blobs) themselves.

Usage:
    from storage.kv_store import kv_store

    async with kv_store("store_updates.db") as store:
        await store.set_item("github-last-fetch-time", "1700000000000")
        value = await store.get_item("github-last-fetch-time")
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Dict, Optional

import aiosqlite

logger = logging.getLogger(__name__)

IN_MEMORY = ":memory:"

_SCHEMA = """
CREATE TABLE IF NOT EXISTS kv_items (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
)
"""


class KeyValueStore:
    """
    Async SQLite key-value store.

    Writes are serialized through an asyncio.Lock and committed immediately.
    """

    def __init__(self, db_path: str | Path = "store_updates.db", busy_timeout_ms: int = 5000):
        """
        Args:
            db_path: Path to SQLite database file (":memory:" for in-memory)
            busy_timeout_ms: Wait this long on a locked database before failing
        """
        self.db_path = str(db_path)
        self.busy_timeout_ms = busy_timeout_ms
        self._db: Optional[aiosqlite.Connection] = None
        self._lock = asyncio.Lock()

    async def initialize(self) -> None:
        """Open the connection and create the table."""
        if self.db_path != IN_MEMORY:
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        self._db = await aiosqlite.connect(self.db_path)

        if self.db_path != IN_MEMORY:
            # WAL lets a second session read while another writes
            await self._db.execute("PRAGMA journal_mode = WAL")
        if self.busy_timeout_ms > 0:
            await self._db.execute(f"PRAGMA busy_timeout = {int(self.busy_timeout_ms)}")

        await self._db.execute(_SCHEMA)
        await self._db.commit()
        logger.info(f"KeyValueStore initialized: {self.db_path}")

    async def close(self) -> None:
        if self._db:
            await self._db.close()
            self._db = None

    def _conn(self) -> aiosqlite.Connection:
        if not self._db:
            raise RuntimeError("Database not initialized. Call initialize() first.")
        return self._db

    async def get_item(self, key: str) -> Optional[str]:
        async with self._conn().execute(
            "SELECT value FROM kv_items WHERE key = ?", (key,)
        ) as cursor:
            row = await cursor.fetchone()
        return row[0] if row else None

    async def set_item(self, key: str, value: str) -> None:
        db = self._conn()
        async with self._lock:
            await db.execute(
                """INSERT INTO kv_items (key, value, updated_at)
                   VALUES (?, ?, CURRENT_TIMESTAMP)
                   ON CONFLICT(key) DO UPDATE SET
                       value = excluded.value,
                       updated_at = CURRENT_TIMESTAMP""",
                (key, value),
            )
            await db.commit()

    async def remove_item(self, key: str) -> None:
        db = self._conn()
        async with self._lock:
            await db.execute("DELETE FROM kv_items WHERE key = ?", (key,))
            await db.commit()

    async def all_items(self) -> Dict[str, str]:
        async with self._conn().execute("SELECT key, value FROM kv_items ORDER BY key") as cursor:
            rows = await cursor.fetchall()
        return {key: value for key, value in rows}


@asynccontextmanager
async def kv_store(db_path: str | Path = "store_updates.db", **kwargs) -> AsyncIterator[KeyValueStore]:
    """
    Context manager for KeyValueStore that handles initialization and cleanup.
    """
    store = KeyValueStore(db_path, **kwargs)
    await store.initialize()
    try:
        yield store
    finally:
        await store.close()
