"""SQLite-backed key-value store.

A durable KeyValueStore for standalone use (the CLI, apps without their own
storage layer). It holds opaque blobs only; the search structures themselves
live in memory and are persisted through the PersistenceAdapter.
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path

import aiosqlite

logger = logging.getLogger(__name__)


SCHEMA = """
CREATE TABLE IF NOT EXISTS kv (
    key TEXT PRIMARY KEY,
    value BLOB NOT NULL,
    updated_at TEXT NOT NULL
);
"""


class SQLiteKeyValueStore:
    """Key-value store in a single SQLite file.

    Usage:
        store = SQLiteKeyValueStore(Path("~/.browser-index/state"))
        await store.initialize()

        await store.put("key", b"value")
        value = await store.get("key")

        await store.close()
    """

    def __init__(self, state_dir: Path, filename: str = "kv.db") -> None:
        """Initialize the store.

        Args:
            state_dir: Directory for the database file.
            filename: Database file name inside state_dir.
        """
        self.state_dir = Path(state_dir)
        self.db_path = self.state_dir / filename
        self._connection: aiosqlite.Connection | None = None

    # ================================================================
    # Lifecycle
    # ================================================================

    async def initialize(self) -> None:
        """Create the state directory, open the connection, create the schema."""
        self.state_dir.mkdir(parents=True, exist_ok=True)

        conn = await self._get_connection()

        await conn.execute("PRAGMA journal_mode = WAL")
        await conn.execute("PRAGMA busy_timeout = 5000")
        await conn.execute("PRAGMA synchronous = NORMAL")

        await conn.executescript(SCHEMA)
        await conn.commit()

        logger.info(f"SQLiteKeyValueStore initialized at {self.db_path}")

    async def close(self) -> None:
        """Close database connection."""
        if self._connection:
            await self._connection.close()
            self._connection = None
            logger.debug("SQLiteKeyValueStore connection closed")

    async def _get_connection(self) -> aiosqlite.Connection:
        if self._connection is None:
            self._connection = await aiosqlite.connect(self.db_path)
            self._connection.row_factory = aiosqlite.Row
        return self._connection

    async def verify_integrity(self) -> bool:
        """Check database integrity.

        Returns:
            True if the database passes integrity check, False otherwise.
        """
        conn = await self._get_connection()
        async with conn.execute("PRAGMA integrity_check") as cursor:
            result = await cursor.fetchone()
            return result[0] == "ok"

    async def safe_initialize(self) -> None:
        """Initialize with automatic corruption recovery.

        A corrupt file is moved aside and a fresh store is created; the index
        stored in it then reports that a rebuild is required.
        """
        try:
            await self.initialize()

            if not await self.verify_integrity():
                raise sqlite3.DatabaseError("Integrity check failed")

        except sqlite3.DatabaseError as e:
            logger.error(f"Database error during initialization: {e}")
            await self._recover_database()

    async def _recover_database(self) -> None:
        logger.warning("Attempting database recovery...")

        await self.close()

        if self.db_path.exists():
            corrupt_path = self.db_path.with_suffix(".db.corrupt")
            self.db_path.rename(corrupt_path)
            logger.info(f"Corrupt database backed up to {corrupt_path}")

        for suffix in ["-wal", "-shm"]:
            wal_file = self.db_path.parent / (self.db_path.name + suffix)
            if wal_file.exists():
                wal_file.unlink()
                logger.debug(f"Removed WAL file: {wal_file}")

        await self.initialize()
        logger.info("Database recovered - stored blobs were discarded")

    async def _execute_with_retry(
        self,
        sql: str,
        params: tuple = (),
        max_retries: int = 3,
    ) -> aiosqlite.Cursor:
        """Execute with retry on busy/locked errors.

        Raises:
            sqlite3.OperationalError: If all retries are exhausted.
        """
        conn = await self._get_connection()

        for attempt in range(max_retries):
            try:
                return await conn.execute(sql, params)
            except sqlite3.OperationalError as e:
                if "locked" in str(e).lower() and attempt < max_retries - 1:
                    wait_time = 0.1 * (attempt + 1)
                    logger.debug(
                        f"Database locked, retrying in {wait_time}s "
                        f"(attempt {attempt + 1}/{max_retries})"
                    )
                    await asyncio.sleep(wait_time)
                    continue
                raise

        raise sqlite3.OperationalError("Max retries exceeded")

    # ================================================================
    # KeyValueStore
    # ================================================================

    async def get(self, key: str) -> bytes | None:
        conn = await self._get_connection()
        async with conn.execute("SELECT value FROM kv WHERE key = ?", (key,)) as cursor:
            row = await cursor.fetchone()
            return bytes(row["value"]) if row else None

    async def put(self, key: str, value: bytes) -> None:
        conn = await self._get_connection()
        await self._execute_with_retry(
            """
            INSERT INTO kv (key, value, updated_at)
            VALUES (?, ?, ?)
            ON CONFLICT(key) DO UPDATE SET
                value = excluded.value,
                updated_at = excluded.updated_at
            """,
            (key, sqlite3.Binary(value), datetime.now(timezone.utc).isoformat()),
        )
        await conn.commit()

    async def delete(self, key: str) -> None:
        conn = await self._get_connection()
        await self._execute_with_retry("DELETE FROM kv WHERE key = ?", (key,))
        await conn.commit()
