"""Tests for SQLiteKeyValueStore."""

from __future__ import annotations

from pathlib import Path

import pytest

from browser_index.storage.kv import KeyValueStore
from browser_index.storage.sqlite_kv import SQLiteKeyValueStore


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


class TestLifecycle:
    """Tests for initialization and recovery."""

    @pytest.mark.asyncio
    async def test_initialize_creates_file(self, tmp_path: Path) -> None:
        """Initialization creates the state directory and database file."""
        store = SQLiteKeyValueStore(tmp_path / "state")
        await store.initialize()
        try:
            assert store.db_path.exists()
            assert await store.verify_integrity()
        finally:
            await store.close()

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self, tmp_path: Path) -> None:
        store = SQLiteKeyValueStore(tmp_path)
        await store.initialize()
        await store.close()
        await store.close()

    @pytest.mark.asyncio
    async def test_satisfies_protocol(self, tmp_path: Path) -> None:
        assert isinstance(SQLiteKeyValueStore(tmp_path), KeyValueStore)

    @pytest.mark.asyncio
    async def test_safe_initialize_recovers_corrupt_file(self, tmp_path: Path) -> None:
        """A corrupt database is moved aside and replaced with a fresh one."""
        (tmp_path / "kv.db").write_bytes(b"definitely not sqlite" * 200)
        store = SQLiteKeyValueStore(tmp_path)

        await store.safe_initialize()
        try:
            assert (tmp_path / "kv.db.corrupt").exists()
            assert await store.get("anything") is None
            await store.put("key", b"value")
            assert await store.get("key") == b"value"
        finally:
            await store.close()

    @pytest.mark.asyncio
    async def test_data_survives_reopen(self, tmp_path: Path) -> None:
        store = SQLiteKeyValueStore(tmp_path)
        await store.initialize()
        await store.put("snapshot", b"\x00\x01payload")
        await store.close()

        reopened = SQLiteKeyValueStore(tmp_path)
        await reopened.safe_initialize()
        try:
            assert await reopened.get("snapshot") == b"\x00\x01payload"
        finally:
            await reopened.close()


# ---------------------------------------------------------------------------
# Key-value operations
# ---------------------------------------------------------------------------


class TestOperations:
    """Tests for get/put/delete."""

    @pytest.fixture
    async def store(self, tmp_path: Path) -> SQLiteKeyValueStore:
        """Create and initialize a test store."""
        store = SQLiteKeyValueStore(tmp_path)
        await store.initialize()
        yield store
        await store.close()

    @pytest.mark.asyncio
    async def test_get_missing(self, store: SQLiteKeyValueStore) -> None:
        assert await store.get("missing") is None

    @pytest.mark.asyncio
    async def test_put_replaces(self, store: SQLiteKeyValueStore) -> None:
        """A second put overwrites the first value."""
        await store.put("key", b"one")
        await store.put("key", b"two")
        assert await store.get("key") == b"two"

    @pytest.mark.asyncio
    async def test_delete(self, store: SQLiteKeyValueStore) -> None:
        await store.put("key", b"value")
        await store.delete("key")
        assert await store.get("key") is None

    @pytest.mark.asyncio
    async def test_delete_missing_is_noop(self, store: SQLiteKeyValueStore) -> None:
        await store.delete("never-written")
