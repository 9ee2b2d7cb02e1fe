"""Persistence for the search index: key-value backends, snapshots, flush scheduling."""

from __future__ import annotations

from browser_index.storage.debouncer import FlushDebouncer, PendingFlush
from browser_index.storage.kv import KeyValueStore, MemoryKeyValueStore
from browser_index.storage.persistence import (
    SCHEMA_VERSION,
    IndexSnapshot,
    PersistenceAdapter,
    decode_snapshot,
    encode_snapshot,
)
from browser_index.storage.sqlite_kv import SQLiteKeyValueStore

__all__ = [
    # Key-value capability
    "KeyValueStore",
    "MemoryKeyValueStore",
    "SQLiteKeyValueStore",
    # Snapshots
    "IndexSnapshot",
    "PersistenceAdapter",
    "SCHEMA_VERSION",
    "decode_snapshot",
    "encode_snapshot",
    # Flush scheduling
    "FlushDebouncer",
    "PendingFlush",
]
