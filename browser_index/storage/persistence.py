"""Snapshot persistence for the search index.

The index is a CACHE: history and bookmark tables are the source of truth.
A snapshot that cannot be used as-is (wrong schema version, undecodable,
inconsistent) is discarded and the caller re-indexes from its own tables.

Blob format (UTF-8 JSON, canonical so equal state gives equal bytes):

    {"nextId": 3,
     "records": [{"id": 1, "type": "history", ...}, ...],   # sorted by id
     "schemaVersion": 1,
     "terms": [["reddit", [[1, 2.0, 2], [2, 1.0, 1]]], ...]}  # sorted by term
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field

from ..errors import IndexCorrupted, SchemaMismatch, StorageUnavailable
from ..models import IndexedRecord
from .kv import KeyValueStore

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1


@dataclass
class IndexSnapshot:
    """Point-in-time copy of the record store and inverted index."""

    next_id: int
    records: list[IndexedRecord] = field(default_factory=list)
    terms: list = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "schemaVersion": SCHEMA_VERSION,
            "nextId": self.next_id,
            "records": [r.to_dict() for r in sorted(self.records, key=lambda r: r.id)],
            "terms": sorted(self.terms, key=lambda entry: entry[0]),
        }


def encode_snapshot(snapshot: IndexSnapshot) -> bytes:
    """Serialize a snapshot to canonical bytes."""
    return json.dumps(
        snapshot.to_dict(),
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    ).encode("utf-8")


def decode_snapshot(blob: bytes) -> IndexSnapshot:
    """Parse and check a snapshot blob.

    Raises:
        SchemaMismatch: If the blob's schema version is not SCHEMA_VERSION.
        IndexCorrupted: If the blob cannot be decoded or its postings
            reference records it does not contain.
    """
    try:
        data = json.loads(blob.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise IndexCorrupted(f"Snapshot is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise IndexCorrupted("Snapshot root is not an object")

    version = data.get("schemaVersion")
    if version != SCHEMA_VERSION:
        raise SchemaMismatch(version, SCHEMA_VERSION)

    try:
        records = [IndexedRecord.from_dict(r) for r in data["records"]]
        terms = [[term, [list(p) for p in postings]] for term, postings in data["terms"]]
        next_id = int(data["nextId"])
    except (KeyError, TypeError, ValueError) as e:
        raise IndexCorrupted(f"Snapshot has malformed fields: {e}") from e

    record_ids = {r.id for r in records}
    if len(record_ids) != len(records):
        raise IndexCorrupted("Snapshot repeats a record id")
    if len({(r.record_type, r.url) for r in records}) != len(records):
        raise IndexCorrupted("Snapshot repeats a url within a record type")
    if records and next_id <= max(record_ids):
        raise IndexCorrupted(f"nextId {next_id} does not exceed stored ids")
    for term, postings in terms:
        for posting in postings:
            if not posting or posting[0] not in record_ids:
                raise IndexCorrupted(f"Term {term!r} references an unknown record")

    return IndexSnapshot(next_id=next_id, records=records, terms=terms)


class PersistenceAdapter:
    """Reads and writes the snapshot blob under one reserved key.

    Writes are skipped when the encoded bytes equal the last blob written
    (or loaded), so re-flushing unchanged state costs no I/O.
    """

    def __init__(self, store: KeyValueStore, key: str) -> None:
        self.store = store
        self.key = key
        self._last_blob: bytes | None = None

    @property
    def last_blob(self) -> bytes | None:
        """The bytes most recently written or loaded."""
        return self._last_blob

    async def load(self) -> IndexSnapshot | None:
        """Load the persisted snapshot.

        Returns:
            The snapshot, or None on cold start (nothing stored).

        Raises:
            StorageUnavailable: If the store read fails.
            SchemaMismatch: If the stored schema version differs.
            IndexCorrupted: If the stored blob is unusable.
        """
        try:
            blob = await self.store.get(self.key)
        except Exception as e:
            raise StorageUnavailable(f"Failed to read {self.key}: {e}") from e

        if blob is None:
            logger.info("No persisted index under %s; starting empty", self.key)
            return None

        snapshot = decode_snapshot(blob)
        self._last_blob = bytes(blob)
        logger.info(
            "Loaded index snapshot: %d records, %d terms (%d bytes)",
            len(snapshot.records),
            len(snapshot.terms),
            len(blob),
        )
        return snapshot

    async def flush(self, snapshot: IndexSnapshot) -> bool:
        """Write a snapshot.

        Returns:
            True if bytes were written, False if unchanged since the last write.

        Raises:
            StorageUnavailable: If the store write fails.
        """
        blob = encode_snapshot(snapshot)
        if blob == self._last_blob:
            logger.debug("Skipped flush of %s: content unchanged", self.key)
            return False
        try:
            await self.store.put(self.key, blob)
        except Exception as e:
            raise StorageUnavailable(f"Failed to write {self.key}: {e}") from e
        self._last_blob = blob
        logger.debug("Flushed index snapshot to %s (%d bytes)", self.key, len(blob))
        return True

    async def discard(self) -> None:
        """Delete the stored blob.

        Raises:
            StorageUnavailable: If the store delete fails.
        """
        try:
            await self.store.delete(self.key)
        except Exception as e:
            raise StorageUnavailable(f"Failed to delete {self.key}: {e}") from e
        self._last_blob = None
        logger.info("Discarded persisted index under %s", self.key)
