"""Authoritative storage of indexed record fields.

The inverted index only keeps record ids and weights; search results are
hydrated from here, and `(record_type, url)` lookups back the upsert dedup.
"""

from __future__ import annotations

from typing import Iterator

from .models import IndexedRecord, RecordType


class RecordStore:
    """In-memory record table keyed by id, with a per-type url index."""

    def __init__(self) -> None:
        self._records: dict[int, IndexedRecord] = {}
        self._by_url: dict[tuple[RecordType, str], int] = {}

    def put(self, record: IndexedRecord) -> None:
        """Insert or replace a record.

        If the record's url changed, the old url mapping is dropped.
        """
        previous = self._records.get(record.id)
        if previous is not None:
            old_key = (previous.record_type, previous.url)
            if self._by_url.get(old_key) == record.id:
                del self._by_url[old_key]
        self._records[record.id] = record
        self._by_url[(record.record_type, record.url)] = record.id

    def get(self, record_id: int) -> IndexedRecord | None:
        return self._records.get(record_id)

    def remove(self, record_id: int) -> IndexedRecord | None:
        """Remove a record, returning it (or None if it was not stored)."""
        record = self._records.pop(record_id, None)
        if record is not None:
            key = (record.record_type, record.url)
            if self._by_url.get(key) == record_id:
                del self._by_url[key]
        return record

    def find_by_url(self, record_type: RecordType, url: str) -> IndexedRecord | None:
        record_id = self._by_url.get((record_type, url))
        if record_id is None:
            return None
        return self._records.get(record_id)

    def records(self, record_type: RecordType | None = None) -> list[IndexedRecord]:
        """All records (optionally of one type), sorted by id."""
        return [self._records[i] for i in self.ids(record_type)]

    def ids(self, record_type: RecordType | None = None) -> list[int]:
        if record_type is None:
            return sorted(self._records)
        return sorted(
            record_id
            for record_id, record in self._records.items()
            if record.record_type is record_type
        )

    def count(self, record_type: RecordType | None = None) -> int:
        if record_type is None:
            return len(self._records)
        return sum(1 for r in self._records.values() if r.record_type is record_type)

    def clear(self) -> None:
        self._records.clear()
        self._by_url.clear()

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, record_id: object) -> bool:
        return record_id in self._records

    def __iter__(self) -> Iterator[IndexedRecord]:
        return iter(self.records())
