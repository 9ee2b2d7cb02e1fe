"""The search index handle: the boundary API callers hold.

This module provides:
- SearchIndex: owns the record store, inverted index and query engine,
  serializes mutations against searches, schedules coalesced flushes, and
  notifies listeners of committed changes
- InitStatus: outcome of loading persisted state
- IndexResult: outcome of a mutation, reported instead of raised

The index is an accelerator, not the source of truth: a failed mutation is
logged and reported in the result, but never raised into the caller's
primary action (saving a bookmark, recording a visit).
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping

from .clock import Clock, MonotonicClock
from .config import IndexConfig
from .emitter import ChangeEmitter
from .errors import (
    DuplicateRecord,
    IndexCorrupted,
    IndexNotReady,
    InvalidRecord,
    NotFound,
    SchemaMismatch,
    SearchIndexError,
    StorageUnavailable,
)
from .events import ChangeEvent, IndexCleared, RecordIndexed, RecordRemoved
from .inverted_index import InvertedIndex
from .locks import ReadWriteLock
from .models import IndexedRecord, RecordDraft, RecordType, SearchResult
from .protocol import ChangeListener
from .query import QueryEngine, SearchOptions
from .record_store import RecordStore
from .storage.debouncer import FlushDebouncer
from .storage.kv import KeyValueStore
from .storage.persistence import IndexSnapshot, PersistenceAdapter

logger = logging.getLogger(__name__)


class InitStatus(Enum):
    """Result of SearchIndex.initialize()."""

    READY = "ready"
    REBUILD_REQUIRED = "rebuild_required"


@dataclass
class IndexResult:
    """Outcome of a mutating operation."""

    ok: bool
    record: IndexedRecord | None = None
    removed: int = 0
    error: SearchIndexError | None = None


class SearchIndex:
    """Local search index over history and bookmarks.

    One instance owns its data; create it once per store and pass the handle
    to whoever needs it.

    Usage:
        index = SearchIndex(store)
        status = await index.initialize()
        if status is InitStatus.REBUILD_REQUIRED:
            ...  # re-index from the history/bookmark tables

        await index.add_to_index({"url": url, "title": title}, RecordType.HISTORY)
        results = await index.search("redd")

        await index.shutdown()
    """

    def __init__(
        self,
        store: KeyValueStore,
        config: IndexConfig | None = None,
        clock: Clock | None = None,
    ) -> None:
        """Initialize the handle. Nothing is loaded until initialize().

        Args:
            store: Key-value capability used for persistence.
            config: Ranking, persistence, and cap settings.
            clock: Time source for timestamps and recency.
        """
        self.config = config or IndexConfig()
        self.config.validate()
        self.clock: Clock = clock or MonotonicClock()

        self._persistence = PersistenceAdapter(store, self.config.storage_key)
        self._debouncer = FlushDebouncer(
            delay_ms=self.config.flush_delay_ms,
            max_delay_ms=self.config.flush_max_delay_ms,
        )
        self._emitter = ChangeEmitter()
        self._lock = ReadWriteLock()
        self._flush_lock = asyncio.Lock()

        self._records = RecordStore()
        self._index = self._new_inverted_index()
        self._engine = QueryEngine(self._index, self._records, self.config, self.clock)
        self._next_id = 1

        self._status: InitStatus | None = None
        self._closed = False
        self._closing = False
        self.last_error: SearchIndexError | None = None

    # ================================================================
    # Lifecycle
    # ================================================================

    @property
    def status(self) -> InitStatus | None:
        """Status from initialize(), or None if not initialized / shut down."""
        return None if self._closed else self._status

    @property
    def is_ready(self) -> bool:
        return self._status is not None and not self._closed and not self._closing

    async def initialize(self) -> InitStatus:
        """Load persisted state.

        Returns:
            READY if the snapshot loaded (or none existed). REBUILD_REQUIRED if
            it was unusable or unreadable; the index then starts empty and the
            caller should re-index from its own tables.
        """
        if self.is_ready:
            logger.warning("SearchIndex already initialized")
            return self._status  # type: ignore[return-value]

        status = InitStatus.READY
        snapshot: IndexSnapshot | None = None
        try:
            snapshot = await self._persistence.load()
        except (SchemaMismatch, IndexCorrupted) as e:
            logger.warning(f"Discarding persisted index: {e}")
            status = InitStatus.REBUILD_REQUIRED
            try:
                await self._persistence.discard()
            except StorageUnavailable as discard_error:
                logger.warning(f"Could not discard persisted index: {discard_error}")
        except StorageUnavailable as e:
            logger.error(f"Persisted index unavailable, starting empty: {e}")
            status = InitStatus.REBUILD_REQUIRED

        async with self._lock.write():
            self._reset()
            if snapshot is not None:
                try:
                    self._restore(snapshot)
                except (TypeError, ValueError) as e:
                    logger.warning(f"Persisted index inconsistent, starting empty: {e}")
                    self._reset()
                    status = InitStatus.REBUILD_REQUIRED

        self._status = status
        self._closed = False
        logger.info(
            f"SearchIndex initialized ({status.value}): "
            f"{len(self._records)} records, {self._index.term_count} terms"
        )
        return status

    async def shutdown(self) -> bool:
        """Flush pending state and release the in-memory structures.

        Returns:
            True if the final flush succeeded (or there was nothing to do).
        """
        if not self.is_ready:
            return True

        # Late mutations and debounced flushes see the index as not ready.
        self._closing = True
        flushed = True
        try:
            await self._debouncer.cancel_all()
            await self._write_snapshot()
        except StorageUnavailable as e:
            logger.error(f"Final flush failed, recent changes are not persisted: {e}")
            flushed = False
        finally:
            await self._emitter.drain()
            async with self._lock.write():
                self._reset()
            await self._debouncer.cancel_all()
            self._closed = True
            self._closing = False
            self._status = None
        logger.info("SearchIndex shut down")
        return flushed

    async def __aenter__(self) -> SearchIndex:
        await self.initialize()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.shutdown()

    def _new_inverted_index(self) -> InvertedIndex:
        return InvertedIndex(
            title_weight=self.config.title_weight,
            url_weight=self.config.url_weight,
            tf_cap=self.config.tf_cap,
        )

    def _reset(self) -> None:
        self._records.clear()
        self._index.clear()
        self._next_id = 1

    def _restore(self, snapshot: IndexSnapshot) -> None:
        index = InvertedIndex.from_list(
            snapshot.terms,
            title_weight=self.config.title_weight,
            url_weight=self.config.url_weight,
            tf_cap=self.config.tf_cap,
        )
        for record in snapshot.records:
            self._records.put(record)
        self._index = index
        self._engine.index = index
        self._next_id = snapshot.next_id

        observe = getattr(self.clock, "observe", None)
        if observe is not None and snapshot.records:
            observe(max(r.timestamp for r in snapshot.records))

    def _ensure_ready(self) -> None:
        if not self.is_ready:
            raise IndexNotReady("SearchIndex is not initialized")

    # ================================================================
    # Mutations
    # ================================================================

    async def add_to_index(
        self,
        record: RecordDraft | Mapping[str, Any],
        record_type: RecordType | str,
    ) -> IndexResult:
        """Index a history visit or a created/edited bookmark.

        Re-indexing a url already present for the type updates that record in
        place: visits are added up (history), the timestamp is refreshed, and
        a changed non-empty title is re-tokenized.

        Args:
            record: A RecordDraft or a mapping with url, title, visit_count.
            record_type: RecordType or its string value.

        Returns:
            IndexResult carrying the stored record, or the error.
        """
        try:
            self._ensure_ready()
            rtype = _parse_type(record_type)
            if isinstance(record, RecordDraft):
                draft = record
                draft.validate()
            else:
                draft = RecordDraft.from_mapping(record)
            async with self._lock.write():
                self._ensure_ready()
                stored, created, evicted = self._apply_upsert(draft, rtype)
        except SearchIndexError as e:
            return self._report_failure("index record", e)
        except Exception as e:
            logger.exception("Unexpected error indexing record")
            return self._report_failure("index record", SearchIndexError(str(e)))

        events: list[ChangeEvent] = [RecordIndexed(record=stored, created=created)]
        events.extend(RecordRemoved(record=r, evicted=True) for r in evicted)
        await self._after_mutation(events)
        return IndexResult(ok=True, record=stored, removed=len(evicted))

    async def update_record(
        self,
        record_id: int,
        title: str | None = None,
        url: str | None = None,
    ) -> IndexResult:
        """Explicitly edit a record's title and/or url.

        Returns:
            IndexResult with the updated record. NotFound for an unknown id,
            DuplicateRecord if the new url is taken within the type.
        """
        try:
            self._ensure_ready()
            async with self._lock.write():
                self._ensure_ready()
                updated = self._apply_update(record_id, title, url)
        except SearchIndexError as e:
            return self._report_failure(f"update record {record_id}", e)
        except Exception as e:
            logger.exception(f"Unexpected error updating record {record_id}")
            return self._report_failure(f"update record {record_id}", SearchIndexError(str(e)))

        await self._after_mutation([RecordIndexed(record=updated, created=False)])
        return IndexResult(ok=True, record=updated)

    async def remove_from_index(self, record_id: int) -> IndexResult:
        """Remove a record by id. Unknown ids are a successful no-op."""
        try:
            self._ensure_ready()
            async with self._lock.write():
                self._ensure_ready()
                removed = self._records.remove(record_id)
                if removed is not None:
                    self._index.remove(record_id)
        except SearchIndexError as e:
            return self._report_failure(f"remove record {record_id}", e)
        except Exception as e:
            logger.exception(f"Unexpected error removing record {record_id!r}")
            return self._report_failure(f"remove record {record_id!r}", SearchIndexError(str(e)))

        if removed is None:
            logger.debug(f"Remove of unknown record {record_id} ignored")
            return IndexResult(ok=True)

        await self._after_mutation([RecordRemoved(record=removed)])
        return IndexResult(ok=True, record=removed, removed=1)

    async def clear(self, record_type: RecordType | str | None = None) -> IndexResult:
        """Remove every record of a type, or everything if no type is given."""
        try:
            self._ensure_ready()
            rtype = None if record_type is None else _parse_type(record_type)
            async with self._lock.write():
                self._ensure_ready()
                if rtype is None:
                    count = len(self._records)
                    self._records.clear()
                    self._index.clear()
                else:
                    ids = self._records.ids(rtype)
                    for record_id in ids:
                        self._records.remove(record_id)
                        self._index.remove(record_id)
                    count = len(ids)
        except SearchIndexError as e:
            return self._report_failure("clear", e)
        except Exception as e:
            logger.exception("Unexpected error clearing records")
            return self._report_failure("clear", SearchIndexError(str(e)))

        logger.info(f"Cleared {count} {rtype.value if rtype else 'all'} records")
        await self._after_mutation([IndexCleared(record_type=rtype, removed=count)])
        return IndexResult(ok=True, removed=count)

    async def reindex(self) -> int:
        """Recompute every posting from the record store.

        Use after changing field weights or the term cap: persisted postings
        keep the weights they were written with.

        Returns:
            Number of records re-indexed.
        """
        self._ensure_ready()
        async with self._lock.write():
            self._ensure_ready()
            index = self._new_inverted_index()
            for record in self._records.records():
                index.upsert(record)
            self._index = index
            self._engine.index = index
            count = len(self._records)
        await self._debouncer.schedule(self._flush_now)
        return count

    def _apply_upsert(
        self,
        draft: RecordDraft,
        record_type: RecordType,
    ) -> tuple[IndexedRecord, bool, list[IndexedRecord]]:
        url = draft.normalized_url
        title = draft.normalized_title
        now = self.clock.now_ms()
        is_history = record_type is RecordType.HISTORY

        existing = self._records.find_by_url(record_type, url)
        if existing is not None:
            new_title = title or existing.title
            updated = existing.with_changes(
                title=new_title,
                timestamp=now,
                visit_count=existing.visit_count + draft.visit_count if is_history else 0,
            )
            self._records.put(updated)
            if new_title != existing.title:
                self._index.upsert(updated)
            logger.debug(f"Updated {record_type.value} record {updated.id}")
            return updated, False, []

        record = IndexedRecord(
            id=self._next_id,
            record_type=record_type,
            title=title,
            url=url,
            timestamp=now,
            visit_count=draft.visit_count if is_history else 0,
        )
        self._next_id += 1
        self._records.put(record)
        self._index.upsert(record)
        logger.debug(f"Added {record_type.value} record {record.id}")

        evicted = self._evict_history() if is_history else []
        return record, True, evicted

    def _apply_update(
        self,
        record_id: int,
        title: str | None,
        url: str | None,
    ) -> IndexedRecord:
        existing = self._records.get(record_id)
        if existing is None:
            raise NotFound(f"No record with id {record_id}")

        new_title = existing.title if title is None else title
        new_url = existing.url if url is None else url
        if not isinstance(new_title, str):
            raise InvalidRecord("Record title must be a string")
        if not isinstance(new_url, str) or not new_url.strip():
            raise InvalidRecord("Record url must be a non-empty string")
        new_title = new_title.strip()
        new_url = new_url.strip()

        if new_url != existing.url:
            clash = self._records.find_by_url(existing.record_type, new_url)
            if clash is not None:
                raise DuplicateRecord(
                    f"{existing.record_type.value} record {clash.id} already has url {new_url}"
                )

        updated = existing.with_changes(title=new_title, url=new_url, timestamp=self.clock.now_ms())
        self._records.put(updated)
        self._index.upsert(updated)
        return updated

    def _evict_history(self) -> list[IndexedRecord]:
        cap = self.config.max_history_records
        if cap is None:
            return []
        history = self._records.records(RecordType.HISTORY)
        excess = len(history) - cap
        if excess <= 0:
            return []
        history.sort(key=lambda r: (r.timestamp, r.id))
        evicted = history[:excess]
        for record in evicted:
            self._records.remove(record.id)
            self._index.remove(record.id)
        logger.info(f"Evicted {len(evicted)} oldest history records (cap {cap})")
        return evicted

    def _report_failure(self, action: str, error: SearchIndexError) -> IndexResult:
        logger.warning(f"Failed to {action}: {error}")
        self.last_error = error
        return IndexResult(ok=False, error=error)

    async def _after_mutation(self, events: list[ChangeEvent]) -> None:
        for event in events:
            await self._emitter.emit(event)
        await self._debouncer.schedule(self._flush_now)

    # ================================================================
    # Queries
    # ================================================================

    async def search(
        self,
        query: str,
        options: SearchOptions | None = None,
    ) -> list[SearchResult]:
        """Search history and bookmarks.

        Never raises: failures (not initialized, invalid options, internal
        errors) are logged, stored in `last_error`, and yield []. A search
        that succeeds leaves `last_error` as None.

        Args:
            query: Raw search box text. The last word also matches as a prefix.
            options: Type filter and pagination.

        Returns:
            Ranked results.
        """
        self.last_error = None
        try:
            self._ensure_ready()
            async with self._lock.read():
                return self._engine.search(query, options)
        except SearchIndexError as e:
            logger.warning(f"Search failed for {query!r}: {e}")
            self.last_error = e
            return []
        except Exception as e:
            logger.exception(f"Unexpected error searching for {query!r}")
            self.last_error = SearchIndexError(str(e))
            return []

    async def search_history(self, query: str, limit: int | None = None) -> list[SearchResult]:
        return await self.search(query, SearchOptions(types=[RecordType.HISTORY], limit=limit))

    async def search_bookmarks(self, query: str, limit: int | None = None) -> list[SearchResult]:
        return await self.search(query, SearchOptions(types=[RecordType.BOOKMARK], limit=limit))

    def get_record(self, record_id: int) -> IndexedRecord | None:
        return self._records.get(record_id)

    def find_by_url(self, record_type: RecordType | str, url: str) -> IndexedRecord | None:
        return self._records.find_by_url(_parse_type(record_type), url.strip())

    def stats(self) -> dict:
        """Index statistics.

        Returns:
            Dict with keys: status, records, history, bookmarks, terms,
            postings, next_id, flush_pending.
        """
        status = self.status
        return {
            "status": status.value if status else None,
            "records": len(self._records),
            "history": self._records.count(RecordType.HISTORY),
            "bookmarks": self._records.count(RecordType.BOOKMARK),
            "terms": self._index.term_count,
            "postings": self._index.posting_count,
            "next_id": self._next_id,
            "flush_pending": self._debouncer.has_pending(),
        }

    # ================================================================
    # Persistence
    # ================================================================

    async def snapshot(self) -> IndexSnapshot:
        """Point-in-time copy of the index, taken under the read lock."""
        async with self._lock.read():
            return IndexSnapshot(
                next_id=self._next_id,
                records=self._records.records(),
                terms=self._index.to_list(),
            )

    async def flush(self) -> bool:
        """Persist now, cancelling any pending coalesced flush.

        Returns:
            True if bytes were written, False if nothing changed.

        Raises:
            IndexNotReady: If the index is not initialized.
            StorageUnavailable: If the key-value store write fails.
        """
        self._ensure_ready()
        await self._debouncer.cancel_all()
        return await self._flush_now()

    async def _flush_now(self) -> bool:
        return await self._write_snapshot(require_ready=True)

    async def _write_snapshot(self, require_ready: bool = False) -> bool:
        # Copy under the read lock, then write with no index lock held so
        # searches and mutations are not blocked on I/O.
        async with self._flush_lock:
            if require_ready and not self.is_ready:
                logger.debug("Skipping flush, index is closed")
                return False
            snapshot = await self.snapshot()
            return await self._persistence.flush(snapshot)

    # ================================================================
    # Change notifications
    # ================================================================

    def subscribe(self, listener: ChangeListener) -> None:
        self._emitter.subscribe(listener)

    def unsubscribe(self, listener: ChangeListener) -> None:
        self._emitter.unsubscribe(listener)


def _parse_type(value: RecordType | str) -> RecordType:
    try:
        return RecordType.parse(value)
    except ValueError as e:
        raise InvalidRecord(str(e)) from e
