"""Shared test fixtures for Browser Index."""

from __future__ import annotations

from typing import Callable

import pytest

from browser_index.config import IndexConfig
from browser_index.index import SearchIndex
from browser_index.models import IndexedRecord, RecordType
from browser_index.storage.kv import MemoryKeyValueStore

START_MS = 1_700_000_000_000
DAY_MS = 24 * 60 * 60 * 1000


# ---------------------------------------------------------------------------
# Clock
# ---------------------------------------------------------------------------


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, start: int = START_MS) -> None:
        self.now = start

    def now_ms(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms

    def advance_days(self, days: float) -> None:
        self.now += int(days * DAY_MS)


class FailingStore:
    """Key-value store whose every operation fails."""

    def __init__(self) -> None:
        self.calls = 0

    async def get(self, key: str) -> bytes | None:
        self.calls += 1
        raise OSError("disk unavailable")

    async def put(self, key: str, value: bytes) -> None:
        self.calls += 1
        raise OSError("disk unavailable")

    async def delete(self, key: str) -> None:
        self.calls += 1
        raise OSError("disk unavailable")


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def failing_store() -> FailingStore:
    return FailingStore()


# ---------------------------------------------------------------------------
# Record factory fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def make_record() -> Callable[..., IndexedRecord]:
    """Factory for IndexedRecord instances.

    Usage:
        record = make_record()  # Default values
        record = make_record(id=2, title="Reddit", url="https://reddit.com")
    """

    def _create(
        id: int = 1,
        record_type: RecordType = RecordType.HISTORY,
        title: str = "Example Domain",
        url: str = "https://example.com",
        timestamp: int = START_MS,
        visit_count: int | None = None,
    ) -> IndexedRecord:
        if visit_count is None:
            visit_count = 1 if record_type is RecordType.HISTORY else 0
        return IndexedRecord(
            id=id,
            record_type=record_type,
            title=title,
            url=url,
            timestamp=timestamp,
            visit_count=visit_count,
        )

    return _create


# ---------------------------------------------------------------------------
# Index fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def config() -> IndexConfig:
    """Config with short flush delays for testing."""
    return IndexConfig(flush_delay_ms=10, flush_max_delay_ms=50)


@pytest.fixture
def store() -> MemoryKeyValueStore:
    return MemoryKeyValueStore()


@pytest.fixture
async def index(
    store: MemoryKeyValueStore,
    config: IndexConfig,
    clock: FakeClock,
) -> SearchIndex:
    """Initialized SearchIndex over an in-memory store."""
    search_index = SearchIndex(store, config, clock)
    await search_index.initialize()
    yield search_index
    await search_index.shutdown()
