"""Change events fired after a mutation is committed to the index.

- RecordIndexed: a record was created or updated (re-index, revisit, edit)
- RecordRemoved: a record was removed explicitly or evicted by the history cap
- IndexCleared: a bulk clear of one type (or everything)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from .models import IndexedRecord, RecordType


@dataclass(frozen=True)
class RecordIndexed:
    """A record was added or updated."""

    record: IndexedRecord
    created: bool


@dataclass(frozen=True)
class RecordRemoved:
    """A record left the index."""

    record: IndexedRecord
    evicted: bool = False


@dataclass(frozen=True)
class IndexCleared:
    """All records of a type were removed (record_type None means all)."""

    record_type: RecordType | None
    removed: int


ChangeEvent = Union[RecordIndexed, RecordRemoved, IndexCleared]
