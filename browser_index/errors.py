"""Error taxonomy for the search index."""

from __future__ import annotations


class SearchIndexError(Exception):
    """Base exception for search index operations."""

    pass


class StorageUnavailable(SearchIndexError):
    """The key-value store failed to read, write, or delete."""

    pass


class SchemaMismatch(SearchIndexError):
    """Persisted snapshot was written with an incompatible schema version."""

    def __init__(self, found: object, expected: int) -> None:
        super().__init__(f"Snapshot schema version {found!r} != {expected}")
        self.found = found
        self.expected = expected


class IndexCorrupted(SearchIndexError):
    """Persisted snapshot could not be decoded or is internally inconsistent."""

    pass


class InvalidQuery(SearchIndexError):
    """Search options that cannot be clamped to a sane default."""

    pass


class InvalidRecord(SearchIndexError):
    """A record submitted for indexing failed validation."""

    pass


class DuplicateRecord(SearchIndexError):
    """An update would give two records of one type the same url."""

    pass


class IndexNotReady(SearchIndexError):
    """The index has not been initialized, or has been shut down."""

    pass


class NotFound(SearchIndexError):
    """No record exists with the requested id."""

    pass
