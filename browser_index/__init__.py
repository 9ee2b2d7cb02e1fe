"""Browser Index: on-device search over browsing history and bookmarks."""

from browser_index.config import ConfigManager, IndexConfig, apply_env_overrides
from browser_index.errors import (
    DuplicateRecord,
    IndexCorrupted,
    IndexNotReady,
    InvalidQuery,
    InvalidRecord,
    NotFound,
    SchemaMismatch,
    SearchIndexError,
    StorageUnavailable,
)
from browser_index.events import ChangeEvent, IndexCleared, RecordIndexed, RecordRemoved
from browser_index.index import IndexResult, InitStatus, SearchIndex
from browser_index.models import IndexedRecord, Posting, RecordDraft, RecordType, SearchResult
from browser_index.protocol import ChangeListener
from browser_index.query import SearchOptions
from browser_index.storage import MemoryKeyValueStore, SQLiteKeyValueStore
from browser_index.tokenizer import Token, tokenize

__version__ = "0.1.0"

__all__ = [
    # Index handle
    "SearchIndex",
    "InitStatus",
    "IndexResult",
    "SearchOptions",
    # Models
    "IndexedRecord",
    "Posting",
    "RecordDraft",
    "RecordType",
    "SearchResult",
    # Tokenizer
    "Token",
    "tokenize",
    # Change notifications
    "ChangeEvent",
    "ChangeListener",
    "IndexCleared",
    "RecordIndexed",
    "RecordRemoved",
    # Config
    "ConfigManager",
    "IndexConfig",
    "apply_env_overrides",
    # Storage
    "MemoryKeyValueStore",
    "SQLiteKeyValueStore",
    # Errors
    "DuplicateRecord",
    "IndexCorrupted",
    "IndexNotReady",
    "InvalidQuery",
    "InvalidRecord",
    "NotFound",
    "SchemaMismatch",
    "SearchIndexError",
    "StorageUnavailable",
]
