"""Data model for indexed history and bookmark records."""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Mapping

from .errors import InvalidRecord


class RecordType(Enum):
    """Collections the index serves."""

    HISTORY = "history"
    BOOKMARK = "bookmark"

    @classmethod
    def parse(cls, value: RecordType | str) -> RecordType:
        """Accept a member or its string value (case-insensitive)."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                pass
        raise ValueError(f"Unknown record type: {value!r}")


@dataclass(frozen=True)
class IndexedRecord:
    """Canonical fields of one indexed record.

    `visit_count` is only meaningful for history; bookmarks always carry 0.
    """

    id: int
    record_type: RecordType
    title: str
    url: str
    timestamp: int  # milliseconds from the index clock
    visit_count: int = 0

    @property
    def is_history(self) -> bool:
        return self.record_type is RecordType.HISTORY

    def with_changes(self, **changes: Any) -> IndexedRecord:
        """Return a copy with the given fields replaced."""
        return replace(self, **changes)

    def to_dict(self) -> dict:
        """Serialize to dictionary."""
        return {
            "id": self.id,
            "type": self.record_type.value,
            "title": self.title,
            "url": self.url,
            "timestamp": self.timestamp,
            "visitCount": self.visit_count,
        }

    @classmethod
    def from_dict(cls, data: dict) -> IndexedRecord:
        """Deserialize from dictionary."""
        return cls(
            id=int(data["id"]),
            record_type=RecordType(data["type"]),
            title=data.get("title", ""),
            url=data["url"],
            timestamp=int(data["timestamp"]),
            visit_count=int(data.get("visitCount", 0)),
        )


@dataclass(frozen=True)
class RecordDraft:
    """A record as submitted by a caller, before the index assigns an id."""

    url: str
    title: str = ""
    visit_count: int = 1

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> RecordDraft:
        """Validate an ad hoc record mapping.

        Accepts both `visit_count` and the camelCase `visitCount` key.
        Unknown keys (ids, timestamps, favicons, ...) are ignored since the
        index assigns its own.

        Raises:
            InvalidRecord: If the url is missing or any field has the wrong type.
        """
        if not isinstance(data, Mapping):
            raise InvalidRecord(f"Record must be a mapping, got {type(data).__name__}")
        visit_count = data.get("visit_count", data.get("visitCount", 1))
        draft = cls(
            url=data.get("url"),  # type: ignore[arg-type]
            title=data.get("title") or "",
            visit_count=visit_count if visit_count is not None else 1,
        )
        draft.validate()
        return draft

    def validate(self) -> None:
        """Raise InvalidRecord unless every field is well-formed."""
        if not isinstance(self.url, str) or not self.url.strip():
            raise InvalidRecord("Record url must be a non-empty string")
        if not isinstance(self.title, str):
            raise InvalidRecord("Record title must be a string")
        if (
            isinstance(self.visit_count, bool)
            or not isinstance(self.visit_count, int)
            or self.visit_count < 1
        ):
            raise InvalidRecord(
                f"Record visit_count must be a positive integer, got {self.visit_count!r}"
            )

    @property
    def normalized_url(self) -> str:
        return self.url.strip()

    @property
    def normalized_title(self) -> str:
        return self.title.strip()


@dataclass(frozen=True)
class Posting:
    """One record's entry in a term's posting list."""

    record_id: int
    field_weight: float
    term_frequency: int

    @property
    def score(self) -> float:
        return self.field_weight * self.term_frequency

    def to_list(self) -> list:
        return [self.record_id, self.field_weight, self.term_frequency]

    @classmethod
    def from_list(cls, data: list) -> Posting:
        record_id, field_weight, term_frequency = data
        return cls(
            record_id=int(record_id),
            field_weight=float(field_weight),
            term_frequency=int(term_frequency),
        )


@dataclass
class SearchResult:
    """Search result with ranking score."""

    record: IndexedRecord
    score: float
