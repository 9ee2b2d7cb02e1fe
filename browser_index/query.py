"""Query engine: term lookup, scoring, ranking, and pagination.

Ranking algorithm:
- Textual relevance: for each query term, the best matching posting of a
  record contributes field_weight * min(term_frequency, cap). The last query
  term also matches as a prefix (search-as-you-type).
- Recency boost: relevance is multiplied by
  1 + recency_weight * 0.5 ** (age_days / half_life), so fresher records
  outrank stale ones at equal relevance.
- Visits: history scores are multiplied by 1 + visit_weight * ln(visits).
- Bookmarks: multiplied by a fixed bookmark_boost.
- Ties break by newer timestamp, then lower id, so pagination is stable.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Iterable

from .clock import Clock
from .config import IndexConfig
from .errors import InvalidQuery
from .inverted_index import InvertedIndex
from .models import IndexedRecord, Posting, RecordType, SearchResult
from .record_store import RecordStore
from .tokenizer import tokenize_query

logger = logging.getLogger(__name__)

DAY_MS = 24 * 60 * 60 * 1000


# ---------------------------------------------------------------------------
# Options
# ---------------------------------------------------------------------------


@dataclass
class SearchOptions:
    """Caller-facing search options.

    `types` accepts RecordType members or their string values; None means
    both collections. A None or negative `limit` falls back to the default
    page size; a negative `offset` is treated as 0.
    """

    types: Iterable[RecordType | str] | None = None
    limit: int | None = None
    offset: int = 0

    def normalized(self, default_limit: int) -> ResolvedOptions:
        """Clamp to sane values.

        Raises:
            InvalidQuery: If limit/offset are not integers or a type name is
                unknown.
        """
        if self.types is None:
            types = frozenset(RecordType)
        else:
            if isinstance(self.types, (str, RecordType)):
                raw_types: Iterable[RecordType | str] = [self.types]
            else:
                raw_types = self.types
            try:
                types = frozenset(RecordType.parse(t) for t in raw_types)
            except (TypeError, ValueError) as e:
                raise InvalidQuery(f"Invalid record types: {self.types!r}") from e

        limit = self.limit
        if limit is None:
            limit = default_limit
        elif isinstance(limit, bool) or not isinstance(limit, int):
            raise InvalidQuery(f"limit must be an integer, got {limit!r}")
        elif limit < 0:
            limit = default_limit

        offset = self.offset
        if offset is None:
            offset = 0
        elif isinstance(offset, bool) or not isinstance(offset, int):
            raise InvalidQuery(f"offset must be an integer, got {offset!r}")
        elif offset < 0:
            offset = 0

        return ResolvedOptions(types=types, limit=limit, offset=offset)


@dataclass(frozen=True)
class ResolvedOptions:
    """Search options after clamping."""

    types: frozenset[RecordType]
    limit: int
    offset: int


# ---------------------------------------------------------------------------
# Scoring
# ---------------------------------------------------------------------------


def recency_factor(age_ms: int, weight: float, half_life_days: float) -> float:
    """Multiplier in [1, 1 + weight], halving its excess every half-life."""
    age_days = max(0, age_ms) / DAY_MS
    return 1.0 + weight * 0.5 ** (age_days / half_life_days)


def visit_factor(visit_count: int, weight: float) -> float:
    """Multiplier growing logarithmically with visits (1.0 for one visit)."""
    return 1.0 + weight * math.log(max(1, visit_count))


def calculate_score(
    record: IndexedRecord,
    relevance: float,
    now_ms: int,
    config: IndexConfig,
) -> float:
    """Apply recency, visit, and bookmark boosts to textual relevance.

    Args:
        record: The matched record.
        relevance: Sum of weighted term matches.
        now_ms: Current time for recency.
        config: Ranking weights.

    Returns:
        Final score (higher is better).
    """
    score = relevance * recency_factor(
        now_ms - record.timestamp,
        config.recency_weight,
        config.recency_half_life_days,
    )
    if record.record_type is RecordType.BOOKMARK:
        score *= config.bookmark_boost
    else:
        score *= visit_factor(record.visit_count, config.visit_weight)
    return score


# ---------------------------------------------------------------------------
# QueryEngine
# ---------------------------------------------------------------------------


class QueryEngine:
    """Resolves free-text queries against the index.

    The engine does not lock; the owning SearchIndex holds the shared side of
    its readers-writer lock around `search`.
    """

    def __init__(
        self,
        index: InvertedIndex,
        records: RecordStore,
        config: IndexConfig,
        clock: Clock,
    ) -> None:
        self.index = index
        self.records = records
        self.config = config
        self.clock = clock

    def match(self, query_text: str) -> dict[int, float]:
        """Textual relevance per matching record id.

        Returns:
            Mapping of record id to summed weighted term matches. Empty if the
            query has no usable terms or nothing matches.
        """
        tokens = tokenize_query(query_text)
        if not tokens:
            return {}

        last_position = tokens[-1].position
        query_terms: dict[str, bool] = {}
        for token in tokens:
            is_prefix = token.position == last_position
            query_terms[token.term] = query_terms.get(token.term, False) or is_prefix

        cap = self.config.tf_cap
        relevance: dict[int, float] = {}
        for term, is_prefix in query_terms.items():
            best: dict[int, Posting] = {p.record_id: p for p in self.index.lookup_term(term)}
            if is_prefix:
                for posting in self.index.prefix_lookup(term):
                    current = best.get(posting.record_id)
                    if current is None or posting.score > current.score:
                        best[posting.record_id] = posting
            for record_id, posting in best.items():
                contribution = posting.field_weight * min(posting.term_frequency, cap)
                relevance[record_id] = relevance.get(record_id, 0.0) + contribution
        return relevance

    def search(
        self,
        query_text: str,
        options: SearchOptions | None = None,
    ) -> list[SearchResult]:
        """Search for records matching a query.

        Args:
            query_text: Raw search box text.
            options: Type filter and pagination.

        Returns:
            Ranked page of results. Empty for empty queries, no matches, or
            an offset past the end.

        Raises:
            InvalidQuery: If options cannot be clamped to sane values.
        """
        resolved = (options or SearchOptions()).normalized(self.config.default_limit)
        if resolved.limit == 0:
            return []

        relevance = self.match(query_text)
        if not relevance:
            return []

        now = self.clock.now_ms()
        scored: list[SearchResult] = []
        for record_id, rel in relevance.items():
            record = self.records.get(record_id)
            if record is None:
                # Posting without a record: the structures disagree. Skip it
                # rather than fail the whole query.
                logger.warning("Posting references missing record %d; skipping", record_id)
                continue
            if record.record_type not in resolved.types:
                continue
            scored.append(
                SearchResult(
                    record=record,
                    score=calculate_score(record, rel, now, self.config),
                )
            )

        scored.sort(key=lambda r: (-r.score, -r.record.timestamp, r.record.id))
        return scored[resolved.offset : resolved.offset + resolved.limit]
