"""Inverted index mapping terms to record postings.

Data structures:
- postings: term -> {record_id -> Posting}. Keying by record id keeps each
  list free of duplicates; re-indexing a record replaces its posting.
- sorted terms: a sorted list of every term, searched with `bisect` so
  prefix lookups cost O(log V + matches) instead of a vocabulary scan.
- forward map: record_id -> set of terms, so removal touches only the lists
  the record is actually in.

Terms whose posting list becomes empty are pruned immediately.
"""

from __future__ import annotations

import bisect
import logging
from collections import Counter

from .models import IndexedRecord, Posting
from .tokenizer import tokenize_title, tokenize_url

logger = logging.getLogger(__name__)

DEFAULT_TITLE_WEIGHT = 2.0
DEFAULT_URL_WEIGHT = 1.0
DEFAULT_TF_CAP = 3


class InvertedIndex:
    """Term -> posting list mapping with incremental add/remove.

    Usage:
        index = InvertedIndex()
        index.upsert(record)
        index.lookup_term("reddit")
        index.prefix_lookup("redd")
        index.remove(record.id)
    """

    def __init__(
        self,
        title_weight: float = DEFAULT_TITLE_WEIGHT,
        url_weight: float = DEFAULT_URL_WEIGHT,
        tf_cap: int = DEFAULT_TF_CAP,
    ) -> None:
        self.title_weight = float(title_weight)
        self.url_weight = float(url_weight)
        self.tf_cap = tf_cap
        self._postings: dict[str, dict[int, Posting]] = {}
        self._terms: list[str] = []
        self._record_terms: dict[int, set[str]] = {}

    # ================================================================
    # Posting computation
    # ================================================================

    def compute_postings(self, record: IndexedRecord) -> dict[str, Posting]:
        """Compute one posting per distinct term of a record.

        The field weight is that of the strongest field containing the term;
        the term frequency counts occurrences across both fields, capped.
        """
        title_counts = Counter(t.term for t in tokenize_title(record.title))
        url_counts = Counter(t.term for t in tokenize_url(record.url))

        postings: dict[str, Posting] = {}
        for term in title_counts.keys() | url_counts.keys():
            weight = self.title_weight if term in title_counts else self.url_weight
            frequency = min(title_counts[term] + url_counts[term], self.tf_cap)
            postings[term] = Posting(
                record_id=record.id,
                field_weight=weight,
                term_frequency=frequency,
            )
        return postings

    # ================================================================
    # Mutation
    # ================================================================

    def upsert(self, record: IndexedRecord) -> None:
        """Index a record, replacing any postings it already has."""
        postings = self.compute_postings(record)
        stale = self._record_terms.get(record.id, set()) - postings.keys()
        for term in stale:
            self._drop_posting(term, record.id)

        for term, posting in postings.items():
            term_postings = self._postings.get(term)
            if term_postings is None:
                term_postings = {}
                self._postings[term] = term_postings
                bisect.insort(self._terms, term)
            term_postings[record.id] = posting

        if postings:
            self._record_terms[record.id] = set(postings)
        else:
            self._record_terms.pop(record.id, None)
        logger.debug(
            "Indexed record %d: %d terms (%d stale dropped)",
            record.id,
            len(postings),
            len(stale),
        )

    def remove(self, record_id: int) -> bool:
        """Strip a record from every posting list.

        Returns:
            True if the record was indexed, False if it was unknown.
        """
        record_terms = self._record_terms.pop(record_id, None)
        if record_terms is None:
            return False
        for term in record_terms:
            self._drop_posting(term, record_id)
        return True

    def clear(self) -> None:
        self._postings.clear()
        self._terms.clear()
        self._record_terms.clear()

    def _drop_posting(self, term: str, record_id: int) -> None:
        term_postings = self._postings.get(term)
        if term_postings is None:
            return
        term_postings.pop(record_id, None)
        if not term_postings:
            del self._postings[term]
            i = bisect.bisect_left(self._terms, term)
            if i < len(self._terms) and self._terms[i] == term:
                del self._terms[i]

    # ================================================================
    # Lookup
    # ================================================================

    def lookup_term(self, term: str) -> list[Posting]:
        """Exact-match lookup. Unknown terms yield an empty list."""
        term_postings = self._postings.get(term)
        if not term_postings:
            return []
        return [term_postings[i] for i in sorted(term_postings)]

    def terms_with_prefix(self, prefix: str) -> list[str]:
        """All indexed terms starting with `prefix`, in sorted order."""
        if not prefix:
            return []
        start = bisect.bisect_left(self._terms, prefix)
        matched: list[str] = []
        for term in self._terms[start:]:
            if not term.startswith(prefix):
                break
            matched.append(term)
        return matched

    def prefix_lookup(self, prefix: str) -> list[Posting]:
        """Merged postings of every term starting with `prefix`.

        Each record appears once, carrying its best-scoring posting among
        the matched terms. Sorted by record id.
        """
        best: dict[int, Posting] = {}
        for term in self.terms_with_prefix(prefix):
            for record_id, posting in self._postings[term].items():
                current = best.get(record_id)
                if current is None or posting.score > current.score:
                    best[record_id] = posting
        return [best[i] for i in sorted(best)]

    @property
    def term_count(self) -> int:
        return len(self._postings)

    @property
    def posting_count(self) -> int:
        return sum(len(p) for p in self._postings.values())

    # ================================================================
    # Serialization
    # ================================================================

    def to_list(self) -> list:
        """Canonical form: terms sorted, postings within a term sorted by id."""
        return [
            [term, [p.to_list() for p in self.lookup_term(term)]]
            for term in self._terms
        ]

    @classmethod
    def from_list(
        cls,
        data: list,
        title_weight: float = DEFAULT_TITLE_WEIGHT,
        url_weight: float = DEFAULT_URL_WEIGHT,
        tf_cap: int = DEFAULT_TF_CAP,
    ) -> InvertedIndex:
        """Rebuild an index from `to_list()` output.

        Raises:
            ValueError: If a term appears twice, a posting list is empty,
                or a posting repeats a record id.
        """
        index = cls(title_weight=title_weight, url_weight=url_weight, tf_cap=tf_cap)
        for term, raw_postings in data:
            if not isinstance(term, str) or term in index._postings:
                raise ValueError(f"Invalid or duplicate term: {term!r}")
            if not raw_postings:
                raise ValueError(f"Empty posting list for term: {term!r}")
            term_postings: dict[int, Posting] = {}
            for raw in raw_postings:
                posting = Posting.from_list(raw)
                if posting.record_id in term_postings:
                    raise ValueError(
                        f"Duplicate record {posting.record_id} in postings for {term!r}"
                    )
                term_postings[posting.record_id] = posting
                index._record_terms.setdefault(posting.record_id, set()).add(term)
            index._postings[term] = term_postings
        index._terms = sorted(index._postings)
        return index
