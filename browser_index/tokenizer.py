"""Term extraction for titles, urls, and queries.

Tokenization is pure and deterministic: the same text always yields the same
token sequence, which is what lets a persisted index be rebuilt from the
source tables and still match the same queries.

Text fields (titles, query words) are lowercased, stripped of everything
except letters, digits, `-`, `.` and `_`, and split on whitespace only.

Url fields treat every other character (`/`, `:`, `?`, `=`, ...) as a
boundary, emit each remaining chunk whole (`reddit.com`) and then emit its
`.`/`-`/`_` separated parts (`reddit`, `com`) so partial domains match.
"""

from __future__ import annotations

import re
from typing import NamedTuple

MIN_TERM_LENGTH = 2

STOP_WORDS = frozenset({"the", "and", "www", "https", "http"})

# Characters kept inside terms besides letters and digits.
_EDGE_CHARS = ".-_"

_TEXT_DISALLOWED = re.compile(r"[^\w\s.\-]+", re.UNICODE)
_URL_DISALLOWED = re.compile(r"[^\w.\-]+", re.UNICODE)
_URL_PART_SEPARATORS = re.compile(r"[._\-]+")


class Token(NamedTuple):
    """A normalized term and the ordinal of the chunk it came from."""

    term: str
    position: int


def _keep(term: str) -> bool:
    return len(term) >= MIN_TERM_LENGTH and term not in STOP_WORDS


def _tokenize_text(text: str) -> list[Token]:
    cleaned = _TEXT_DISALLOWED.sub("", text.lower())
    tokens: list[Token] = []
    for position, chunk in enumerate(cleaned.split()):
        term = chunk.strip(_EDGE_CHARS)
        if _keep(term):
            tokens.append(Token(term, position))
    return tokens


def _tokenize_url(text: str) -> list[Token]:
    cleaned = _URL_DISALLOWED.sub(" ", text.lower())
    tokens: list[Token] = []
    for position, chunk in enumerate(cleaned.split()):
        whole = chunk.strip(_EDGE_CHARS)
        if not whole:
            continue
        if _keep(whole):
            tokens.append(Token(whole, position))
        parts = [p for p in _URL_PART_SEPARATORS.split(whole) if p]
        if len(parts) > 1:
            tokens.extend(Token(part, position) for part in parts if _keep(part))
    return tokens


def tokenize(text: str, url_like: bool = False) -> list[Token]:
    """Turn raw text into normalized tokens.

    Args:
        text: Raw field text. None and empty strings yield no tokens.
        url_like: Split on url separators and emit host/path parts.

    Returns:
        Tokens in source order. Repeated terms are kept so callers can count
        term frequency.
    """
    if not text:
        return []
    return _tokenize_url(text) if url_like else _tokenize_text(text)


def tokenize_title(text: str) -> list[Token]:
    return tokenize(text, url_like=False)


def tokenize_url(text: str) -> list[Token]:
    return tokenize(text, url_like=True)


def terms(text: str, url_like: bool = False) -> list[str]:
    """Return just the terms of `tokenize`."""
    return [token.term for token in tokenize(text, url_like=url_like)]


def tokenize_query(text: str) -> list[Token]:
    """Tokenize a search box query.

    Plain words use the text rules. If any word carries url punctuation
    (`reddit.com`, `my-site`), the query is tokenized with the url rules
    instead so it matches both the whole host token and its parts.
    """
    tokens = _tokenize_text(text or "")
    if any(c in token.term for token in tokens for c in _EDGE_CHARS):
        return _tokenize_url(text)
    return tokens
