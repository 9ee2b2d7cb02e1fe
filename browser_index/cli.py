#!/usr/bin/env python3
"""CLI entry point for Browser Index.

Inspect and maintain a search index stored in a SQLite key-value file.
Mostly for debugging: browsers embed SearchIndex directly.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Awaitable, Callable

from .config import ConfigManager, IndexConfig
from .index import InitStatus, SearchIndex
from .models import RecordDraft, RecordType
from .query import SearchOptions
from .storage.sqlite_kv import SQLiteKeyValueStore

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Default Configuration
# ---------------------------------------------------------------------------

DEFAULT_STATE_DIR = Path("~/.browser-index/state").expanduser()
DEFAULT_CONFIG_PATH = Path("~/.browser-index/config.yaml").expanduser()


# ---------------------------------------------------------------------------
# Helper Functions
# ---------------------------------------------------------------------------


def _format_timestamp(timestamp_ms: int) -> str:
    """Format a millisecond timestamp as a readable UTC datetime."""
    dt = datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc)
    return dt.strftime("%Y-%m-%d %H:%M:%S")


def _truncate(text: str, width: int = 60) -> str:
    if len(text) > width:
        return text[: width - 3] + "..."
    return text


def _load_config(config_path: Path | None) -> IndexConfig:
    return ConfigManager(config_path or DEFAULT_CONFIG_PATH).load()


async def _with_index(
    state_dir: Path,
    config: IndexConfig,
    action: Callable[[SearchIndex], Awaitable[int]],
) -> int:
    """Open the store and index, run an action, then flush and close."""
    store = SQLiteKeyValueStore(state_dir)
    try:
        await store.safe_initialize()
        index = SearchIndex(store, config)
        status = await index.initialize()
        if status is InitStatus.REBUILD_REQUIRED:
            print("Warning: stored index was unusable and has been reset", file=sys.stderr)
        try:
            return await action(index)
        finally:
            await index.shutdown()
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        await store.close()


# ---------------------------------------------------------------------------
# Command Implementations
# ---------------------------------------------------------------------------


async def _add(index: SearchIndex, record_type: str, url: str, title: str) -> int:
    result = await index.add_to_index(RecordDraft(url=url, title=title), record_type)
    if not result.ok:
        print(f"Error indexing record: {result.error}", file=sys.stderr)
        return 1
    record = result.record
    print(f"Indexed {record.record_type.value} #{record.id}: {record.url}")
    return 0


async def _update(index: SearchIndex, record_id: int, title: str | None, url: str | None) -> int:
    result = await index.update_record(record_id, title=title, url=url)
    if not result.ok:
        print(f"Error updating record: {result.error}", file=sys.stderr)
        return 1
    print(f"Updated #{record_id}: {result.record.title} <{result.record.url}>")
    return 0


async def _remove(index: SearchIndex, record_id: int) -> int:
    result = await index.remove_from_index(record_id)
    if not result.ok:
        print(f"Error removing record: {result.error}", file=sys.stderr)
        return 1
    if result.record is None:
        print(f"No record #{record_id}")
    else:
        print(f"Removed #{record_id}")
    return 0


async def _clear(index: SearchIndex, record_type: str | None) -> int:
    result = await index.clear(record_type)
    if not result.ok:
        print(f"Error clearing index: {result.error}", file=sys.stderr)
        return 1
    print(f"Removed {result.removed} records")
    return 0


async def _search(
    index: SearchIndex,
    query: str,
    types: list[str] | None,
    limit: int,
    offset: int,
) -> int:
    options = SearchOptions(types=types, limit=limit, offset=offset)
    results = await index.search(query, options)
    if index.last_error is not None:
        print(f"Error searching: {index.last_error}", file=sys.stderr)
        return 1

    if not results:
        print(f'No results found for "{query}"')
        return 0

    print(f'Search results for "{query}"')
    print()
    for i, result in enumerate(results, offset + 1):
        record = result.record
        title = _truncate(record.title or "(no title)")
        print(f"{i}. [{record.record_type.value}] {title}")
        print(f"   {record.url}")
        details = f"#{record.id} • {_format_timestamp(record.timestamp)}"
        if record.record_type is RecordType.HISTORY:
            details += f" • {record.visit_count} visits"
        print(f"   {details} • Score: {result.score:.2f}")
        print()
    return 0


async def _stats(index: SearchIndex) -> int:
    stats = index.stats()
    print("Search Index Statistics")
    print("=" * 50)
    print(f"Status: {stats['status']}")
    print(f"Records: {stats['records']}")
    print(f"  History: {stats['history']}")
    print(f"  Bookmarks: {stats['bookmarks']}")
    print(f"Terms: {stats['terms']}")
    print(f"Postings: {stats['postings']}")
    return 0


# ---------------------------------------------------------------------------
# CLI Argument Parsing
# ---------------------------------------------------------------------------


def _create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="browser-index",
        description="Search and maintain the local history/bookmark index.",
    )
    parser.add_argument(
        "--state-dir",
        type=Path,
        default=None,
        help=f"State directory (default: {DEFAULT_STATE_DIR})",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help=f"Path to config.yaml (default: {DEFAULT_CONFIG_PATH})",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Log level (default: WARNING)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")
    type_choices = [t.value for t in RecordType]

    add_parser = subparsers.add_parser("add", help="Index a history visit or bookmark")
    add_parser.add_argument("url", type=str, help="Page url")
    add_parser.add_argument("-t", "--title", type=str, default="", help="Page title")
    add_parser.add_argument(
        "--type",
        dest="record_type",
        choices=type_choices,
        default=RecordType.HISTORY.value,
        help="Record type (default: history)",
    )

    update_parser = subparsers.add_parser("update", help="Edit a record's title or url")
    update_parser.add_argument("id", type=int, help="Record id")
    update_parser.add_argument("-t", "--title", type=str, default=None, help="New title")
    update_parser.add_argument("-u", "--url", type=str, default=None, help="New url")

    remove_parser = subparsers.add_parser("remove", help="Remove a record by id")
    remove_parser.add_argument("id", type=int, help="Record id")

    clear_parser = subparsers.add_parser("clear", help="Remove all records of a type")
    clear_parser.add_argument(
        "--type",
        dest="record_type",
        choices=type_choices,
        default=None,
        help="Record type (default: all)",
    )

    search_parser = subparsers.add_parser("search", help="Search the index")
    search_parser.add_argument("query", type=str, help="Search query")
    search_parser.add_argument(
        "--type",
        dest="types",
        choices=type_choices,
        action="append",
        default=None,
        help="Restrict to a record type (repeatable)",
    )
    search_parser.add_argument(
        "-l",
        "--limit",
        type=int,
        default=10,
        help="Max results (default: 10)",
    )
    search_parser.add_argument(
        "-o",
        "--offset",
        type=int,
        default=0,
        help="Results to skip (default: 0)",
    )

    subparsers.add_parser("stats", help="Show index statistics")

    return parser


def setup_logging(level: str) -> None:
    """Configure logging.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
    """
    logging.basicConfig(
        level=getattr(logging, level),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def run(args: argparse.Namespace) -> int:
    """Dispatch a parsed command."""
    try:
        config = _load_config(args.config)
    except (OSError, ValueError) as e:
        print(f"Error loading config: {e}", file=sys.stderr)
        return 1

    state_dir = args.state_dir or DEFAULT_STATE_DIR

    if args.command == "add":
        action = lambda index: _add(index, args.record_type, args.url, args.title)  # noqa: E731
    elif args.command == "update":
        action = lambda index: _update(index, args.id, args.title, args.url)  # noqa: E731
    elif args.command == "remove":
        action = lambda index: _remove(index, args.id)  # noqa: E731
    elif args.command == "clear":
        action = lambda index: _clear(index, args.record_type)  # noqa: E731
    elif args.command == "search":
        action = lambda index: _search(  # noqa: E731
            index, args.query, args.types, args.limit, args.offset
        )
    elif args.command == "stats":
        action = _stats
    else:
        print("Usage: browser-index <command>", file=sys.stderr)
        print("Commands: add, update, remove, clear, search, stats", file=sys.stderr)
        return 1

    return asyncio.run(_with_index(state_dir, config, action))


# ---------------------------------------------------------------------------
# Main Entry Point
# ---------------------------------------------------------------------------


def main(argv: list[str] | None = None) -> int:
    """Run the Browser Index CLI.

    Usage:
        browser-index add https://example.com -t "Example"
        browser-index search "exam"
        browser-index clear --type history
    """
    parser = _create_parser()
    args = parser.parse_args(argv)
    setup_logging(args.log_level)

    if args.command is None:
        parser.print_help()
        return 0

    return run(args)


if __name__ == "__main__":
    sys.exit(main())
