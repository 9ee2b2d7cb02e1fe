"""Coalesced flush scheduling.

Indexing a burst of visits should not write the snapshot once per visit.
Each schedule() call restarts a quiet-period timer; the pending call runs
once the burst settles, or at the latest `max_delay_ms` after the first
request of the burst so a steady trickle of writes cannot postpone
durability forever.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)


@dataclass
class PendingFlush:
    """Tracks the pending debounced call."""

    task: asyncio.Task[None]
    first_requested: float


class FlushDebouncer:
    """Debounces flush requests into a single delayed call.

    Attributes:
        delay_ms: Quiet period before the pending call runs (default: 500ms)
        max_delay_ms: Longest postponement of a pending call (default: 5000ms)
    """

    def __init__(self, delay_ms: int = 500, max_delay_ms: int = 5000) -> None:
        """Initialize the debouncer.

        Args:
            delay_ms: Quiet period in milliseconds.
            max_delay_ms: Upper bound on postponement in milliseconds.
        """
        self._delay = delay_ms / 1000
        self._max_delay = max(delay_ms, max_delay_ms) / 1000
        self._pending: PendingFlush | None = None

    async def schedule(self, flush_fn: Callable[[], Awaitable[object]]) -> None:
        """Schedule a debounced call, replacing any pending one.

        Args:
            flush_fn: Async function to call when the timer expires. It should
                read the latest state when it runs, not capture it now.
        """
        loop = asyncio.get_running_loop()
        now = loop.time()
        first_requested = now

        if self._pending is not None:
            first_requested = self._pending.first_requested
            await self._cancel_pending()

        delay = min(self._delay, max(0.0, first_requested + self._max_delay - now))

        async def _delayed_flush() -> None:
            await asyncio.sleep(delay)
            self._pending = None
            try:
                await flush_fn()
                logger.debug("Executed debounced flush")
            except Exception as e:
                logger.warning("Debounced flush failed: %s", e)

        task = asyncio.create_task(_delayed_flush())
        self._pending = PendingFlush(
            task=task,
            first_requested=first_requested,
        )
        logger.debug("Scheduled debounced flush (delay: %.3fs)", delay)

    async def cancel_all(self) -> None:
        """Drop the pending call without executing it."""
        if self._pending is not None:
            await self._cancel_pending()
            logger.debug("Cancelled pending flush (shutdown)")

    def has_pending(self) -> bool:
        """Check if a flush is pending."""
        return self._pending is not None

    async def _cancel_pending(self) -> None:
        pending = self._pending
        self._pending = None
        if pending is None:
            return
        pending.task.cancel()
        try:
            await pending.task
        except asyncio.CancelledError:
            pass
