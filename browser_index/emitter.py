"""Dispatches change events to subscribed listeners.

Events are dispatched via asyncio.create_task() for concurrent,
fire-and-forget processing, so a slow listener never holds up indexing.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .events import ChangeEvent
    from .protocol import ChangeListener

logger = logging.getLogger(__name__)


class ChangeEmitter:
    """Dispatches change events to multiple listeners concurrently.

    Example:
        emitter = ChangeEmitter()
        emitter.subscribe(history_panel)
        await emitter.emit(RecordIndexed(record=record, created=True))
    """

    def __init__(self) -> None:
        """Initialize the emitter with an empty subscriber list."""
        self._listeners: list[ChangeListener] = []
        self._tasks: set[asyncio.Task] = set()

    def subscribe(self, listener: ChangeListener) -> None:
        """Subscribe a listener to receive change events.

        Args:
            listener: An object implementing the ChangeListener protocol.
        """
        self._listeners.append(listener)
        logger.debug(
            "listener_subscribed",
            extra={
                "listener_type": type(listener).__name__,
                "total_subscribers": len(self._listeners),
            },
        )

    def unsubscribe(self, listener: ChangeListener) -> None:
        """Unsubscribe a listener.

        Raises:
            ValueError: If the listener is not subscribed.
        """
        self._listeners.remove(listener)
        logger.debug(
            "listener_unsubscribed",
            extra={
                "listener_type": type(listener).__name__,
                "total_subscribers": len(self._listeners),
            },
        )

    @property
    def subscriber_count(self) -> int:
        """Return the number of subscribed listeners."""
        return len(self._listeners)

    async def emit(self, event: ChangeEvent) -> None:
        """Dispatch an event to all listeners without waiting for them.

        Args:
            event: The event to dispatch.
        """
        event_type = type(event).__name__
        for listener in list(self._listeners):
            task = asyncio.create_task(
                self._dispatch(listener, event),
                name=f"dispatch_{event_type}_to_{type(listener).__name__}",
            )
            # Hold a reference until done so the task is not collected early.
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    async def drain(self) -> None:
        """Wait for all in-flight dispatches to finish."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def _dispatch(self, listener: ChangeListener, event: ChangeEvent) -> None:
        listener_type = type(listener).__name__
        event_type = type(event).__name__
        try:
            await listener.on_change(event)
            logger.debug(
                "change_dispatch_completed",
                extra={"event_type": event_type, "listener_type": listener_type},
            )
        except Exception:
            logger.exception(
                "change_dispatch_failed",
                extra={"event_type": event_type, "listener_type": listener_type},
            )
