"""Listener protocol for index change notifications.

Callers that display history or bookmarks subscribe instead of re-fetching
after every mutation.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from .events import ChangeEvent


@runtime_checkable
class ChangeListener(Protocol):
    """Protocol for change listeners.

    Sync listeners simply don't await inside their implementation.
    """

    async def on_change(self, event: ChangeEvent) -> None:
        """Handle a committed change.

        Called after the mutation is visible to searches. Exceptions are
        logged and never reach the code that made the change.

        Args:
            event: RecordIndexed, RecordRemoved, or IndexCleared.
        """
        ...
