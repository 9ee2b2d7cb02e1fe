"""Clock sources for record timestamps and recency scoring."""

from __future__ import annotations

import threading
import time
from typing import Protocol, runtime_checkable


@runtime_checkable
class Clock(Protocol):
    """Anything that can report the current time in milliseconds."""

    def now_ms(self) -> int:
        ...


class MonotonicClock:
    """Wall-clock milliseconds, forced to be strictly increasing.

    Wall time keeps timestamps meaningful across restarts (recency is
    measured against persisted values). Each reading is at least one
    millisecond after the previous one, so two updates in the same
    millisecond still order deterministically, even if the system clock
    steps backwards.
    """

    def __init__(self) -> None:
        self._last = 0
        self._lock = threading.Lock()

    def now_ms(self) -> int:
        with self._lock:
            now = int(time.time() * 1000)
            if now <= self._last:
                now = self._last + 1
            self._last = now
            return now

    def observe(self, timestamp_ms: int) -> None:
        """Never hand out a reading at or before a timestamp already in use."""
        with self._lock:
            if timestamp_ms > self._last:
                self._last = timestamp_ms
