"""Tests for FlushDebouncer."""

from __future__ import annotations

import asyncio
import logging
from unittest.mock import AsyncMock

import pytest

from browser_index.storage.debouncer import FlushDebouncer


# ---------------------------------------------------------------------------
# Test Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def debouncer() -> FlushDebouncer:
    """Create a debouncer with short delays for testing."""
    return FlushDebouncer(delay_ms=20, max_delay_ms=200)


# ---------------------------------------------------------------------------
# Initialization
# ---------------------------------------------------------------------------


class TestFlushDebouncerInit:
    """Tests for FlushDebouncer initialization."""

    def test_default_delays(self) -> None:
        """Test default delay values."""
        debouncer = FlushDebouncer()
        assert debouncer._delay == 0.5  # 500ms
        assert debouncer._max_delay == 5.0  # 5000ms

    def test_max_delay_never_below_delay(self) -> None:
        debouncer = FlushDebouncer(delay_ms=300, max_delay_ms=100)
        assert debouncer._max_delay == 0.3

    def test_nothing_pending_on_init(self) -> None:
        assert not FlushDebouncer().has_pending()


# ---------------------------------------------------------------------------
# Scheduling
# ---------------------------------------------------------------------------


class TestSchedule:
    """Tests for debounced execution."""

    @pytest.mark.asyncio
    async def test_single_call_runs_after_delay(self, debouncer: FlushDebouncer) -> None:
        """Test a scheduled call runs once the quiet period passes."""
        flush_fn = AsyncMock()

        await debouncer.schedule(flush_fn)
        assert debouncer.has_pending()
        flush_fn.assert_not_called()

        await asyncio.sleep(0.06)

        flush_fn.assert_called_once()
        assert not debouncer.has_pending()

    @pytest.mark.asyncio
    async def test_burst_coalesces(self, debouncer: FlushDebouncer) -> None:
        """Test rapid schedules collapse into one call of the latest function."""
        first = AsyncMock()
        last = AsyncMock()

        await debouncer.schedule(first)
        await debouncer.schedule(first)
        await debouncer.schedule(last)
        await asyncio.sleep(0.06)

        first.assert_not_called()
        last.assert_called_once()

    @pytest.mark.asyncio
    async def test_max_delay_bounds_postponement(self) -> None:
        """Test a steady trickle cannot postpone the call past max_delay."""
        debouncer = FlushDebouncer(delay_ms=50, max_delay_ms=100)
        flush_fn = AsyncMock()

        for _ in range(8):
            await debouncer.schedule(flush_fn)
            await asyncio.sleep(0.03)

        assert flush_fn.await_count >= 1
        await debouncer.cancel_all()

    @pytest.mark.asyncio
    async def test_failure_is_logged(
        self,
        debouncer: FlushDebouncer,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        """Test a failing background flush is logged, not raised."""
        flush_fn = AsyncMock(side_effect=OSError("disk full"))

        with caplog.at_level(logging.WARNING, logger="browser_index.storage.debouncer"):
            await debouncer.schedule(flush_fn)
            await asyncio.sleep(0.06)

        flush_fn.assert_called_once()
        assert "disk full" in caplog.text


# ---------------------------------------------------------------------------
# Cancellation
# ---------------------------------------------------------------------------


class TestCancel:
    """Tests for cancel_all()."""

    @pytest.mark.asyncio
    async def test_cancel_all_drops_pending(self, debouncer: FlushDebouncer) -> None:
        flush_fn = AsyncMock()
        await debouncer.schedule(flush_fn)

        await debouncer.cancel_all()
        await asyncio.sleep(0.06)

        flush_fn.assert_not_called()
        assert not debouncer.has_pending()

    @pytest.mark.asyncio
    async def test_cancel_all_when_idle(self, debouncer: FlushDebouncer) -> None:
        await debouncer.cancel_all()
