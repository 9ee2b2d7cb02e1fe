"""Tests for the asyncio readers-writer lock."""

from __future__ import annotations

import asyncio

import pytest

from browser_index.locks import ReadWriteLock


async def _settle() -> None:
    for _ in range(5):
        await asyncio.sleep(0)


class TestReadWriteLock:
    """Tests for ReadWriteLock."""

    @pytest.mark.asyncio
    async def test_readers_share(self) -> None:
        """Many readers hold the lock at once."""
        lock = ReadWriteLock()
        await lock.acquire_read()
        await lock.acquire_read()
        assert lock.readers == 2
        await lock.release_read()
        await lock.release_read()
        assert lock.readers == 0

    @pytest.mark.asyncio
    async def test_writer_excludes_readers(self) -> None:
        lock = ReadWriteLock()
        order: list[str] = []

        async def reader() -> None:
            async with lock.read():
                order.append("read")

        async with lock.write():
            assert lock.writer_active
            task = asyncio.create_task(reader())
            await _settle()
            assert order == []
            order.append("write-done")

        await task
        assert order == ["write-done", "read"]
        assert not lock.writer_active

    @pytest.mark.asyncio
    async def test_writer_waits_for_readers(self) -> None:
        lock = ReadWriteLock()
        order: list[str] = []

        async def writer() -> None:
            async with lock.write():
                order.append("write")

        await lock.acquire_read()
        task = asyncio.create_task(writer())
        await _settle()
        assert order == []

        await lock.release_read()
        await task
        assert order == ["write"]

    @pytest.mark.asyncio
    async def test_waiting_writer_blocks_new_readers(self) -> None:
        """A queued writer goes before readers that arrive after it."""
        lock = ReadWriteLock()
        order: list[str] = []

        async def writer() -> None:
            async with lock.write():
                order.append("write")

        async def late_reader() -> None:
            async with lock.read():
                order.append("read")

        await lock.acquire_read()
        writer_task = asyncio.create_task(writer())
        await _settle()
        reader_task = asyncio.create_task(late_reader())
        await _settle()
        assert order == []

        await lock.release_read()
        await asyncio.gather(writer_task, reader_task)
        assert order == ["write", "read"]

    @pytest.mark.asyncio
    async def test_cancelled_writer_unblocks_readers(self) -> None:
        lock = ReadWriteLock()

        await lock.acquire_read()
        writer_task = asyncio.create_task(lock.acquire_write())
        await _settle()

        writer_task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await writer_task

        await asyncio.wait_for(lock.acquire_read(), timeout=1.0)
        assert lock.readers == 2

    @pytest.mark.asyncio
    async def test_release_on_exception(self) -> None:
        lock = ReadWriteLock()
        with pytest.raises(RuntimeError):
            async with lock.write():
                raise RuntimeError("boom")
        assert not lock.writer_active
        async with lock.read():
            assert lock.readers == 1
