"""Key-value capability consumed by the persistence adapter.

The index only needs three durable operations on opaque bytes. Any store
shared with other subsystems (settings, downloads) works as long as the
index's reserved key is left to it.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class KeyValueStore(Protocol):
    """Async key-value capability.

    Implementations raise on failure; a call that returns is durable.
    """

    async def get(self, key: str) -> bytes | None:
        """Return the stored bytes, or None if the key is absent."""
        ...

    async def put(self, key: str, value: bytes) -> None:
        """Store bytes under a key, replacing any previous value."""
        ...

    async def delete(self, key: str) -> None:
        """Remove a key. Deleting an absent key is not an error."""
        ...


class MemoryKeyValueStore:
    """In-process store, for tests and ephemeral (private browsing) indexes."""

    def __init__(self, initial: dict[str, bytes] | None = None) -> None:
        self._data: dict[str, bytes] = dict(initial or {})

    async def get(self, key: str) -> bytes | None:
        return self._data.get(key)

    async def put(self, key: str, value: bytes) -> None:
        self._data[key] = bytes(value)

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        return sorted(self._data)

    def __contains__(self, key: object) -> bool:
        return key in self._data
