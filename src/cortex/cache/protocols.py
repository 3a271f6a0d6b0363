"""CacheBackend protocol — async string key-value store with TTL."""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class CacheBackend(Protocol):
    """Raw storage used by :class:`~cortex.cache.CacheStore`.

    Values are opaque strings; every write carries a TTL in seconds.
    Backends evict least-recently-used keys once their memory budget is
    exceeded.  Failures surface as :class:`~cortex.exceptions.CacheError`.
    """

    async def get(self, key: str) -> str | None: ...

    async def set(self, key: str, value: str, ttl: int) -> None: ...

    async def delete(self, *keys: str) -> int:
        """Delete *keys*; return how many existed."""
        ...

    async def clear(self) -> None: ...

    async def key_count(self) -> int: ...

    async def memory_usage(self) -> int:
        """Approximate bytes in use."""
        ...

    async def close(self) -> None: ...
