"""MemoryCacheBackend — in-process LRU cache with TTL and a byte budget."""

from __future__ import annotations

import logging
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import TYPE_CHECKING

from cortex.exceptions import CacheError

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)

_DEFAULT_MAX_MEMORY = 256 * 1024 * 1024


@dataclass(slots=True)
class _Entry:
    value: str
    expires_at: float
    size: int


class MemoryCacheBackend:
    """Single-process cache backend.

    Entries live in an :class:`OrderedDict` ordered from least to most
    recently used.  A write that would push usage over ``max_memory``
    evicts from the least-recently-used end until it fits, whatever TTL
    those entries have left.  Expired entries are dropped lazily on read.

    Args:
        max_memory: Byte budget (keys plus values, UTF-8).
        clock: Returns the current time in seconds; tests pass a fake.
    """

    def __init__(
        self,
        *,
        max_memory: int = _DEFAULT_MAX_MEMORY,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._max_memory = max_memory
        self._clock = clock
        self._entries: OrderedDict[str, _Entry] = OrderedDict()
        self._usage = 0

    @property
    def max_memory(self) -> int:
        return self._max_memory

    async def get(self, key: str) -> str | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.expires_at <= self._clock():
            self._drop(key)
            return None
        self._entries.move_to_end(key)
        return entry.value

    async def set(self, key: str, value: str, ttl: int) -> None:
        size = len(key.encode()) + len(value.encode())
        if size > self._max_memory:
            msg = f"Value for {key!r} exceeds the cache memory budget"
            raise CacheError(
                msg, recoverable=False, context={"size": size, "max_memory": self._max_memory}
            )
        if key in self._entries:
            self._drop(key)
        while self._entries and self._usage + size > self._max_memory:
            evicted, old = self._entries.popitem(last=False)
            self._usage -= old.size
            logger.debug("Evicted cache key %s", evicted)
        self._entries[key] = _Entry(value=value, expires_at=self._clock() + ttl, size=size)
        self._usage += size

    async def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            if key in self._entries:
                self._drop(key)
                removed += 1
        return removed

    async def clear(self) -> None:
        self._entries.clear()
        self._usage = 0

    async def key_count(self) -> int:
        self._purge_expired()
        return len(self._entries)

    async def memory_usage(self) -> int:
        self._purge_expired()
        return self._usage

    async def close(self) -> None:
        """No-op for in-process backend."""

    def keys(self) -> list[str]:
        """Live keys, least recently used first."""
        self._purge_expired()
        return list(self._entries)

    def _drop(self, key: str) -> None:
        entry = self._entries.pop(key)
        self._usage -= entry.size

    def _purge_expired(self) -> None:
        now = self._clock()
        for key in [k for k, e in self._entries.items() if e.expires_at <= now]:
            self._drop(key)
