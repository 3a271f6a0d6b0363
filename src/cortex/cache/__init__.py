"""Working memory — short-lived cache of trees, contexts, sessions and results."""

from __future__ import annotations

from typing import TYPE_CHECKING

from cortex.cache.memory import MemoryCacheBackend
from cortex.cache.protocols import CacheBackend
from cortex.cache.redis import RedisCacheBackend
from cortex.cache.store import CacheStore, query_key

if TYPE_CHECKING:
    from cortex.config import CacheConfig

__all__ = [
    "CacheBackend",
    "CacheStore",
    "MemoryCacheBackend",
    "RedisCacheBackend",
    "backend_from_config",
    "query_key",
]


def backend_from_config(config: CacheConfig) -> CacheBackend:
    """Build the backend named by *config*."""
    if config.backend == "redis":
        return RedisCacheBackend(
            config.redis_url,
            password=config.redis_password,
            db=config.redis_db,
            max_memory=config.max_memory_bytes,
        )
    return MemoryCacheBackend(max_memory=config.max_memory_bytes)
