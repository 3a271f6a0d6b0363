"""RedisCacheBackend — shared cache backed by ``redis.asyncio``."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import TYPE_CHECKING

from redis.asyncio import Redis
from redis.exceptions import RedisError, ResponseError

from cortex.exceptions import CacheError

if TYPE_CHECKING:
    from collections.abc import Iterator

logger = logging.getLogger(__name__)

_DEFAULT_MAX_MEMORY = 256 * 1024 * 1024


@contextmanager
def _translate(operation: str) -> Iterator[None]:
    """Re-raise redis failures as :class:`CacheError`."""
    try:
        yield
    except RedisError as exc:
        msg = f"Redis {operation} failed: {exc}"
        raise CacheError(msg, context={"operation": operation}) from exc


class RedisCacheBackend:
    """Cache backend for deployments sharing one redis server.

    Call :meth:`initialize` once before use: it checks connectivity and
    configures the server's memory ceiling with ``allkeys-lru`` eviction.
    Managed redis services often refuse ``CONFIG SET``; that is logged and
    the server's own policy applies.
    """

    def __init__(
        self,
        url: str = "redis://localhost:6379",
        *,
        password: str | None = None,
        db: int = 0,
        max_memory: int = _DEFAULT_MAX_MEMORY,
        client: Redis | None = None,
    ) -> None:
        self._max_memory = max_memory
        self._client = client or Redis.from_url(
            url, password=password, db=db, decode_responses=True
        )

    @property
    def max_memory(self) -> int:
        return self._max_memory

    async def initialize(self) -> None:
        with _translate("ping"):
            await self._client.ping()
        try:
            await self._client.config_set("maxmemory", str(self._max_memory))
            await self._client.config_set("maxmemory-policy", "allkeys-lru")
        except ResponseError:
            logger.warning("Redis refused CONFIG SET; using server memory policy", exc_info=True)
        except RedisError as exc:
            msg = f"Redis configuration failed: {exc}"
            raise CacheError(msg, context={"operation": "config_set"}) from exc
        logger.info("Connected to redis cache")

    async def get(self, key: str) -> str | None:
        with _translate("get"):
            return await self._client.get(key)

    async def set(self, key: str, value: str, ttl: int) -> None:
        with _translate("set"):
            await self._client.set(key, value, ex=ttl)

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        with _translate("delete"):
            return int(await self._client.delete(*keys))

    async def clear(self) -> None:
        with _translate("flushdb"):
            await self._client.flushdb()

    async def key_count(self) -> int:
        with _translate("dbsize"):
            return int(await self._client.dbsize())

    async def memory_usage(self) -> int:
        with _translate("info"):
            info = await self._client.info("memory")
        return int(info.get("used_memory", 0))

    async def close(self) -> None:
        with _translate("close"):
            await self._client.aclose()
