"""CacheStore — typed working memory on top of a :class:`CacheBackend`."""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import time
import weakref
from typing import TYPE_CHECKING, Any

from cortex.types import (
    CacheStats,
    ConversationHistory,
    FileContext,
    RetrievalResult,
    SyntaxNode,
    utcnow,
)

if TYPE_CHECKING:
    from collections.abc import Callable

    from cortex.cache.protocols import CacheBackend

logger = logging.getLogger(__name__)

AST_PREFIX = "ast:"
CONTEXT_PREFIX = "context:"
CONVERSATION_PREFIX = "conversation:"
SESSION_PREFIX = "session:"
QUERY_PREFIX = "query:"


def query_key(query: str, agent_type: str) -> str:
    """Cache key of a retrieval result for *query* asked by *agent_type*."""
    digest = hashlib.sha256(query.encode()).hexdigest()
    return f"{QUERY_PREFIX}{agent_type}:{digest}"


class CacheStore:
    """Namespaced, JSON-serialised cache of syntax trees, file contexts,
    conversations, session data and query results.

    Every value is written whole with the configured TTL.  Reads through
    the typed accessors update the hit/miss counters reported by
    :meth:`stats`.

    Args:
        backend: Raw key-value storage.
        ttl: Seconds each entry lives.
        max_memory: Budget reported in stats (enforced by the backend).
        clock: Wall-clock seconds, used to age cached query results.
    """

    def __init__(
        self,
        backend: CacheBackend,
        *,
        ttl: int = 3600,
        max_memory: int = 256 * 1024 * 1024,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._backend = backend
        self._ttl = ttl
        self._max_memory = max_memory
        self._clock = clock
        self._hits = 0
        self._misses = 0
        # Held only while an append for the session is running or waiting.
        self._session_locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    @property
    def backend(self) -> CacheBackend:
        return self._backend

    @property
    def ttl(self) -> int:
        return self._ttl

    # ------------------------------------------------------------------
    # Syntax trees and file contexts
    # ------------------------------------------------------------------

    async def store_syntax_tree(self, file_path: str, tree: SyntaxNode) -> None:
        await self._put(f"{AST_PREFIX}{file_path}", tree.to_dict())

    async def get_syntax_tree(self, file_path: str) -> SyntaxNode | None:
        data = await self._fetch(f"{AST_PREFIX}{file_path}")
        return SyntaxNode.from_dict(data) if data is not None else None

    async def store_file_context(self, context: FileContext) -> None:
        await self._put(f"{CONTEXT_PREFIX}{context.file_path}", context.to_dict())

    async def get_file_context(self, file_path: str) -> FileContext | None:
        data = await self._fetch(f"{CONTEXT_PREFIX}{file_path}")
        return FileContext.from_dict(data) if data is not None else None

    # ------------------------------------------------------------------
    # Conversations and sessions
    # ------------------------------------------------------------------

    async def store_conversation_history(self, history: ConversationHistory) -> None:
        await self._put(f"{CONVERSATION_PREFIX}{history.session_id}", history.to_dict())

    async def get_conversation_history(self, session_id: str) -> ConversationHistory | None:
        data = await self._fetch(f"{CONVERSATION_PREFIX}{session_id}")
        return ConversationHistory.from_dict(data) if data is not None else None

    async def append_to_conversation(self, session_id: str, message: Any) -> ConversationHistory:
        """Append *message* to a session's history, creating it if needed.

        Appends for one session id are serialised within this store;
        concurrent writers in other processes race with last-write-wins.
        """
        async with self._session_lock(session_id):
            raw = await self._backend.get(f"{CONVERSATION_PREFIX}{session_id}")
            messages: tuple[Any, ...] = ()
            if raw is not None:
                messages = ConversationHistory.from_dict(json.loads(raw)).messages
            messages = (*messages, message)
            history = ConversationHistory(
                session_id=session_id,
                messages=messages,
                last_updated=utcnow(),
                message_count=len(messages),
            )
            await self.store_conversation_history(history)
        return history

    async def store_session_data(self, session_id: str, data: dict[str, Any]) -> None:
        await self._put(f"{SESSION_PREFIX}{session_id}", data)

    async def get_session_data(self, session_id: str) -> dict[str, Any] | None:
        return await self._fetch(f"{SESSION_PREFIX}{session_id}")

    # ------------------------------------------------------------------
    # Query results
    # ------------------------------------------------------------------

    async def cache_query_result(
        self, query: str, agent_type: str, result: RetrievalResult
    ) -> None:
        entry = {"cached_at": self._clock(), "result": result.to_dict()}
        await self._put(query_key(query, agent_type), entry)

    async def get_cached_query_result(
        self, query: str, agent_type: str
    ) -> RetrievalResult | None:
        """Return the cached result, or ``None`` if absent or older than the TTL."""
        key = query_key(query, agent_type)
        raw = await self._backend.get(key)
        if raw is None:
            self._misses += 1
            return None
        entry = json.loads(raw)
        if self._clock() - float(entry.get("cached_at", 0)) > self._ttl:
            logger.debug("Discarding stale query result %s", key)
            await self._backend.delete(key)
            self._misses += 1
            return None
        self._hits += 1
        return RetrievalResult.from_dict(entry["result"])

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    async def invalidate(self, file_path: str) -> None:
        """Drop the cached syntax tree and file context of *file_path*."""
        removed = await self._backend.delete(
            f"{AST_PREFIX}{file_path}", f"{CONTEXT_PREFIX}{file_path}"
        )
        logger.debug("Invalidated %d cache entries for %s", removed, file_path)

    async def clear(self) -> None:
        await self._backend.clear()
        self._hits = 0
        self._misses = 0
        logger.info("Cache cleared")

    async def stats(self) -> CacheStats:
        total = self._hits + self._misses
        return CacheStats(
            total_keys=await self._backend.key_count(),
            memory_usage=await self._backend.memory_usage(),
            max_memory=self._max_memory,
            hit_rate=self._hits / total if total else 0.0,
            hits=self._hits,
            misses=self._misses,
            last_updated=utcnow(),
        )

    async def close(self) -> None:
        await self._backend.close()

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _session_lock(self, session_id: str) -> asyncio.Lock:
        lock = self._session_locks.get(session_id)
        if lock is None:
            lock = asyncio.Lock()
            self._session_locks[session_id] = lock
        return lock

    async def _put(self, key: str, value: Any) -> None:
        await self._backend.set(key, json.dumps(value), self._ttl)

    async def _fetch(self, key: str) -> Any:
        raw = await self._backend.get(key)
        if raw is None:
            self._misses += 1
            return None
        self._hits += 1
        return json.loads(raw)
