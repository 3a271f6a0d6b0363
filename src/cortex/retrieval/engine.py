"""RetrievalEngine — query validation, search, agent filtering and ranking."""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING

from cortex.exceptions import InvalidQueryError
from cortex.retrieval.profiles import profile_for
from cortex.retrieval.ranking import rank_chunks, relevance_score
from cortex.types import RetrievalQuery, RetrievalResult, RetrievalStats

if TYPE_CHECKING:
    from cortex.embeddings import Embedder
    from cortex.vectors import VectorStore

logger = logging.getLogger(__name__)

OVERSAMPLE_FACTOR = 2
MAX_RESULTS_LIMIT = 100


class RetrievalEngine:
    """Turns a :class:`RetrievalQuery` into ranked context chunks.

    Pipeline: validate, embed the query once, fetch ``2 * max_results``
    candidates, keep those the agent's profile accepts, rank, drop chunks
    below the similarity threshold, truncate.  Embedder and store errors
    propagate unchanged.
    """

    def __init__(self, embedder: Embedder, store: VectorStore) -> None:
        self._embedder = embedder
        self._store = store
        self._total_queries = 0
        self._total_query_time = 0.0
        self._total_relevance = 0.0

    # ------------------------------------------------------------------
    # Retrieval
    # ------------------------------------------------------------------

    async def retrieve(self, query: RetrievalQuery) -> RetrievalResult:
        max_results, threshold = _resolve_limits(query)
        start = time.perf_counter()

        vector = await self._embedder.embed(query.query)
        candidates = await self._store.similarity_search(vector, max_results * OVERSAMPLE_FACTOR)

        profile = profile_for(query.agent_type)
        relevant = [c for c in candidates if profile.accepts(c)]
        ranked = rank_chunks(relevant)
        chunks = [c for c in ranked if (c.similarity or 0.0) >= threshold][:max_results]

        query_time = (time.perf_counter() - start) * 1000
        relevance = relevance_score(chunks)
        self._record(query_time, relevance)
        logger.debug(
            "Retrieved %d/%d chunks for %s in %.1fms",
            len(chunks),
            len(candidates),
            query.agent_type,
            query_time,
        )
        return RetrievalResult(
            chunks=tuple(chunks),
            total_results=len(chunks),
            query_time=query_time,
            relevance_score=relevance,
        )

    def validate(self, query: RetrievalQuery) -> None:
        """Raise :class:`InvalidQueryError` if *query* would be rejected by :meth:`retrieve`."""
        _resolve_limits(query)

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------

    def stats(self) -> RetrievalStats:
        if self._total_queries == 0:
            return RetrievalStats(total_queries=0, average_query_time=0.0, average_relevance_score=0.0)
        return RetrievalStats(
            total_queries=self._total_queries,
            average_query_time=self._total_query_time / self._total_queries,
            average_relevance_score=self._total_relevance / self._total_queries,
        )

    def _record(self, query_time: float, relevance: float) -> None:
        self._total_queries += 1
        self._total_query_time += query_time
        self._total_relevance += relevance

    @property
    def embedder(self) -> Embedder:
        return self._embedder

    @property
    def store(self) -> VectorStore:
        return self._store


def _resolve_limits(query: RetrievalQuery) -> tuple[int, float]:
    """Effective ``(max_results, threshold)``; context values override the query's."""
    if not query.query or not query.query.strip():
        msg = "Query text must not be empty"
        raise InvalidQueryError(msg, context={"agent_type": query.agent_type})

    max_results = query.context.get("max_results", query.max_results)
    threshold = query.context.get("similarity_threshold", query.similarity_threshold)

    if not isinstance(threshold, (int, float)) or not 0 <= threshold <= 1:
        msg = f"similarity_threshold must be between 0 and 1, got {threshold!r}"
        raise InvalidQueryError(msg, context={"similarity_threshold": threshold})
    if (
        isinstance(max_results, bool)
        or not isinstance(max_results, int)
        or not 1 <= max_results <= MAX_RESULTS_LIMIT
    ):
        msg = f"max_results must be between 1 and {MAX_RESULTS_LIMIT}, got {max_results!r}"
        raise InvalidQueryError(msg, context={"max_results": max_results})
    return max_results, float(threshold)
