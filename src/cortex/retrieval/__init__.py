"""Retrieval — agent relevance profiles, ranking and the retrieval engine."""

from cortex.retrieval.engine import RetrievalEngine
from cortex.retrieval.profiles import (
    AGENT_PROFILES,
    DEFAULT_PROFILE,
    RelevanceProfile,
    profile_for,
)
from cortex.retrieval.ranking import compare_chunks, rank_chunks, relevance_score

__all__ = [
    "AGENT_PROFILES",
    "DEFAULT_PROFILE",
    "RelevanceProfile",
    "RetrievalEngine",
    "compare_chunks",
    "profile_for",
    "rank_chunks",
    "relevance_score",
]
