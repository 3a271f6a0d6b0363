"""Ordering and scoring of retrieved chunks."""

from __future__ import annotations

from functools import cmp_to_key
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from cortex.types import ContextChunk

SIMILARITY_TOLERANCE = 0.1
QUALITY_TOLERANCE = 10.0


def _sign(value: float) -> int:
    return (value > 0) - (value < 0)


def compare_chunks(a: ContextChunk, b: ContextChunk) -> int:
    """Negative when *a* ranks before *b*.

    Similarity decides when the two differ by more than 0.1, then
    quality when they differ by more than 10, then recency (newer first).
    A missing similarity counts as 0.
    """
    similarity_diff = (b.similarity or 0.0) - (a.similarity or 0.0)
    if abs(similarity_diff) > SIMILARITY_TOLERANCE:
        return _sign(similarity_diff)

    quality_diff = b.metadata.quality - a.metadata.quality
    if abs(quality_diff) > QUALITY_TOLERANCE:
        return _sign(quality_diff)

    return _sign((b.metadata.created_at - a.metadata.created_at).total_seconds())


def rank_chunks(chunks: Iterable[ContextChunk]) -> list[ContextChunk]:
    """Stable sort of *chunks* with :func:`compare_chunks`."""
    return sorted(chunks, key=cmp_to_key(compare_chunks))


def relevance_score(chunks: Sequence[ContextChunk]) -> float:
    """``0.7 * mean similarity + 0.3 * mean quality / 100``; 0 for no chunks."""
    if not chunks:
        return 0.0
    avg_similarity = sum(c.similarity or 0.0 for c in chunks) / len(chunks)
    avg_quality = sum(c.metadata.quality for c in chunks) / len(chunks)
    return avg_similarity * 0.7 + (avg_quality / 100) * 0.3
