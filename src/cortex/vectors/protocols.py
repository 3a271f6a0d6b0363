"""VectorStore protocol — async-first interface for chunk storage and search."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from cortex.types import ContextChunk, VectorStoreStats


@runtime_checkable
class VectorStore(Protocol):
    """Persists :class:`ContextChunk` objects and searches them by vector.

    ``insert`` is an idempotent upsert keyed by chunk id.  Backend
    failures surface as :class:`~cortex.exceptions.VectorStoreError`.
    """

    async def insert(self, chunk: ContextChunk) -> None:
        """Insert *chunk*, overwriting any chunk with the same id."""
        ...

    async def update(self, chunk: ContextChunk) -> None:
        """Replace an existing chunk."""
        ...

    async def delete(self, chunk_id: str) -> bool:
        """Delete a chunk.  Returns whether it existed."""
        ...

    async def get(self, chunk_id: str) -> ContextChunk | None:
        """Fetch a chunk by id, or ``None``."""
        ...

    async def similarity_search(
        self, vector: Sequence[float], limit: int = 10
    ) -> list[ContextChunk]:
        """Return up to *limit* chunks with ``similarity`` populated, best first."""
        ...

    async def search_by_metadata(self, filter: Mapping[str, Any]) -> list[ContextChunk]:  # noqa: A002
        """Return chunks whose metadata matches every key of *filter*."""
        ...

    async def stats(self) -> VectorStoreStats:
        """Return chunk count and total content size."""
        ...

    async def connect(self) -> None:
        """Open connection / initialize resources."""
        ...

    async def close(self) -> None:
        """Release connection / clean up resources."""
        ...
