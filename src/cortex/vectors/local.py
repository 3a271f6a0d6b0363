"""LocalVectorStore — in-process usearch HNSW store for context chunks."""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import TYPE_CHECKING, Any

import numpy as np
from usearch.index import Index

from cortex.exceptions import VectorStoreError
from cortex.types import ContextChunk, VectorStoreStats

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

logger = logging.getLogger(__name__)

_INDEX_FILE = "vectors.usearch"
_META_FILE = "vectors_meta.json"

_USEARCH_METRICS = {"cosine": "cos", "ip": "ip"}

# Metadata keys answered by EmbeddingMetadata attributes rather than ``extra``.
_METADATA_FIELDS = frozenset(
    {"source", "language", "file_path", "function_name", "class_name", "quality"}
)


class LocalVectorStore:
    """In-process vector store backed by a usearch HNSW index.

    Implements the ``VectorStore`` protocol.  Chunks are kept whole in a
    key-to-chunk map; usearch holds only the vectors.  Similarity is
    reported as ``1 - distance``, which is the cosine similarity for the
    ``cos`` metric.

    Thread-safe via :class:`threading.Lock`.
    """

    def __init__(self, *, dimension: int, metric: str = "cosine") -> None:
        if metric not in _USEARCH_METRICS:
            msg = f"Unsupported metric: {metric!r}"
            raise ValueError(msg)
        self._dimension = dimension
        self._metric = metric

        self._index = Index(ndim=dimension, metric=_USEARCH_METRICS[metric], dtype="f32")
        self._lock = threading.Lock()
        self._next_key: int = 0

        # usearch key -> chunk
        self._key_to_chunk: dict[int, ContextChunk] = {}
        # chunk id -> usearch key
        self._id_to_key: dict[str, int] = {}

    @property
    def dimension(self) -> int:
        return self._dimension

    # ------------------------------------------------------------------
    # VectorStore protocol
    # ------------------------------------------------------------------

    async def insert(self, chunk: ContextChunk) -> None:
        """Insert *chunk*; an existing chunk with the same id is replaced."""
        self._check_dimension(chunk.embedding, chunk_id=chunk.id)

        if chunk.id in self._id_to_key:
            self._remove_by_id(chunk.id)

        vector = np.asarray(chunk.embedding, dtype=np.float32)
        with self._lock:
            key = self._next_key
            self._next_key += 1
            try:
                self._index.add(key, vector)
            except Exception as exc:
                msg = f"Failed to index chunk {chunk.id!r}: {exc}"
                raise VectorStoreError(msg, context={"chunk_id": chunk.id}) from exc
            self._key_to_chunk[key] = chunk.with_similarity(None)
            self._id_to_key[chunk.id] = key

        logger.debug("Stored chunk %s", chunk.id)

    async def update(self, chunk: ContextChunk) -> None:
        """Replace an existing chunk.  Unknown ids are rejected."""
        if chunk.id not in self._id_to_key:
            msg = f"Cannot update unknown chunk: {chunk.id!r}"
            raise VectorStoreError(msg, recoverable=False, context={"chunk_id": chunk.id})
        await self.insert(chunk)

    async def delete(self, chunk_id: str) -> bool:
        """Delete a chunk by id.  Returns whether it existed."""
        return self._remove_by_id(chunk_id)

    async def get(self, chunk_id: str) -> ContextChunk | None:
        key = self._id_to_key.get(chunk_id)
        if key is None:
            return None
        return self._key_to_chunk.get(key)

    async def similarity_search(
        self, vector: Sequence[float], limit: int = 10
    ) -> list[ContextChunk]:
        """Return up to *limit* nearest chunks, best first."""
        self._check_dimension(vector)
        if len(self) == 0 or limit < 1:
            return []

        query = np.asarray(vector, dtype=np.float32)
        effective_k = min(limit, len(self))

        with self._lock:
            try:
                matches = self._index.search(query, effective_k)
            except Exception as exc:
                msg = f"Similarity search failed: {exc}"
                raise VectorStoreError(msg) from exc

        results: list[ContextChunk] = []
        for match_key, distance in zip(
            matches.keys.tolist(), matches.distances.tolist(), strict=True
        ):
            chunk = self._key_to_chunk.get(int(match_key))
            if chunk is None:
                continue
            results.append(chunk.with_similarity(1.0 - float(distance)))

        results.sort(key=lambda c: c.similarity or 0.0, reverse=True)
        return results[:limit]

    async def search_by_metadata(self, filter: Mapping[str, Any]) -> list[ContextChunk]:  # noqa: A002
        """Return chunks whose metadata equals every key/value of *filter*.

        Keys name :class:`EmbeddingMetadata` fields (``language``,
        ``source``, ...); ``tags`` matches when the chunk carries the tag;
        any other key is looked up in ``metadata.extra``.
        """
        return [c for c in self._key_to_chunk.values() if _matches(c, filter)]

    async def stats(self) -> VectorStoreStats:
        chunks = list(self._key_to_chunk.values())
        return VectorStoreStats(
            total_chunks=len(chunks),
            total_size=sum(len(c.content.encode()) for c in chunks),
        )

    async def connect(self) -> None:
        """No-op for local store."""

    async def close(self) -> None:
        """No-op for local store."""

    # ------------------------------------------------------------------
    # Local-specific methods
    # ------------------------------------------------------------------

    def has(self, chunk_id: str) -> bool:
        """Return whether *chunk_id* is present in the store."""
        return chunk_id in self._id_to_key

    def ids(self) -> list[str]:
        return list(self._id_to_key)

    def __len__(self) -> int:
        """Return the number of indexed chunks."""
        return len(self._key_to_chunk)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save(self, directory: str | Path) -> None:
        """Persist the index and the chunk sidecar to *directory*."""
        dir_path = Path(directory)
        dir_path.mkdir(parents=True, exist_ok=True)

        with self._lock:
            self._index.save(str(dir_path / _INDEX_FILE))
            sidecar: dict[str, Any] = {
                "dimension": self._dimension,
                "metric": self._metric,
                "next_key": self._next_key,
                "chunks": {str(k): c.to_dict() for k, c in self._key_to_chunk.items()},
            }

        with (dir_path / _META_FILE).open("w") as f:
            json.dump(sidecar, f)
        logger.info("Saved %d chunks to %s", len(sidecar["chunks"]), dir_path)

    def load(self, directory: str | Path) -> None:
        """Load a previously saved store from *directory*."""
        dir_path = Path(directory)
        with (dir_path / _META_FILE).open() as f:
            sidecar = json.load(f)

        if sidecar.get("dimension", self._dimension) != self._dimension:
            msg = "Saved vector store has a different dimension"
            raise VectorStoreError(
                msg,
                recoverable=False,
                context={"expected": self._dimension, "actual": sidecar.get("dimension")},
            )

        with self._lock:
            self._index.load(str(dir_path / _INDEX_FILE))
            self._next_key = sidecar["next_key"]
            self._key_to_chunk = {}
            self._id_to_key = {}
            for k_str, data in sidecar.get("chunks", {}).items():
                chunk = ContextChunk.from_dict(data)
                key = int(k_str)
                self._key_to_chunk[key] = chunk
                self._id_to_key[chunk.id] = key
        logger.info("Loaded %d chunks from %s", len(self._key_to_chunk), dir_path)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _check_dimension(self, vector: Sequence[float], *, chunk_id: str | None = None) -> None:
        if len(vector) != self._dimension:
            msg = f"Expected a {self._dimension}-dimensional vector, got {len(vector)}"
            context: dict[str, Any] = {"expected": self._dimension, "actual": len(vector)}
            if chunk_id is not None:
                context["chunk_id"] = chunk_id
            raise VectorStoreError(msg, recoverable=False, context=context)

    def _remove_by_id(self, chunk_id: str) -> bool:
        """Remove a single chunk by id.  Returns True if found."""
        with self._lock:
            key = self._id_to_key.pop(chunk_id, None)
            if key is None:
                return False
            self._key_to_chunk.pop(key, None)
            self._index.remove(key)
        return True


def _matches(chunk: ContextChunk, filter: Mapping[str, Any]) -> bool:  # noqa: A002
    meta = chunk.metadata
    for key, expected in filter.items():
        if key == "tags":
            wanted = {expected} if isinstance(expected, str) else set(expected)
            if not wanted <= meta.tags:
                return False
        elif key in _METADATA_FIELDS:
            if getattr(meta, key) != expected:
                return False
        elif meta.extra.get(key) != expected:
            return False
    return True
