"""Semantic memory — vector storage of embedded context chunks."""

from cortex.vectors.local import LocalVectorStore
from cortex.vectors.protocols import VectorStore

__all__ = ["LocalVectorStore", "VectorStore"]
