"""Custom exception hierarchy for Cortex.

Every error carries a ``recoverable`` flag: ``True`` means the caller may
retry the same call unchanged, ``False`` means the input (or the
backend's response) must change first.  Cortex never retries on its own.
"""

from __future__ import annotations

from typing import Any


class CortexError(Exception):
    """Base exception for all Cortex errors."""

    default_recoverable: bool = False

    def __init__(
        self,
        message: str,
        *,
        recoverable: bool | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.recoverable = self.default_recoverable if recoverable is None else recoverable
        self.context: dict[str, Any] = dict(context or {})

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r}, recoverable={self.recoverable})"


class EmbeddingFailedError(CortexError):
    """Raised when the embedding provider fails or returns malformed output."""

    default_recoverable = True


class DimensionMismatchError(CortexError):
    """Raised when two vectors of different length are compared."""


class VectorStoreError(CortexError):
    """Raised on vector store failures."""

    default_recoverable = True


class CacheError(CortexError):
    """Raised when the cache backend is unavailable or misbehaves.

    The orchestrator treats this as a soft failure and proceeds without
    the cache.
    """

    default_recoverable = True


class GraphError(CortexError):
    """Raised on graph backend failures or invalid relationship endpoints."""

    default_recoverable = True


class InvalidQueryError(CortexError):
    """Raised for empty query text or out-of-range threshold/limit."""
