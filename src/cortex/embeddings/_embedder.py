"""Embedder — validating wrapper around an :class:`EmbeddingProvider`."""

from __future__ import annotations

import inspect
import logging
from typing import TYPE_CHECKING

import numpy as np

from cortex.exceptions import DimensionMismatchError, EmbeddingFailedError
from cortex.types import ModelInfo

if TYPE_CHECKING:
    from collections.abc import Sequence

    from cortex.embeddings.protocols import EmbeddingProvider

logger = logging.getLogger(__name__)


class Embedder:
    """Wraps a provider with the checks the rest of Cortex relies on.

    * provider exceptions become :class:`EmbeddingFailedError` marked
      recoverable;
    * structurally invalid responses (wrong count, wrong length, NaN or
      infinite components) raise it marked non-recoverable;
    * sync and async providers are both supported.
    """

    def __init__(self, provider: EmbeddingProvider, *, dimensions: int | None = None) -> None:
        self._provider = provider
        self._dimensions = dimensions

    @property
    def provider(self) -> EmbeddingProvider:
        return self._provider

    @property
    def dimensions(self) -> int:
        """Configured dimensionality, falling back to the provider's."""
        if self._dimensions is None:
            self._dimensions = int(self._provider.dimensions)
        return self._dimensions

    def model_info(self) -> ModelInfo:
        return ModelInfo(name=self._provider.model_name, dimensions=self.dimensions)

    # ------------------------------------------------------------------
    # Embedding
    # ------------------------------------------------------------------

    async def embed(self, text: str) -> list[float]:
        """Embed *text*, validating the returned vector."""
        try:
            result = self._provider.embed(text)
            vector = await result if inspect.isawaitable(result) else result
        except EmbeddingFailedError:
            raise
        except Exception as exc:
            msg = f"Embedding failed: {exc}"
            raise EmbeddingFailedError(
                msg, recoverable=True, context={"text": text[:100]}
            ) from exc

        vector = self._check(vector)
        logger.debug("Embedded text (%d chars)", len(text))
        return vector

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Embed *texts*; the result matches the input in order and count."""
        if not texts:
            return []
        try:
            result = self._provider.embed_batch(texts)
            vectors = await result if inspect.isawaitable(result) else result
        except EmbeddingFailedError:
            raise
        except Exception as exc:
            msg = f"Batch embedding failed: {exc}"
            raise EmbeddingFailedError(
                msg, recoverable=True, context={"text_count": len(texts)}
            ) from exc

        vectors = list(vectors)
        if len(vectors) != len(texts):
            msg = "Batch embedding count mismatch"
            raise EmbeddingFailedError(
                msg,
                recoverable=False,
                context={"expected": len(texts), "actual": len(vectors)},
            )
        checked = [self._check(v) for v in vectors]
        logger.debug("Embedded batch of %d texts", len(texts))
        return checked

    # ------------------------------------------------------------------
    # Vector utilities
    # ------------------------------------------------------------------

    def validate(self, vector: Sequence[float]) -> bool:
        """Return whether *vector* has the configured length and finite values."""
        if len(vector) == 0 or len(vector) != self.dimensions:
            return False
        return bool(np.all(np.isfinite(np.asarray(vector, dtype=np.float64))))

    @staticmethod
    def normalize(vector: Sequence[float]) -> list[float]:
        """Scale *vector* to unit length.  Zero vectors are returned unchanged."""
        arr = np.asarray(vector, dtype=np.float64)
        norm = float(np.linalg.norm(arr))
        if norm == 0:
            return arr.tolist()
        return (arr / norm).tolist()

    @staticmethod
    def similarity(v1: Sequence[float], v2: Sequence[float]) -> float:
        """Cosine similarity in [-1, 1]; 0.0 if either vector has zero magnitude."""
        if len(v1) != len(v2):
            msg = "Embedding dimensions must match for similarity calculation"
            raise DimensionMismatchError(msg, context={"dim1": len(v1), "dim2": len(v2)})
        a = np.asarray(v1, dtype=np.float64)
        b = np.asarray(v2, dtype=np.float64)
        denom = float(np.linalg.norm(a) * np.linalg.norm(b))
        if denom == 0:
            return 0.0
        return float(np.clip(np.dot(a, b) / denom, -1.0, 1.0))

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _check(self, vector: Sequence[float]) -> list[float]:
        if vector is None or not self.validate(vector):
            length = 0 if vector is None else len(vector)
            msg = "Provider returned an invalid embedding"
            raise EmbeddingFailedError(
                msg,
                recoverable=False,
                context={"expected_dimensions": self.dimensions, "actual": length},
            )
        return [float(x) for x in vector]
