"""SentenceTransformerEmbedding — local embedding provider, no network needed."""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import Any

try:
    from sentence_transformers import SentenceTransformer

    _HAS_SENTENCE_TRANSFORMERS = True
except ImportError:  # pragma: no cover
    _HAS_SENTENCE_TRANSFORMERS = False

logger = logging.getLogger(__name__)

DEFAULT_LOCAL_MODEL = "all-MiniLM-L6-v2"


class SentenceTransformerEmbedding:
    """Embeds text with a local ``sentence-transformers`` model.

    The model loads on first use (guarded so concurrent callers load it
    once).  Inference is CPU/GPU bound and runs on a worker thread so the
    event loop stays responsive.  Vectors are unit-normalized, which makes
    inner product and cosine similarity agree.

    Requires the ``local`` extra::

        pip install cortex-memory[local]
    """

    def __init__(
        self,
        model_name: str = DEFAULT_LOCAL_MODEL,
        *,
        device: str | None = None,
        batch_size: int = 64,
    ) -> None:
        if not _HAS_SENTENCE_TRANSFORMERS:
            msg = (
                "sentence-transformers is not installed; "
                "install it with: pip install cortex-memory[local]"
            )
            raise ImportError(msg)
        self._model_name = model_name
        self._device = device
        self._batch_size = max(1, batch_size)
        self._model: SentenceTransformer | None = None
        self._load_lock = threading.Lock()

    @property
    def model_name(self) -> str:
        return self._model_name

    @property
    def dimensions(self) -> int:
        dim = self._model_or_load().get_sentence_embedding_dimension()
        if dim is None:
            msg = f"Model {self._model_name!r} does not report its dimensionality"
            raise RuntimeError(msg)
        return int(dim)

    async def embed(self, text: str) -> list[float]:
        [vector] = await asyncio.to_thread(self._encode, [text])
        return vector

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []
        return await asyncio.to_thread(self._encode, texts)

    def _model_or_load(self) -> SentenceTransformer:
        with self._load_lock:
            if self._model is None:
                logger.info("Loading sentence-transformers model %s", self._model_name)
                self._model = SentenceTransformer(self._model_name, device=self._device)
            return self._model

    def _encode(self, texts: list[str]) -> list[list[float]]:
        result: Any = self._model_or_load().encode(
            texts,
            batch_size=self._batch_size,
            normalize_embeddings=True,
            show_progress_bar=False,
        )
        return [row.tolist() for row in result]
