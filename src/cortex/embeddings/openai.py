"""OpenAIEmbedding — remote embedding provider for code and knowledge text."""

from __future__ import annotations

import logging
import os
from typing import TYPE_CHECKING, Any

import openai
from openai import AsyncOpenAI

from cortex.exceptions import EmbeddingFailedError

if TYPE_CHECKING:
    from cortex.config import EmbeddingConfig

logger = logging.getLogger(__name__)

_NATIVE_DIMENSIONS: dict[str, int] = {
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
}

# Models that accept a ``dimensions`` request parameter.
_SHORTENABLE = frozenset({"text-embedding-3-small", "text-embedding-3-large"})

# The API rejects empty input strings.
_EMPTY_PLACEHOLDER = " "

_TRANSIENT_ERRORS: tuple[type[Exception], ...] = (
    openai.APIConnectionError,
    openai.APITimeoutError,
    openai.RateLimitError,
    openai.InternalServerError,
)


class OpenAIEmbedding:
    """Embedding provider backed by the OpenAI Embeddings API.

    Requests are split at *batch_size* inputs.  Vectors are re-ordered by
    the response ``index`` so they line up with the input texts.  Client
    errors are translated into :class:`EmbeddingFailedError`: connection
    problems, timeouts, rate limits and 5xx responses are recoverable,
    anything else (bad request, auth) is not.
    """

    def __init__(
        self,
        *,
        model: str = "text-embedding-3-small",
        dimensions: int | None = None,
        api_key: str | None = None,
        max_retries: int = 2,
        timeout: float = 30.0,
        batch_size: int = 512,
    ) -> None:
        key = api_key or os.environ.get("OPENAI_API_KEY")
        if not key:
            msg = "An OpenAI API key is required: pass api_key= or set OPENAI_API_KEY"
            raise ValueError(msg)
        if dimensions is not None and model not in _SHORTENABLE:
            native = _NATIVE_DIMENSIONS.get(model)
            if native is not None and native != dimensions:
                msg = f"Model {model!r} only produces {native}-dimensional vectors"
                raise ValueError(msg)

        self._model = model
        self._dimensions = dimensions
        self._batch_size = max(1, batch_size)
        self._client = AsyncOpenAI(api_key=key, max_retries=max_retries, timeout=timeout)

    @classmethod
    def from_config(cls, config: EmbeddingConfig) -> OpenAIEmbedding:
        return cls(
            model=config.model,
            dimensions=config.dimensions,
            api_key=config.api_key,
            max_retries=config.max_retries,
            timeout=config.timeout,
            batch_size=config.batch_size,
        )

    @property
    def dimensions(self) -> int:
        if self._dimensions is not None:
            return self._dimensions
        native = _NATIVE_DIMENSIONS.get(self._model)
        if native is None:
            msg = f"No known dimensionality for model {self._model!r}; pass dimensions="
            raise ValueError(msg)
        return native

    @property
    def model_name(self) -> str:
        return self._model

    async def embed(self, text: str) -> list[float]:
        [vector] = await self._request([text])
        return vector

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        vectors: list[list[float]] = []
        for start in range(0, len(texts), self._batch_size):
            vectors.extend(await self._request(texts[start : start + self._batch_size]))
        return vectors

    async def close(self) -> None:
        await self._client.close()

    async def _request(self, texts: list[str]) -> list[list[float]]:
        params: dict[str, Any] = {
            "input": [t if t.strip() else _EMPTY_PLACEHOLDER for t in texts],
            "model": self._model,
            "encoding_format": "float",
        }
        if self._dimensions is not None and self._model in _SHORTENABLE:
            params["dimensions"] = self._dimensions

        try:
            response = await self._client.embeddings.create(**params)
        except _TRANSIENT_ERRORS as exc:
            msg = f"OpenAI embedding request failed: {exc}"
            raise EmbeddingFailedError(
                msg, recoverable=True, context={"model": self._model, "inputs": len(texts)}
            ) from exc
        except openai.OpenAIError as exc:
            msg = f"OpenAI rejected the embedding request: {exc}"
            raise EmbeddingFailedError(
                msg, recoverable=False, context={"model": self._model, "inputs": len(texts)}
            ) from exc

        logger.debug("OpenAI embedded %d inputs with %s", len(texts), self._model)
        return [item.embedding for item in sorted(response.data, key=lambda d: d.index)]
