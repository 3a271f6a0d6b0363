"""Tests for the Embedder wrapper and provider construction."""

from __future__ import annotations

import math
import threading
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import numpy as np
import openai
import pytest
from _fakes import FAKE_DIM, FakeProvider

from cortex.config import EmbeddingConfig
from cortex.embeddings import (
    Embedder,
    EmbeddingProvider,
    OpenAIEmbedding,
    SentenceTransformerEmbedding,
    provider_from_config,
)
from cortex.exceptions import DimensionMismatchError, EmbeddingFailedError


class _FailingProvider(FakeProvider):
    def embed(self, text: str) -> list[float]:
        raise ConnectionError("provider unreachable")

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        raise ConnectionError("provider unreachable")


class _ShortBatchProvider(FakeProvider):
    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        return super().embed_batch(texts)[:-1]


class _AsyncProvider(FakeProvider):
    async def embed(self, text: str) -> list[float]:  # type: ignore[override]
        return super().embed(text)

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:  # type: ignore[override]
        return super().embed_batch(texts)


# ==================================================================
# Embedding
# ==================================================================


class TestEmbed:
    @pytest.mark.asyncio
    async def test_embed_returns_configured_dimensions(self, embedder: Embedder):
        vector = await embedder.embed("def add(a, b): return a + b")
        assert len(vector) == FAKE_DIM
        assert all(isinstance(x, float) for x in vector)

    @pytest.mark.asyncio
    async def test_embed_is_deterministic(self, embedder: Embedder):
        assert await embedder.embed("same") == await embedder.embed("same")

    @pytest.mark.asyncio
    async def test_async_provider_supported(self):
        embedder = Embedder(_AsyncProvider())
        vector = await embedder.embed("hello")
        assert len(vector) == FAKE_DIM

    @pytest.mark.asyncio
    async def test_provider_failure_is_recoverable(self):
        embedder = Embedder(_FailingProvider())
        with pytest.raises(EmbeddingFailedError) as exc_info:
            await embedder.embed("hello")
        assert exc_info.value.recoverable is True
        assert isinstance(exc_info.value.__cause__, ConnectionError)

    @pytest.mark.asyncio
    async def test_wrong_length_is_not_recoverable(self):
        embedder = Embedder(FakeProvider({"short": [1.0, 0.0]}))
        with pytest.raises(EmbeddingFailedError) as exc_info:
            await embedder.embed("short")
        assert exc_info.value.recoverable is False
        assert exc_info.value.context["actual"] == 2

    @pytest.mark.asyncio
    async def test_non_finite_is_not_recoverable(self):
        bad = [math.nan] + [0.0] * (FAKE_DIM - 1)
        embedder = Embedder(FakeProvider({"nan": bad}))
        with pytest.raises(EmbeddingFailedError) as exc_info:
            await embedder.embed("nan")
        assert exc_info.value.recoverable is False


class TestEmbedBatch:
    @pytest.mark.asyncio
    async def test_batch_preserves_order(self, embedder: Embedder):
        texts = ["alpha", "beta", "gamma"]
        vectors = await embedder.embed_batch(texts)
        assert vectors == [await embedder.embed(t) for t in texts]

    @pytest.mark.asyncio
    async def test_empty_batch_skips_provider(self, provider: FakeProvider, embedder: Embedder):
        assert await embedder.embed_batch([]) == []
        assert provider.calls == 0

    @pytest.mark.asyncio
    async def test_count_mismatch_is_not_recoverable(self):
        embedder = Embedder(_ShortBatchProvider())
        with pytest.raises(EmbeddingFailedError) as exc_info:
            await embedder.embed_batch(["a", "b"])
        assert exc_info.value.recoverable is False
        assert exc_info.value.context == {"expected": 2, "actual": 1}

    @pytest.mark.asyncio
    async def test_batch_failure_is_recoverable(self):
        embedder = Embedder(_FailingProvider())
        with pytest.raises(EmbeddingFailedError) as exc_info:
            await embedder.embed_batch(["a"])
        assert exc_info.value.recoverable is True


# ==================================================================
# Vector utilities
# ==================================================================


class TestVectorUtilities:
    def test_similarity_of_identical_vectors(self):
        assert Embedder.similarity([1.0, 2.0, 3.0], [1.0, 2.0, 3.0]) == pytest.approx(1.0)

    def test_similarity_of_opposite_vectors(self):
        assert Embedder.similarity([1.0, 0.0], [-1.0, 0.0]) == pytest.approx(-1.0)

    def test_similarity_with_zero_vector(self):
        assert Embedder.similarity([0.0, 0.0], [1.0, 0.0]) == 0.0

    def test_similarity_dimension_mismatch(self):
        with pytest.raises(DimensionMismatchError):
            Embedder.similarity([1.0, 0.0], [1.0, 0.0, 0.0])

    def test_normalize_to_unit_length(self):
        normalized = Embedder.normalize([3.0, 4.0])
        assert normalized == pytest.approx([0.6, 0.8])

    def test_normalize_zero_vector_unchanged(self):
        assert Embedder.normalize([0.0, 0.0]) == [0.0, 0.0]

    def test_validate(self, embedder: Embedder):
        assert embedder.validate([0.1] * FAKE_DIM)
        assert not embedder.validate([0.1] * (FAKE_DIM + 1))
        assert not embedder.validate([])
        assert not embedder.validate([math.inf] * FAKE_DIM)

    def test_model_info(self, embedder: Embedder):
        info = embedder.model_info()
        assert info.name == "fake-test-model"
        assert info.dimensions == FAKE_DIM

    def test_configured_dimensions_override_provider(self, provider: FakeProvider):
        assert Embedder(provider, dimensions=8).dimensions == 8


# ==================================================================
# Providers
# ==================================================================


class TestProviders:
    def test_fake_provider_satisfies_protocol(self, provider: FakeProvider):
        assert isinstance(provider, EmbeddingProvider)

    def test_openai_requires_api_key(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        with pytest.raises(ValueError, match="OPENAI_API_KEY"):
            OpenAIEmbedding()

    def test_openai_default_dimensions(self):
        assert OpenAIEmbedding(api_key="sk-test").dimensions == 1536
        large = OpenAIEmbedding(api_key="sk-test", model="text-embedding-3-large")
        assert large.dimensions == 3072

    def test_openai_unknown_model_needs_dimensions(self):
        provider = OpenAIEmbedding(api_key="sk-test", model="custom-model")
        with pytest.raises(ValueError, match="dimensions"):
            _ = provider.dimensions

    def test_provider_from_config_openai(self):
        config = EmbeddingConfig(api_key="sk-test", dimensions=256)
        provider = provider_from_config(config)
        assert isinstance(provider, OpenAIEmbedding)
        assert provider.dimensions == 256
        assert provider.model_name == "text-embedding-3-small"


def _embedding_response(*rows: tuple[int, list[float]]) -> MagicMock:
    response = MagicMock()
    items = []
    for index, vector in rows:
        item = MagicMock()
        item.index = index
        item.embedding = vector
        items.append(item)
    response.data = items
    return response


class TestOpenAIRequests:
    @pytest.mark.asyncio
    async def test_response_reordered_by_index(self):
        provider = OpenAIEmbedding(api_key="sk-test")
        provider._client.embeddings.create = AsyncMock(
            return_value=_embedding_response((1, [0.0, 1.0]), (0, [1.0, 0.0]))
        )
        assert await provider.embed_batch(["a", "b"]) == [[1.0, 0.0], [0.0, 1.0]]

    @pytest.mark.asyncio
    async def test_batches_split_at_batch_size(self):
        provider = OpenAIEmbedding(api_key="sk-test", batch_size=2)
        provider._client.embeddings.create = AsyncMock(
            side_effect=[
                _embedding_response((0, [1.0]), (1, [2.0])),
                _embedding_response((0, [3.0])),
            ]
        )
        assert await provider.embed_batch(["a", "b", "c"]) == [[1.0], [2.0], [3.0]]
        assert provider._client.embeddings.create.await_count == 2

    @pytest.mark.asyncio
    async def test_dimensions_and_blank_input_sent(self):
        provider = OpenAIEmbedding(api_key="sk-test", dimensions=256)
        provider._client.embeddings.create = AsyncMock(
            return_value=_embedding_response((0, [0.5]))
        )
        await provider.embed("")
        kwargs = provider._client.embeddings.create.call_args.kwargs
        assert kwargs["dimensions"] == 256
        assert kwargs["input"] == [" "]

    @pytest.mark.asyncio
    async def test_connection_error_is_recoverable(self):
        provider = OpenAIEmbedding(api_key="sk-test")
        request = httpx.Request("POST", "https://api.openai.com/v1/embeddings")
        provider._client.embeddings.create = AsyncMock(
            side_effect=openai.APIConnectionError(request=request)
        )
        with pytest.raises(EmbeddingFailedError) as info:
            await provider.embed("hello")
        assert info.value.recoverable is True

    @pytest.mark.asyncio
    async def test_other_client_errors_are_not_recoverable(self):
        provider = OpenAIEmbedding(api_key="sk-test")
        provider._client.embeddings.create = AsyncMock(side_effect=openai.OpenAIError("bad"))
        with pytest.raises(EmbeddingFailedError) as info:
            await provider.embed("hello")
        assert info.value.recoverable is False

    def test_fixed_size_model_rejects_other_dimensions(self):
        with pytest.raises(ValueError, match="1536"):
            OpenAIEmbedding(api_key="sk-test", model="text-embedding-ada-002", dimensions=256)

    @pytest.mark.asyncio
    async def test_close_closes_client(self):
        provider = OpenAIEmbedding(api_key="sk-test")
        provider._client.close = AsyncMock()
        await provider.close()
        provider._client.close.assert_awaited_once()


def _local_provider(model: MagicMock | None = None) -> SentenceTransformerEmbedding:
    # Bypass __init__ so the test does not need the model weights.
    provider = SentenceTransformerEmbedding.__new__(SentenceTransformerEmbedding)
    provider._model_name = "all-MiniLM-L6-v2"
    provider._device = None
    provider._batch_size = 8
    provider._model = model
    provider._load_lock = threading.Lock()
    return provider


class TestSentenceTransformerEmbedding:
    def test_satisfies_protocol(self):
        model = MagicMock()
        model.get_sentence_embedding_dimension = MagicMock(return_value=384)
        provider = _local_provider(model)
        assert isinstance(provider, EmbeddingProvider)
        assert provider._model is model

    @pytest.mark.asyncio
    async def test_embed_normalizes_in_worker_thread(self):
        model = MagicMock()
        model.encode = MagicMock(return_value=np.array([[0.6, 0.8]]))
        provider = _local_provider(model)

        assert await provider.embed("hello") == pytest.approx([0.6, 0.8])
        _, kwargs = model.encode.call_args
        assert kwargs["normalize_embeddings"] is True
        assert kwargs["batch_size"] == 8

    @pytest.mark.asyncio
    async def test_empty_batch_skips_model(self):
        model = MagicMock()
        provider = _local_provider(model)
        assert await provider.embed_batch([]) == []
        model.encode.assert_not_called()

    def test_dimensions_from_model(self):
        model = MagicMock()
        model.get_sentence_embedding_dimension = MagicMock(return_value=384)
        assert _local_provider(model).dimensions == 384

    def test_provider_from_config_maps_openai_model_to_local_default(self):
        config = EmbeddingConfig(provider="sentence-transformers")
        with patch.object(SentenceTransformerEmbedding, "__init__", return_value=None) as init:
            provider_from_config(config)
        init.assert_called_once_with("all-MiniLM-L6-v2", batch_size=config.batch_size)
