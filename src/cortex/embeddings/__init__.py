"""Embedding layer — provider protocol, validating wrapper, implementations."""

from __future__ import annotations

from typing import TYPE_CHECKING

from cortex.embeddings._embedder import Embedder
from cortex.embeddings.openai import OpenAIEmbedding
from cortex.embeddings.protocols import EmbeddingProvider
from cortex.embeddings.sentence_transformers import (
    DEFAULT_LOCAL_MODEL,
    SentenceTransformerEmbedding,
)

if TYPE_CHECKING:
    from cortex.config import EmbeddingConfig

__all__ = [
    "Embedder",
    "EmbeddingProvider",
    "OpenAIEmbedding",
    "SentenceTransformerEmbedding",
    "provider_from_config",
]


def provider_from_config(config: EmbeddingConfig) -> EmbeddingProvider:
    """Build the provider named by *config*."""
    if config.provider == "sentence-transformers":
        # OpenAI model names are meaningless locally.
        model = DEFAULT_LOCAL_MODEL if config.model.startswith("text-embedding-") else config.model
        return SentenceTransformerEmbedding(model, batch_size=config.batch_size)
    return OpenAIEmbedding.from_config(config)
