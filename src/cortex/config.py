"""Cortex configuration — explicitly constructed, passed-in config objects.

Nothing here is a process-wide singleton: build a :class:`CortexConfig`
(directly or with :meth:`CortexConfig.from_env`) and hand it to
:class:`~cortex.CortexAsync`.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields, replace
from typing import TYPE_CHECKING, Any, Literal

if TYPE_CHECKING:
    from collections.abc import Mapping

_ENV_PREFIX = "CORTEX_"

_EMBEDDING_PROVIDERS = frozenset({"openai", "sentence-transformers"})
_CACHE_BACKENDS = frozenset({"memory", "redis"})
_METRICS = frozenset({"cosine", "ip"})


@dataclass(frozen=True, slots=True)
class EmbeddingConfig:
    """Embedding model selection.

    Attributes:
        provider: ``"openai"`` or ``"sentence-transformers"``.
        model: Model name passed to the provider.
        dimensions: Vector dimensionality; ``None`` uses the model default.
        api_key: Provider credential (OpenAI only).
        timeout: Per-request timeout in seconds.
        max_retries: Client-level retries for transient HTTP failures.
        batch_size: Texts per provider call.
    """

    provider: Literal["openai", "sentence-transformers"] = "openai"
    model: str = "text-embedding-3-small"
    dimensions: int | None = None
    api_key: str | None = field(default=None, repr=False)
    timeout: float = 30.0
    max_retries: int = 2
    batch_size: int = 512


@dataclass(frozen=True, slots=True)
class VectorStoreConfig:
    metric: str = "cosine"
    data_dir: str | None = None


@dataclass(frozen=True, slots=True)
class CacheConfig:
    """Working-memory cache settings.

    Attributes:
        backend: ``"memory"`` (in-process) or ``"redis"``.
        redis_url: Connection URL for the redis backend.
        redis_password: Optional redis password.
        redis_db: Redis logical database.
        ttl: Time to live for every cache entry, in seconds.
        max_memory_mb: Memory budget; least-recently-used entries are
            evicted beyond it.
    """

    backend: Literal["memory", "redis"] = "memory"
    redis_url: str = "redis://localhost:6379"
    redis_password: str | None = field(default=None, repr=False)
    redis_db: int = 0
    ttl: int = 3600
    max_memory_mb: int = 256

    @property
    def max_memory_bytes(self) -> int:
        return self.max_memory_mb * 1024 * 1024


@dataclass(frozen=True, slots=True)
class GraphConfig:
    """Structural memory settings.

    Attributes:
        database_url: Async SQLAlchemy URL used by ``save()`` / ``load()``
            to persist the graph, e.g. ``sqlite+aiosqlite:///graph.db``.
        max_depth: Hop limit for impact analysis.
    """

    database_url: str | None = None
    max_depth: int = 3


@dataclass(frozen=True, slots=True)
class RetrievalConfig:
    max_results: int = 10
    similarity_threshold: float = 0.7


@dataclass(frozen=True, slots=True)
class IngestionConfig:
    """Batch ingestion limits: files per batch, concurrent embeds per batch."""

    batch_size: int = 50
    concurrency: int = 5


@dataclass(frozen=True, slots=True)
class CortexConfig:
    """Top-level configuration grouping every layer's settings."""

    embedding: EmbeddingConfig = field(default_factory=EmbeddingConfig)
    vectors: VectorStoreConfig = field(default_factory=VectorStoreConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    graph: GraphConfig = field(default_factory=GraphConfig)
    retrieval: RetrievalConfig = field(default_factory=RetrievalConfig)
    ingestion: IngestionConfig = field(default_factory=IngestionConfig)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> CortexConfig:
        """Build a validated config from ``CORTEX_*`` environment variables.

        Section fields map to ``CORTEX_<SECTION>_<FIELD>``, e.g.
        ``CORTEX_CACHE_TTL`` or ``CORTEX_RETRIEVAL_MAX_RESULTS``.  The
        OpenAI key falls back to ``OPENAI_API_KEY``.
        """
        env = os.environ if environ is None else environ
        sections: dict[str, Any] = {}
        for section in fields(cls):
            default = section.default_factory()  # type: ignore[misc]
            overrides = _read_section(env, section.name, default)
            sections[section.name] = replace(default, **overrides) if overrides else default

        embedding: EmbeddingConfig = sections["embedding"]
        if embedding.api_key is None and env.get("OPENAI_API_KEY"):
            sections["embedding"] = replace(embedding, api_key=env["OPENAI_API_KEY"])

        config = cls(**sections)
        config.validate()
        return config

    def validate(self) -> None:
        """Raise ``ValueError`` if any setting is out of range."""
        if self.embedding.provider not in _EMBEDDING_PROVIDERS:
            msg = f"Unknown embedding provider: {self.embedding.provider!r}"
            raise ValueError(msg)
        if self.embedding.dimensions is not None and self.embedding.dimensions < 1:
            msg = "embedding.dimensions must be positive"
            raise ValueError(msg)
        if self.embedding.batch_size < 1:
            msg = "embedding.batch_size must be positive"
            raise ValueError(msg)
        if self.vectors.metric not in _METRICS:
            msg = f"Unknown vector metric: {self.vectors.metric!r}"
            raise ValueError(msg)
        if self.cache.backend not in _CACHE_BACKENDS:
            msg = f"Unknown cache backend: {self.cache.backend!r}"
            raise ValueError(msg)
        if self.cache.ttl <= 0:
            msg = "cache.ttl must be positive"
            raise ValueError(msg)
        if self.cache.max_memory_mb <= 0:
            msg = "cache.max_memory_mb must be positive"
            raise ValueError(msg)
        if self.graph.max_depth < 1:
            msg = "graph.max_depth must be at least 1"
            raise ValueError(msg)
        if not 0 <= self.retrieval.similarity_threshold <= 1:
            msg = "retrieval.similarity_threshold must be between 0 and 1"
            raise ValueError(msg)
        if not 1 <= self.retrieval.max_results <= 100:
            msg = "retrieval.max_results must be between 1 and 100"
            raise ValueError(msg)
        if self.ingestion.batch_size < 1 or self.ingestion.concurrency < 1:
            msg = "ingestion.batch_size and ingestion.concurrency must be positive"
            raise ValueError(msg)


def _read_section(env: Mapping[str, str], section: str, default: Any) -> dict[str, Any]:
    """Collect overrides for one config section from *env*."""
    overrides: dict[str, Any] = {}
    for f in fields(default):
        raw = env.get(f"{_ENV_PREFIX}{section.upper()}_{f.name.upper()}")
        if raw is None:
            continue
        overrides[f.name] = _coerce(raw, getattr(default, f.name), f.type)
    return overrides


def _coerce(raw: str, current: Any, annotation: Any) -> Any:
    """Convert an environment string to the type of the field's default."""
    hint = str(annotation)
    if isinstance(current, bool):
        return raw.strip().lower() in ("1", "true", "yes")
    if isinstance(current, int) or hint.startswith("int"):
        return int(raw)
    if isinstance(current, float) or hint.startswith("float"):
        return float(raw)
    return raw
