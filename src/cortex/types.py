"""Cortex data types — value objects shared by the memory layers.

All types are frozen dataclasses.  Types that cross a serialisation
boundary (the cache, the vector store sidecar) provide ``to_dict`` /
``from_dict`` pairs that round-trip through JSON.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from enum import StrEnum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

    from cortex.graph.types import (
        ArchitectureAnalysis,
        CodeNode,
        GraphStats,
        ImpactAnalysis,
    )


def utcnow() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(UTC)


def _parse_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, UTC)
    return datetime.fromisoformat(str(value))


# ------------------------------------------------------------------
# Chunks and metadata
# ------------------------------------------------------------------


class Source(StrEnum):
    """Where a chunk of knowledge came from."""

    WORKSPACE = "workspace"
    DOCUMENTATION = "documentation"
    BEST_PRACTICES = "best-practices"


@dataclass(frozen=True, slots=True)
class EmbeddingMetadata:
    """Metadata stored alongside every chunk; drives filtering and ranking.

    Attributes:
        source: Origin of the chunk.
        language: Programming language of the content.
        file_path: Source file, if any.
        function_name: Enclosing function, if the chunk is one.
        class_name: Enclosing class, if the chunk is one.
        tags: Free-form labels matched against agent profiles.
        quality: Producer-supplied quality score, 0-100.
        created_at: Creation time (aware UTC).
        extra: Additional producer metadata (counts, complexity, ...).
    """

    source: Source = Source.WORKSPACE
    language: str = "unknown"
    file_path: str | None = None
    function_name: str | None = None
    class_name: str | None = None
    tags: frozenset[str] = frozenset()
    quality: float = 70.0
    created_at: datetime = field(default_factory=utcnow)
    extra: dict[str, Any] = field(default_factory=dict, compare=False)

    def __post_init__(self) -> None:
        if not isinstance(self.source, Source):
            object.__setattr__(self, "source", Source(self.source))
        if not isinstance(self.tags, frozenset):
            object.__setattr__(self, "tags", frozenset(self.tags))
        if not 0 <= self.quality <= 100:
            msg = f"quality must be between 0 and 100, got {self.quality!r}"
            raise ValueError(msg)

    def to_dict(self) -> dict[str, Any]:
        return {
            "source": self.source.value,
            "language": self.language,
            "file_path": self.file_path,
            "function_name": self.function_name,
            "class_name": self.class_name,
            "tags": sorted(self.tags),
            "quality": self.quality,
            "created_at": self.created_at.isoformat(),
            "extra": dict(self.extra),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> EmbeddingMetadata:
        return cls(
            source=Source(data.get("source", Source.WORKSPACE)),
            language=data.get("language", "unknown"),
            file_path=data.get("file_path"),
            function_name=data.get("function_name"),
            class_name=data.get("class_name"),
            tags=frozenset(data.get("tags", ())),
            quality=data.get("quality", 70.0),
            created_at=_parse_datetime(data["created_at"]) if "created_at" in data else utcnow(),
            extra=dict(data.get("extra", {})),
        )


@dataclass(frozen=True, slots=True)
class ContextChunk:
    """A unit of retrievable content with its embedding and metadata.

    ``similarity`` is only populated on chunks returned by a search.
    Synthetic chunks built from syntax trees carry an empty embedding
    and are never stored.
    """

    id: str
    content: str
    embedding: tuple[float, ...] = ()
    metadata: EmbeddingMetadata = field(default_factory=EmbeddingMetadata)
    similarity: float | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.embedding, tuple):
            object.__setattr__(self, "embedding", tuple(float(x) for x in self.embedding))

    def with_similarity(self, similarity: float | None) -> ContextChunk:
        """Return a copy of this chunk with *similarity* set."""
        return replace(self, similarity=similarity)

    def to_dict(self, *, include_embedding: bool = True) -> dict[str, Any]:
        return {
            "id": self.id,
            "content": self.content,
            "embedding": list(self.embedding) if include_embedding else [],
            "metadata": self.metadata.to_dict(),
            "similarity": self.similarity,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ContextChunk:
        return cls(
            id=data["id"],
            content=data["content"],
            embedding=tuple(data.get("embedding", ())),
            metadata=EmbeddingMetadata.from_dict(data.get("metadata", {})),
            similarity=data.get("similarity"),
        )


# ------------------------------------------------------------------
# Syntax trees and file context
# ------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class SyntaxNode:
    """A node of a parsed syntax tree, as produced by the caller's parser.

    ``type`` is the parser's own label (``function``, ``method``,
    ``class``, ``interface``, ``import``, ...).  Line numbers are
    1-indexed and inclusive.
    """

    type: str
    name: str | None = None
    start_line: int = 0
    end_line: int = 0
    children: tuple[SyntaxNode, ...] = ()
    metadata: dict[str, Any] = field(default_factory=dict, compare=False)

    def __post_init__(self) -> None:
        if not isinstance(self.children, tuple):
            object.__setattr__(self, "children", tuple(self.children))

    def walk(self) -> Iterator[SyntaxNode]:
        """Yield this node and all descendants, depth-first, pre-order."""
        yield self
        for child in self.children:
            yield from child.walk()

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "name": self.name,
            "start_line": self.start_line,
            "end_line": self.end_line,
            "children": [c.to_dict() for c in self.children],
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SyntaxNode:
        return cls(
            type=data["type"],
            name=data.get("name"),
            start_line=data.get("start_line", 0),
            end_line=data.get("end_line", 0),
            children=tuple(cls.from_dict(c) for c in data.get("children", ())),
            metadata=dict(data.get("metadata", {})),
        )


@dataclass(frozen=True, slots=True)
class Symbol:
    """A named declaration extracted from a syntax tree."""

    name: str | None
    type: str
    start_line: int
    end_line: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "type": self.type,
            "start_line": self.start_line,
            "end_line": self.end_line,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Symbol:
        return cls(
            name=data.get("name"),
            type=data["type"],
            start_line=data.get("start_line", 0),
            end_line=data.get("end_line", 0),
        )


def _symbols(items: Iterable[dict[str, Any]]) -> tuple[Symbol, ...]:
    return tuple(Symbol.from_dict(i) for i in items)


@dataclass(frozen=True, slots=True)
class FileContext:
    """Snapshot of a source file held in working memory."""

    file_path: str
    content: str
    syntax_tree: SyntaxNode | None
    functions: tuple[Symbol, ...] = ()
    classes: tuple[Symbol, ...] = ()
    imports: tuple[Symbol, ...] = ()
    exports: tuple[Symbol, ...] = ()
    last_modified: datetime = field(default_factory=utcnow)
    size: int = 0
    language: str = "unknown"

    def to_dict(self) -> dict[str, Any]:
        return {
            "file_path": self.file_path,
            "content": self.content,
            "syntax_tree": self.syntax_tree.to_dict() if self.syntax_tree else None,
            "functions": [s.to_dict() for s in self.functions],
            "classes": [s.to_dict() for s in self.classes],
            "imports": [s.to_dict() for s in self.imports],
            "exports": [s.to_dict() for s in self.exports],
            "last_modified": self.last_modified.isoformat(),
            "size": self.size,
            "language": self.language,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FileContext:
        tree = data.get("syntax_tree")
        return cls(
            file_path=data["file_path"],
            content=data.get("content", ""),
            syntax_tree=SyntaxNode.from_dict(tree) if tree else None,
            functions=_symbols(data.get("functions", ())),
            classes=_symbols(data.get("classes", ())),
            imports=_symbols(data.get("imports", ())),
            exports=_symbols(data.get("exports", ())),
            last_modified=_parse_datetime(data["last_modified"]),
            size=data.get("size", 0),
            language=data.get("language", "unknown"),
        )


@dataclass(frozen=True, slots=True)
class ConversationHistory:
    """Ordered messages of one agent session."""

    session_id: str
    messages: tuple[Any, ...] = ()
    last_updated: datetime = field(default_factory=utcnow)
    message_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "messages": list(self.messages),
            "last_updated": self.last_updated.isoformat(),
            "message_count": self.message_count,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ConversationHistory:
        messages = tuple(data.get("messages", ()))
        return cls(
            session_id=data["session_id"],
            messages=messages,
            last_updated=_parse_datetime(data["last_updated"]),
            message_count=data.get("message_count", len(messages)),
        )


# ------------------------------------------------------------------
# Retrieval
# ------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ModelInfo:
    """Name and dimensionality of the active embedding model."""

    name: str
    dimensions: int


@dataclass(frozen=True, slots=True)
class RetrievalQuery:
    """A single retrieval request.

    Attributes:
        query: Raw query text.
        agent_type: Selects the relevance profile.
        context: Optional caller context; may override ``max_results``
            and ``similarity_threshold``.
        max_results: Maximum chunks to return (1-100).
        similarity_threshold: Minimum similarity (0-1).
    """

    query: str
    agent_type: str
    context: dict[str, Any] = field(default_factory=dict)
    max_results: int = 10
    similarity_threshold: float = 0.7


@dataclass(frozen=True, slots=True)
class RetrievalResult:
    """Ranked chunks plus query-level figures."""

    chunks: tuple[ContextChunk, ...]
    total_results: int
    query_time: float
    relevance_score: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "chunks": [c.to_dict(include_embedding=False) for c in self.chunks],
            "total_results": self.total_results,
            "query_time": self.query_time,
            "relevance_score": self.relevance_score,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RetrievalResult:
        return cls(
            chunks=tuple(ContextChunk.from_dict(c) for c in data.get("chunks", ())),
            total_results=data.get("total_results", 0),
            query_time=data.get("query_time", 0.0),
            relevance_score=data.get("relevance_score", 0.0),
        )


# ------------------------------------------------------------------
# Stats snapshots
# ------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class VectorStoreStats:
    total_chunks: int
    total_size: int


@dataclass(frozen=True, slots=True)
class RetrievalStats:
    total_queries: int
    average_query_time: float
    average_relevance_score: float


@dataclass(frozen=True, slots=True)
class CacheStats:
    """Point-in-time cache snapshot.  ``hit_rate`` is best effort."""

    total_keys: int
    memory_usage: int
    max_memory: int
    hit_rate: float
    hits: int = 0
    misses: int = 0
    last_updated: datetime = field(default_factory=utcnow)


# ------------------------------------------------------------------
# Orchestrator results
# ------------------------------------------------------------------


class RiskLevel(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class SystemHealth(StrEnum):
    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"


@dataclass(frozen=True, slots=True)
class ComprehensiveContext:
    """Context assembled from all three memory layers."""

    semantic_context: tuple[ContextChunk, ...]
    structural_context: tuple[CodeNode, ...]
    cached_context: tuple[ContextChunk, ...]
    impact_analysis: ImpactAnalysis | None = None


@dataclass(frozen=True, slots=True)
class ChangeImpact:
    """Result of :meth:`CortexAsync.analyze_change_impact`."""

    impact_analysis: ImpactAnalysis
    affected_context: tuple[ContextChunk, ...]
    recommendations: tuple[str, ...]
    risk_level: RiskLevel


@dataclass(frozen=True, slots=True)
class CodeAnalysis:
    """Result of :meth:`CortexAsync.analyze_code`."""

    semantic_analysis: tuple[ContextChunk, ...]
    architecture: ArchitectureAnalysis
    recommendations: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class RefactoringPlan:
    """Result of :meth:`CortexAsync.suggest_refactoring`."""

    suggestions: tuple[str, ...]
    impact_analysis: ImpactAnalysis
    complexity_reduction: float
    priority: RiskLevel


@dataclass(frozen=True, slots=True)
class SystemStats:
    """Combined statistics of every layer."""

    vector_stats: VectorStoreStats
    model_info: ModelInfo
    retrieval_stats: RetrievalStats
    cache_stats: CacheStats | None
    graph_stats: GraphStats
    health: SystemHealth
