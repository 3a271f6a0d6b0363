"""Cortex: layered code memory for AI agents.

Semantic, working and structural memory behind one retrieval API.
"""

__version__ = "0.1.0"

from cortex._cortex import Cortex
from cortex._cortex_async import CortexAsync
from cortex.cache import CacheBackend, CacheStore, MemoryCacheBackend, RedisCacheBackend
from cortex.config import (
    CacheConfig,
    CortexConfig,
    EmbeddingConfig,
    GraphConfig,
    IngestionConfig,
    RetrievalConfig,
    VectorStoreConfig,
)
from cortex.embeddings import Embedder, EmbeddingProvider
from cortex.exceptions import (
    CacheError,
    CortexError,
    DimensionMismatchError,
    EmbeddingFailedError,
    GraphError,
    InvalidQueryError,
    VectorStoreError,
)
from cortex.graph import (
    ChangeType,
    CodeNode,
    CodeRelationship,
    GraphStore,
    ImpactAnalysis,
    NodeType,
    RelationshipType,
    RustworkxGraphStore,
)
from cortex.indexing import IngestionReport, KnowledgeIndexer, SourceFile
from cortex.retrieval import RelevanceProfile, RetrievalEngine
from cortex.types import (
    ContextChunk,
    ConversationHistory,
    EmbeddingMetadata,
    FileContext,
    RetrievalQuery,
    RetrievalResult,
    RiskLevel,
    Source,
    SyntaxNode,
    SystemHealth,
)
from cortex.vectors import LocalVectorStore, VectorStore

__all__ = [
    "CacheBackend",
    "CacheConfig",
    "CacheError",
    "CacheStore",
    "ChangeType",
    "CodeNode",
    "CodeRelationship",
    "ContextChunk",
    "ConversationHistory",
    "Cortex",
    "CortexAsync",
    "CortexConfig",
    "CortexError",
    "DimensionMismatchError",
    "Embedder",
    "EmbeddingConfig",
    "EmbeddingFailedError",
    "EmbeddingMetadata",
    "EmbeddingProvider",
    "FileContext",
    "GraphConfig",
    "GraphError",
    "GraphStore",
    "ImpactAnalysis",
    "IngestionConfig",
    "IngestionReport",
    "InvalidQueryError",
    "KnowledgeIndexer",
    "LocalVectorStore",
    "MemoryCacheBackend",
    "NodeType",
    "RedisCacheBackend",
    "RelationshipType",
    "RelevanceProfile",
    "RetrievalConfig",
    "RetrievalEngine",
    "RetrievalQuery",
    "RetrievalResult",
    "RiskLevel",
    "RustworkxGraphStore",
    "Source",
    "SourceFile",
    "SyntaxNode",
    "SystemHealth",
    "VectorStore",
    "VectorStoreConfig",
    "VectorStoreError",
    "__version__",
]
