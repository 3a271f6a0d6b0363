"""CortexAsync — primary async entry point over the three memory layers."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from cortex.cache import CacheStore, backend_from_config
from cortex.config import CortexConfig
from cortex.embeddings import Embedder, provider_from_config
from cortex.exceptions import CacheError
from cortex.graph import (
    ChangeType,
    Direction,
    ImpactAnalysis,
    RustworkxGraphStore,
    SupportsPersistence,
    make_node_id,
)
from cortex.indexing import KnowledgeIndexer
from cortex.insights import (
    change_recommendations,
    code_recommendations,
    complexity_reduction,
    refactoring_priority,
    refactoring_suggestions,
    risk_level,
    system_health,
)
from cortex.models import CodeEdgeRecord, CodeNodeRecord
from cortex.retrieval import RetrievalEngine, profile_for, rank_chunks
from cortex.syntax import build_file_context, syntax_chunks
from cortex.types import (
    ChangeImpact,
    CodeAnalysis,
    ComprehensiveContext,
    RefactoringPlan,
    RetrievalQuery,
    SystemStats,
)
from cortex.vectors import LocalVectorStore

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Awaitable, Iterable

    from cortex.cache import CacheBackend
    from cortex.embeddings import EmbeddingProvider
    from cortex.graph import ArchitectureAnalysis, DependencyAnalysis, GraphStore
    from cortex.indexing import IngestionReport, SourceFile
    from cortex.types import (
        ContextChunk,
        ConversationHistory,
        EmbeddingMetadata,
        FileContext,
        RetrievalResult,
        SyntaxNode,
    )
    from cortex.vectors import VectorStore

logger = logging.getLogger(__name__)

_OVERRIDE_KEYS = frozenset({"max_results", "similarity_threshold"})


class CortexAsync:
    """Async facade wiring embeddings, vectors, cache, graph and retrieval.

    Any layer can be injected; missing ones are built from *config*::

        async with CortexAsync(CortexConfig.from_env()) as cortex:
            await cortex.add_knowledge("Prefer composition over inheritance")
            result = await cortex.retrieve_context("composition", "architectus")

    Cache failures never fail a call that only uses the cache as an
    accelerator: they are logged and the call proceeds without it.
    """

    def __init__(
        self,
        config: CortexConfig | None = None,
        *,
        embedding_provider: EmbeddingProvider | None = None,
        vector_store: VectorStore | None = None,
        cache_backend: CacheBackend | None = None,
        graph_store: GraphStore | None = None,
    ) -> None:
        self._config = config or CortexConfig()
        self._config.validate()
        self._closed = False

        provider = embedding_provider or provider_from_config(self._config.embedding)
        self._embedder = Embedder(provider, dimensions=self._config.embedding.dimensions)
        self._vectors: VectorStore = vector_store or LocalVectorStore(
            dimension=self._embedder.dimensions, metric=self._config.vectors.metric
        )
        self._cache = CacheStore(
            cache_backend or backend_from_config(self._config.cache),
            ttl=self._config.cache.ttl,
            max_memory=self._config.cache.max_memory_bytes,
        )
        self._graph: GraphStore = graph_store or RustworkxGraphStore(
            max_depth=self._config.graph.max_depth
        )
        self._engine = RetrievalEngine(self._embedder, self._vectors)
        self._indexer = KnowledgeIndexer(
            self._embedder,
            self._vectors,
            batch_size=self._config.ingestion.batch_size,
            concurrency=self._config.ingestion.concurrency,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(self) -> None:
        """Connect backends.  An unreachable cache is logged, not fatal."""
        await self._vectors.connect()
        init_cache = getattr(self._cache.backend, "initialize", None)
        if init_cache is not None:
            await self._soft(init_cache(), "initialize")
        logger.info("Cortex initialized (model=%s)", self._embedder.model_info().name)

    async def close(self) -> None:
        """Persist (when configured) and release every backend."""
        if self._closed:
            return
        self._closed = True

        await self.save()
        await self._vectors.close()
        await self._soft(self._cache.close(), "close")
        await self._graph.close()
        close_provider = getattr(self._embedder.provider, "close", None)
        if close_provider is not None:
            await close_provider()
        logger.info("Cortex closed")

    async def __aenter__(self) -> CortexAsync:
        await self.initialize()
        return self

    async def __aexit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Retrieval
    # ------------------------------------------------------------------

    async def retrieve_context(
        self, query: str, agent_type: str, context: dict[str, Any] | None = None
    ) -> RetrievalResult:
        """Ranked chunks for *query*, served from the cache when possible.

        A *context* that overrides ``max_results`` or
        ``similarity_threshold`` bypasses the query cache.
        """
        request = RetrievalQuery(
            query=query,
            agent_type=agent_type,
            context=dict(context or {}),
            max_results=self._config.retrieval.max_results,
            similarity_threshold=self._config.retrieval.similarity_threshold,
        )
        self._engine.validate(request)
        use_cache = not (_OVERRIDE_KEYS & request.context.keys())

        if use_cache:
            cached = await self._soft(
                self._cache.get_cached_query_result(query, agent_type), "lookup"
            )
            if cached is not None:
                logger.debug("Cache hit for %s query", agent_type)
                return cached

        result = await self._engine.retrieve(request)

        if use_cache:
            await self._soft(self._cache.cache_query_result(query, agent_type, result), "write")
        return result

    async def get_context_with_ast(
        self, query: str, agent_type: str, file_path: str | None = None
    ) -> list[ContextChunk]:
        """Semantic chunks merged with chunks drawn from a cached syntax tree."""
        result = await self.retrieve_context(query, agent_type)
        if file_path is None:
            return list(result.chunks)

        tree = await self._soft(self._cache.get_syntax_tree(file_path), "lookup")
        file_context = await self._soft(self._cache.get_file_context(file_path), "lookup")
        if tree is None and file_context is not None:
            tree = file_context.syntax_tree
        if tree is None:
            return list(result.chunks)

        ast_chunks = syntax_chunks(
            tree,
            file_path,
            query,
            node_types=profile_for(agent_type).node_types,
            content=file_context.content if file_context is not None else None,
        )
        return rank_chunks([*result.chunks, *ast_chunks])

    async def get_agent_context(
        self, agent_type: str, subject: str, *, language: str | None = None
    ) -> RetrievalResult:
        """Retrieve with the agent's own query phrasing around *subject*."""
        template = profile_for(agent_type).query_template
        query = template.format(subject=subject[:200], language=language or "any language")
        return await self.retrieve_context(query, agent_type)

    async def find_similar_code(self, code: str, language: str) -> RetrievalResult:
        return await self.retrieve_context(f"similar code in {language}: {code[:200]}", "scriba")

    async def get_comprehensive_context(
        self,
        query: str,
        agent_type: str,
        file_path: str | None = None,
        *,
        include_impact_analysis: bool = False,
    ) -> ComprehensiveContext:
        """Context from all three layers for one question."""
        semantic = await self.retrieve_context(query, agent_type)

        structural: list[Any] = []
        impact: ImpactAnalysis | None = None
        if file_path is not None:
            file_id = make_node_id(file_path)
            if await self._graph.has_node(file_id):
                structural = await self._graph.dependencies(file_id, Direction.BOTH)
                if include_impact_analysis:
                    impact = await self._graph.impact_analysis(file_id, ChangeType.MODIFY)

        cached = await self._soft(
            self._cache.get_cached_query_result(query, agent_type), "lookup"
        )
        return ComprehensiveContext(
            semantic_context=semantic.chunks,
            structural_context=tuple(structural),
            cached_context=cached.chunks if cached is not None else (),
            impact_analysis=impact,
        )

    # ------------------------------------------------------------------
    # Working memory
    # ------------------------------------------------------------------

    async def store_file_context(
        self, file_path: str, content: str, syntax_tree: SyntaxNode | None = None
    ) -> FileContext:
        file_context = build_file_context(file_path, content, syntax_tree)
        await self._cache.store_file_context(file_context)
        if syntax_tree is not None:
            await self._cache.store_syntax_tree(file_path, syntax_tree)
        logger.debug("Stored file context for %s", file_path)
        return file_context

    async def get_file_context(self, file_path: str) -> FileContext | None:
        return await self._soft(self._cache.get_file_context(file_path), "lookup")

    async def store_conversation(self, session_id: str, message: Any) -> ConversationHistory:
        return await self._cache.append_to_conversation(session_id, message)

    async def get_conversation_history(self, session_id: str) -> ConversationHistory | None:
        return await self._soft(self._cache.get_conversation_history(session_id), "lookup")

    async def store_session_data(self, session_id: str, data: dict[str, Any]) -> None:
        await self._cache.store_session_data(session_id, data)

    async def get_session_data(self, session_id: str) -> dict[str, Any] | None:
        return await self._soft(self._cache.get_session_data(session_id), "lookup")

    async def clear_cache(self) -> None:
        await self._cache.clear()

    # ------------------------------------------------------------------
    # Change handling and analysis
    # ------------------------------------------------------------------

    async def on_file_change(
        self,
        file_path: str,
        syntax_tree: SyntaxNode | None = None,
        content: str | None = None,
    ) -> None:
        """Invalidate cached state of *file_path* and refresh the other layers.

        With a syntax tree, the file's graph subtree is rebuilt and the
        tree is cached.  With content, the file is re-indexed.
        """
        await self._soft(self._cache.invalidate(file_path), "invalidate")
        if syntax_tree is not None:
            await self._graph.build_from_syntax_tree(file_path, syntax_tree)
            await self._soft(self._cache.store_syntax_tree(file_path, syntax_tree), "write")
        if content is not None:
            await self._indexer.index_file(file_path, content, syntax_tree)
        logger.info("Processed change to %s", file_path)

    async def analyze_change_impact(
        self, file_path: str, change_type: ChangeType | str
    ) -> ChangeImpact:
        """Graph impact of changing *file_path*, with related context and risk.

        A file unknown to the graph yields an empty impact analysis.
        """
        change_type = ChangeType(change_type)
        file_id = make_node_id(file_path)
        if await self._graph.has_node(file_id):
            impact = await self._graph.impact_analysis(file_id, change_type)
        else:
            impact = ImpactAnalysis.empty(file_id, change_type)

        affected = await self.retrieve_context(f"code affected by changes in {file_path}", "auditor")
        risk = risk_level(impact)
        return ChangeImpact(
            impact_analysis=impact,
            affected_context=affected.chunks,
            recommendations=(*impact.recommendations, *change_recommendations(impact, risk)),
            risk_level=risk,
        )

    async def get_architecture_insights(self) -> ArchitectureAnalysis:
        return await self._graph.architecture_analysis()

    async def analyze_dependencies(self, node_id: str) -> DependencyAnalysis:
        return await self._graph.analyze_dependencies(node_id)

    async def analyze_code(
        self, file_path: str, syntax_tree: SyntaxNode, query: str | None = None
    ) -> CodeAnalysis:
        """Build the file's graph, analyse the architecture and cache the tree."""
        semantic = (await self.retrieve_context(query, "architectus")).chunks if query else ()

        await self._graph.build_from_syntax_tree(file_path, syntax_tree)
        architecture = await self._graph.architecture_analysis()

        existing = await self._soft(self._cache.get_file_context(file_path), "lookup")
        content = existing.content if existing is not None else ""
        await self._soft(
            self._cache.store_file_context(build_file_context(file_path, content, syntax_tree)),
            "write",
        )
        await self._soft(self._cache.store_syntax_tree(file_path, syntax_tree), "write")

        return CodeAnalysis(
            semantic_analysis=semantic,
            architecture=architecture,
            recommendations=(
                *architecture.recommendations,
                *code_recommendations(semantic, architecture),
            ),
        )

    async def suggest_refactoring(self, file_path: str) -> RefactoringPlan:
        patterns = await self.retrieve_context(
            "code refactoring patterns and best practices", "architectus"
        )
        file_id = make_node_id(file_path)
        if await self._graph.has_node(file_id):
            impact = await self._graph.impact_analysis(file_id, ChangeType.MODIFY)
        else:
            impact = ImpactAnalysis.empty(file_id, ChangeType.MODIFY)

        suggestions = refactoring_suggestions(patterns.chunks, impact)
        reduction = complexity_reduction(suggestions)
        return RefactoringPlan(
            suggestions=tuple(suggestions),
            impact_analysis=impact,
            complexity_reduction=reduction,
            priority=refactoring_priority(impact, reduction),
        )

    # ------------------------------------------------------------------
    # Knowledge ingestion
    # ------------------------------------------------------------------

    async def add_knowledge(
        self, content: str, metadata: EmbeddingMetadata | None = None
    ) -> ContextChunk:
        return await self._indexer.add_knowledge(content, metadata)

    async def index_file(
        self,
        path: str,
        content: str,
        syntax_tree: SyntaxNode | None = None,
        *,
        quality: float = 70.0,
    ) -> list[str]:
        return await self._indexer.index_file(path, content, syntax_tree, quality=quality)

    async def index_files(self, files: Iterable[SourceFile]) -> IngestionReport:
        return await self._indexer.index_files(files)

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------

    async def get_system_stats(self) -> SystemStats:
        cache_stats = await self._soft(self._cache.stats(), "stats")
        graph_stats = await self._graph.stats()
        hit_rate = cache_stats.hit_rate if cache_stats is not None else 0.0
        return SystemStats(
            vector_stats=await self._vectors.stats(),
            model_info=self._embedder.model_info(),
            retrieval_stats=self._engine.stats(),
            cache_stats=cache_stats,
            graph_stats=graph_stats,
            health=system_health(
                hit_rate, graph_stats.total_nodes, graph_stats.total_relationships
            ),
        )

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    async def save(self) -> None:
        """Persist vectors to ``vectors.data_dir`` and the graph to ``graph.database_url``.

        Layers without a configured location, or whose backend cannot
        persist, are skipped.
        """
        data_dir = self._config.vectors.data_dir
        save_vectors = getattr(self._vectors, "save", None)
        if data_dir is not None and save_vectors is not None:
            save_vectors(Path(data_dir))

        if isinstance(self._graph, SupportsPersistence):
            async with self._graph_session() as session:
                if session is not None:
                    await self._graph.to_sql(session)
                    await session.commit()

    async def load(self) -> None:
        """Restore what :meth:`save` persisted.  Missing data is skipped."""
        data_dir = self._config.vectors.data_dir
        load_vectors = getattr(self._vectors, "load", None)
        if data_dir is not None and load_vectors is not None:
            if any(Path(data_dir).glob("*.json")):
                load_vectors(Path(data_dir))
            else:
                logger.debug("No saved vectors in %s", data_dir)

        if isinstance(self._graph, SupportsPersistence):
            async with self._graph_session() as session:
                if session is not None:
                    await self._graph.from_sql(session)

    @asynccontextmanager
    async def _graph_session(self) -> AsyncIterator[AsyncSession | None]:
        url = self._config.graph.database_url
        if url is None:
            yield None
            return
        engine = create_async_engine(url, echo=False)
        try:
            async with engine.begin() as conn:
                await conn.run_sync(
                    lambda c: CodeNodeRecord.__table__.create(c, checkfirst=True)  # type: ignore[attr-defined]
                )
                await conn.run_sync(
                    lambda c: CodeEdgeRecord.__table__.create(c, checkfirst=True)  # type: ignore[attr-defined]
                )
            factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
            async with factory() as session:
                yield session
        finally:
            await engine.dispose()

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _soft(self, operation: Awaitable[Any], action: str) -> Any:
        """Await a cache *operation*; on :class:`CacheError` log and return ``None``."""
        try:
            return await operation
        except CacheError:
            logger.warning("Cache %s failed; continuing without cache", action, exc_info=True)
            return None

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def config(self) -> CortexConfig:
        return self._config

    @property
    def embedder(self) -> Embedder:
        return self._embedder

    @property
    def vector_store(self) -> VectorStore:
        return self._vectors

    @property
    def cache(self) -> CacheStore:
        return self._cache

    @property
    def graph(self) -> GraphStore:
        return self._graph

    @property
    def engine(self) -> RetrievalEngine:
        return self._engine

    @property
    def indexer(self) -> KnowledgeIndexer:
        return self._indexer
