"""Cortex — synchronous facade over :class:`~cortex.CortexAsync`."""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import TYPE_CHECKING, Any

from cortex._cortex_async import CortexAsync

if TYPE_CHECKING:
    from collections.abc import Iterable

    from cortex.cache import CacheBackend
    from cortex.config import CortexConfig
    from cortex.embeddings import EmbeddingProvider
    from cortex.graph import (
        ArchitectureAnalysis,
        ChangeType,
        DependencyAnalysis,
        GraphStore,
    )
    from cortex.indexing import IngestionReport, SourceFile
    from cortex.types import (
        ChangeImpact,
        CodeAnalysis,
        ComprehensiveContext,
        ContextChunk,
        ConversationHistory,
        EmbeddingMetadata,
        FileContext,
        RefactoringPlan,
        RetrievalResult,
        SyntaxNode,
        SystemStats,
    )
    from cortex.vectors import VectorStore

logger = logging.getLogger(__name__)


class Cortex:
    """Blocking API backed by a private event loop in a background thread.

    Every layer is async internally; the loop lets callers use Cortex
    from plain sync code or from inside an already running event loop.

    Usage::

        with Cortex(CortexConfig.from_env()) as cortex:
            cortex.on_file_change("app/main.py", tree, content)
            result = cortex.retrieve_context("request routing", "architectus")
    """

    def __init__(
        self,
        config: CortexConfig | None = None,
        *,
        embedding_provider: EmbeddingProvider | None = None,
        vector_store: VectorStore | None = None,
        cache_backend: CacheBackend | None = None,
        graph_store: GraphStore | None = None,
        load: bool = False,
    ) -> None:
        self._closed = False

        # Private event loop in a daemon thread
        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(target=self._loop.run_forever, daemon=True)
        self._thread.start()

        try:
            self._async = self._run(
                self._async_init(
                    config,
                    embedding_provider=embedding_provider,
                    vector_store=vector_store,
                    cache_backend=cache_backend,
                    graph_store=graph_store,
                    load=load,
                )
            )
        except BaseException:
            self._stop_loop()
            raise

    @staticmethod
    async def _async_init(
        config: CortexConfig | None, *, load: bool, **layers: Any
    ) -> CortexAsync:
        cortex = CortexAsync(config, **layers)
        await cortex.initialize()
        if load:
            await cortex.load()
        return cortex

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _run(self, coro: Any) -> Any:
        """Submit *coro* to the private loop and block for the result."""
        future = asyncio.run_coroutine_threadsafe(coro, self._loop)
        return future.result()

    def _stop_loop(self) -> None:
        self._loop.call_soon_threadsafe(self._loop.stop)
        self._thread.join(timeout=5)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Persist, shut down every layer, stop the loop and join the thread."""
        if self._closed:
            return
        self._closed = True

        try:
            self._run(self._async.close())
        finally:
            self._stop_loop()

    def __enter__(self) -> Cortex:
        return self

    def __exit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        self.close()

    @property
    def async_api(self) -> CortexAsync:
        """The underlying async instance (for use on the private loop only)."""
        return self._async

    # ------------------------------------------------------------------
    # Retrieval
    # ------------------------------------------------------------------

    def retrieve_context(
        self, query: str, agent_type: str, context: dict[str, Any] | None = None
    ) -> RetrievalResult:
        return self._run(self._async.retrieve_context(query, agent_type, context))

    def get_context_with_ast(
        self, query: str, agent_type: str, file_path: str | None = None
    ) -> list[ContextChunk]:
        return self._run(self._async.get_context_with_ast(query, agent_type, file_path))

    def get_agent_context(
        self, agent_type: str, subject: str, *, language: str | None = None
    ) -> RetrievalResult:
        return self._run(self._async.get_agent_context(agent_type, subject, language=language))

    def find_similar_code(self, code: str, language: str) -> RetrievalResult:
        return self._run(self._async.find_similar_code(code, language))

    def get_comprehensive_context(
        self,
        query: str,
        agent_type: str,
        file_path: str | None = None,
        *,
        include_impact_analysis: bool = False,
    ) -> ComprehensiveContext:
        return self._run(
            self._async.get_comprehensive_context(
                query, agent_type, file_path, include_impact_analysis=include_impact_analysis
            )
        )

    # ------------------------------------------------------------------
    # Working memory
    # ------------------------------------------------------------------

    def store_file_context(
        self, file_path: str, content: str, syntax_tree: SyntaxNode | None = None
    ) -> FileContext:
        return self._run(self._async.store_file_context(file_path, content, syntax_tree))

    def get_file_context(self, file_path: str) -> FileContext | None:
        return self._run(self._async.get_file_context(file_path))

    def store_conversation(self, session_id: str, message: Any) -> ConversationHistory:
        return self._run(self._async.store_conversation(session_id, message))

    def get_conversation_history(self, session_id: str) -> ConversationHistory | None:
        return self._run(self._async.get_conversation_history(session_id))

    def store_session_data(self, session_id: str, data: dict[str, Any]) -> None:
        self._run(self._async.store_session_data(session_id, data))

    def get_session_data(self, session_id: str) -> dict[str, Any] | None:
        return self._run(self._async.get_session_data(session_id))

    def clear_cache(self) -> None:
        self._run(self._async.clear_cache())

    # ------------------------------------------------------------------
    # Change handling and analysis
    # ------------------------------------------------------------------

    def on_file_change(
        self,
        file_path: str,
        syntax_tree: SyntaxNode | None = None,
        content: str | None = None,
    ) -> None:
        self._run(self._async.on_file_change(file_path, syntax_tree, content))

    def analyze_change_impact(self, file_path: str, change_type: ChangeType | str) -> ChangeImpact:
        return self._run(self._async.analyze_change_impact(file_path, change_type))

    def get_architecture_insights(self) -> ArchitectureAnalysis:
        return self._run(self._async.get_architecture_insights())

    def analyze_dependencies(self, node_id: str) -> DependencyAnalysis:
        return self._run(self._async.analyze_dependencies(node_id))

    def analyze_code(
        self, file_path: str, syntax_tree: SyntaxNode, query: str | None = None
    ) -> CodeAnalysis:
        return self._run(self._async.analyze_code(file_path, syntax_tree, query))

    def suggest_refactoring(self, file_path: str) -> RefactoringPlan:
        return self._run(self._async.suggest_refactoring(file_path))

    # ------------------------------------------------------------------
    # Knowledge ingestion
    # ------------------------------------------------------------------

    def add_knowledge(
        self, content: str, metadata: EmbeddingMetadata | None = None
    ) -> ContextChunk:
        return self._run(self._async.add_knowledge(content, metadata))

    def index_file(
        self,
        path: str,
        content: str,
        syntax_tree: SyntaxNode | None = None,
        *,
        quality: float = 70.0,
    ) -> list[str]:
        return self._run(self._async.index_file(path, content, syntax_tree, quality=quality))

    def index_files(self, files: Iterable[SourceFile]) -> IngestionReport:
        return self._run(self._async.index_files(list(files)))

    # ------------------------------------------------------------------
    # Statistics and persistence
    # ------------------------------------------------------------------

    def get_system_stats(self) -> SystemStats:
        return self._run(self._async.get_system_stats())

    def save(self) -> None:
        self._run(self._async.save())

    def load(self) -> None:
        self._run(self._async.load())
