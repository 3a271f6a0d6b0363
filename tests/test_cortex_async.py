"""Tests for CortexAsync — the orchestrator across all memory layers."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from _fakes import SAMPLE_SOURCE, FakeProvider, sample_tree

from cortex import CortexAsync
from cortex.config import CortexConfig, GraphConfig, VectorStoreConfig
from cortex.exceptions import CacheError, InvalidQueryError
from cortex.graph import ChangeType, NodeType, make_node_id
from cortex.indexing import SourceFile
from cortex.types import EmbeddingMetadata, RiskLevel, Source, SystemHealth

if TYPE_CHECKING:
    from collections.abc import AsyncIterator
    from pathlib import Path

PATH = "/src/service.py"


class _DownCache:
    """Cache backend whose every operation fails."""

    async def get(self, key: str) -> str | None:
        raise CacheError("cache down")

    async def set(self, key: str, value: str, ttl: int) -> None:
        raise CacheError("cache down")

    async def delete(self, *keys: str) -> int:
        raise CacheError("cache down")

    async def clear(self) -> None:
        raise CacheError("cache down")

    async def key_count(self) -> int:
        raise CacheError("cache down")

    async def memory_usage(self) -> int:
        raise CacheError("cache down")

    async def close(self) -> None:
        pass


@pytest.fixture
async def cortex(provider: FakeProvider) -> AsyncIterator[CortexAsync]:
    async with CortexAsync(embedding_provider=provider) as c:
        yield c


@pytest.fixture
async def down_cortex(provider: FakeProvider) -> AsyncIterator[CortexAsync]:
    async with CortexAsync(embedding_provider=provider, cache_backend=_DownCache()) as c:
        yield c


# ==================================================================
# Retrieval
# ==================================================================


class TestRetrieveContext:
    @pytest.mark.asyncio
    async def test_finds_stored_knowledge(self, cortex: CortexAsync):
        chunk = await cortex.add_knowledge("Use dependency injection for services")
        result = await cortex.retrieve_context("Use dependency injection for services", "anyone")
        assert [c.id for c in result.chunks] == [chunk.id]
        assert result.chunks[0].similarity == pytest.approx(1.0, abs=1e-4)

    @pytest.mark.asyncio
    async def test_second_call_served_from_cache(
        self, cortex: CortexAsync, provider: FakeProvider
    ):
        await cortex.add_knowledge("cached knowledge")
        first = await cortex.retrieve_context("cached knowledge", "anyone")
        calls = provider.calls
        second = await cortex.retrieve_context("cached knowledge", "anyone")
        assert provider.calls == calls
        assert [c.id for c in second.chunks] == [c.id for c in first.chunks]
        assert cortex.engine.stats().total_queries == 1

    @pytest.mark.asyncio
    async def test_overrides_bypass_cache(self, cortex: CortexAsync, provider: FakeProvider):
        await cortex.retrieve_context("some query", "anyone")
        calls = provider.calls
        await cortex.retrieve_context("some query", "anyone", {"max_results": 3})
        assert provider.calls == calls + 1

    @pytest.mark.asyncio
    async def test_cache_is_per_agent(self, cortex: CortexAsync):
        await cortex.retrieve_context("q", "scriba")
        assert await cortex.cache.get_cached_query_result("q", "scriba") is not None
        assert await cortex.cache.get_cached_query_result("q", "auditor") is None

    @pytest.mark.asyncio
    async def test_invalid_query(self, cortex: CortexAsync):
        with pytest.raises(InvalidQueryError):
            await cortex.retrieve_context("   ", "scriba")
        with pytest.raises(InvalidQueryError):
            await cortex.retrieve_context("q", "scriba", {"similarity_threshold": 3})

    @pytest.mark.asyncio
    async def test_cache_outage_is_soft(self, down_cortex: CortexAsync):
        chunk = await down_cortex.add_knowledge("resilient knowledge")
        result = await down_cortex.retrieve_context("resilient knowledge", "anyone")
        assert [c.id for c in result.chunks] == [chunk.id]


class TestAgentQueries:
    @pytest.mark.asyncio
    async def test_agent_context_uses_template(self, cortex: CortexAsync):
        query = "code implementation examples in python for: parse json"
        meta = EmbeddingMetadata(language="python", tags={"code"})
        chunk = await cortex.add_knowledge(query, meta)
        result = await cortex.get_agent_context("scriba", "parse json", language="python")
        assert [c.id for c in result.chunks] == [chunk.id]

    @pytest.mark.asyncio
    async def test_agent_context_defaults(self, cortex: CortexAsync):
        subject = "x" * 300
        await cortex.get_agent_context("scriba", subject)
        expected = f"code implementation examples in any language for: {'x' * 200}"
        assert await cortex.cache.get_cached_query_result(expected, "scriba") is not None

    @pytest.mark.asyncio
    async def test_find_similar_code(self, cortex: CortexAsync):
        code = "def add(a, b):\n    return a + b"
        expected = f"similar code in python: {code}"
        meta = EmbeddingMetadata(language="python", tags={"function"})
        chunk = await cortex.add_knowledge(expected, meta)
        result = await cortex.find_similar_code(code, "python")
        assert [c.id for c in result.chunks] == [chunk.id]


# ==================================================================
# Working memory
# ==================================================================


class TestWorkingMemory:
    @pytest.mark.asyncio
    async def test_file_context(self, cortex: CortexAsync):
        stored = await cortex.store_file_context(PATH, SAMPLE_SOURCE, sample_tree())
        restored = await cortex.get_file_context(PATH)
        assert restored == stored
        assert [s.name for s in restored.classes] == ["UserService"]
        assert await cortex.cache.get_syntax_tree(PATH) == sample_tree()

    @pytest.mark.asyncio
    async def test_conversation(self, cortex: CortexAsync):
        await cortex.store_conversation("s1", {"role": "user", "content": "hi"})
        history = await cortex.store_conversation("s1", {"role": "agent", "content": "hello"})
        assert history.message_count == 2
        fetched = await cortex.get_conversation_history("s1")
        assert fetched is not None
        assert fetched.messages[1] == {"role": "agent", "content": "hello"}

    @pytest.mark.asyncio
    async def test_session_data(self, cortex: CortexAsync):
        await cortex.store_session_data("s1", {"task": "refactor"})
        assert await cortex.get_session_data("s1") == {"task": "refactor"}
        await cortex.clear_cache()
        assert await cortex.get_session_data("s1") is None

    @pytest.mark.asyncio
    async def test_explicit_writes_propagate_cache_errors(self, down_cortex: CortexAsync):
        with pytest.raises(CacheError):
            await down_cortex.store_session_data("s1", {})
        with pytest.raises(CacheError):
            await down_cortex.store_file_context(PATH, SAMPLE_SOURCE)
        with pytest.raises(CacheError):
            await down_cortex.clear_cache()

    @pytest.mark.asyncio
    async def test_reads_degrade_to_none(self, down_cortex: CortexAsync):
        assert await down_cortex.get_session_data("s1") is None
        assert await down_cortex.get_file_context(PATH) is None
        assert await down_cortex.get_conversation_history("s1") is None


# ==================================================================
# Change handling
# ==================================================================


class TestOnFileChange:
    @pytest.mark.asyncio
    async def test_invalidates_cached_file_state(self, cortex: CortexAsync):
        await cortex.store_file_context(PATH, SAMPLE_SOURCE, sample_tree())
        await cortex.on_file_change(PATH)
        assert await cortex.get_file_context(PATH) is None
        assert await cortex.cache.get_syntax_tree(PATH) is None

    @pytest.mark.asyncio
    async def test_rebuilds_graph_and_caches_tree(self, cortex: CortexAsync):
        await cortex.store_file_context(PATH, SAMPLE_SOURCE, sample_tree())
        await cortex.on_file_change(PATH, sample_tree())
        assert await cortex.graph.has_node(make_node_id(PATH))
        assert await cortex.cache.get_syntax_tree(PATH) == sample_tree()
        assert await cortex.get_file_context(PATH) is None

    @pytest.mark.asyncio
    async def test_reindexes_content(self, cortex: CortexAsync):
        await cortex.on_file_change(PATH, sample_tree(), SAMPLE_SOURCE)
        stats = await cortex.vector_store.stats()
        assert stats.total_chunks == 4

    @pytest.mark.asyncio
    async def test_works_without_cache(self, down_cortex: CortexAsync):
        await down_cortex.on_file_change(PATH, sample_tree(), SAMPLE_SOURCE)
        assert await down_cortex.graph.has_node(make_node_id(PATH))


class TestContextWithAst:
    @pytest.mark.asyncio
    async def test_merges_syntax_chunks(self, cortex: CortexAsync):
        await cortex.store_file_context(PATH, SAMPLE_SOURCE, sample_tree())
        chunks = await cortex.get_context_with_ast("format_name", "scriba", PATH)
        ids = {c.id for c in chunks}
        assert ids == {
            f"ast:{PATH}:method:__init__",
            f"ast:{PATH}:method:get_user",
            f"ast:{PATH}:function:format_name",
        }
        by_id = {c.id: c for c in chunks}
        assert by_id[f"ast:{PATH}:function:format_name"].content.startswith("def format_name")

    @pytest.mark.asyncio
    async def test_without_cached_tree(self, cortex: CortexAsync):
        assert await cortex.get_context_with_ast("format_name", "scriba", PATH) == []

    @pytest.mark.asyncio
    async def test_without_file(self, cortex: CortexAsync):
        chunk = await cortex.add_knowledge("plain knowledge")
        chunks = await cortex.get_context_with_ast("plain knowledge", "anyone")
        assert [c.id for c in chunks] == [chunk.id]


class TestComprehensiveContext:
    @pytest.mark.asyncio
    async def test_all_layers(self, cortex: CortexAsync):
        await cortex.on_file_change(PATH, sample_tree())
        context = await cortex.get_comprehensive_context(
            "user lookup", "anyone", PATH, include_impact_analysis=True
        )
        assert len(context.structural_context) == 6
        assert context.impact_analysis is not None
        assert context.impact_analysis.total_affected == 6

    @pytest.mark.asyncio
    async def test_unknown_file(self, cortex: CortexAsync):
        context = await cortex.get_comprehensive_context(
            "user lookup", "anyone", "/nope.py", include_impact_analysis=True
        )
        assert context.structural_context == ()
        assert context.impact_analysis is None


# ==================================================================
# Analysis
# ==================================================================


class TestAnalysis:
    @pytest.mark.asyncio
    async def test_change_impact(self, cortex: CortexAsync):
        await cortex.on_file_change(PATH, sample_tree())
        impact = await cortex.analyze_change_impact(PATH, "delete")
        assert impact.impact_analysis.change_type is ChangeType.DELETE
        assert impact.impact_analysis.total_affected == 6
        assert impact.impact_analysis.impact_score == 18
        assert impact.risk_level is RiskLevel.MEDIUM
        assert impact.recommendations == (
            "Deletion detected. Verify no critical dependencies will be broken.",
        )

    @pytest.mark.asyncio
    async def test_change_impact_unknown_file(self, cortex: CortexAsync):
        impact = await cortex.analyze_change_impact("/ghost.py", ChangeType.MODIFY)
        assert impact.impact_analysis.total_affected == 0
        assert impact.risk_level is RiskLevel.LOW
        assert impact.recommendations == ()

    @pytest.mark.asyncio
    async def test_analyze_code(self, cortex: CortexAsync):
        await cortex.store_file_context(PATH, SAMPLE_SOURCE)
        analysis = await cortex.analyze_code(PATH, sample_tree())
        counts = {c.type: c.count for c in analysis.architecture.components}
        assert counts[NodeType.CLASS] == 1
        assert analysis.semantic_analysis == ()
        assert analysis.recommendations == (
            "Consider adding more documentation and examples to improve code understanding.",
        )
        context = await cortex.get_file_context(PATH)
        assert context is not None
        assert context.content == SAMPLE_SOURCE
        assert [s.name for s in context.functions] == ["__init__", "get_user", "format_name"]

    @pytest.mark.asyncio
    async def test_architecture_and_dependencies(self, cortex: CortexAsync):
        await cortex.on_file_change(PATH, sample_tree())
        insights = await cortex.get_architecture_insights()
        assert sum(c.count for c in insights.components) == 7
        deps = await cortex.analyze_dependencies(make_node_id(PATH))
        assert len(deps.dependents) == 6
        assert deps.dependencies == ()

    @pytest.mark.asyncio
    async def test_suggest_refactoring(self, cortex: CortexAsync):
        plan = await cortex.suggest_refactoring("/ghost.py")
        assert len(plan.suggestions) == 2
        assert plan.complexity_reduction == 1.0
        assert plan.priority is RiskLevel.LOW

    @pytest.mark.asyncio
    async def test_suggest_refactoring_with_patterns(self, cortex: CortexAsync):
        meta = EmbeddingMetadata(
            source=Source.BEST_PRACTICES,
            language="python",
            tags={"architecture"},
            quality=90,
        )
        await cortex.add_knowledge("code refactoring patterns and best practices", meta)
        plan = await cortex.suggest_refactoring(PATH)
        assert "Apply established refactoring patterns from similar codebases." in plan.suggestions
        assert plan.priority is RiskLevel.MEDIUM


# ==================================================================
# Ingestion, stats and lifecycle
# ==================================================================


class TestIngestion:
    @pytest.mark.asyncio
    async def test_index_file_and_files(self, cortex: CortexAsync):
        ids = await cortex.index_file(PATH, SAMPLE_SOURCE, sample_tree(), quality=90)
        assert len(ids) == 4
        report = await cortex.index_files(
            [SourceFile(path="/a.md", content="alpha"), SourceFile(path="/b.md", content="beta")]
        )
        assert report.chunk_count == 2
        assert (await cortex.vector_store.stats()).total_chunks == 6


class TestSystemStats:
    @pytest.mark.asyncio
    async def test_combined_stats(self, cortex: CortexAsync):
        await cortex.add_knowledge("stat knowledge")
        await cortex.on_file_change(PATH, sample_tree())
        await cortex.retrieve_context("stat knowledge", "anyone")
        stats = await cortex.get_system_stats()
        assert stats.vector_stats.total_chunks == 1
        assert stats.model_info.name == "fake-test-model"
        assert stats.retrieval_stats.total_queries == 1
        assert stats.cache_stats is not None
        assert stats.graph_stats.total_nodes == 7
        assert stats.health is SystemHealth.POOR

    @pytest.mark.asyncio
    async def test_stats_without_cache(self, down_cortex: CortexAsync):
        stats = await down_cortex.get_system_stats()
        assert stats.cache_stats is None
        assert stats.health is SystemHealth.POOR


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_close_is_idempotent(self, provider: FakeProvider):
        cortex = CortexAsync(embedding_provider=provider)
        await cortex.initialize()
        await cortex.close()
        await cortex.close()
        assert provider.closed

    @pytest.mark.asyncio
    async def test_save_and_load(self, provider: FakeProvider, tmp_path: Path):
        config = CortexConfig(
            vectors=VectorStoreConfig(data_dir=str(tmp_path / "vectors")),
            graph=GraphConfig(database_url=f"sqlite+aiosqlite:///{tmp_path / 'graph.db'}"),
        )
        async with CortexAsync(config, embedding_provider=provider) as cortex:
            chunk = await cortex.add_knowledge("persisted knowledge")
            await cortex.on_file_change(PATH, sample_tree())

        async with CortexAsync(config, embedding_provider=FakeProvider()) as restored:
            await restored.load()
            assert await restored.vector_store.get(chunk.id) is not None
            assert await restored.graph.has_node(make_node_id(PATH, "class", "UserService"))
            result = await restored.retrieve_context("persisted knowledge", "anyone")
            assert [c.id for c in result.chunks] == [chunk.id]

    @pytest.mark.asyncio
    async def test_load_with_nothing_saved(self, provider: FakeProvider, tmp_path: Path):
        config = CortexConfig(
            vectors=VectorStoreConfig(data_dir=str(tmp_path / "empty")),
            graph=GraphConfig(database_url=f"sqlite+aiosqlite:///{tmp_path / 'empty.db'}"),
        )
        async with CortexAsync(config, embedding_provider=provider) as cortex:
            await cortex.load()
            assert (await cortex.graph.stats()).total_nodes == 0
