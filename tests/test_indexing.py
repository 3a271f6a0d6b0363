"""Tests for KnowledgeIndexer — chunking, re-indexing and batch ingestion."""

from __future__ import annotations

import pytest
from _fakes import SAMPLE_SOURCE, FakeProvider, sample_tree

from cortex.embeddings import Embedder
from cortex.indexing import INDEX_ORIGIN, KnowledgeIndexer, SourceFile
from cortex.types import EmbeddingMetadata, Source, SyntaxNode
from cortex.vectors import LocalVectorStore


@pytest.fixture
def indexer(embedder: Embedder, vector_store: LocalVectorStore) -> KnowledgeIndexer:
    return KnowledgeIndexer(embedder, vector_store, batch_size=2, concurrency=2)


class TestAddKnowledge:
    @pytest.mark.asyncio
    async def test_stores_chunk(self, indexer: KnowledgeIndexer, vector_store: LocalVectorStore):
        meta = EmbeddingMetadata(source=Source.BEST_PRACTICES, tags={"architecture"})
        chunk = await indexer.add_knowledge("Prefer composition over inheritance", meta)
        assert chunk.id.startswith("chunk:")
        assert len(chunk.embedding) == vector_store.dimension
        stored = await vector_store.get(chunk.id)
        assert stored is not None
        assert stored.metadata.source is Source.BEST_PRACTICES

    @pytest.mark.asyncio
    async def test_same_content_overwrites(
        self, indexer: KnowledgeIndexer, vector_store: LocalVectorStore
    ):
        first = await indexer.add_knowledge("same text")
        second = await indexer.add_knowledge("same text")
        assert first.id == second.id
        assert len(vector_store) == 1


class TestIndexFile:
    @pytest.mark.asyncio
    async def test_one_chunk_per_declaration(
        self, indexer: KnowledgeIndexer, vector_store: LocalVectorStore
    ):
        ids = await indexer.index_file("/src/service.py", SAMPLE_SOURCE, sample_tree())
        assert ids == [
            "/src/service.py#class:UserService:3",
            "/src/service.py#method:__init__:4",
            "/src/service.py#method:get_user:7",
            "/src/service.py#function:format_name:11",
        ]
        method = await vector_store.get("/src/service.py#method:get_user:7")
        assert method is not None
        assert method.content == (
            "    def get_user(self, user_id):\n        return self.repo.find(user_id)"
        )
        assert method.metadata.function_name == "get_user"
        assert method.metadata.language == "python"
        assert method.metadata.extra["origin"] == INDEX_ORIGIN
        assert {"function", "code", "implementation"} <= method.metadata.tags

        cls = await vector_store.get("/src/service.py#class:UserService:3")
        assert cls is not None
        assert cls.metadata.class_name == "UserService"
        assert "class" in cls.metadata.tags

    @pytest.mark.asyncio
    async def test_whole_file_without_declarations(
        self, indexer: KnowledgeIndexer, vector_store: LocalVectorStore
    ):
        ids = await indexer.index_file("/README.md", "# Project\n\nSetup notes.", None)
        assert ids == ["/README.md#file"]
        chunk = await vector_store.get("/README.md#file")
        assert chunk is not None
        assert chunk.metadata.tags == frozenset({"file", "code"})

    @pytest.mark.asyncio
    async def test_blank_file_produces_nothing(self, indexer: KnowledgeIndexer):
        assert await indexer.index_file("/empty.py", "   \n", None) == []

    @pytest.mark.asyncio
    async def test_reindex_removes_stale_chunks(
        self, indexer: KnowledgeIndexer, vector_store: LocalVectorStore
    ):
        await indexer.index_file("/src/service.py", SAMPLE_SOURCE, sample_tree())
        smaller = SyntaxNode(
            type="module",
            children=(SyntaxNode(type="function", name="format_name", start_line=11, end_line=12),),
        )
        ids = await indexer.index_file("/src/service.py", SAMPLE_SOURCE, smaller)
        assert ids == ["/src/service.py#function:format_name:11"]
        assert vector_store.ids() == ids

    @pytest.mark.asyncio
    async def test_reindex_leaves_knowledge_alone(
        self, indexer: KnowledgeIndexer, vector_store: LocalVectorStore
    ):
        note = await indexer.add_knowledge(
            "service notes", EmbeddingMetadata(file_path="/src/service.py")
        )
        await indexer.index_file("/src/service.py", SAMPLE_SOURCE, sample_tree())
        await indexer.remove_file("/src/service.py")
        assert vector_store.ids() == [note.id]

    @pytest.mark.asyncio
    async def test_remove_file(self, indexer: KnowledgeIndexer, vector_store: LocalVectorStore):
        await indexer.index_file("/src/service.py", SAMPLE_SOURCE, sample_tree())
        assert await indexer.remove_file("/src/service.py") == 4
        assert len(vector_store) == 0


class _FlakyProvider(FakeProvider):
    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        if any("boom" in t for t in texts):
            raise RuntimeError("provider rejected input")
        return super().embed_batch(texts)


class TestIndexFiles:
    @pytest.mark.asyncio
    async def test_batches_and_reports(
        self, indexer: KnowledgeIndexer, vector_store: LocalVectorStore
    ):
        files = [SourceFile(path=f"/f{i}.txt", content=f"file number {i}") for i in range(5)]
        report = await indexer.index_files(files)
        assert sorted(report.indexed_files) == [f"/f{i}.txt" for i in range(5)]
        assert report.chunk_count == 5
        assert report.failures == {}
        assert len(vector_store) == 5

    @pytest.mark.asyncio
    async def test_failure_does_not_stop_batch(self, vector_store: LocalVectorStore):
        indexer = KnowledgeIndexer(Embedder(_FlakyProvider()), vector_store, batch_size=10)
        files = [
            SourceFile(path="/ok.txt", content="fine"),
            SourceFile(path="/bad.txt", content="boom"),
            SourceFile(path="/also-ok.txt", content="also fine"),
        ]
        report = await indexer.index_files(files)
        assert sorted(report.indexed_files) == ["/also-ok.txt", "/ok.txt"]
        assert report.failed_files == ["/bad.txt"]
        assert "provider rejected input" in report.failures["/bad.txt"]
        assert len(vector_store) == 2

    @pytest.mark.asyncio
    async def test_quality_carried_through(
        self, indexer: KnowledgeIndexer, vector_store: LocalVectorStore
    ):
        await indexer.index_files([SourceFile(path="/a.go", content="package a", quality=95)])
        chunk = await vector_store.get("/a.go#file")
        assert chunk is not None
        assert chunk.metadata.quality == 95
        assert chunk.metadata.language == "go"
