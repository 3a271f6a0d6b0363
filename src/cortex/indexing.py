"""KnowledgeIndexer — turns source files and notes into stored chunks."""

from __future__ import annotations

import asyncio
import hashlib
import logging
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING

from cortex.languages import language_for_path
from cortex.syntax import CLASS_TYPES, FUNCTION_TYPES, source_lines
from cortex.types import ContextChunk, EmbeddingMetadata, Source

if TYPE_CHECKING:
    from collections.abc import Iterable

    from cortex.embeddings import Embedder
    from cortex.types import SyntaxNode
    from cortex.vectors import VectorStore

logger = logging.getLogger(__name__)

# ``metadata.extra`` marker on chunks owned by file indexing.
INDEX_ORIGIN = "file-index"


@dataclass(frozen=True, slots=True)
class SourceFile:
    """One file handed to :meth:`KnowledgeIndexer.index_files`."""

    path: str
    content: str
    syntax_tree: SyntaxNode | None = None
    quality: float = 70.0


@dataclass(slots=True)
class IngestionReport:
    """Outcome of a batch ingestion.  Failed files do not stop the batch."""

    indexed_files: list[str] = field(default_factory=list)
    chunk_count: int = 0
    failures: dict[str, str] = field(default_factory=dict)

    @property
    def failed_files(self) -> list[str]:
        return list(self.failures)


@dataclass(frozen=True, slots=True)
class _Piece:
    chunk_id: str
    content: str
    function_name: str | None
    class_name: str | None
    tags: frozenset[str]


def _content_id(content: str) -> str:
    return "chunk:" + hashlib.sha256(content.encode()).hexdigest()[:32]


class KnowledgeIndexer:
    """Embeds content and writes it to the vector store.

    Files are split into one chunk per function or class (by line span of
    the supplied syntax tree) or, without declarations, one whole-file
    chunk.  Chunk ids derive from the file path and the declaration, so
    re-indexing a file replaces its chunks; chunks of declarations that
    disappeared are deleted.
    """

    def __init__(
        self,
        embedder: Embedder,
        store: VectorStore,
        *,
        batch_size: int = 50,
        concurrency: int = 5,
    ) -> None:
        self._embedder = embedder
        self._store = store
        self._batch_size = batch_size
        self._concurrency = concurrency

    async def add_knowledge(
        self, content: str, metadata: EmbeddingMetadata | None = None
    ) -> ContextChunk:
        """Embed and store a free-standing piece of knowledge.

        The chunk id is derived from the content, so adding the same text
        twice overwrites rather than duplicates.
        """
        vector = await self._embedder.embed(content)
        chunk = ContextChunk(
            id=_content_id(content),
            content=content,
            embedding=tuple(vector),
            metadata=metadata or EmbeddingMetadata(),
        )
        await self._store.insert(chunk)
        logger.debug("Added knowledge chunk %s", chunk.id)
        return chunk

    async def index_file(
        self,
        path: str,
        content: str,
        syntax_tree: SyntaxNode | None = None,
        *,
        quality: float = 70.0,
    ) -> list[str]:
        """(Re)index *path*.  Returns the ids of the chunks now stored for it."""
        pieces = _split(path, content, syntax_tree)
        vectors = await self._embedder.embed_batch([p.content for p in pieces])

        language = language_for_path(path)
        base = EmbeddingMetadata(
            source=Source.WORKSPACE,
            language=language,
            file_path=path,
            quality=quality,
            extra={"origin": INDEX_ORIGIN},
        )
        for piece, vector in zip(pieces, vectors, strict=True):
            await self._store.insert(
                ContextChunk(
                    id=piece.chunk_id,
                    content=piece.content,
                    embedding=tuple(vector),
                    metadata=replace(
                        base,
                        function_name=piece.function_name,
                        class_name=piece.class_name,
                        tags=piece.tags,
                        extra=dict(base.extra),
                    ),
                )
            )

        kept = {p.chunk_id for p in pieces}
        removed = await self._remove_indexed(path, keep=kept)
        logger.debug("Indexed %s: %d chunks, %d stale removed", path, len(pieces), removed)
        return [p.chunk_id for p in pieces]

    async def remove_file(self, path: str) -> int:
        """Delete every indexed chunk of *path*.  Returns how many were removed."""
        return await self._remove_indexed(path, keep=frozenset())

    async def index_files(self, files: Iterable[SourceFile]) -> IngestionReport:
        """Index *files* in fixed-size batches.

        Within a batch, at most ``concurrency`` files are embedded at
        once.  A file that fails is logged and recorded in the report.
        """
        report = IngestionReport()
        batch: list[SourceFile] = []
        for source in files:
            batch.append(source)
            if len(batch) >= self._batch_size:
                await self._index_batch(batch, report)
                batch = []
        if batch:
            await self._index_batch(batch, report)

        logger.info(
            "Ingestion finished: %d files, %d chunks, %d failures",
            len(report.indexed_files),
            report.chunk_count,
            len(report.failures),
        )
        return report

    async def _index_batch(self, batch: list[SourceFile], report: IngestionReport) -> None:
        semaphore = asyncio.Semaphore(self._concurrency)

        async def run(source: SourceFile) -> list[str]:
            async with semaphore:
                return await self.index_file(
                    source.path, source.content, source.syntax_tree, quality=source.quality
                )

        results = await asyncio.gather(*(run(s) for s in batch), return_exceptions=True)
        for source, result in zip(batch, results, strict=True):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                logger.warning("Failed to index %s", source.path, exc_info=result)
                report.failures[source.path] = str(result)
                continue
            report.indexed_files.append(source.path)
            report.chunk_count += len(result)

    async def _remove_indexed(self, path: str, *, keep: frozenset[str] | set[str]) -> int:
        existing = await self._store.search_by_metadata(
            {"file_path": path, "origin": INDEX_ORIGIN}
        )
        removed = 0
        for chunk in existing:
            if chunk.id not in keep and await self._store.delete(chunk.id):
                removed += 1
        return removed


def _split(path: str, content: str, tree: SyntaxNode | None) -> list[_Piece]:
    pieces: list[_Piece] = []
    seen: set[str] = set()
    if tree is not None:
        for node in tree.walk():
            if node.type not in FUNCTION_TYPES and node.type not in CLASS_TYPES:
                continue
            text = source_lines(content, node.start_line, node.end_line)
            if not text.strip():
                continue
            is_class = node.type in CLASS_TYPES
            chunk_id = f"{path}#{node.type}:{node.name or 'anonymous'}:{node.start_line}"
            if chunk_id in seen:
                continue
            seen.add(chunk_id)
            pieces.append(
                _Piece(
                    chunk_id=chunk_id,
                    content=text,
                    function_name=None if is_class else node.name,
                    class_name=node.name if is_class else None,
                    tags=frozenset(
                        {"class" if is_class else "function", "code", "implementation"}
                    ),
                )
            )
    if not pieces and content.strip():
        pieces.append(
            _Piece(
                chunk_id=f"{path}#file",
                content=content,
                function_name=None,
                class_name=None,
                tags=frozenset({"file", "code"}),
            )
        )
    return pieces
