"""Helpers over caller-supplied syntax trees.

Cortex does not parse source code itself: agents hand over a
:class:`~cortex.types.SyntaxNode` tree produced by their own parser.
This module extracts the declarations a :class:`~cortex.types.FileContext` lists, and turns tree
nodes into synthetic context chunks.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from cortex.graph.types import map_node_type
from cortex.languages import language_for_path
from cortex.types import (
    ContextChunk,
    EmbeddingMetadata,
    FileContext,
    Source,
    Symbol,
    utcnow,
)

if TYPE_CHECKING:
    from collections.abc import Collection
    from datetime import datetime

    from cortex.types import SyntaxNode

FUNCTION_TYPES = frozenset({"function", "method"})
CLASS_TYPES = frozenset({"class", "interface"})

SYNTAX_CHUNK_QUALITY = 80.0


def extract_symbols(tree: SyntaxNode | None, types: Collection[str]) -> tuple[Symbol, ...]:
    """Declarations in *tree* whose parser label is one of *types*, in tree order."""
    if tree is None:
        return ()
    return tuple(
        Symbol(name=n.name, type=n.type, start_line=n.start_line, end_line=n.end_line)
        for n in tree.walk()
        if n.type in types
    )


def build_file_context(
    file_path: str,
    content: str,
    tree: SyntaxNode | None,
    *,
    last_modified: datetime | None = None,
) -> FileContext:
    return FileContext(
        file_path=file_path,
        content=content,
        syntax_tree=tree,
        functions=extract_symbols(tree, FUNCTION_TYPES),
        classes=extract_symbols(tree, CLASS_TYPES),
        imports=extract_symbols(tree, ("import",)),
        exports=extract_symbols(tree, ("export",)),
        last_modified=last_modified or utcnow(),
        size=len(content),
        language=language_for_path(file_path),
    )


def source_lines(content: str, start_line: int, end_line: int) -> str:
    """Lines ``start_line..end_line`` (1-indexed, inclusive) of *content*."""
    if start_line < 1 or end_line < start_line:
        return ""
    return "\n".join(content.splitlines()[start_line - 1 : end_line])


def _describe(node: SyntaxNode, file_path: str) -> str:
    return f"{node.type} {node.name or 'anonymous'} ({file_path}:{node.start_line}-{node.end_line})"


def syntax_chunks(
    tree: SyntaxNode,
    file_path: str,
    query: str,
    *,
    node_types: Collection[str] | None = None,
    content: str | None = None,
) -> list[ContextChunk]:
    """Synthetic chunks for named tree nodes relevant to *query*.

    A node is relevant when its name and the query contain one another
    (case-insensitive), or when its parser label is in *node_types*
    (``None`` accepts every label).  Chunks carry no embedding and are
    tagged ``ast``.
    """
    query_lower = query.lower()
    language = language_for_path(file_path)
    chunks: list[ContextChunk] = []
    for node in tree.walk():
        if not node.name:
            continue
        name_lower = node.name.lower()
        name_match = name_lower in query_lower or query_lower in name_lower
        type_match = node_types is None or node.type in node_types
        if not (name_match or type_match):
            continue

        text = source_lines(content, node.start_line, node.end_line) if content else ""
        metadata = EmbeddingMetadata(
            source=Source.WORKSPACE,
            language=language,
            file_path=file_path,
            function_name=node.name if node.type not in CLASS_TYPES else None,
            class_name=node.name if node.type in CLASS_TYPES else None,
            tags=frozenset({"ast", "code", str(map_node_type(node.type))}),
            quality=SYNTAX_CHUNK_QUALITY,
        )
        chunks.append(
            ContextChunk(
                id=f"ast:{file_path}:{node.type}:{node.name}",
                content=text or _describe(node, file_path),
                metadata=metadata,
            )
        )
    return chunks
