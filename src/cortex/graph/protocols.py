"""Graph protocols — runtime-checkable interface for structural memory.

Follows the same pattern as the vector and cache layers: an async-first
``@runtime_checkable`` protocol, with persistence offered as an opt-in
capability detected via ``isinstance()``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from cortex.graph.types import (
        ArchitectureAnalysis,
        ChangeType,
        CodeNode,
        CodeRelationship,
        DependencyAnalysis,
        Direction,
        GraphStats,
        ImpactAnalysis,
    )
    from cortex.types import SyntaxNode


@runtime_checkable
class GraphStore(Protocol):
    """Typed code nodes and relationships plus the analyses over them.

    Queries about a node that does not exist return empty results.
    Creating a relationship whose endpoint is missing raises
    :class:`~cortex.exceptions.GraphError` (not recoverable).
    """

    # ------------------------------------------------------------------
    # Nodes and relationships
    # ------------------------------------------------------------------

    async def upsert_node(self, node: CodeNode) -> None: ...
    async def get_node(self, node_id: str) -> CodeNode | None: ...
    async def has_node(self, node_id: str) -> bool: ...
    async def remove_node(self, node_id: str) -> bool: ...
    async def upsert_relationship(self, relationship: CodeRelationship) -> None: ...
    async def relationships(self, node_id: str | None = None) -> list[CodeRelationship]: ...

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def dependencies(
        self, node_id: str, direction: Direction | str = ...
    ) -> list[CodeNode]: ...
    async def impact_analysis(
        self, node_id: str, change_type: ChangeType | str
    ) -> ImpactAnalysis: ...
    async def architecture_analysis(self) -> ArchitectureAnalysis: ...
    async def analyze_dependencies(self, node_id: str) -> DependencyAnalysis: ...
    async def build_from_syntax_tree(self, file_path: str, tree: SyntaxNode) -> list[str]: ...

    # ------------------------------------------------------------------
    # Graph-level
    # ------------------------------------------------------------------

    async def stats(self) -> GraphStats: ...
    async def close(self) -> None: ...


@runtime_checkable
class SupportsPersistence(Protocol):
    """Opt-in: save/load the graph through an async SQLAlchemy session."""

    async def to_sql(self, session: AsyncSession) -> None: ...
    async def from_sql(self, session: AsyncSession) -> None: ...
