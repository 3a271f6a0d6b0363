"""RustworkxGraphStore — rustworkx-backed structural memory."""

from __future__ import annotations

import json
import logging
from collections import Counter, deque
from dataclasses import replace
from pathlib import PurePosixPath
from typing import TYPE_CHECKING, Any

import rustworkx

from cortex.exceptions import GraphError
from cortex.graph.analysis import (
    architecture_recommendations,
    classify_impact,
    complexity_score,
    dependency_recommendations,
    detect_circular,
    impact_recommendations,
    impact_score,
)
from cortex.graph.types import (
    AffectedNode,
    ArchitectureAnalysis,
    ChangeType,
    CodeNode,
    CodeRelationship,
    ComponentSummary,
    DependencyAnalysis,
    Direction,
    GraphStats,
    ImpactAnalysis,
    NodeType,
    RelationshipSummary,
    RelationshipType,
    make_node_id,
    map_node_type,
)
from cortex.languages import language_for_path

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from cortex.types import SyntaxNode

logger = logging.getLogger(__name__)


class RustworkxGraphStore:
    """Directed multigraph of code nodes keyed by node id.

    Wraps a ``rustworkx.PyDiGraph``.  Parallel edges between two nodes are
    allowed as long as their relationship types differ; re-creating an
    existing ``(source, target, type)`` edge merges its properties.

    Implements the ``GraphStore`` and ``SupportsPersistence`` protocols;
    persistence uses the ``cortex_nodes`` / ``cortex_edges`` tables.
    """

    def __init__(self, *, max_depth: int = 3) -> None:
        self._max_depth = max_depth
        self._graph: rustworkx.PyDiGraph = rustworkx.PyDiGraph(multigraph=True)
        self._id_to_idx: dict[str, int] = {}
        self._idx_to_id: dict[int, str] = {}

    # ------------------------------------------------------------------
    # Node operations
    # ------------------------------------------------------------------

    async def upsert_node(self, node: CodeNode) -> None:
        """Add *node*, or replace the stored node with the same id."""
        self._upsert_node(node)

    async def get_node(self, node_id: str) -> CodeNode | None:
        idx = self._id_to_idx.get(node_id)
        return None if idx is None else self._graph[idx]

    async def has_node(self, node_id: str) -> bool:
        return node_id in self._id_to_idx

    async def remove_node(self, node_id: str) -> bool:
        """Remove a node and its incident edges.  Returns whether it existed."""
        return self._remove_node(node_id)

    def nodes(self) -> list[CodeNode]:
        return [self._graph[idx] for idx in self._graph.node_indices()]

    # ------------------------------------------------------------------
    # Relationship operations
    # ------------------------------------------------------------------

    async def upsert_relationship(self, relationship: CodeRelationship) -> None:
        """Add a relationship between two existing nodes.

        Raises :class:`GraphError` (not recoverable) if an endpoint is
        missing.
        """
        self._upsert_relationship(relationship)

    async def relationships(self, node_id: str | None = None) -> list[CodeRelationship]:
        """All relationships, or those incident to *node_id*."""
        if node_id is None:
            return [data for _src, _tgt, data in self._graph.weighted_edge_list()]
        idx = self._id_to_idx.get(node_id)
        if idx is None:
            return []
        outgoing = [data for _s, _t, data in self._graph.out_edges(idx)]
        incoming = [data for src, _t, data in self._graph.in_edges(idx) if src != idx]
        return outgoing + incoming

    # ------------------------------------------------------------------
    # Query methods
    # ------------------------------------------------------------------

    async def dependencies(
        self, node_id: str, direction: Direction | str = Direction.BOTH
    ) -> list[CodeNode]:
        """Direct neighbours of *node_id*.

        ``outgoing`` — nodes this node points to; ``incoming`` — nodes
        pointing at it; ``both`` — the union.  Each neighbour is listed
        once.
        """
        idx = self._id_to_idx.get(node_id)
        if idx is None:
            return []
        return [self._graph[i] for i in self._neighbours(idx, Direction(direction))]

    async def impact_analysis(
        self, node_id: str, change_type: ChangeType | str
    ) -> ImpactAnalysis:
        """Breadth-first reach of a change, up to ``max_depth`` hops.

        Follows relationships in both directions and excludes the start
        node.  Cycle-safe.
        """
        change_type = ChangeType(change_type)
        idx = self._id_to_idx.get(node_id)
        if idx is None:
            return ImpactAnalysis.empty(node_id, change_type)

        visited: set[int] = {idx}
        queue: deque[tuple[int, int]] = deque([(idx, 0)])
        affected: list[AffectedNode] = []
        while queue:
            current, depth = queue.popleft()
            if depth >= self._max_depth:
                continue
            for neighbour in self._neighbours(current, Direction.BOTH):
                if neighbour in visited:
                    continue
                visited.add(neighbour)
                node: CodeNode = self._graph[neighbour]
                affected.append(
                    AffectedNode(
                        id=node.id,
                        type=node.type,
                        name=node.name,
                        path=node.path,
                        impact_level=classify_impact(node.type, change_type),
                    )
                )
                queue.append((neighbour, depth + 1))

        logger.debug("Impact of %s on %s reaches %d nodes", change_type, node_id, len(affected))
        return ImpactAnalysis(
            source_node_id=node_id,
            change_type=change_type,
            affected_nodes=tuple(affected),
            total_affected=len(affected),
            impact_score=impact_score(affected),
            recommendations=tuple(impact_recommendations(affected, change_type)),
        )

    async def architecture_analysis(self) -> ArchitectureAnalysis:
        names_by_type: dict[NodeType, list[str]] = {}
        for node in self.nodes():
            names_by_type.setdefault(node.type, []).append(node.name)
        components = sorted(
            (
                ComponentSummary(type=t, count=len(names), names=tuple(names))
                for t, names in names_by_type.items()
            ),
            key=lambda c: c.count,
            reverse=True,
        )

        histogram = Counter(
            data.type for _src, _tgt, data in self._graph.weighted_edge_list()
        )
        relationships = [
            RelationshipSummary(type=t, count=n) for t, n in histogram.most_common()
        ]

        complexity = complexity_score(components, relationships)
        return ArchitectureAnalysis(
            components=tuple(components),
            relationships=tuple(relationships),
            complexity=complexity,
            recommendations=tuple(architecture_recommendations(components, complexity)),
        )

    async def analyze_dependencies(self, node_id: str) -> DependencyAnalysis:
        dependencies = await self.dependencies(node_id, Direction.OUTGOING)
        dependents = await self.dependencies(node_id, Direction.INCOMING)
        circular = detect_circular(dependencies, dependents)
        return DependencyAnalysis(
            dependencies=tuple(dependencies),
            dependents=tuple(dependents),
            circular_dependencies=tuple(circular),
            recommendations=tuple(dependency_recommendations(dependencies, dependents, circular)),
        )

    async def build_from_syntax_tree(self, file_path: str, tree: SyntaxNode) -> list[str]:
        """(Re)build the subgraph of *file_path* from its syntax tree.

        Every tree node becomes a :class:`CodeNode` with a ``DEPENDS_ON``
        edge to the file node (``belongs_to``) and to its parent tree node
        (``child_of``).  Nodes of this file that no longer appear in the
        tree are removed.  Returns the ids of the file's tree nodes.
        """
        language = language_for_path(file_path)
        file_id = make_node_id(file_path)
        self._upsert_node(
            CodeNode(
                id=file_id,
                type=NodeType.FILE,
                name=PurePosixPath(file_path).name or file_path,
                path=file_path,
                language=language,
                metadata={"size": 0},
            )
        )

        built: list[str] = []
        self._add_tree_node(tree, file_path, file_id, language, None, built)

        keep = {file_id, *built}
        stale = [
            n.id for n in self.nodes() if n.path == file_path and n.id not in keep
        ]
        for node_id in stale:
            self._remove_node(node_id)
        logger.debug(
            "Built %d nodes for %s (%d stale removed)", len(built), file_path, len(stale)
        )
        return built

    # ------------------------------------------------------------------
    # Graph-level
    # ------------------------------------------------------------------

    @property
    def node_count(self) -> int:
        return self._graph.num_nodes()

    @property
    def edge_count(self) -> int:
        return self._graph.num_edges()

    async def stats(self) -> GraphStats:
        return GraphStats(
            total_nodes=self.node_count,
            total_relationships=self.edge_count,
            total_files=sum(1 for n in self.nodes() if n.type is NodeType.FILE),
        )

    async def close(self) -> None:
        """No-op for in-memory graph."""

    def __repr__(self) -> str:
        return f"RustworkxGraphStore(nodes={self.node_count}, edges={self.edge_count})"

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    async def to_sql(self, session: AsyncSession) -> None:
        """Persist the graph to ``cortex_nodes`` / ``cortex_edges``.

        Full-sync strategy: upsert all current rows, delete rows that are
        no longer present in the in-memory graph.  Caller manages the
        transaction (commit/rollback).
        """
        from sqlalchemy import select

        from cortex.models import CodeEdgeRecord, CodeNodeRecord
        from cortex.models.edges import make_edge_id

        node_rows = {
            node.id: CodeNodeRecord(
                id=node.id,
                type=str(node.type),
                name=node.name,
                path=node.path,
                language=node.language,
                metadata_json=json.dumps(node.metadata),
            )
            for node in self.nodes()
        }
        edge_rows: dict[str, CodeEdgeRecord] = {}
        for _src, _tgt, rel in self._graph.weighted_edge_list():
            edge_id = make_edge_id(rel.source_id, rel.target_id, str(rel.type))
            edge_rows[edge_id] = CodeEdgeRecord(
                id=edge_id,
                source_id=rel.source_id,
                target_id=rel.target_id,
                type=str(rel.type),
                properties_json=json.dumps(rel.properties),
            )

        for model, rows in ((CodeEdgeRecord, edge_rows), (CodeNodeRecord, node_rows)):
            result = await session.execute(select(model.id))  # type: ignore[arg-type]
            stale_ids = {row[0] for row in result.all()} - set(rows)
            for stale_id in stale_ids:
                existing = await session.get(model, stale_id)
                if existing:
                    await session.delete(existing)

        for node_row in node_rows.values():
            await session.merge(node_row)
        for edge_row in edge_rows.values():
            await session.merge(edge_row)

        await session.flush()
        logger.info("Persisted graph: %d nodes, %d edges", len(node_rows), len(edge_rows))

    async def from_sql(self, session: AsyncSession) -> None:
        """Load graph state from the database, replacing in-memory state.

        Edges whose endpoints were not persisted are skipped.
        """
        from sqlalchemy import select

        from cortex.models import CodeEdgeRecord, CodeNodeRecord

        self._graph = rustworkx.PyDiGraph(multigraph=True)
        self._id_to_idx = {}
        self._idx_to_id = {}

        result = await session.execute(select(CodeNodeRecord))
        for row in result.scalars().all():
            self._upsert_node(
                CodeNode(
                    id=row.id,
                    type=NodeType(row.type),
                    name=row.name,
                    path=row.path,
                    language=row.language,
                    metadata=json.loads(row.metadata_json),
                )
            )

        result = await session.execute(select(CodeEdgeRecord))
        for edge_row in result.scalars().all():
            endpoints = (edge_row.source_id, edge_row.target_id)
            if any(end not in self._id_to_idx for end in endpoints):
                logger.warning("Skipping dangling edge %s", edge_row.id)
                continue
            self._upsert_relationship(
                CodeRelationship(
                    type=RelationshipType(edge_row.type),
                    source_id=edge_row.source_id,
                    target_id=edge_row.target_id,
                    properties=json.loads(edge_row.properties_json),
                )
            )
        logger.info("Loaded graph: %d nodes, %d edges", self.node_count, self.edge_count)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _upsert_node(self, node: CodeNode) -> None:
        idx = self._id_to_idx.get(node.id)
        if idx is not None:
            self._graph[idx] = node
            return
        idx = self._graph.add_node(node)
        self._id_to_idx[node.id] = idx
        self._idx_to_id[idx] = node.id

    def _remove_node(self, node_id: str) -> bool:
        idx = self._id_to_idx.pop(node_id, None)
        if idx is None:
            return False
        self._graph.remove_node(idx)
        del self._idx_to_id[idx]
        return True

    def _upsert_relationship(self, relationship: CodeRelationship) -> None:
        missing = [
            end
            for end in (relationship.source_id, relationship.target_id)
            if end not in self._id_to_idx
        ]
        if missing:
            msg = f"Relationship endpoint not found: {missing[0]!r}"
            raise GraphError(
                msg,
                recoverable=False,
                context={"type": str(relationship.type), "missing": missing},
            )

        src_idx = self._id_to_idx[relationship.source_id]
        tgt_idx = self._id_to_idx[relationship.target_id]
        edge_idx = self._find_edge_idx(src_idx, tgt_idx, relationship.type)
        if edge_idx is None:
            self._graph.add_edge(src_idx, tgt_idx, relationship)
            return
        existing: CodeRelationship = self._graph.get_edge_data_by_index(edge_idx)
        merged = replace(existing, properties={**existing.properties, **relationship.properties})
        self._graph.update_edge_by_index(edge_idx, merged)

    def _find_edge_idx(
        self, src_idx: int, tgt_idx: int, edge_type: RelationshipType
    ) -> int | None:
        """Return the index of the *edge_type* edge between two nodes, or ``None``."""
        for edge_idx in self._graph.edge_indices_from_endpoints(src_idx, tgt_idx):
            if self._graph.get_edge_data_by_index(edge_idx).type == edge_type:
                return edge_idx
        return None

    def _neighbours(self, idx: int, direction: Direction) -> list[int]:
        seen: dict[int, None] = {}
        if direction in (Direction.OUTGOING, Direction.BOTH):
            seen.update(dict.fromkeys(self._graph.successor_indices(idx)))
        if direction in (Direction.INCOMING, Direction.BOTH):
            seen.update(dict.fromkeys(self._graph.predecessor_indices(idx)))
        seen.pop(idx, None)
        return list(seen)

    def _add_tree_node(
        self,
        node: SyntaxNode,
        file_path: str,
        file_id: str,
        language: str,
        parent_id: str | None,
        built: list[str],
    ) -> None:
        node_id = make_node_id(file_path, node.type, node.name)
        self._upsert_node(
            CodeNode(
                id=node_id,
                type=map_node_type(node.type),
                name=node.name or "anonymous",
                path=file_path,
                language=language,
                metadata={
                    "start_line": node.start_line,
                    "end_line": node.end_line,
                    **node.metadata,
                },
            )
        )
        built.append(node_id)
        self._upsert_relationship(
            CodeRelationship(
                type=RelationshipType.DEPENDS_ON,
                source_id=node_id,
                target_id=file_id,
                properties={"relationship": "belongs_to"},
            )
        )
        if parent_id is not None:
            self._upsert_relationship(
                CodeRelationship(
                    type=RelationshipType.DEPENDS_ON,
                    source_id=node_id,
                    target_id=parent_id,
                    properties={"relationship": "child_of"},
                )
            )
        for child in node.children:
            self._add_tree_node(child, file_path, file_id, language, node_id, built)
