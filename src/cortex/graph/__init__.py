"""Structural memory — code nodes, relationships and impact analysis."""

from cortex.graph._rustworkx import RustworkxGraphStore
from cortex.graph.protocols import GraphStore, SupportsPersistence
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
    ImpactLevel,
    NodeType,
    RelationshipSummary,
    RelationshipType,
    make_node_id,
    map_node_type,
)

__all__ = [
    "AffectedNode",
    "ArchitectureAnalysis",
    "ChangeType",
    "CodeNode",
    "CodeRelationship",
    "ComponentSummary",
    "DependencyAnalysis",
    "Direction",
    "GraphStats",
    "GraphStore",
    "ImpactAnalysis",
    "ImpactLevel",
    "NodeType",
    "RelationshipSummary",
    "RelationshipType",
    "RustworkxGraphStore",
    "SupportsPersistence",
    "make_node_id",
    "map_node_type",
]
