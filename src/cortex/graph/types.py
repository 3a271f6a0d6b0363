"""Graph types — code nodes, relationships and derived analyses."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any

from cortex.types import utcnow


class NodeType(StrEnum):
    FILE = "file"
    FUNCTION = "function"
    CLASS = "class"
    VARIABLE = "variable"
    IMPORT = "import"
    EXPORT = "export"
    API_ENDPOINT = "api_endpoint"
    DATABASE_TABLE = "database_table"


class RelationshipType(StrEnum):
    IMPORTS = "IMPORTS"
    CALLS = "CALLS"
    INHERITS_FROM = "INHERITS_FROM"
    IMPLEMENTS = "IMPLEMENTS"
    REFERENCES_TABLE = "REFERENCES_TABLE"
    DEPENDS_ON = "DEPENDS_ON"
    USES = "USES"
    EXTENDS = "EXTENDS"


class ChangeType(StrEnum):
    MODIFY = "modify"
    DELETE = "delete"
    ADD = "add"


class ImpactLevel(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class Direction(StrEnum):
    INCOMING = "incoming"
    OUTGOING = "outgoing"
    BOTH = "both"


_NODE_TYPE_MAP: dict[str, NodeType] = {
    "function": NodeType.FUNCTION,
    "method": NodeType.FUNCTION,
    "component": NodeType.FUNCTION,
    "hook": NodeType.FUNCTION,
    "class": NodeType.CLASS,
    "interface": NodeType.CLASS,
    "variable": NodeType.VARIABLE,
    "import": NodeType.IMPORT,
    "export": NodeType.EXPORT,
}


def map_node_type(syntax_type: str) -> NodeType:
    """Graph node type for a parser label.  Unrecognised labels map to functions."""
    return _NODE_TYPE_MAP.get(syntax_type, NodeType.FUNCTION)


def make_node_id(file_path: str, node_type: str | None = None, name: str | None = None) -> str:
    """Deterministic node id.

    ``file:<path>`` for the file itself (no *node_type*),
    ``<path>:<type>:<name>`` for every tree node, whatever its label
    (``anonymous`` when unnamed).
    """
    if node_type is None:
        return f"file:{file_path}"
    return f"{file_path}:{node_type}:{name or 'anonymous'}"


@dataclass(frozen=True, slots=True)
class CodeNode:
    """A structural element of the codebase."""

    id: str
    type: NodeType
    name: str
    path: str | None = None
    language: str = "unknown"
    metadata: dict[str, Any] = field(default_factory=dict, compare=False)

    def __post_init__(self) -> None:
        if not isinstance(self.type, NodeType):
            object.__setattr__(self, "type", NodeType(self.type))


@dataclass(frozen=True, slots=True)
class CodeRelationship:
    """A directed, typed edge between two nodes."""

    type: RelationshipType
    source_id: str
    target_id: str
    properties: dict[str, Any] = field(default_factory=dict, compare=False)

    def __post_init__(self) -> None:
        if not isinstance(self.type, RelationshipType):
            object.__setattr__(self, "type", RelationshipType(self.type))


@dataclass(frozen=True, slots=True)
class AffectedNode:
    id: str
    type: NodeType
    name: str
    path: str | None
    impact_level: ImpactLevel


@dataclass(frozen=True, slots=True)
class ImpactAnalysis:
    """Nodes reached from a changed node, with per-node impact levels."""

    source_node_id: str
    change_type: ChangeType
    affected_nodes: tuple[AffectedNode, ...] = ()
    total_affected: int = 0
    impact_score: int = 0
    recommendations: tuple[str, ...] = ()

    @classmethod
    def empty(cls, source_node_id: str, change_type: ChangeType | str) -> ImpactAnalysis:
        return cls(source_node_id=source_node_id, change_type=ChangeType(change_type))


@dataclass(frozen=True, slots=True)
class ComponentSummary:
    type: NodeType
    count: int
    names: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class RelationshipSummary:
    type: RelationshipType
    count: int


@dataclass(frozen=True, slots=True)
class ArchitectureAnalysis:
    components: tuple[ComponentSummary, ...]
    relationships: tuple[RelationshipSummary, ...]
    complexity: float
    recommendations: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class DependencyAnalysis:
    dependencies: tuple[CodeNode, ...]
    dependents: tuple[CodeNode, ...]
    circular_dependencies: tuple[str, ...]
    recommendations: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class GraphStats:
    total_nodes: int
    total_relationships: int
    total_files: int
    last_updated: datetime = field(default_factory=utcnow)
