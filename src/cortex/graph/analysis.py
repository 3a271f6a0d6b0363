"""Rules applied to graph query results: impact levels, scores, advice."""

from __future__ import annotations

import math
from typing import TYPE_CHECKING

from cortex.graph.types import ChangeType, ImpactLevel, NodeType

if TYPE_CHECKING:
    from collections.abc import Sequence

    from cortex.graph.types import (
        AffectedNode,
        CodeNode,
        ComponentSummary,
        RelationshipSummary,
    )

IMPACT_WEIGHTS: dict[ImpactLevel, int] = {
    ImpactLevel.LOW: 1,
    ImpactLevel.MEDIUM: 3,
    ImpactLevel.HIGH: 5,
    ImpactLevel.CRITICAL: 10,
}

_DELETE_LEVELS = {
    NodeType.FILE: ImpactLevel.CRITICAL,
    NodeType.CLASS: ImpactLevel.HIGH,
    NodeType.FUNCTION: ImpactLevel.MEDIUM,
}
_MODIFY_LEVELS = {
    NodeType.FUNCTION: ImpactLevel.MEDIUM,
    NodeType.CLASS: ImpactLevel.HIGH,
}


def classify_impact(node_type: NodeType | str, change_type: ChangeType | str) -> ImpactLevel:
    """Impact level of a change on a reached node of *node_type*."""
    node_type = NodeType(node_type)
    change_type = ChangeType(change_type)
    if change_type is ChangeType.DELETE:
        return _DELETE_LEVELS.get(node_type, ImpactLevel.LOW)
    if change_type is ChangeType.MODIFY:
        return _MODIFY_LEVELS.get(node_type, ImpactLevel.LOW)
    return ImpactLevel.LOW


def impact_score(affected: Sequence[AffectedNode]) -> int:
    return sum(IMPACT_WEIGHTS[node.impact_level] for node in affected)


def impact_recommendations(
    affected: Sequence[AffectedNode], change_type: ChangeType | str
) -> list[str]:
    if not affected:
        return []
    recommendations: list[str] = []
    if len(affected) > 10:
        recommendations.append(
            "High impact change detected. Consider breaking this into smaller changes."
        )
    if any(node.impact_level is ImpactLevel.CRITICAL for node in affected):
        recommendations.append("Critical nodes will be affected. Ensure comprehensive testing.")
    if ChangeType(change_type) is ChangeType.DELETE:
        recommendations.append(
            "Deletion detected. Verify no critical dependencies will be broken."
        )
    return recommendations


def complexity_score(
    components: Sequence[ComponentSummary], relationships: Sequence[RelationshipSummary]
) -> float:
    """``(relationships / components) * ln(components)``, components floored at 1."""
    total_components = max(sum(c.count for c in components), 1)
    total_relationships = sum(r.count for r in relationships)
    return (total_relationships / total_components) * math.log(total_components)


def architecture_recommendations(
    components: Sequence[ComponentSummary], complexity: float
) -> list[str]:
    counts = {c.type: c.count for c in components}
    recommendations: list[str] = []
    if complexity > 10:
        recommendations.append(
            "High architectural complexity detected. Consider modularization."
        )
    if counts.get(NodeType.FUNCTION, 0) > counts.get(NodeType.CLASS, 0) * 5:
        recommendations.append(
            "High function-to-class ratio. "
            "Consider grouping related functions into classes."
        )
    if counts.get(NodeType.IMPORT, 0) > 50:
        recommendations.append(
            "High number of imports. Consider dependency management and bundling."
        )
    return recommendations


def detect_circular(
    dependencies: Sequence[CodeNode], dependents: Sequence[CodeNode]
) -> list[str]:
    """Ids present both among a node's dependencies and its dependents."""
    dependent_ids = {d.id for d in dependents}
    return [d.id for d in dependencies if d.id in dependent_ids]


def dependency_recommendations(
    dependencies: Sequence[CodeNode],
    dependents: Sequence[CodeNode],
    circular: Sequence[str],
) -> list[str]:
    recommendations: list[str] = []
    if circular:
        recommendations.append(
            "Circular dependencies detected. "
            "Consider refactoring to break dependency cycles."
        )
    if len(dependencies) > 20:
        recommendations.append(
            "High number of dependencies. Consider dependency injection or modularization."
        )
    if len(dependents) > 10:
        recommendations.append(
            "Many components depend on this. Consider interface segregation."
        )
    return recommendations
