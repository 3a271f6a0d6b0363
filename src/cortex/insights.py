"""Cross-layer judgements: change risk, refactoring priority, system health."""

from __future__ import annotations

from typing import TYPE_CHECKING

from cortex.types import RiskLevel, SystemHealth

if TYPE_CHECKING:
    from collections.abc import Sequence

    from cortex.graph.types import ArchitectureAnalysis, ImpactAnalysis
    from cortex.types import ContextChunk


def risk_level(impact: ImpactAnalysis) -> RiskLevel:
    score, affected = impact.impact_score, impact.total_affected
    if score > 50 or affected > 30:
        return RiskLevel.CRITICAL
    if score > 25 or affected > 15:
        return RiskLevel.HIGH
    if score > 10 or affected > 5:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def change_recommendations(impact: ImpactAnalysis, risk: RiskLevel) -> list[str]:
    recommendations: list[str] = []
    if risk in (RiskLevel.CRITICAL, RiskLevel.HIGH):
        recommendations.append(
            "High-risk change detected. Implement comprehensive testing before deployment."
        )
        recommendations.append("Consider implementing feature flags for gradual rollout.")
    if impact.total_affected > 20:
        recommendations.append(
            "Large impact scope. Consider breaking changes into smaller, incremental updates."
        )
    return recommendations


def code_recommendations(
    semantic: Sequence[ContextChunk], architecture: ArchitectureAnalysis
) -> list[str]:
    recommendations: list[str] = []
    if not semantic:
        recommendations.append(
            "Consider adding more documentation and examples to improve code understanding."
        )
    if architecture.complexity > 8:
        recommendations.append(
            "High complexity detected. "
            "Consider breaking down large components into smaller, focused modules."
        )
    return recommendations


def refactoring_suggestions(
    context: Sequence[ContextChunk], impact: ImpactAnalysis
) -> list[str]:
    suggestions: list[str] = []
    if impact.impact_score > 30:
        suggestions.append(
            "High impact changes detected. Consider incremental refactoring approach."
        )
    if context:
        suggestions.append("Apply established refactoring patterns from similar codebases.")
    suggestions.append("Extract common functionality into reusable utilities.")
    suggestions.append("Consider applying SOLID principles to improve code structure.")
    return suggestions


def complexity_reduction(suggestions: Sequence[str]) -> float:
    """Estimated reduction: half a point per suggestion, capped at 5."""
    return min(len(suggestions) * 0.5, 5.0)


def refactoring_priority(impact: ImpactAnalysis, reduction: float) -> RiskLevel:
    if impact.impact_score > 40 or reduction > 3:
        return RiskLevel.HIGH
    if impact.impact_score > 20 or reduction > 1:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def system_health(hit_rate: float, total_nodes: int, total_relationships: int) -> SystemHealth:
    if hit_rate > 0.8 and total_nodes > 100 and total_relationships > 200:
        return SystemHealth.EXCELLENT
    if hit_rate > 0.6 and total_nodes > 50 and total_relationships > 100:
        return SystemHealth.GOOD
    if hit_rate > 0.4 and total_nodes > 20 and total_relationships > 50:
        return SystemHealth.FAIR
    return SystemHealth.POOR
