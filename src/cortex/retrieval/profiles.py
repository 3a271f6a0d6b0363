"""Per-agent relevance profiles.

A profile decides which retrieved chunks an agent gets to see and how its
convenience queries are phrased.  Profiles are plain data: look one up
with :func:`profile_for`; unknown agent types get :data:`DEFAULT_PROFILE`.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from cortex.types import Source

if TYPE_CHECKING:
    from cortex.types import ContextChunk

_CORE_LANGUAGES = frozenset({"javascript", "typescript", "python", "java", "go"})
_FUNCTION_NODES = frozenset({"function", "method"})
_CLASS_NODES = frozenset({"class", "interface"})


@dataclass(frozen=True, slots=True)
class RelevanceProfile:
    """Filter applied to candidate chunks for one agent type.

    Attributes:
        sources: Allowed chunk sources; ``None`` allows all.
        languages: Allowed languages; ``None`` allows all.
        tags: At least one must be present on the chunk; empty means no
            requirement.
        min_quality: Minimum ``metadata.quality``.
        node_types: Syntax-node labels the agent cares about when
            syntax-tree chunks are mixed in; ``None`` means all.
        query_template: Phrasing of :meth:`CortexAsync.get_agent_context`
            queries, formatted with ``subject`` and ``language``.
    """

    sources: frozenset[Source] | None = None
    languages: frozenset[str] | None = None
    tags: frozenset[str] = frozenset()
    min_quality: float = 50.0
    node_types: frozenset[str] | None = None
    query_template: str = "{subject}"

    def accepts(self, chunk: ContextChunk) -> bool:
        meta = chunk.metadata
        if self.sources is not None and meta.source not in self.sources:
            return False
        if self.languages is not None and meta.language not in self.languages:
            return False
        if self.tags and not (self.tags & meta.tags):
            return False
        return meta.quality >= self.min_quality


DEFAULT_PROFILE = RelevanceProfile()

AGENT_PROFILES: dict[str, RelevanceProfile] = {
    "architectus": RelevanceProfile(
        sources=frozenset({Source.WORKSPACE, Source.BEST_PRACTICES}),
        languages=_CORE_LANGUAGES,
        tags=frozenset({"architecture", "design-patterns", "structure", "blueprint"}),
        min_quality=70,
        node_types=_CLASS_NODES,
        query_template="architecture patterns and design principles for: {subject}",
    ),
    "scriba": RelevanceProfile(
        sources=frozenset(Source),
        languages=_CORE_LANGUAGES,
        tags=frozenset({"implementation", "code", "function", "class", "api"}),
        min_quality=60,
        node_types=_FUNCTION_NODES,
        query_template="code implementation examples in {language} for: {subject}",
    ),
    "auditor": RelevanceProfile(
        sources=frozenset({Source.WORKSPACE, Source.BEST_PRACTICES}),
        languages=_CORE_LANGUAGES,
        tags=frozenset({"quality", "security", "performance", "testing", "review"}),
        min_quality=80,
        node_types=_FUNCTION_NODES,
        query_template="code quality and best practices for: {subject}",
    ),
    "genesis": RelevanceProfile(
        sources=frozenset({Source.WORKSPACE, Source.DOCUMENTATION}),
        languages=_CORE_LANGUAGES,
        tags=frozenset({"requirements", "analysis", "planning", "frontend", "ui"}),
        min_quality=65,
        query_template="frontend and UI patterns for: {subject}",
    ),
    "executor": RelevanceProfile(
        sources=frozenset({Source.WORKSPACE, Source.DOCUMENTATION}),
        languages=_CORE_LANGUAGES,
        tags=frozenset({"deployment", "build", "test", "ci-cd", "automation"}),
        min_quality=70,
        query_template="deployment and automation for: {subject}",
    ),
    "prometheus": RelevanceProfile(
        sources=frozenset(Source),
        languages=_CORE_LANGUAGES,
        tags=frozenset({"management", "coordination", "workflow", "planning"}),
        min_quality=75,
        query_template="project management and coordination for: {subject}",
    ),
}


def profile_for(agent_type: str) -> RelevanceProfile:
    return AGENT_PROFILES.get(agent_type, DEFAULT_PROFILE)
