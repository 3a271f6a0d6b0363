"""CodeEdgeRecord model — single table for all graph relationships."""

from __future__ import annotations

from datetime import UTC, datetime

from sqlmodel import Field, SQLModel


def make_edge_id(source_id: str, target_id: str, edge_type: str) -> str:
    """Deterministic id: one row per ``(source, target, type)``."""
    return f"{source_id}-[{edge_type}]->{target_id}"


class CodeEdgeRecord(SQLModel, table=True):
    """A directed, typed relationship between two persisted nodes.

    Edge types are the :class:`~cortex.graph.types.RelationshipType`
    values, e.g. ``"IMPORTS"``, ``"CALLS"``, ``"DEPENDS_ON"``.
    """

    __tablename__ = "cortex_edges"

    id: str = Field(primary_key=True)
    source_id: str = Field(index=True)
    target_id: str = Field(index=True)
    type: str = Field(default="")
    properties_json: str = Field(default="{}")
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
