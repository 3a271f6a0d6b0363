"""CodeNodeRecord model — one row per graph node."""

from __future__ import annotations

from datetime import UTC, datetime

from sqlmodel import Field, SQLModel


class CodeNodeRecord(SQLModel, table=True):
    """A persisted :class:`~cortex.graph.types.CodeNode`."""

    __tablename__ = "cortex_nodes"

    id: str = Field(primary_key=True)
    type: str = Field(index=True)
    name: str = Field(default="")
    path: str | None = Field(default=None, index=True)
    language: str = Field(default="unknown")
    metadata_json: str = Field(default="{}")
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
