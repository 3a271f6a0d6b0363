"""SQLModel tables used to persist the structural graph."""

from cortex.models.edges import CodeEdgeRecord
from cortex.models.nodes import CodeNodeRecord

__all__ = ["CodeEdgeRecord", "CodeNodeRecord"]
