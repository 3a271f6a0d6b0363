"""EmbeddingProvider protocol — the contract every embedding backend meets."""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class EmbeddingProvider(Protocol):
    """Turns text into vectors of a fixed length.

    ``embed`` and ``embed_batch`` may be coroutines or plain methods; the
    :class:`~cortex.embeddings.Embedder` awaits whichever it gets.  A
    batch result must line up one-to-one with its input.  Providers that
    hold connections may also define an async ``close()``.
    """

    async def embed(self, text: str) -> list[float]: ...

    async def embed_batch(self, texts: list[str]) -> list[list[float]]: ...

    @property
    def dimensions(self) -> int: ...

    @property
    def model_name(self) -> str: ...
