"""Shared fixtures for Cortex tests."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from _fakes import FAKE_DIM, FakeClock, FakeProvider
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel

import cortex.models  # noqa: F401  (registers the graph tables)
from cortex.cache import CacheStore, MemoryCacheBackend
from cortex.embeddings import Embedder
from cortex.vectors import LocalVectorStore

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from sqlalchemy.ext.asyncio import AsyncEngine


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def embedder(provider: FakeProvider) -> Embedder:
    return Embedder(provider)


@pytest.fixture
def vector_store() -> LocalVectorStore:
    return LocalVectorStore(dimension=FAKE_DIM)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def memory_backend(clock: FakeClock) -> MemoryCacheBackend:
    return MemoryCacheBackend(max_memory=1024 * 1024, clock=clock)


@pytest.fixture
def cache_store(memory_backend: MemoryCacheBackend, clock: FakeClock) -> CacheStore:
    return CacheStore(memory_backend, ttl=60, max_memory=1024 * 1024, clock=clock)


@pytest.fixture
async def async_engine() -> AsyncIterator[AsyncEngine]:
    """Async in-memory SQLite engine with all tables created."""
    eng = create_async_engine("sqlite+aiosqlite://", echo=False)
    async with eng.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
async def async_session(async_engine: AsyncEngine) -> AsyncIterator[AsyncSession]:
    """Async SQLModel session bound to the in-memory engine."""
    factory = async_sessionmaker(
        async_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    async with factory() as session:
        yield session
