"""Fixtures running the SQLAlchemy repository against an in-memory SQLite database."""

from __future__ import annotations

from typing import AsyncIterator

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from services.result_engine_service.implementations.result_repository_postgres_impl import (
    ResultRepositoryPostgresImpl,
)
from services.result_engine_service.startup_setup import initialize_database_schema


@pytest.fixture
async def engine() -> AsyncIterator[AsyncEngine]:
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await initialize_database_schema(engine)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
def sql_repository(session_factory: async_sessionmaker) -> ResultRepositoryPostgresImpl:
    return ResultRepositoryPostgresImpl(session_factory)
