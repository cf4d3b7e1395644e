from __future__ import annotations

from collections.abc import AsyncIterator, Iterator

import pytest
import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine

from sqla_includes import sqla_cache_clear

from .models import SEED, metadata


@pytest.fixture(scope="session")
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture(scope="session")
def db_path(tmp_path_factory: pytest.TempPathFactory) -> str:
    return str(tmp_path_factory.mktemp("db") / "test.db")


# Sync


@pytest.fixture(scope="session")
def sync_engine(db_path: str) -> Iterator[sa.Engine]:
    engine = sa.create_engine(f"sqlite:///{db_path}")
    metadata.create_all(engine)
    with engine.begin() as conn:
        for table, rows in SEED.items():
            conn.execute(table.insert(), rows)
    yield engine
    metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def connection(sync_engine: sa.Engine) -> Iterator[sa.Connection]:
    with sync_engine.connect() as conn:
        trans = conn.begin()
        yield conn
        trans.rollback()


# Async


@pytest.fixture(scope="session")
def engine(sync_engine: sa.Engine, db_path: str) -> AsyncEngine:
    # tables and seed rows come from the sync engine sharing the same file
    return create_async_engine(f"sqlite+aiosqlite:///{db_path}", echo=False)


@pytest.fixture
async def async_connection(engine: AsyncEngine) -> AsyncIterator[AsyncConnection]:
    async with engine.connect() as conn:
        trans = await conn.begin()
        yield conn
        await trans.rollback()
    # pooled aiosqlite connections are bound to the event loop of one test
    await engine.dispose()


@pytest.fixture(autouse=True)
def clear_lru_caches() -> Iterator[None]:
    yield
    sqla_cache_clear()
