"""Shared pytest fixtures for API and database integration tests.

The suite runs against a throwaway SQLite file unless DATABASE_URL is
already set, so it must be configured before any ``app`` module is imported.
"""

import os
import tempfile
from typing import AsyncGenerator

_TEST_DB_DIR = tempfile.mkdtemp(prefix="urlshortener-tests-")
os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///{_TEST_DB_DIR}/test.db")
os.environ.setdefault("APP_ENV", "test")

import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession  # noqa: E402

from app.database import Base, async_session, engine  # noqa: E402
from app.dependencies import ServiceManager, get_service_manager  # noqa: E402
from app.main import app  # noqa: E402


@pytest_asyncio.fixture(scope="function")
async def database() -> AsyncGenerator[None, None]:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    # connections are bound to this test's event loop
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(database: None) -> AsyncGenerator[AsyncSession, None]:
    async with async_session() as session:
        yield session


@pytest_asyncio.fixture(scope="function")
async def service_manager(database: None) -> AsyncGenerator[ServiceManager, None]:
    manager = await get_service_manager()
    yield manager
    await manager.cleanup()


@pytest_asyncio.fixture(scope="function")
async def client(service_manager: ServiceManager) -> AsyncGenerator[AsyncClient, None]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
