"""Database configuration and session management for the URL shortener.

This module provides SQLAlchemy async engine setup, session management,
and database lifecycle operations. PostgreSQL (asyncpg) is the production
backend; any SQLAlchemy async dialect with unique-key support works.

Flow Diagram — Database Operations
=================================
::
    ┌─────────────┐           ┌─────────────┐
    │  Application│           │ Background  │
    │  Request    │           │ visit write │
    └──────┬──────┘           └──────┬──────┘
           ▼                         ▼
    ┌─────────────┐           ┌─────────────┐
    │ get_db()     │           │ async_      │
    │ dependency  │           │ session()   │
    └──────┬──────┘           └──────┬──────┘
           ▼                         ▼
    ┌───────────────────────────────────────┐
    │ Shared bounded pool (DB_POOL_SIZE)     │
    └───────────────────────────────────────┘

How to Use
===========
**Step 1 — Initialize on startup**::
    await init_db()  # Creates tables

**Step 2 — Use in FastAPI endpoints**::
    @app.get("/urls/{code}")
    async def get_url(code: str, db: AsyncSession = Depends(get_db)):
        return await db.get(UrlMapping, code)

**Step 3 — Open a session outside a request**::
    async with async_session() as session:
        session.add(Visit(...))
        await session.commit()

**Step 4 — Cleanup on shutdown**::
    await close_db()

Key Behaviours
===============
- Async sessions are automatically closed after each request.
- Request sessions and background sessions share one bounded pool.
- Tables are created automatically on application startup.
- Engine is properly disposed on application shutdown.

Classes:
    Base:  SQLAlchemy declarative base for all models.

Functions:
    get_db():  FastAPI dependency for database sessions.
    init_db():  Creates all tables on startup.
    ping_db():  Round-trips ``SELECT 1`` for health checks.
    close_db():  Disposes the engine on shutdown.
"""

from collections.abc import AsyncGenerator
from typing import Any

from sqlalchemy import text
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from app.config import Settings, get_settings

__all__ = ["Base", "async_session", "close_db", "engine", "get_db", "init_db", "ping_db"]

settings = get_settings()


def _engine_options(config: Settings) -> dict[str, Any]:
    options: dict[str, Any] = {
        "echo": config.APP_ENV == "development",
        "pool_pre_ping": True,
    }
    url = make_url(config.DATABASE_URL)
    if url.get_backend_name() != "sqlite":
        options["pool_size"] = config.DB_POOL_SIZE
        options["max_overflow"] = config.DB_MAX_OVERFLOW
    if url.get_driver_name() == "asyncpg" and config.DB_STATEMENT_TIMEOUT_SECONDS:
        options["connect_args"] = {"command_timeout": config.DB_STATEMENT_TIMEOUT_SECONDS}
    return options


engine = create_async_engine(settings.DATABASE_URL, **_engine_options(settings))

async_session = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    pass


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with async_session() as session:
        try:
            yield session
        finally:
            await session.close()


async def init_db() -> None:
    # models must be imported so their tables are registered on Base.metadata
    import app.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def ping_db(session: AsyncSession) -> None:
    await session.execute(text("SELECT 1"))


async def close_db() -> None:
    await engine.dispose()
