"""
Database session management.

Flow:
  1. get_db() opens an AsyncSession for the lifetime of one request.
  2. Services commit explicitly at the points where state must become
     visible to other requests (e.g. the PROCESSING row before OCR starts,
     the FAILED status before an error is re-raised).
  3. Any uncommitted work is rolled back when the request raises; the
     session is closed and the connection returned to the pool.

The engine is built lazily so importing this module never opens a
connection (tests swap in their own engine via dependency overrides).
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from functools import lru_cache
from typing import AsyncGenerator

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from intake.core.config import settings

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------

@lru_cache(maxsize=1)
def get_engine() -> AsyncEngine:
    kwargs: dict = {"echo": settings.db_echo_sql}
    if not settings.is_sqlite:
        kwargs.update(
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_pre_ping=True,          # detect stale connections before use
            pool_recycle=3600,           # recycle connections every hour
        )
    return create_async_engine(settings.database_url, **kwargs)


@lru_cache(maxsize=1)
def get_sessionmaker() -> async_sessionmaker[AsyncSession]:
    # expire_on_commit=False keeps ORM objects usable after commit
    return async_sessionmaker(
        bind=get_engine(),
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


# ---------------------------------------------------------------------------
# FastAPI dependency
# ---------------------------------------------------------------------------

async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency that yields a request-scoped database session.

    Usage in a route:
        @router.get("/documents")
        async def list_docs(db: AsyncSession = Depends(get_db)): ...
    """
    async with get_sessionmaker()() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


# ---------------------------------------------------------------------------
# Worker session (no request context)
# ---------------------------------------------------------------------------

def build_worker_engine() -> AsyncEngine:
    """
    Engine without a connection pool. Each Celery task runs in its own
    event loop, and pooled asyncpg connections cannot cross loops.
    """
    return create_async_engine(
        settings.database_url,
        echo=settings.db_echo_sql,
        poolclass=NullPool,
    )


@asynccontextmanager
async def session_scope(engine: AsyncEngine | None = None) -> AsyncGenerator[AsyncSession, None]:
    """
    Standalone session for background jobs (Celery worker, scripts).
    Commit points are owned by the caller, exactly as in request handlers.
    """
    factory = (
        async_sessionmaker(bind=engine, expire_on_commit=False, autoflush=False)
        if engine is not None
        else get_sessionmaker()
    )
    async with factory() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


# ---------------------------------------------------------------------------
# Schema bootstrap + health
# ---------------------------------------------------------------------------

async def init_models(engine: AsyncEngine | None = None) -> None:
    """Create all tables that do not exist yet."""
    from intake.models.documents import Base

    engine = engine or get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database schema ensured")


async def check_db_health() -> dict:
    """Ping the database; used by /ready endpoint."""
    try:
        async with get_engine().connect() as conn:
            await conn.execute(text("SELECT 1"))
        return {"status": "ok"}
    except Exception as exc:
        logger.error("DB health check failed: %s", exc)
        return {"status": "error", "detail": str(exc)}
