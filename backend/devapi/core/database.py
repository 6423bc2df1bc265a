"""
Async database engine, session factory, and ORM base.

Rules enforced:
  • Every DB call goes through AsyncSession (no sync, no raw SQL).
  • Sessions are request-scoped via FastAPI's Depends(get_db_session).
  • The engine and session factory live on app.state (see core.resources),
    never in module globals.
  • The declarative Base is shared across all models so Alembic can
    auto-detect schema changes from a single metadata object.
"""

from collections.abc import AsyncGenerator

from fastapi import Request
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from devapi.core.config import Settings


# ── Engine ──────────────────────────────────────────────────
def build_engine(settings: Settings) -> AsyncEngine:
    """
    Create the process-wide async engine.

    pool_pre_ping: drop stale connections before reuse
    echo: SQL logging - only in debug mode
    """
    return create_async_engine(
        settings.DATABASE_URL,
        echo=settings.DEBUG,
        pool_pre_ping=True,
    )


# ── Session factory ─────────────────────────────────────────
def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,  # avoid lazy-load issues after commit
    )


# ── ORM Base ────────────────────────────────────────────────
class Base(DeclarativeBase):
    """Shared declarative base for all SQLAlchemy models."""


# ── Dialect-aware INSERT … ON CONFLICT ──────────────────────
def upsert_insert(session: AsyncSession, model):  # type: ignore[no-untyped-def]
    """
    Return an INSERT construct that supports on_conflict_do_update /
    on_conflict_do_nothing for the session's dialect.

    Production runs on PostgreSQL; the test suite runs on SQLite.
    """
    if session.bind.dialect.name == "sqlite":
        return sqlite_insert(model)
    return pg_insert(model)


# ── Dependency ──────────────────────────────────────────────
async def get_db_session(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """
    Yield a scoped async session for one request.

    The session is committed by the caller (router/service);
    this generator only guarantees cleanup on exit.
    """
    session_factory = request.app.state.resources.session_factory
    async with session_factory() as session:
        try:
            yield session
        finally:
            await session.close()
