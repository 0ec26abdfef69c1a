"""Async SQLAlchemy engine, declarative base, and session factory.

Provides:
- LedgerBase: Declarative base for all ledger tables
- get_session(): Async generator yielding an AsyncSession (repository session factory)
- init_db() / close_db(): lifespan hooks
"""

from __future__ import annotations

from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from src.ledger.config import get_settings

# ── Module-level engine (lazy init) ────────────────────────────────────────

_engine: AsyncEngine | None = None


def get_engine() -> AsyncEngine:
    """Get or create the async engine singleton."""
    global _engine
    if _engine is None:
        settings = get_settings()
        _engine = create_async_engine(
            settings.DATABASE_URL,
            pool_size=20,
            max_overflow=10,
            pool_pre_ping=True,
            echo=False,
        )
    return _engine


# ── Declarative Base ────────────────────────────────────────────────────────


class LedgerBase(DeclarativeBase):
    """Base class for ledger models (organizations, sellers, sales, receivables, credentials)."""


# ── Session Factory ─────────────────────────────────────────────────────────


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield an AsyncSession bound to the ledger engine."""
    engine = get_engine()
    async with AsyncSession(engine, expire_on_commit=False) as session:
        yield session


# ── Database Initialization ─────────────────────────────────────────────────


async def init_db() -> None:
    """Create ledger tables if they don't exist.

    Production schemas are managed by Alembic; this keeps local development
    and fresh environments usable without running migrations first.
    """
    # Register models on the metadata before create_all
    import src.ledger.sales.models  # noqa: F401

    engine = get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(LedgerBase.metadata.create_all)


async def close_db() -> None:
    """Dispose of the engine and close all connections."""
    global _engine
    if _engine:
        await _engine.dispose()
        _engine = None
