"""Async engine construction for the fleet record store.

``sqlite+aiosqlite://`` URLs open the single-file local store (see
:mod:`fleet_api.state.sqlite_adapter`); anything else is treated as a pooled
PostgreSQL (asyncpg) database.
"""

from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

logger = logging.getLogger(__name__)


def sqlite_path(database_url: str) -> str:
    """Return the file path of a SQLite URL, or ``:memory:`` when it has none."""
    if "///" not in database_url:
        return ":memory:"
    return database_url.split("///", 1)[1] or ":memory:"


def get_engine(
    database_url: str,
    pool_size: int = 10,
    max_overflow: int = 20,
) -> AsyncEngine:
    """Create the async engine for *database_url*.

    Parameters
    ----------
    database_url:
        SQLAlchemy URL; the scheme selects SQLite or PostgreSQL.
    pool_size, max_overflow:
        Connection pool sizing for PostgreSQL.  SQLite ignores both.
    """
    if database_url.startswith("sqlite"):
        from fleet_api.state.sqlite_adapter import get_local_engine

        return get_local_engine(sqlite_path(database_url))

    engine = create_async_engine(
        database_url,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_pre_ping=True,
        pool_recycle=3600,
        connect_args={"server_settings": {"statement_timeout": "30000"}},
    )
    logger.info("PostgreSQL engine created (pool_size=%d, max_overflow=%d)", pool_size, max_overflow)
    return engine
