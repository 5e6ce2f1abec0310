"""FastAPI dependency injection for database sessions, the VIN decoder and settings."""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from fleet_api.config import FleetSettings, load_fleet_settings
from fleet_api.services.vin_decoder import VinDecoderClient
from fleet_api.state.database import get_engine

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

_settings_cache: FleetSettings | None = None


def get_settings() -> FleetSettings:
    """Return the cached :class:`FleetSettings` singleton."""
    global _settings_cache  # noqa: PLW0603
    if _settings_cache is None:
        _settings_cache = load_fleet_settings()
    return _settings_cache


SettingsDep = Annotated[FleetSettings, Depends(get_settings)]

# ---------------------------------------------------------------------------
# Database session
# ---------------------------------------------------------------------------

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def init_engine(settings: FleetSettings) -> AsyncEngine:
    """Create and cache the global async engine."""
    global _engine, _session_factory  # noqa: PLW0603
    _engine = get_engine(settings.database_url)
    _session_factory = async_sessionmaker(_engine, expire_on_commit=False)
    return _engine


async def dispose_engine() -> None:
    """Dispose the global engine pool (call during shutdown)."""
    global _engine, _session_factory  # noqa: PLW0603
    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_factory = None


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield a request-scoped ``AsyncSession``.

    The session commits on clean exit and rolls back on exception, so a
    request that raises leaves no partial primary write behind.  Side
    effects that failed inside their own savepoint have already been rolled
    back individually and do not affect the commit.
    """
    if _session_factory is None:
        raise RuntimeError(
            "Database engine has not been initialised. Ensure init_engine() is called during application startup."
        )
    session = _session_factory()
    try:
        yield session
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    finally:
        await session.close()


SessionDep = Annotated[AsyncSession, Depends(get_db_session)]

# ---------------------------------------------------------------------------
# VIN decoder client
# ---------------------------------------------------------------------------

_vin_decoder: VinDecoderClient | None = None


def init_vin_decoder(settings: FleetSettings) -> VinDecoderClient:
    """Create the process-wide VIN decoder client."""
    global _vin_decoder  # noqa: PLW0603
    _vin_decoder = VinDecoderClient(
        base_url=settings.vin_decoder_url,
        timeout=settings.vin_decoder_timeout,
    )
    return _vin_decoder


async def dispose_vin_decoder() -> None:
    """Close the VIN decoder's HTTP connection pool."""
    global _vin_decoder  # noqa: PLW0603
    if _vin_decoder is not None:
        await _vin_decoder.close()
        _vin_decoder = None


def get_vin_decoder() -> VinDecoderClient:
    if _vin_decoder is None:
        raise RuntimeError("VIN decoder client has not been initialised.")
    return _vin_decoder


VinDecoderDep = Annotated[VinDecoderClient, Depends(get_vin_decoder)]
