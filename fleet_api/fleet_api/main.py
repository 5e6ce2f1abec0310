"""FastAPI application entry-point for the fleet back office."""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from fleet_api.config import FleetSettings, PlatformEnv, load_fleet_settings
from fleet_api.dependencies import (
    dispose_engine,
    dispose_vin_decoder,
    init_engine,
    init_vin_decoder,
)
from fleet_api.errors import (
    ConcurrentModificationError,
    ConflictError,
    RecordNotFoundError,
    RecordValidationError,
    VinDecodeError,
)
from fleet_api.middleware.json_formatter import install_json_logging
from fleet_api.middleware.logging import CORRELATION_HEADER, RequestLoggingMiddleware
from fleet_api.routers import (
    alerts,
    documents,
    invoices,
    line_items,
    reconciliation,
    service_types,
    vehicles,
    vendors,
)

logger = logging.getLogger(__name__)

API_VERSION = "0.1.0"


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application startup / shutdown lifecycle.

    On startup:
    - Switch to JSON logs when ``structured_logging`` is enabled.
    - Initialise the async database engine.
    - Create tables in dev or local SQLite mode (production should use
      migrations).
    - Initialise the VIN decoder HTTP client.

    On shutdown:
    - Close the VIN decoder client.
    - Dispose the database engine connection pool.
    """
    settings: FleetSettings = load_fleet_settings()

    if settings.structured_logging:
        install_json_logging()
        logger.info("Structured JSON logging enabled")

    engine = init_engine(settings)
    is_local = settings.database_url.startswith("sqlite")
    logger.info(
        "Database engine initialised (%s, %s)",
        settings.database_url[:40] + "...",
        "local" if is_local else "postgres",
    )

    if settings.platform_env == PlatformEnv.DEV or is_local:
        from fleet_api.state.sqlite_adapter import create_local_tables

        await create_local_tables(engine)
        logger.info("Database tables ensured (%s)", "local SQLite" if is_local else "dev auto-migration")

    init_vin_decoder(settings)
    logger.info("VIN decoder client initialised (%s)", settings.vin_decoder_url)

    yield

    await dispose_vin_decoder()
    await dispose_engine()
    logger.info("Application shutdown complete")


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------


def _error(status_code: int, exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


def create_app() -> FastAPI:
    """Construct and configure the FastAPI application."""
    settings = load_fleet_settings()

    app = FastAPI(
        title="Fleet API",
        description="Fleet maintenance back office: vehicles, vendors, invoices, line items and alerts.",
        version=API_VERSION,
        lifespan=lifespan,
    )

    # -- Middleware (outermost first) ----------------------------------------

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", CORRELATION_HEADER, "Accept"],
        expose_headers=[CORRELATION_HEADER],
    )
    app.add_middleware(RequestLoggingMiddleware)

    # -- Routers -------------------------------------------------------------

    app.include_router(vehicles.router, prefix="/api/v1")
    app.include_router(vendors.router, prefix="/api/v1")
    app.include_router(service_types.router, prefix="/api/v1")
    app.include_router(invoices.router, prefix="/api/v1")
    app.include_router(line_items.router, prefix="/api/v1")
    app.include_router(alerts.router, prefix="/api/v1")
    app.include_router(documents.router, prefix="/api/v1")
    app.include_router(reconciliation.router, prefix="/api/v1")

    # -- Exception handlers --------------------------------------------------

    @app.exception_handler(RecordValidationError)
    async def validation_error_handler(request: Request, exc: RecordValidationError) -> JSONResponse:
        logger.info("Validation failed on %s: %s", request.url.path, exc)
        return _error(400, exc)

    @app.exception_handler(RecordNotFoundError)
    async def not_found_handler(request: Request, exc: RecordNotFoundError) -> JSONResponse:
        return _error(404, exc)

    @app.exception_handler(ConflictError)
    async def conflict_handler(request: Request, exc: ConflictError) -> JSONResponse:
        logger.info("Conflict on %s: %s", request.url.path, exc)
        return _error(409, exc)

    @app.exception_handler(ConcurrentModificationError)
    async def concurrent_modification_handler(request: Request, exc: ConcurrentModificationError) -> JSONResponse:
        logger.warning("Concurrent modification on %s: %s", request.url.path, exc)
        return _error(409, exc)

    @app.exception_handler(VinDecodeError)
    async def vin_decode_error_handler(request: Request, exc: VinDecodeError) -> JSONResponse:
        return _error(502, exc)

    @app.exception_handler(SQLAlchemyError)
    async def sqlalchemy_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
        logger.error("Database error: %s", exc, exc_info=True)
        return JSONResponse(status_code=500, content={"detail": "Internal database error"})

    return app


# Module-level application instance used by ``uvicorn fleet_api.main:app``.
app = create_app()
