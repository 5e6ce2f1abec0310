"""Shared fixtures for fleet API tests.

Provides an in-memory SQLite session, seed helpers for the reference data
every line-item test needs, and a FastAPI app/client bound to that session.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from datetime import date
from typing import Any

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from fleet_api.config import FleetSettings
from fleet_api.dependencies import get_db_session, get_settings, get_vin_decoder
from fleet_api.main import create_app
from fleet_api.schemas import LineItemInput, LineItemRecord
from fleet_api.services.line_item_service import LineItemService
from fleet_api.services.vin_decoder import VinDecoderClient
from fleet_api.state.repository import (
    InvoiceRepository,
    ServiceTypeRepository,
    VehicleRepository,
    VendorRepository,
)
from fleet_api.state.sqlite_adapter import enable_sqlite_savepoints
from fleet_api.state.tables import Base, InvoiceTable, ServiceTypeTable, VehicleTable, VendorTable

# ---------------------------------------------------------------------------
# Settings fixture
# ---------------------------------------------------------------------------


@pytest.fixture()
def test_settings() -> FleetSettings:
    """Return a settings object suitable for testing."""
    return FleetSettings(
        debug=True,
        database_url="sqlite+aiosqlite:///:memory:",
        platform_env="dev",
        cors_origins=["http://localhost:3000"],
        tax_rate=0.07,
        totals_max_attempts=3,
        vin_decoder_url="http://vpic.test/api/vehicles",
    )


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture()
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """A fresh in-memory database per test."""
    db_engine = create_async_engine("sqlite+aiosqlite://", poolclass=StaticPool)
    enable_sqlite_savepoints(db_engine, wal=False)
    async with db_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield db_engine
    await db_engine.dispose()


@pytest_asyncio.fixture()
async def session(engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    factory = async_sessionmaker(engine, expire_on_commit=False)
    async with factory() as db_session:
        yield db_session


# ---------------------------------------------------------------------------
# Seed helpers
# ---------------------------------------------------------------------------


async def seed_vehicle(session: AsyncSession, **overrides: Any) -> VehicleTable:
    values: dict[str, Any] = {
        "vin": "1FTFW1ET5DFC10312",
        "make": "Ford",
        "year": 2019,
        "status": "Active",
    }
    values.update(overrides)
    return await VehicleRepository(session).create(values)


async def seed_vendor(session: AsyncSession, **overrides: Any) -> VendorTable:
    values: dict[str, Any] = {"name": "Main Street Garage", "status": "Active"}
    values.update(overrides)
    return await VendorRepository(session).create(values)


async def seed_service_type(session: AsyncSession, **overrides: Any) -> ServiceTypeTable:
    values: dict[str, Any] = {"name": "Oil change", "status": "Active", "type": "Service"}
    values.update(overrides)
    return await ServiceTypeRepository(session).create(values)


async def seed_invoice(
    session: AsyncSession,
    vehicle: VehicleTable,
    vendor: VendorTable,
    **overrides: Any,
) -> InvoiceTable:
    values: dict[str, Any] = {
        "vehicle_id": vehicle.id,
        "vendor_id": vendor.id,
        "invoice_number": "INV-1",
        "order_start_date": date(2025, 3, 1),
        "upload_date": date(2025, 3, 2),
        "status": "Draft",
        "sub_total": 0.0,
        "tax": 0.0,
        "invoice_amount": 0.0,
    }
    values.update(overrides)
    return await InvoiceRepository(session).create(values)


async def add_line_item(session: AsyncSession, fleet: dict[str, str], **fields: Any) -> LineItemRecord:
    """Create a line item through the service so every consistency rule runs."""
    values: dict[str, Any] = {
        "service_type_id": fleet["service_type_id"],
        "invoice_id": fleet["invoice_id"],
        "type": "Parts",
        "unit_price": 50.0,
        "quantity": 1,
    }
    values.update(fields)
    return await LineItemService(session).create(LineItemInput(**values))


@pytest_asyncio.fixture()
async def fleet(session: AsyncSession) -> dict[str, str]:
    """Ids of one committed vehicle, vendor, service type and Draft invoice."""
    vehicle = await seed_vehicle(session)
    vendor = await seed_vendor(session)
    service_type = await seed_service_type(session)
    invoice = await seed_invoice(session, vehicle, vendor, invoice_number="INV-1001")
    await session.commit()
    return {
        "vehicle_id": vehicle.id,
        "vendor_id": vendor.id,
        "service_type_id": service_type.id,
        "invoice_id": invoice.id,
    }


# ---------------------------------------------------------------------------
# FastAPI app and client (async httpx)
# ---------------------------------------------------------------------------


@pytest.fixture()
def mock_vin_decoder() -> VinDecoderClient:
    """Return a decoder client whose upstream always answers 404."""

    def _handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404)

    return VinDecoderClient("http://vpic.test/api/vehicles", transport=httpx.MockTransport(_handler))


@pytest.fixture()
def app(test_settings: FleetSettings, session: AsyncSession, mock_vin_decoder: VinDecoderClient):
    """Create a FastAPI app bound to the test session.

    Each request runs against the shared in-memory session; commit/rollback
    mirror the production dependency.
    """
    application = create_app()

    async def _override_session() -> AsyncGenerator[AsyncSession, None]:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise

    application.dependency_overrides[get_db_session] = _override_session
    application.dependency_overrides[get_settings] = lambda: test_settings
    application.dependency_overrides[get_vin_decoder] = lambda: mock_vin_decoder
    return application


@pytest_asyncio.fixture()
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Yield an async httpx client bound to the test app.

    Uses ASGITransport so requests go directly to the ASGI app without
    opening a real TCP socket.
    """
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
