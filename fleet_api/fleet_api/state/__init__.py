"""Record store for fleet entities (PostgreSQL or SQLite)."""

from fleet_api.state.database import get_engine
from fleet_api.state.repository import (
    AlertRepository,
    DocumentRepository,
    InvoiceRepository,
    LineItemRepository,
    ServiceTypeRepository,
    VehicleRepository,
    VendorRepository,
)

__all__ = [
    "AlertRepository",
    "DocumentRepository",
    "InvoiceRepository",
    "LineItemRepository",
    "ServiceTypeRepository",
    "VehicleRepository",
    "VendorRepository",
    "get_engine",
]
