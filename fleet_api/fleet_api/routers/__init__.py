"""API router modules for the fleet back office."""

from __future__ import annotations

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

__all__ = [
    "alerts",
    "documents",
    "invoices",
    "line_items",
    "reconciliation",
    "service_types",
    "vehicles",
    "vendors",
]
