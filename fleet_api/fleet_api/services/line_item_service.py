"""Invoice line items.

Every write is delegated to the consistency orchestrator, which prices the
item, enforces the invoice mutability gate, keeps invoice totals current and
runs the line-item alert rules.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from fleet_api.config import FleetSettings
from fleet_api.enums import LineItemType
from fleet_api.errors import ConflictError, RecordNotFoundError
from fleet_api.schemas import ImportResult, LineItemInput, LineItemRecord, Page
from fleet_api.services.records import build_orchestrator, column_values, contains_any, criteria_of, import_each
from fleet_api.state.repository import LineItemRepository
from fleet_api.state.tables import LineItemTable

logger = logging.getLogger(__name__)

# Computed by the engine or copied from the invoice.
DERIVED_FIELDS = frozenset({"total_price", "vehicle_id", "vendor_id"})


class LineItemService:
    """CRUD, lookups and bulk import for line items."""

    def __init__(self, session: AsyncSession, *, settings: FleetSettings | None = None) -> None:
        self._session = session
        self._line_items = LineItemRepository(session)
        self._consistency = build_orchestrator(session, settings)

    async def create(self, payload: LineItemInput) -> LineItemRecord:
        if payload.id and await self._line_items.get(payload.id) is not None:
            raise ConflictError(f"LineItem with id '{payload.id}' already exists")
        values = self._values(payload, partial=False)
        outcome = await self._consistency.create_line_item(values)
        return LineItemRecord.model_validate(outcome.record)

    async def get_by_id(self, line_item_id: str) -> LineItemRecord:
        row = await self._line_items.get(line_item_id)
        if row is None:
            raise RecordNotFoundError("LineItem", line_item_id)
        return LineItemRecord.model_validate(row)

    async def find(
        self,
        *,
        q: str | None = None,
        service_type_id: str | None = None,
        invoice_id: str | None = None,
        vehicle_id: str | None = None,
        type: LineItemType | None = None,
        taxable: bool | None = None,
        warranty: bool | None = None,
        min_unit_price: float | None = None,
        max_unit_price: float | None = None,
        min_quantity: float | None = None,
        max_quantity: float | None = None,
        min_total_price: float | None = None,
        max_total_price: float | None = None,
        min_mileage: int | None = None,
        max_mileage: int | None = None,
        skip: int | None = None,
        take: int | None = None,
    ) -> Page[LineItemRecord]:
        """Filtered, paginated listing.  *q* searches the description."""
        criteria = criteria_of(
            contains_any(q, LineItemTable.description),
            LineItemTable.service_type_id == service_type_id if service_type_id else None,
            LineItemTable.invoice_id == invoice_id if invoice_id else None,
            LineItemTable.vehicle_id == vehicle_id if vehicle_id else None,
            LineItemTable.type == type.value if type else None,
            LineItemTable.taxable.is_(taxable) if taxable is not None else None,
            LineItemTable.warranty.is_(warranty) if warranty is not None else None,
            LineItemTable.unit_price >= min_unit_price if min_unit_price is not None else None,
            LineItemTable.unit_price <= max_unit_price if max_unit_price is not None else None,
            LineItemTable.quantity >= min_quantity if min_quantity is not None else None,
            LineItemTable.quantity <= max_quantity if max_quantity is not None else None,
            LineItemTable.total_price >= min_total_price if min_total_price is not None else None,
            LineItemTable.total_price <= max_total_price if max_total_price is not None else None,
            LineItemTable.mileage >= min_mileage if min_mileage is not None else None,
            LineItemTable.mileage <= max_mileage if max_mileage is not None else None,
        )
        rows, total = await self._line_items.page(*criteria, skip=skip, take=take)
        return Page[LineItemRecord](data=[LineItemRecord.model_validate(row) for row in rows], total=total)

    async def update(self, line_item_id: str, payload: LineItemInput) -> LineItemRecord:
        changes = self._values(payload, partial=True)
        changes.pop("id", None)
        outcome = await self._consistency.update_line_item(line_item_id, changes)
        return LineItemRecord.model_validate(outcome.record)

    async def delete(self, line_item_id: str) -> None:
        await self._consistency.delete_line_item(line_item_id)

    async def bulk_import(self, items: Sequence[LineItemInput]) -> ImportResult[LineItemRecord]:
        return await import_each(self._session, items, self.create, entity="LineItem")

    async def list_for_invoice(self, invoice_id: str) -> list[LineItemRecord]:
        rows = await self._line_items.list_for_invoice(invoice_id)
        return [LineItemRecord.model_validate(row) for row in rows]

    @staticmethod
    def _values(payload: LineItemInput, *, partial: bool) -> dict[str, Any]:
        values = column_values(payload, LineItemTable, partial=partial, exclude=DERIVED_FIELDS)
        # Explicit nulls reach the engine, which rejects or normalises them.
        for name in ("unit_price", "quantity", "mileage", "warranty_mileage"):
            if name in payload.model_fields_set:
                values[name] = getattr(payload, name)
        return values
