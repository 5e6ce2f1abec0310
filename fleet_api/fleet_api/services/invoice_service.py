"""Invoice headers.

Money fields are owned by the totals aggregator: values supplied by clients
on create or update are ignored.  Changing an invoice's vehicle or vendor
is copied onto its line items by the consistency orchestrator.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import date

from sqlalchemy.ext.asyncio import AsyncSession

from fleet_api.config import FleetSettings
from fleet_api.enums import InvoiceStatus
from fleet_api.errors import ConflictError, RecordNotFoundError, RecordValidationError
from fleet_api.schemas import ImportResult, InvoiceInput, InvoiceRecord, Page
from fleet_api.services.records import (
    build_orchestrator,
    column_values,
    contains_any,
    criteria_of,
    import_each,
    require_text,
)
from fleet_api.state.repository import InvoiceRepository, LineItemRepository, VehicleRepository, VendorRepository
from fleet_api.state.tables import InvoiceTable, LineItemTable

logger = logging.getLogger(__name__)

# Never taken from client input.
DERIVED_FIELDS = frozenset({"id", "sub_total", "tax", "invoice_amount", "version"})


class InvoiceService:
    """CRUD, lookups and bulk import for invoices."""

    def __init__(self, session: AsyncSession, *, settings: FleetSettings | None = None) -> None:
        self._session = session
        self._invoices = InvoiceRepository(session)
        self._line_items = LineItemRepository(session)
        self._vehicles = VehicleRepository(session)
        self._vendors = VendorRepository(session)
        self._consistency = build_orchestrator(session, settings)

    async def create(self, payload: InvoiceInput) -> InvoiceRecord:
        """Create an invoice with zero totals.

        Raises
        ------
        RecordValidationError
            If a required header field is missing.
        RecordNotFoundError
            If the vehicle or vendor does not exist.
        ConflictError
            If the invoice number (or supplied id) is already taken.
        """
        vehicle_id = require_text(payload.vehicle_id, "vehicleId")
        vendor_id = require_text(payload.vendor_id, "vendorId")
        invoice_number = require_text(payload.invoice_number, "invoiceNumber")
        if payload.order_start_date is None:
            raise RecordValidationError("orderStartDate is required")
        if payload.upload_date is None:
            raise RecordValidationError("uploadDate is required")

        await self._require_references(vehicle_id, vendor_id)
        if await self._invoices.get_by_number(invoice_number) is not None:
            raise ConflictError("invoice with same invoice number already exists")
        if payload.id and await self._invoices.get(payload.id) is not None:
            raise ConflictError(f"Invoice with id '{payload.id}' already exists")

        values = column_values(payload, InvoiceTable, exclude=DERIVED_FIELDS - {"id"})
        values.update(
            vehicle_id=vehicle_id,
            vendor_id=vendor_id,
            invoice_number=invoice_number,
            sub_total=0.0,
            tax=0.0,
            invoice_amount=0.0,
        )
        row = await self._invoices.create(values)
        logger.info("Invoice %s (%s) created as %s", row.id, row.invoice_number, row.status)
        return InvoiceRecord.model_validate(row)

    async def get_by_id(self, invoice_id: str) -> InvoiceRecord:
        row = await self._invoices.get(invoice_id)
        if row is None:
            raise RecordNotFoundError("Invoice", invoice_id)
        return InvoiceRecord.model_validate(row)

    async def find(
        self,
        *,
        q: str | None = None,
        vehicle_id: str | None = None,
        vendor_id: str | None = None,
        status: InvoiceStatus | None = None,
        invoice_number: str | None = None,
        order_start_date_from: date | None = None,
        order_start_date_to: date | None = None,
        upload_date_from: date | None = None,
        upload_date_to: date | None = None,
        min_amount: float | None = None,
        max_amount: float | None = None,
        skip: int | None = None,
        take: int | None = None,
    ) -> Page[InvoiceRecord]:
        """Filtered, paginated listing.  *q* searches invoice number and description."""
        criteria = criteria_of(
            contains_any(q, InvoiceTable.invoice_number, InvoiceTable.description),
            InvoiceTable.vehicle_id == vehicle_id if vehicle_id else None,
            InvoiceTable.vendor_id == vendor_id if vendor_id else None,
            InvoiceTable.status == status.value if status else None,
            InvoiceTable.invoice_number == invoice_number if invoice_number else None,
            InvoiceTable.order_start_date >= order_start_date_from if order_start_date_from else None,
            InvoiceTable.order_start_date <= order_start_date_to if order_start_date_to else None,
            InvoiceTable.upload_date >= upload_date_from if upload_date_from else None,
            InvoiceTable.upload_date <= upload_date_to if upload_date_to else None,
            InvoiceTable.invoice_amount >= min_amount if min_amount is not None else None,
            InvoiceTable.invoice_amount <= max_amount if max_amount is not None else None,
        )
        rows, total = await self._invoices.page(*criteria, skip=skip, take=take)
        return Page[InvoiceRecord](data=[InvoiceRecord.model_validate(row) for row in rows], total=total)

    async def update(self, invoice_id: str, payload: InvoiceInput) -> InvoiceRecord:
        """Update header fields; vehicle/vendor changes propagate to line items."""
        current = await self._invoices.get(invoice_id)
        if current is None:
            raise RecordNotFoundError("Invoice", invoice_id)

        changes = column_values(payload, InvoiceTable, partial=True, exclude=DERIVED_FIELDS)
        vehicle_id = changes.get("vehicle_id", current.vehicle_id)
        vendor_id = changes.get("vendor_id", current.vendor_id)
        await self._require_references(
            vehicle_id if vehicle_id != current.vehicle_id else None,
            vendor_id if vendor_id != current.vendor_id else None,
        )

        if "invoice_number" in changes:
            invoice_number = require_text(changes["invoice_number"], "invoiceNumber")
            if invoice_number != current.invoice_number:
                existing = await self._invoices.get_by_number(invoice_number)
                if existing is not None and existing.id != invoice_id:
                    raise ConflictError("invoice with same invoice number already exists")
            changes["invoice_number"] = invoice_number

        outcome = await self._consistency.update_invoice(invoice_id, changes)
        return InvoiceRecord.model_validate(outcome.record)

    async def delete(self, invoice_id: str) -> None:
        """Delete an invoice that has no line items.

        Raises
        ------
        RecordNotFoundError
            If the invoice does not exist.
        ConflictError
            If line items still reference the invoice.
        """
        if await self._invoices.get(invoice_id) is None:
            raise RecordNotFoundError("Invoice", invoice_id)
        remaining = await self._line_items.count(LineItemTable.invoice_id == invoice_id)
        if remaining:
            raise ConflictError(f"Invoice '{invoice_id}' still has {remaining} line item(s); delete them first")

        await self._invoices.delete(invoice_id)
        logger.info("Invoice %s deleted", invoice_id)

    async def bulk_import(self, items: Sequence[InvoiceInput]) -> ImportResult[InvoiceRecord]:
        return await import_each(self._session, items, self.create, entity="Invoice")

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    async def get_by_number(self, invoice_number: str) -> InvoiceRecord:
        row = await self._invoices.get_by_number(invoice_number)
        if row is None:
            raise RecordNotFoundError("Invoice", invoice_number, field="invoice number")
        return InvoiceRecord.model_validate(row)

    async def list_by_order_start_date(self, order_start_date: date) -> list[InvoiceRecord]:
        rows = await self._invoices.query(InvoiceTable.order_start_date == order_start_date)
        return [InvoiceRecord.model_validate(row) for row in rows]

    async def _require_references(self, vehicle_id: str | None, vendor_id: str | None) -> None:
        if vehicle_id and await self._vehicles.get(vehicle_id) is None:
            raise RecordNotFoundError("Vehicle", vehicle_id)
        if vendor_id and await self._vendors.get(vendor_id) is None:
            raise RecordNotFoundError("Vendor", vendor_id)
