"""Repository classes providing record-store access for each fleet entity.

Each repository takes an ``AsyncSession`` at construction time and operates
within the caller's transaction boundary.  All writes call
``session.flush()`` so that generated defaults are populated; the caller is
responsible for committing (or relying on the session dependency).

Every repository exposes the same five primitives -- ``create``, ``get``,
``replace``, ``delete`` and ``query`` -- plus the entity-specific finders the
services and the consistency engine need.
"""

from __future__ import annotations

import logging
import uuid
from datetime import UTC, date, datetime
from typing import Any

from sqlalchemy import ColumnElement, delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from fleet_api.state.tables import (
    AlertTable,
    Base,
    DocumentTable,
    InvoiceTable,
    LineItemTable,
    ServiceTypeTable,
    VehicleTable,
    VendorTable,
)

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 1000
DEFAULT_PAGE_SIZE = 50


def new_record_id(prefix: str) -> str:
    """Return a fresh identifier such as ``li_3f2a...``."""
    return f"{prefix}_{uuid.uuid4().hex[:20]}"


def clamp_page(skip: int | None, take: int | None) -> tuple[int, int]:
    """Normalise pagination arguments to ``(skip, take)``.

    *take* defaults to :data:`DEFAULT_PAGE_SIZE` and is capped at
    :data:`MAX_PAGE_SIZE`; *skip* never goes below zero.
    """
    take = DEFAULT_PAGE_SIZE if take is None else take
    take = max(1, min(take, MAX_PAGE_SIZE))
    skip = max(skip or 0, 0)
    return skip, take


def escape_like(value: str) -> str:
    """Escape SQL LIKE metacharacters so they are matched literally."""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


# ---------------------------------------------------------------------------
# Shared record primitives
# ---------------------------------------------------------------------------


class _RecordRepository:
    """Create / read / replace / delete / query over a single table."""

    _table: type[Base]
    _id_prefix: str

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    def _default_order(self) -> list[Any]:
        return [self._table.created_at.desc(), self._table.id]  # type: ignore[attr-defined]

    async def create(self, values: dict[str, Any]) -> Any:
        """Insert a new record and return the persisted row.

        An ``id`` is generated when *values* does not carry one.
        """
        values = dict(values)
        if not values.get("id"):
            values["id"] = new_record_id(self._id_prefix)
        row = self._table(**values)
        self._session.add(row)
        await self._session.flush()
        return row

    async def get(self, record_id: str, *, refresh: bool = False) -> Any | None:
        """Point lookup by id.

        With ``refresh=True`` the row is re-read from the database even when
        the session already holds a copy.
        """
        return await self._session.get(self._table, record_id, populate_existing=refresh)

    async def replace(self, record_id: str, values: dict[str, Any]) -> Any | None:
        """Overwrite the given fields of an existing record.

        Returns the updated row, or ``None`` when the record does not exist.
        """
        row = await self.get(record_id)
        if row is None:
            return None
        for key, value in values.items():
            if key == "id":
                continue
            setattr(row, key, value)
        await self._session.flush()
        return row

    async def delete(self, record_id: str) -> bool:
        """Remove a record.  Returns ``False`` when nothing was deleted."""
        stmt = delete(self._table).where(self._table.id == record_id)  # type: ignore[attr-defined]
        result = await self._session.execute(stmt)
        await self._session.flush()
        return bool(result.rowcount)  # type: ignore[attr-defined]

    async def query(
        self,
        *criteria: ColumnElement[bool],
        order_by: list[Any] | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[Any]:
        """Return rows matching every criterion, newest first by default."""
        stmt = select(self._table).where(*criteria).order_by(*(order_by or self._default_order()))
        if limit is not None:
            stmt = stmt.limit(limit)
        if offset:
            stmt = stmt.offset(offset)
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def count(self, *criteria: ColumnElement[bool]) -> int:
        """Count rows matching every criterion."""
        stmt = select(func.count()).select_from(self._table).where(*criteria)
        result = await self._session.execute(stmt)
        return int(result.scalar_one())

    async def page(
        self,
        *criteria: ColumnElement[bool],
        skip: int | None = None,
        take: int | None = None,
        order_by: list[Any] | None = None,
    ) -> tuple[list[Any], int]:
        """Return one page of matching rows together with the total match count."""
        skip, take = clamp_page(skip, take)
        total = await self.count(*criteria)
        rows = await self.query(*criteria, order_by=order_by, limit=take, offset=skip)
        return rows, total


# ---------------------------------------------------------------------------
# Reference data
# ---------------------------------------------------------------------------


class VehicleRepository(_RecordRepository):
    """Record access for the ``vehicles`` table."""

    _table = VehicleTable
    _id_prefix = "veh"

    def _default_order(self) -> list[Any]:
        return [VehicleTable.id]

    async def get_by_vin(self, vin: str) -> VehicleTable | None:
        rows = await self.query(VehicleTable.vin == vin, limit=1)
        return rows[0] if rows else None

    async def get_by_tag_number(self, tag_number: str) -> VehicleTable | None:
        rows = await self.query(VehicleTable.tag_number == tag_number, limit=1)
        return rows[0] if rows else None

    async def list_by_make_and_year(self, make: str, year: int) -> list[VehicleTable]:
        """Case-insensitive match on *make*, exact match on *year*."""
        return await self.query(
            func.lower(VehicleTable.make) == make.lower(),
            VehicleTable.year == year,
        )


class VendorRepository(_RecordRepository):
    """Record access for the ``vendors`` table."""

    _table = VendorTable
    _id_prefix = "ven"

    def _default_order(self) -> list[Any]:
        return [VendorTable.name, VendorTable.id]


class ServiceTypeRepository(_RecordRepository):
    """Record access for the ``service_types`` table."""

    _table = ServiceTypeTable
    _id_prefix = "st"

    def _default_order(self) -> list[Any]:
        return [ServiceTypeTable.name, ServiceTypeTable.id]


# ---------------------------------------------------------------------------
# Invoices and line items
# ---------------------------------------------------------------------------


class InvoiceRepository(_RecordRepository):
    """Record access for the ``invoices`` table."""

    _table = InvoiceTable
    _id_prefix = "inv"

    def _default_order(self) -> list[Any]:
        return [InvoiceTable.upload_date.desc(), InvoiceTable.id]

    async def get_by_number(self, invoice_number: str) -> InvoiceTable | None:
        rows = await self.query(InvoiceTable.invoice_number == invoice_number, limit=1)
        return rows[0] if rows else None

    async def replace_totals(
        self,
        invoice_id: str,
        *,
        expected_version: int,
        sub_total: float,
        tax: float,
        invoice_amount: float,
    ) -> bool:
        """Write the three money fields if the invoice is still at *expected_version*.

        Returns ``False`` when another writer bumped the version first (or the
        invoice is gone); the caller decides whether to retry.
        """
        stmt = (
            update(InvoiceTable)
            .where(
                InvoiceTable.id == invoice_id,
                InvoiceTable.version == expected_version,
            )
            .values(
                sub_total=sub_total,
                tax=tax,
                invoice_amount=invoice_amount,
                version=expected_version + 1,
                updated_at=datetime.now(UTC),
            )
            .execution_options(synchronize_session="evaluate")
        )
        result = await self._session.execute(stmt)
        await self._session.flush()
        return bool(result.rowcount)  # type: ignore[attr-defined]

    async def set_status(self, invoice_id: str, status: str) -> None:
        """Set *status* on an invoice without touching any other field."""
        stmt = (
            update(InvoiceTable)
            .where(InvoiceTable.id == invoice_id)
            .values(status=status, updated_at=datetime.now(UTC))
            .execution_options(synchronize_session="evaluate")
        )
        await self._session.execute(stmt)
        await self._session.flush()


class LineItemRepository(_RecordRepository):
    """Record access for the ``line_items`` table."""

    _table = LineItemTable
    _id_prefix = "li"

    async def list_for_invoice(self, invoice_id: str) -> list[LineItemTable]:
        """All line items of an invoice in creation order."""
        return await self.query(
            LineItemTable.invoice_id == invoice_id,
            order_by=[LineItemTable.created_at, LineItemTable.id],
        )

    async def list_siblings(
        self,
        line_item: LineItemTable,
        *,
        same_type: bool,
        warranty_only: bool = False,
    ) -> list[LineItemTable]:
        """Other line items for the same vehicle and service type.

        Parameters
        ----------
        line_item:
            The record under evaluation; it is never part of the result.
        same_type:
            Also require the same Parts/Labor ``type``.
        warranty_only:
            Only return items flagged ``warranty = true``.
        """
        criteria: list[ColumnElement[bool]] = [
            LineItemTable.vehicle_id == line_item.vehicle_id,
            LineItemTable.service_type_id == line_item.service_type_id,
            LineItemTable.id != line_item.id,
        ]
        if same_type:
            criteria.append(LineItemTable.type == line_item.type)
        if warranty_only:
            criteria.append(LineItemTable.warranty.is_(True))
        return await self.query(*criteria)

    async def reassign_parent_refs(self, invoice_id: str, vehicle_id: str, vendor_id: str) -> int:
        """Copy the invoice's vehicle/vendor onto every line item that differs.

        Returns the number of line items changed.
        """
        rows = await self.query(LineItemTable.invoice_id == invoice_id)
        changed = 0
        for row in rows:
            if row.vehicle_id != vehicle_id or row.vendor_id != vendor_id:
                row.vehicle_id = vehicle_id
                row.vendor_id = vendor_id
                changed += 1
        if changed:
            await self._session.flush()
        return changed


# ---------------------------------------------------------------------------
# Alerts and documents
# ---------------------------------------------------------------------------


class AlertRepository(_RecordRepository):
    """Record access for the ``alerts`` table."""

    _table = AlertTable
    _id_prefix = "alert"

    async def list_for_line_item(self, line_item_id: str) -> list[AlertTable]:
        return await self.query(AlertTable.line_item_id == line_item_id)

    async def count_pending_for_invoice(self, invoice_id: str) -> int:
        return await self.count(
            AlertTable.invoice_id == invoice_id,
            AlertTable.status == "Pending",
        )

    async def find_permit_alerts(
        self,
        *,
        vehicle_id: str,
        subcategory: str,
        expiration_date: date,
    ) -> list[AlertTable]:
        """Existing vehicle expiration alerts for one subcategory and date."""
        return await self.query(
            AlertTable.vehicle_id == vehicle_id,
            AlertTable.type == "PERMIT",
            AlertTable.category == "PermitVehicle",
            AlertTable.reasons == "Expiration Date",
            AlertTable.subcategory == subcategory,
            AlertTable.expiration_date == expiration_date,
        )


class DocumentRepository(_RecordRepository):
    """Record access for the ``documents`` table."""

    _table = DocumentTable
    _id_prefix = "doc"
