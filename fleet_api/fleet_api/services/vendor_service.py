"""Vendor reference data."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from fleet_api.enums import RecordStatus, VendorType
from fleet_api.errors import ConflictError, RecordNotFoundError
from fleet_api.schemas import ImportResult, Page, VendorInput, VendorRecord
from fleet_api.services.records import column_values, contains_any, criteria_of, import_each, require_text
from fleet_api.state.repository import VendorRepository
from fleet_api.state.tables import VendorTable

logger = logging.getLogger(__name__)


class VendorService:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self._vendors = VendorRepository(session)

    async def create(self, payload: VendorInput) -> VendorRecord:
        name = require_text(payload.name, "name")
        if payload.id and await self._vendors.get(payload.id) is not None:
            raise ConflictError(f"Vendor with id '{payload.id}' already exists")

        values = column_values(payload, VendorTable)
        values["name"] = name
        row = await self._vendors.create(values)
        logger.info("Vendor %s created", row.id)
        return VendorRecord.model_validate(row)

    async def get_by_id(self, vendor_id: str) -> VendorRecord:
        row = await self._vendors.get(vendor_id)
        if row is None:
            raise RecordNotFoundError("Vendor", vendor_id)
        return VendorRecord.model_validate(row)

    async def find(
        self,
        *,
        q: str | None = None,
        status: RecordStatus | None = None,
        type: VendorType | None = None,
        skip: int | None = None,
        take: int | None = None,
    ) -> Page[VendorRecord]:
        criteria = criteria_of(
            contains_any(q, VendorTable.name),
            VendorTable.status == status.value if status else None,
            VendorTable.type == type.value if type else None,
        )
        rows, total = await self._vendors.page(*criteria, skip=skip, take=take)
        return Page[VendorRecord](data=[VendorRecord.model_validate(row) for row in rows], total=total)

    async def update(self, vendor_id: str, payload: VendorInput) -> VendorRecord:
        changes = column_values(payload, VendorTable, partial=True, exclude={"id"})
        if "name" in changes:
            changes["name"] = require_text(changes["name"], "name")
        row = await self._vendors.replace(vendor_id, changes)
        if row is None:
            raise RecordNotFoundError("Vendor", vendor_id)
        return VendorRecord.model_validate(row)

    async def delete(self, vendor_id: str) -> None:
        if not await self._vendors.delete(vendor_id):
            raise RecordNotFoundError("Vendor", vendor_id)

    async def bulk_import(self, items: Sequence[VendorInput]) -> ImportResult[VendorRecord]:
        return await import_each(self._session, items, self.create, entity="Vendor")
