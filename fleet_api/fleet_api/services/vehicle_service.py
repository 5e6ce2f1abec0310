"""Vehicle management.

Vehicle writes go through the consistency orchestrator so that compliance
expiration dates raise PERMIT alerts on create, import, and on updates that
change one of those dates.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from fleet_api.config import FleetSettings
from fleet_api.enums import RecordStatus
from fleet_api.errors import ConflictError, RecordNotFoundError, RecordValidationError, VinDecodeError
from fleet_api.schemas import ImportResult, Page, VehicleInput, VehicleRecord, VinDecodeResult
from fleet_api.services.records import (
    build_orchestrator,
    column_values,
    contains_any,
    criteria_of,
    import_each,
    require_text,
)
from fleet_api.services.vin_decoder import VinDecoderClient
from fleet_api.state.repository import VehicleRepository
from fleet_api.state.tables import VehicleTable

logger = logging.getLogger(__name__)


class VehicleService:
    """CRUD, lookups and bulk import for vehicles.

    Parameters
    ----------
    session:
        Request-scoped database session.
    settings:
        Application settings; defaults apply when omitted.
    vin_decoder:
        Shared decoder client, required only by :meth:`decode_vin`.
    """

    def __init__(
        self,
        session: AsyncSession,
        *,
        settings: FleetSettings | None = None,
        vin_decoder: VinDecoderClient | None = None,
    ) -> None:
        self._session = session
        self._vehicles = VehicleRepository(session)
        self._consistency = build_orchestrator(session, settings)
        self._vin_decoder = vin_decoder

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    async def create(self, payload: VehicleInput) -> VehicleRecord:
        """Create a vehicle and raise alerts for its expiration dates.

        Raises
        ------
        RecordValidationError
            If ``vin``, ``status``, ``make`` or ``year`` is missing.
        ConflictError
            If the VIN or the supplied id is already taken.
        """
        vin = require_text(payload.vin, "vin")
        if payload.status is None:
            raise RecordValidationError("status is required")
        require_text(payload.make, "make")
        if not payload.year:
            raise RecordValidationError("year is required")

        if await self._vehicles.get_by_vin(vin) is not None:
            raise ConflictError("vehicle with same VIN already exists")
        if payload.id and await self._vehicles.get(payload.id) is not None:
            raise ConflictError(f"Vehicle with id '{payload.id}' already exists")

        values = column_values(payload, VehicleTable)
        values["vin"] = vin
        outcome = await self._consistency.create_vehicle(values)
        return VehicleRecord.model_validate(outcome.record)

    async def get_by_id(self, vehicle_id: str) -> VehicleRecord:
        row = await self._vehicles.get(vehicle_id)
        if row is None:
            raise RecordNotFoundError("Vehicle", vehicle_id)
        return VehicleRecord.model_validate(row)

    async def find(
        self,
        *,
        q: str | None = None,
        status: RecordStatus | None = None,
        make: str | None = None,
        year: int | None = None,
        tag_number: str | None = None,
        skip: int | None = None,
        take: int | None = None,
    ) -> Page[VehicleRecord]:
        """Filtered, paginated listing.  *q* searches VIN, make and tag number."""
        criteria = criteria_of(
            contains_any(q, VehicleTable.vin, VehicleTable.make, VehicleTable.tag_number),
            VehicleTable.status == status.value if status else None,
            VehicleTable.make.ilike(make) if make else None,
            VehicleTable.year == year if year is not None else None,
            VehicleTable.tag_number == tag_number if tag_number else None,
        )
        rows, total = await self._vehicles.page(*criteria, skip=skip, take=take)
        return Page[VehicleRecord](data=[VehicleRecord.model_validate(row) for row in rows], total=total)

    async def update(self, vehicle_id: str, payload: VehicleInput) -> VehicleRecord:
        """Apply the fields present in *payload*.

        Raises
        ------
        RecordNotFoundError
            If the vehicle does not exist.
        ConflictError
            If the new VIN belongs to another vehicle.
        """
        current = await self._vehicles.get(vehicle_id)
        if current is None:
            raise RecordNotFoundError("Vehicle", vehicle_id)

        changes = column_values(payload, VehicleTable, partial=True, exclude={"id"})
        if "vin" in changes:
            vin = require_text(changes["vin"], "vin")
            if vin != current.vin:
                existing = await self._vehicles.get_by_vin(vin)
                if existing is not None and existing.id != vehicle_id:
                    raise ConflictError("vehicle with same VIN already exists")
            changes["vin"] = vin

        outcome = await self._consistency.update_vehicle(vehicle_id, changes)
        return VehicleRecord.model_validate(outcome.record)

    async def delete(self, vehicle_id: str) -> None:
        if not await self._vehicles.delete(vehicle_id):
            raise RecordNotFoundError("Vehicle", vehicle_id)
        logger.info("Vehicle %s deleted", vehicle_id)

    async def bulk_import(self, items: Sequence[VehicleInput]) -> ImportResult[VehicleRecord]:
        return await import_each(self._session, items, self.create, entity="Vehicle")

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    async def get_by_vin(self, vin: str) -> VehicleRecord:
        row = await self._vehicles.get_by_vin(vin.strip())
        if row is None:
            raise RecordNotFoundError("Vehicle", vin, field="vin")
        return VehicleRecord.model_validate(row)

    async def get_by_tag_number(self, tag_number: str) -> VehicleRecord:
        row = await self._vehicles.get_by_tag_number(tag_number)
        if row is None:
            raise RecordNotFoundError("Vehicle", tag_number, field="tag number")
        return VehicleRecord.model_validate(row)

    async def list_by_status(self, status: RecordStatus) -> list[VehicleRecord]:
        rows = await self._vehicles.query(VehicleTable.status == status.value)
        return [VehicleRecord.model_validate(row) for row in rows]

    async def list_by_make_and_year(self, make: str, year: int) -> list[VehicleRecord]:
        rows = await self._vehicles.list_by_make_and_year(make, year)
        return [VehicleRecord.model_validate(row) for row in rows]

    async def decode_vin(self, vin: str) -> VinDecodeResult:
        """Decode *vin* with the external vPIC service."""
        if self._vin_decoder is None:
            raise VinDecodeError("VIN decoder client is not configured")
        return await self._vin_decoder.decode(vin)
