"""Service catalog (service types) reference data."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from fleet_api.enums import RecordStatus, ServiceTypeKind
from fleet_api.errors import ConflictError, RecordNotFoundError
from fleet_api.schemas import ImportResult, Page, ServiceTypeInput, ServiceTypeRecord
from fleet_api.services.records import column_values, contains_any, criteria_of, import_each, require_text
from fleet_api.state.repository import ServiceTypeRepository
from fleet_api.state.tables import ServiceTypeTable

logger = logging.getLogger(__name__)


class ServiceTypeService:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self._service_types = ServiceTypeRepository(session)

    async def create(self, payload: ServiceTypeInput) -> ServiceTypeRecord:
        name = require_text(payload.name, "name")
        if payload.id and await self._service_types.get(payload.id) is not None:
            raise ConflictError(f"ServiceType with id '{payload.id}' already exists")

        values = column_values(payload, ServiceTypeTable)
        values["name"] = name
        row = await self._service_types.create(values)
        logger.info("Service type %s created", row.id)
        return ServiceTypeRecord.model_validate(row)

    async def get_by_id(self, service_type_id: str) -> ServiceTypeRecord:
        row = await self._service_types.get(service_type_id)
        if row is None:
            raise RecordNotFoundError("ServiceType", service_type_id)
        return ServiceTypeRecord.model_validate(row)

    async def find(
        self,
        *,
        q: str | None = None,
        status: RecordStatus | None = None,
        type: ServiceTypeKind | None = None,
        skip: int | None = None,
        take: int | None = None,
    ) -> Page[ServiceTypeRecord]:
        """Filtered, paginated listing.  *q* searches name and description."""
        criteria = criteria_of(
            contains_any(q, ServiceTypeTable.name, ServiceTypeTable.description),
            ServiceTypeTable.status == status.value if status else None,
            ServiceTypeTable.type == type.value if type else None,
        )
        rows, total = await self._service_types.page(*criteria, skip=skip, take=take)
        return Page[ServiceTypeRecord](data=[ServiceTypeRecord.model_validate(row) for row in rows], total=total)

    async def update(self, service_type_id: str, payload: ServiceTypeInput) -> ServiceTypeRecord:
        changes = column_values(payload, ServiceTypeTable, partial=True, exclude={"id"})
        if "name" in changes:
            changes["name"] = require_text(changes["name"], "name")
        row = await self._service_types.replace(service_type_id, changes)
        if row is None:
            raise RecordNotFoundError("ServiceType", service_type_id)
        return ServiceTypeRecord.model_validate(row)

    async def delete(self, service_type_id: str) -> None:
        if not await self._service_types.delete(service_type_id):
            raise RecordNotFoundError("ServiceType", service_type_id)

    async def bulk_import(self, items: Sequence[ServiceTypeInput]) -> ImportResult[ServiceTypeRecord]:
        return await import_each(self._session, items, self.create, entity="ServiceType")
