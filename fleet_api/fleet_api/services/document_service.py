"""Vehicle document metadata."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import date, timedelta

from sqlalchemy import or_
from sqlalchemy.ext.asyncio import AsyncSession

from fleet_api.enums import DocumentType
from fleet_api.errors import ConflictError, RecordNotFoundError, RecordValidationError
from fleet_api.schemas import DocumentInput, DocumentRecord, ImportResult, Page
from fleet_api.services.records import column_values, contains_any, criteria_of, import_each
from fleet_api.state.repository import DocumentRepository
from fleet_api.state.tables import DocumentTable

logger = logging.getLogger(__name__)


class DocumentService:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self._documents = DocumentRepository(session)

    async def create(self, payload: DocumentInput) -> DocumentRecord:
        if payload.type is None:
            raise RecordValidationError("type is required")
        if payload.id and await self._documents.get(payload.id) is not None:
            raise ConflictError(f"Document with id '{payload.id}' already exists")

        row = await self._documents.create(column_values(payload, DocumentTable))
        logger.info("Document %s (%s) created for vehicle %s", row.id, row.type, row.vehicle_id)
        return DocumentRecord.model_validate(row)

    async def get_by_id(self, document_id: str) -> DocumentRecord:
        row = await self._documents.get(document_id)
        if row is None:
            raise RecordNotFoundError("Document", document_id)
        return DocumentRecord.model_validate(row)

    async def find(
        self,
        *,
        q: str | None = None,
        vehicle_id: str | None = None,
        type: DocumentType | None = None,
        start_date_from: date | None = None,
        start_date_to: date | None = None,
        expiration_date_from: date | None = None,
        expiration_date_to: date | None = None,
        expired: bool | None = None,
        expiring_soon: int | None = None,
        today: date | None = None,
        skip: int | None = None,
        take: int | None = None,
    ) -> Page[DocumentRecord]:
        """Filtered, paginated listing.

        *expired* selects documents whose expiration date is before *today*
        (or, when false, not yet expired or without a date); *expiring_soon*
        selects documents expiring within that many days.
        """
        today = today or date.today()
        expired_filter = None
        if expired is not None:
            expired_filter = (
                DocumentTable.expiration_date < today
                if expired
                else or_(DocumentTable.expiration_date >= today, DocumentTable.expiration_date.is_(None))
            )
        soon_filters = (None, None)
        if expiring_soon:
            soon_filters = (
                DocumentTable.expiration_date >= today,
                DocumentTable.expiration_date <= today + timedelta(days=expiring_soon),
            )

        criteria = criteria_of(
            contains_any(q, DocumentTable.type),
            DocumentTable.vehicle_id == vehicle_id if vehicle_id else None,
            DocumentTable.type == type.value if type else None,
            DocumentTable.start_date >= start_date_from if start_date_from else None,
            DocumentTable.start_date <= start_date_to if start_date_to else None,
            DocumentTable.expiration_date >= expiration_date_from if expiration_date_from else None,
            DocumentTable.expiration_date <= expiration_date_to if expiration_date_to else None,
            expired_filter,
            *soon_filters,
        )
        rows, total = await self._documents.page(*criteria, skip=skip, take=take)
        return Page[DocumentRecord](data=[DocumentRecord.model_validate(row) for row in rows], total=total)

    async def update(self, document_id: str, payload: DocumentInput) -> DocumentRecord:
        changes = column_values(payload, DocumentTable, partial=True, exclude={"id"})
        row = await self._documents.replace(document_id, changes)
        if row is None:
            raise RecordNotFoundError("Document", document_id)
        return DocumentRecord.model_validate(row)

    async def delete(self, document_id: str) -> None:
        if not await self._documents.delete(document_id):
            raise RecordNotFoundError("Document", document_id)

    async def bulk_import(self, items: Sequence[DocumentInput]) -> ImportResult[DocumentRecord]:
        return await import_each(self._session, items, self.create, entity="Document")

    async def list_for_vehicle(self, vehicle_id: str, type: DocumentType | None = None) -> list[DocumentRecord]:
        rows = await self._documents.query(
            *criteria_of(
                DocumentTable.vehicle_id == vehicle_id,
                DocumentTable.type == type.value if type else None,
            )
        )
        return [DocumentRecord.model_validate(row) for row in rows]
