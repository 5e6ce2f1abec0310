"""Alerts raised by the rule engine or entered by administrators.

Creating, updating or deleting an alert re-evaluates the status of the
invoice it references (Draft <-> PendingAlertReview).
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import date, datetime

from sqlalchemy.ext.asyncio import AsyncSession

from fleet_api.enums import AlertStatus
from fleet_api.errors import ConflictError, RecordNotFoundError
from fleet_api.schemas import AlertInput, AlertRecord, ImportResult, Page
from fleet_api.services.records import (
    build_orchestrator,
    column_values,
    contains_any,
    criteria_of,
    import_each,
    require_text,
)
from fleet_api.state.repository import AlertRepository
from fleet_api.state.tables import AlertTable

logger = logging.getLogger(__name__)

_REQUIRED_TEXT = ("type", "category", "reasons", "message")
_REFERENCE_FIELDS = ("vehicle_id", "line_item_id", "invoice_id", "service_type_id", "valid_line_item")


class AlertService:
    """CRUD, lookups and bulk import for alerts."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self._alerts = AlertRepository(session)
        self._consistency = build_orchestrator(session)

    async def create(self, payload: AlertInput) -> AlertRecord:
        """Create an alert (Pending unless another status is given).

        Raises
        ------
        RecordValidationError
            If ``type``, ``category``, ``reasons`` or ``message`` is blank.
        """
        values = column_values(payload, AlertTable)
        for name in _REQUIRED_TEXT:
            values[name] = require_text(values.get(name), name)
        for name in _REFERENCE_FIELDS:
            if values.get(name):
                values[name] = values[name].strip()
        values.setdefault("status", AlertStatus.PENDING.value)

        if payload.id and await self._alerts.get(payload.id) is not None:
            raise ConflictError(f"Alert with id '{payload.id}' already exists")

        outcome = await self._consistency.create_alert(values)
        return AlertRecord.model_validate(outcome.record)

    async def get_by_id(self, alert_id: str) -> AlertRecord:
        row = await self._alerts.get(alert_id)
        if row is None:
            raise RecordNotFoundError("Alert", alert_id)
        return AlertRecord.model_validate(row)

    async def find(
        self,
        *,
        q: str | None = None,
        type: str | None = None,
        category: str | None = None,
        vehicle_id: str | None = None,
        line_item_id: str | None = None,
        invoice_id: str | None = None,
        service_type_id: str | None = None,
        valid_line_item: str | None = None,
        reasons: str | None = None,
        status: AlertStatus | None = None,
        created_from: datetime | None = None,
        created_to: datetime | None = None,
        has_resolution: bool | None = None,
        expiration_date: date | None = None,
        skip: int | None = None,
        take: int | None = None,
    ) -> Page[AlertRecord]:
        """Filtered, paginated listing.  *q* searches the message."""
        resolution_filter = None
        if has_resolution is not None:
            resolution_filter = AlertTable.resolution.is_not(None) if has_resolution else AlertTable.resolution.is_(None)

        criteria = criteria_of(
            contains_any(q, AlertTable.message),
            AlertTable.type == type if type else None,
            AlertTable.category == category if category else None,
            AlertTable.vehicle_id == vehicle_id if vehicle_id else None,
            AlertTable.line_item_id == line_item_id if line_item_id else None,
            AlertTable.invoice_id == invoice_id if invoice_id else None,
            AlertTable.service_type_id == service_type_id if service_type_id else None,
            AlertTable.valid_line_item == valid_line_item if valid_line_item else None,
            AlertTable.reasons == reasons if reasons else None,
            AlertTable.status == status.value if status else None,
            AlertTable.created_at >= created_from if created_from else None,
            AlertTable.created_at <= created_to if created_to else None,
            resolution_filter,
            AlertTable.expiration_date == expiration_date if expiration_date else None,
        )
        rows, total = await self._alerts.page(*criteria, skip=skip, take=take)
        return Page[AlertRecord](data=[AlertRecord.model_validate(row) for row in rows], total=total)

    async def update(self, alert_id: str, payload: AlertInput) -> AlertRecord:
        changes = column_values(payload, AlertTable, partial=True, exclude={"id"})
        for name in _REQUIRED_TEXT:
            if name in changes:
                changes[name] = require_text(changes[name], name)
        outcome = await self._consistency.update_alert(alert_id, changes)
        return AlertRecord.model_validate(outcome.record)

    async def delete(self, alert_id: str) -> None:
        await self._consistency.delete_alert(alert_id)

    async def bulk_import(self, items: Sequence[AlertInput]) -> ImportResult[AlertRecord]:
        return await import_each(self._session, items, self.create, entity="Alert")

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    async def list_for_invoice(self, invoice_id: str) -> list[AlertRecord]:
        rows = await self._alerts.query(AlertTable.invoice_id == invoice_id)
        return [AlertRecord.model_validate(row) for row in rows]

    async def list_for_line_item(self, line_item_id: str) -> list[AlertRecord]:
        rows = await self._alerts.list_for_line_item(line_item_id)
        return [AlertRecord.model_validate(row) for row in rows]

    async def list_for_service_type_and_vehicle(
        self,
        service_type_id: str,
        vehicle_id: str,
        status: AlertStatus,
    ) -> list[AlertRecord]:
        rows = await self._alerts.query(
            AlertTable.service_type_id == service_type_id,
            AlertTable.vehicle_id == vehicle_id,
            AlertTable.status == status.value,
        )
        return [AlertRecord.model_validate(row) for row in rows]
