"""Invoice mutability gate and alert-driven status transitions.

Only two statuses are managed automatically:

* ``Draft`` -- editable, no outstanding concerns.
* ``PendingAlertReview`` -- editable, at least one Pending alert.

``Approved``, ``Rejected``, ``Paid`` and ``Cancelled`` are administrative:
they are never entered or left by the transitions below, and they lock the
invoice's line items.
"""

from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from fleet_api.enums import AlertStatus, InvoiceStatus
from fleet_api.errors import InvoiceLockedError, RecordNotFoundError
from fleet_api.state.repository import AlertRepository, InvoiceRepository
from fleet_api.state.tables import AlertTable, InvoiceTable

logger = logging.getLogger(__name__)

MUTABLE_STATUSES: tuple[str, ...] = (
    InvoiceStatus.DRAFT.value,
    InvoiceStatus.PENDING_ALERT_REVIEW.value,
)


class InvoiceStatusStateMachine:
    """Keeps invoice status in step with the Pending alerts that reference it."""

    def __init__(self, session: AsyncSession) -> None:
        self._invoices = InvoiceRepository(session)
        self._alerts = AlertRepository(session)

    # ------------------------------------------------------------------
    # Mutability gate
    # ------------------------------------------------------------------

    async def ensure_mutable(self, invoice_id: str) -> InvoiceTable:
        """Return the invoice if its line items may be changed.

        Raises
        ------
        RecordNotFoundError
            If the invoice does not exist.
        InvoiceLockedError
            If the invoice is in an administrative status.
        """
        invoice = await self._invoices.get(invoice_id)
        if invoice is None:
            raise RecordNotFoundError("Invoice", invoice_id)
        if invoice.status not in MUTABLE_STATUSES:
            raise InvoiceLockedError(invoice.id, invoice.status, MUTABLE_STATUSES)
        return invoice

    # ------------------------------------------------------------------
    # Alert-driven transitions
    # ------------------------------------------------------------------

    async def on_alert_created(self, alert: AlertTable) -> str | None:
        if not alert.invoice_id or alert.status != AlertStatus.PENDING.value:
            return None
        return await self.sync(alert.invoice_id)

    async def on_alert_updated(
        self,
        alert: AlertTable,
        *,
        previous_status: str,
        previous_invoice_id: str | None,
    ) -> list[str]:
        """Re-check the invoices touched by an alert update.

        Returns the ids of invoices whose status changed.
        """
        affected: list[str] = []
        if previous_invoice_id and previous_invoice_id != alert.invoice_id:
            affected.append(previous_invoice_id)
        if alert.invoice_id and (previous_status != alert.status or previous_invoice_id != alert.invoice_id):
            affected.append(alert.invoice_id)

        changed: list[str] = []
        for invoice_id in affected:
            if await self.sync(invoice_id) is not None:
                changed.append(invoice_id)
        return changed

    async def on_alert_deleted(self, alert: AlertTable) -> str | None:
        if not alert.invoice_id:
            return None
        return await self.sync(alert.invoice_id)

    async def sync(self, invoice_id: str) -> str | None:
        """Move the invoice between Draft and PendingAlertReview as needed.

        Returns the new status when a transition happened, ``None``
        otherwise (including when the invoice is missing or administrative).
        """
        invoice = await self._invoices.get(invoice_id)
        if invoice is None:
            logger.warning("Alert references missing invoice %s; no status change", invoice_id)
            return None
        if invoice.status not in MUTABLE_STATUSES:
            return None

        pending = await self._alerts.count_pending_for_invoice(invoice_id)
        target = InvoiceStatus.PENDING_ALERT_REVIEW.value if pending else InvoiceStatus.DRAFT.value
        previous = invoice.status
        if previous == target:
            return None

        await self._invoices.set_status(invoice_id, target)
        logger.info("Invoice %s: %s -> %s (%d pending alerts)", invoice_id, previous, target, pending)
        return target
