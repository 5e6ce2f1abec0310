"""Detect and repair drift between invoices and their line items.

Invoice totals and the vehicle/vendor references copied onto line items are
maintained by best-effort side effects.  When one of those fails the
primary write is kept, so the stored values can fall behind what the line
items imply.  This service finds such invoices and brings them back in
line.
"""

from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from fleet_api.config import FleetSettings
from fleet_api.engine.pricing import round2
from fleet_api.engine.side_effects import run_side_effect
from fleet_api.engine.totals import DEFAULT_TAX_RATE, InvoiceTotals, InvoiceTotalsAggregator, compute_totals
from fleet_api.schemas import DriftReport, InvoiceDrift, RepairReport, TotalsSnapshot
from fleet_api.state.repository import InvoiceRepository, LineItemRepository
from fleet_api.state.tables import InvoiceTable

logger = logging.getLogger(__name__)


def _snapshot(totals: InvoiceTotals | InvoiceTable) -> TotalsSnapshot:
    return TotalsSnapshot(
        sub_total=round2(totals.sub_total),
        tax=round2(totals.tax),
        invoice_amount=round2(totals.invoice_amount),
    )


class ReconciliationService:
    """Compare stored invoice state against what the line items imply.

    Parameters
    ----------
    session:
        Active database session.
    settings:
        Supplies the tax rate and totals retry budget.
    """

    def __init__(self, session: AsyncSession, *, settings: FleetSettings | None = None) -> None:
        self._session = session
        self._tax_rate = settings.tax_rate if settings else DEFAULT_TAX_RATE
        self._invoices = InvoiceRepository(session)
        self._line_items = LineItemRepository(session)
        self._totals = InvoiceTotalsAggregator(
            session,
            tax_rate=self._tax_rate,
            max_attempts=settings.totals_max_attempts if settings else 3,
        )

    async def find_invoice_drift(self, invoice_id: str | None = None) -> DriftReport:
        """Check one invoice, or every invoice, for drift.

        An invoice has drifted when its stored ``subTotal``, ``tax`` or
        ``invoiceAmount`` differs from the values recomputed from its line
        items, or when any of its line items carries a vehicle or vendor id
        different from the invoice's.
        """
        if invoice_id is not None:
            invoice = await self._invoices.get(invoice_id)
            invoices = [invoice] if invoice is not None else []
        else:
            invoices = await self._invoices.query()

        report = DriftReport(checked=len(invoices))
        for invoice in invoices:
            drift = await self._check(invoice)
            if drift is not None:
                report.drifted.append(drift)

        if report.drifted:
            logger.warning("Drift found on %d of %d invoice(s)", len(report.drifted), report.checked)
        return report

    async def repair_invoice_drift(self, invoice_id: str | None = None) -> RepairReport:
        """Recompute totals and re-copy references for every drifted invoice.

        Each invoice is repaired in its own savepoint; a failure is logged
        and reported without stopping the others.
        """
        drift_report = await self.find_invoice_drift(invoice_id)
        report = RepairReport(checked=drift_report.checked)

        for drift in drift_report.drifted:
            result = await run_side_effect(
                self._session,
                f"repair:{drift.invoice_id}",
                lambda drift=drift: self._repair(drift),
            )
            (report.repaired if result.ok else report.failed).append(drift.invoice_id)

        logger.info(
            "Invoice drift repair: %d repaired, %d failed (%d checked)",
            len(report.repaired),
            len(report.failed),
            report.checked,
        )
        return report

    async def _check(self, invoice: InvoiceTable) -> InvoiceDrift | None:
        items = await self._line_items.list_for_invoice(invoice.id)
        stored = _snapshot(invoice)
        expected = _snapshot(compute_totals(items, self._tax_rate))
        stale = [item.id for item in items if (item.vehicle_id, item.vendor_id) != (invoice.vehicle_id, invoice.vendor_id)]

        totals_drifted = stored != expected
        if not totals_drifted and not stale:
            return None
        return InvoiceDrift(
            invoice_id=invoice.id,
            invoice_number=invoice.invoice_number,
            stored=stored,
            expected=expected,
            totals_drifted=totals_drifted,
            stale_line_item_ids=stale,
        )

    async def _repair(self, drift: InvoiceDrift) -> None:
        if drift.stale_line_item_ids:
            invoice = await self._invoices.get(drift.invoice_id)
            if invoice is not None:
                changed = await self._line_items.reassign_parent_refs(invoice.id, invoice.vehicle_id, invoice.vendor_id)
                logger.info("Invoice %s: re-copied references onto %d line item(s)", invoice.id, changed)
        if drift.totals_drifted:
            totals = await self._totals.recompute(drift.invoice_id)
            logger.info(
                "Invoice %s: totals repaired to subTotal=%.2f tax=%.2f amount=%.2f",
                drift.invoice_id,
                totals.sub_total,
                totals.tax,
                totals.invoice_amount,
            )
