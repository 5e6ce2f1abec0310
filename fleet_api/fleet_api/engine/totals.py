"""Invoice totals derived from line items.

The aggregator is the only writer of ``subTotal``, ``tax`` and
``invoiceAmount``.  Writes are conditional on the invoice ``version`` read at
the start of a recompute; if another writer got there first the recompute
is repeated from a fresh read.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from fleet_api.engine.pricing import quantize2, to_decimal
from fleet_api.errors import ConcurrentModificationError, RecordNotFoundError
from fleet_api.state.repository import InvoiceRepository, LineItemRepository
from fleet_api.state.tables import LineItemTable

logger = logging.getLogger(__name__)

DEFAULT_TAX_RATE = 0.07


@dataclass(frozen=True)
class InvoiceTotals:
    sub_total: float
    tax: float
    invoice_amount: float


def compute_totals(line_items: Iterable[LineItemTable], tax_rate: float = DEFAULT_TAX_RATE) -> InvoiceTotals:
    """Compute invoice totals from line items.

    ``tax`` applies *tax_rate* to the rounded sum of taxable items, and
    ``invoice_amount`` is the rounded sum of the rounded subtotal and tax.
    """
    sub_total = Decimal(0)
    taxable = Decimal(0)
    for item in line_items:
        price = to_decimal(item.total_price)
        sub_total += price
        if item.taxable:
            taxable += price

    sub_total = quantize2(sub_total)
    tax = quantize2(quantize2(taxable) * to_decimal(tax_rate))
    amount = quantize2(sub_total + tax)
    return InvoiceTotals(sub_total=float(sub_total), tax=float(tax), invoice_amount=float(amount))


class InvoiceTotalsAggregator:
    """Recomputes and stores the money fields of one invoice at a time."""

    def __init__(
        self,
        session: AsyncSession,
        *,
        tax_rate: float = DEFAULT_TAX_RATE,
        max_attempts: int = 3,
    ) -> None:
        self._invoices = InvoiceRepository(session)
        self._line_items = LineItemRepository(session)
        self._tax_rate = tax_rate
        self._max_attempts = max(1, max_attempts)

    async def recompute(self, invoice_id: str) -> InvoiceTotals:
        """Recompute and persist totals for *invoice_id*.

        Raises
        ------
        RecordNotFoundError
            If the invoice does not exist.
        ConcurrentModificationError
            If every attempt lost the conditional write to another writer.
        """
        expected_version = 0
        for attempt in range(1, self._max_attempts + 1):
            invoice = await self._invoices.get(invoice_id, refresh=attempt > 1)
            if invoice is None:
                raise RecordNotFoundError("Invoice", invoice_id)
            expected_version = invoice.version

            items = await self._line_items.list_for_invoice(invoice_id)
            totals = compute_totals(items, self._tax_rate)

            written = await self._invoices.replace_totals(
                invoice_id,
                expected_version=expected_version,
                sub_total=totals.sub_total,
                tax=totals.tax,
                invoice_amount=totals.invoice_amount,
            )
            if written:
                logger.debug(
                    "Invoice %s totals: subTotal=%.2f tax=%.2f amount=%.2f (%d items)",
                    invoice_id,
                    totals.sub_total,
                    totals.tax,
                    totals.invoice_amount,
                    len(items),
                )
                return totals

            logger.warning(
                "Invoice %s changed since version %d; retrying totals (attempt %d/%d)",
                invoice_id,
                expected_version,
                attempt,
                self._max_attempts,
            )

        raise ConcurrentModificationError("Invoice", invoice_id, expected_version)
