"""API router for invoice drift detection and repair."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Query

from fleet_api.dependencies import SessionDep, SettingsDep
from fleet_api.schemas import DriftReport, RepairReport
from fleet_api.services.reconciliation_service import ReconciliationService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/reconciliation", tags=["reconciliation"])


@router.get("/invoices", response_model=DriftReport)
async def get_invoice_drift(
    session: SessionDep,
    settings: SettingsDep,
    invoice_id: str | None = Query(None, alias="invoiceId", description="Check a single invoice."),
) -> DriftReport:
    """Report invoices whose stored totals or references disagree with their line items."""
    service = ReconciliationService(session, settings=settings)
    return await service.find_invoice_drift(invoice_id)


@router.post("/invoices/repair", response_model=RepairReport)
async def repair_invoice_drift(
    session: SessionDep,
    settings: SettingsDep,
    invoice_id: str | None = Query(None, alias="invoiceId", description="Repair a single invoice."),
) -> RepairReport:
    """Recompute totals and re-copy references for every drifted invoice."""
    service = ReconciliationService(session, settings=settings)
    report = await service.repair_invoice_drift(invoice_id)
    if report.failed:
        logger.warning("Drift repair left %d invoice(s) unrepaired: %s", len(report.failed), report.failed)
    return report
