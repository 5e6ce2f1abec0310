"""API router for invoices and their line items."""

from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Query, Response, status
from fastapi.responses import JSONResponse

from fleet_api.dependencies import SessionDep, SettingsDep
from fleet_api.enums import InvoiceStatus
from fleet_api.routers.bulk import import_response
from fleet_api.schemas import InvoiceInput, InvoiceRecord, LineItemRecord, Page
from fleet_api.services.invoice_service import InvoiceService
from fleet_api.services.line_item_service import LineItemService

router = APIRouter(prefix="/invoices", tags=["invoices"])


@router.post("", status_code=status.HTTP_201_CREATED, response_model=InvoiceRecord)
async def create_invoice(body: InvoiceInput, session: SessionDep, settings: SettingsDep) -> InvoiceRecord:
    """Create an invoice.  Totals start at zero and are derived from line items."""
    return await InvoiceService(session, settings=settings).create(body)


@router.get("", response_model=Page[InvoiceRecord])
async def list_invoices(
    session: SessionDep,
    settings: SettingsDep,
    q: str | None = Query(None),
    vehicle_id: str | None = Query(None, alias="vehicleId"),
    vendor_id: str | None = Query(None, alias="vendorId"),
    invoice_status: InvoiceStatus | None = Query(None, alias="status"),
    invoice_number: str | None = Query(None, alias="invoiceNumber"),
    order_start_date_from: date | None = Query(None, alias="orderStartDateFrom"),
    order_start_date_to: date | None = Query(None, alias="orderStartDateTo"),
    upload_date_from: date | None = Query(None, alias="uploadDateFrom"),
    upload_date_to: date | None = Query(None, alias="uploadDateTo"),
    min_amount: float | None = Query(None, alias="minAmount"),
    max_amount: float | None = Query(None, alias="maxAmount"),
    skip: int | None = Query(None, ge=0),
    take: int | None = Query(None, ge=1),
) -> Page[InvoiceRecord]:
    return await InvoiceService(session, settings=settings).find(
        q=q,
        vehicle_id=vehicle_id,
        vendor_id=vendor_id,
        status=invoice_status,
        invoice_number=invoice_number,
        order_start_date_from=order_start_date_from,
        order_start_date_to=order_start_date_to,
        upload_date_from=upload_date_from,
        upload_date_to=upload_date_to,
        min_amount=min_amount,
        max_amount=max_amount,
        skip=skip,
        take=take,
    )


@router.post("/import", response_model=None)
async def import_invoices(body: list[InvoiceInput], session: SessionDep, settings: SettingsDep) -> JSONResponse:
    return import_response(await InvoiceService(session, settings=settings).bulk_import(body))


@router.get("/number/{invoice_number}", response_model=InvoiceRecord)
async def get_invoice_by_number(invoice_number: str, session: SessionDep, settings: SettingsDep) -> InvoiceRecord:
    return await InvoiceService(session, settings=settings).get_by_number(invoice_number)


@router.get("/{invoice_id}/line-items", response_model=list[LineItemRecord])
async def list_invoice_line_items(
    invoice_id: str,
    session: SessionDep,
    settings: SettingsDep,
) -> list[LineItemRecord]:
    """Line items of one invoice, oldest first."""
    await InvoiceService(session, settings=settings).get_by_id(invoice_id)
    return await LineItemService(session, settings=settings).list_for_invoice(invoice_id)


@router.get("/{invoice_id}", response_model=InvoiceRecord)
async def get_invoice(invoice_id: str, session: SessionDep, settings: SettingsDep) -> InvoiceRecord:
    return await InvoiceService(session, settings=settings).get_by_id(invoice_id)


@router.put("/{invoice_id}", response_model=InvoiceRecord)
async def update_invoice(
    invoice_id: str,
    body: InvoiceInput,
    session: SessionDep,
    settings: SettingsDep,
) -> InvoiceRecord:
    """Update header fields.  Vehicle/vendor changes are copied onto line items."""
    return await InvoiceService(session, settings=settings).update(invoice_id, body)


@router.delete("/{invoice_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_invoice(invoice_id: str, session: SessionDep, settings: SettingsDep) -> Response:
    await InvoiceService(session, settings=settings).delete(invoice_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
