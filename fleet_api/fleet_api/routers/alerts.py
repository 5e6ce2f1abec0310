"""API router for alerts.

Creating, resolving or deleting an alert moves its invoice between
``Draft`` and ``PendingAlertReview``.
"""

from __future__ import annotations

from datetime import date, datetime

from fastapi import APIRouter, Query, Response, status
from fastapi.responses import JSONResponse

from fleet_api.dependencies import SessionDep
from fleet_api.enums import AlertStatus
from fleet_api.routers.bulk import import_response
from fleet_api.schemas import AlertInput, AlertRecord, Page
from fleet_api.services.alert_service import AlertService

router = APIRouter(prefix="/alerts", tags=["alerts"])


@router.post("", status_code=status.HTTP_201_CREATED, response_model=AlertRecord)
async def create_alert(body: AlertInput, session: SessionDep) -> AlertRecord:
    return await AlertService(session).create(body)


@router.get("", response_model=Page[AlertRecord])
async def list_alerts(
    session: SessionDep,
    q: str | None = Query(None),
    alert_type: str | None = Query(None, alias="type"),
    category: str | None = Query(None),
    vehicle_id: str | None = Query(None, alias="vehicleId"),
    line_item_id: str | None = Query(None, alias="lineItemId"),
    invoice_id: str | None = Query(None, alias="invoiceId"),
    service_type_id: str | None = Query(None, alias="serviceTypeId"),
    valid_line_item: str | None = Query(None, alias="validLineItem"),
    reasons: str | None = Query(None),
    alert_status: AlertStatus | None = Query(None, alias="status"),
    created_from: datetime | None = Query(None, alias="createdFrom"),
    created_to: datetime | None = Query(None, alias="createdTo"),
    has_resolution: bool | None = Query(None, alias="hasResolution"),
    expiration_date: date | None = Query(None, alias="expirationDate"),
    skip: int | None = Query(None, ge=0),
    take: int | None = Query(None, ge=1),
) -> Page[AlertRecord]:
    return await AlertService(session).find(
        q=q,
        type=alert_type,
        category=category,
        vehicle_id=vehicle_id,
        line_item_id=line_item_id,
        invoice_id=invoice_id,
        service_type_id=service_type_id,
        valid_line_item=valid_line_item,
        reasons=reasons,
        status=alert_status,
        created_from=created_from,
        created_to=created_to,
        has_resolution=has_resolution,
        expiration_date=expiration_date,
        skip=skip,
        take=take,
    )


@router.post("/import", response_model=None)
async def import_alerts(body: list[AlertInput], session: SessionDep) -> JSONResponse:
    return import_response(await AlertService(session).bulk_import(body))


@router.get("/invoice/{invoice_id}", response_model=list[AlertRecord])
async def list_alerts_for_invoice(invoice_id: str, session: SessionDep) -> list[AlertRecord]:
    return await AlertService(session).list_for_invoice(invoice_id)


@router.get("/line-item/{line_item_id}", response_model=list[AlertRecord])
async def list_alerts_for_line_item(line_item_id: str, session: SessionDep) -> list[AlertRecord]:
    return await AlertService(session).list_for_line_item(line_item_id)


@router.get("/{alert_id}", response_model=AlertRecord)
async def get_alert(alert_id: str, session: SessionDep) -> AlertRecord:
    return await AlertService(session).get_by_id(alert_id)


@router.put("/{alert_id}", response_model=AlertRecord)
async def update_alert(alert_id: str, body: AlertInput, session: SessionDep) -> AlertRecord:
    """Update an alert, e.g. to resolve it with a ``resolution`` block."""
    return await AlertService(session).update(alert_id, body)


@router.delete("/{alert_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_alert(alert_id: str, session: SessionDep) -> Response:
    await AlertService(session).delete(alert_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
