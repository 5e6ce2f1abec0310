"""API router for invoice line items.

Every write here goes through the consistency orchestrator: pricing is
recomputed, the parent invoice's totals and status are kept in step and
duplicate/warranty/price alerts are evaluated.
"""

from __future__ import annotations

from fastapi import APIRouter, Query, Response, status
from fastapi.responses import JSONResponse

from fleet_api.dependencies import SessionDep, SettingsDep
from fleet_api.enums import LineItemType
from fleet_api.routers.bulk import import_response
from fleet_api.schemas import LineItemInput, LineItemRecord, Page
from fleet_api.services.line_item_service import LineItemService

router = APIRouter(prefix="/line-items", tags=["line-items"])


@router.post("", status_code=status.HTTP_201_CREATED, response_model=LineItemRecord)
async def create_line_item(body: LineItemInput, session: SessionDep, settings: SettingsDep) -> LineItemRecord:
    return await LineItemService(session, settings=settings).create(body)


@router.get("", response_model=Page[LineItemRecord])
async def list_line_items(
    session: SessionDep,
    settings: SettingsDep,
    q: str | None = Query(None),
    service_type_id: str | None = Query(None, alias="serviceTypeId"),
    invoice_id: str | None = Query(None, alias="invoiceId"),
    vehicle_id: str | None = Query(None, alias="vehicleId"),
    item_type: LineItemType | None = Query(None, alias="type"),
    taxable: bool | None = Query(None),
    warranty: bool | None = Query(None),
    min_unit_price: float | None = Query(None, alias="minUnitPrice"),
    max_unit_price: float | None = Query(None, alias="maxUnitPrice"),
    min_quantity: float | None = Query(None, alias="minQuantity"),
    max_quantity: float | None = Query(None, alias="maxQuantity"),
    min_total_price: float | None = Query(None, alias="minTotalPrice"),
    max_total_price: float | None = Query(None, alias="maxTotalPrice"),
    min_mileage: int | None = Query(None, alias="minMileage"),
    max_mileage: int | None = Query(None, alias="maxMileage"),
    skip: int | None = Query(None, ge=0),
    take: int | None = Query(None, ge=1),
) -> Page[LineItemRecord]:
    return await LineItemService(session, settings=settings).find(
        q=q,
        service_type_id=service_type_id,
        invoice_id=invoice_id,
        vehicle_id=vehicle_id,
        type=item_type,
        taxable=taxable,
        warranty=warranty,
        min_unit_price=min_unit_price,
        max_unit_price=max_unit_price,
        min_quantity=min_quantity,
        max_quantity=max_quantity,
        min_total_price=min_total_price,
        max_total_price=max_total_price,
        min_mileage=min_mileage,
        max_mileage=max_mileage,
        skip=skip,
        take=take,
    )


@router.post("/import", response_model=None)
async def import_line_items(body: list[LineItemInput], session: SessionDep, settings: SettingsDep) -> JSONResponse:
    return import_response(await LineItemService(session, settings=settings).bulk_import(body))


@router.get("/{line_item_id}", response_model=LineItemRecord)
async def get_line_item(line_item_id: str, session: SessionDep, settings: SettingsDep) -> LineItemRecord:
    return await LineItemService(session, settings=settings).get_by_id(line_item_id)


@router.put("/{line_item_id}", response_model=LineItemRecord)
async def update_line_item(
    line_item_id: str,
    body: LineItemInput,
    session: SessionDep,
    settings: SettingsDep,
) -> LineItemRecord:
    return await LineItemService(session, settings=settings).update(line_item_id, body)


@router.delete("/{line_item_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_line_item(line_item_id: str, session: SessionDep, settings: SettingsDep) -> Response:
    await LineItemService(session, settings=settings).delete(line_item_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
