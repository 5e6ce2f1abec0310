"""API router for vendors."""

from __future__ import annotations

from fastapi import APIRouter, Query, Response, status
from fastapi.responses import JSONResponse

from fleet_api.dependencies import SessionDep
from fleet_api.enums import RecordStatus, VendorType
from fleet_api.routers.bulk import import_response
from fleet_api.schemas import Page, VendorInput, VendorRecord
from fleet_api.services.vendor_service import VendorService

router = APIRouter(prefix="/vendors", tags=["vendors"])


@router.post("", status_code=status.HTTP_201_CREATED, response_model=VendorRecord)
async def create_vendor(body: VendorInput, session: SessionDep) -> VendorRecord:
    return await VendorService(session).create(body)


@router.get("", response_model=Page[VendorRecord])
async def list_vendors(
    session: SessionDep,
    q: str | None = Query(None),
    record_status: RecordStatus | None = Query(None, alias="status"),
    vendor_type: VendorType | None = Query(None, alias="type"),
    skip: int | None = Query(None, ge=0),
    take: int | None = Query(None, ge=1),
) -> Page[VendorRecord]:
    return await VendorService(session).find(q=q, status=record_status, type=vendor_type, skip=skip, take=take)


@router.post("/import", response_model=None)
async def import_vendors(body: list[VendorInput], session: SessionDep) -> JSONResponse:
    return import_response(await VendorService(session).bulk_import(body))


@router.get("/{vendor_id}", response_model=VendorRecord)
async def get_vendor(vendor_id: str, session: SessionDep) -> VendorRecord:
    return await VendorService(session).get_by_id(vendor_id)


@router.put("/{vendor_id}", response_model=VendorRecord)
async def update_vendor(vendor_id: str, body: VendorInput, session: SessionDep) -> VendorRecord:
    return await VendorService(session).update(vendor_id, body)


@router.delete("/{vendor_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_vendor(vendor_id: str, session: SessionDep) -> Response:
    await VendorService(session).delete(vendor_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
