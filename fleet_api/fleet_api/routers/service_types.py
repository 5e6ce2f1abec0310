"""API router for the service type catalogue."""

from __future__ import annotations

from fastapi import APIRouter, Query, Response, status
from fastapi.responses import JSONResponse

from fleet_api.dependencies import SessionDep
from fleet_api.enums import RecordStatus, ServiceTypeKind
from fleet_api.routers.bulk import import_response
from fleet_api.schemas import Page, ServiceTypeInput, ServiceTypeRecord
from fleet_api.services.service_type_service import ServiceTypeService

router = APIRouter(prefix="/service-types", tags=["service-types"])


@router.post("", status_code=status.HTTP_201_CREATED, response_model=ServiceTypeRecord)
async def create_service_type(body: ServiceTypeInput, session: SessionDep) -> ServiceTypeRecord:
    return await ServiceTypeService(session).create(body)


@router.get("", response_model=Page[ServiceTypeRecord])
async def list_service_types(
    session: SessionDep,
    q: str | None = Query(None),
    record_status: RecordStatus | None = Query(None, alias="status"),
    kind: ServiceTypeKind | None = Query(None, alias="type"),
    skip: int | None = Query(None, ge=0),
    take: int | None = Query(None, ge=1),
) -> Page[ServiceTypeRecord]:
    return await ServiceTypeService(session).find(q=q, status=record_status, type=kind, skip=skip, take=take)


@router.post("/import", response_model=None)
async def import_service_types(body: list[ServiceTypeInput], session: SessionDep) -> JSONResponse:
    return import_response(await ServiceTypeService(session).bulk_import(body))


@router.get("/{service_type_id}", response_model=ServiceTypeRecord)
async def get_service_type(service_type_id: str, session: SessionDep) -> ServiceTypeRecord:
    return await ServiceTypeService(session).get_by_id(service_type_id)


@router.put("/{service_type_id}", response_model=ServiceTypeRecord)
async def update_service_type(service_type_id: str, body: ServiceTypeInput, session: SessionDep) -> ServiceTypeRecord:
    return await ServiceTypeService(session).update(service_type_id, body)


@router.delete("/{service_type_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_service_type(service_type_id: str, session: SessionDep) -> Response:
    await ServiceTypeService(session).delete(service_type_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
