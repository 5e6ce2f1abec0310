"""API router for vehicle documents."""

from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Query, Response, status
from fastapi.responses import JSONResponse

from fleet_api.dependencies import SessionDep
from fleet_api.enums import DocumentType
from fleet_api.routers.bulk import import_response
from fleet_api.schemas import DocumentInput, DocumentRecord, Page
from fleet_api.services.document_service import DocumentService

router = APIRouter(prefix="/documents", tags=["documents"])


@router.post("", status_code=status.HTTP_201_CREATED, response_model=DocumentRecord)
async def create_document(body: DocumentInput, session: SessionDep) -> DocumentRecord:
    return await DocumentService(session).create(body)


@router.get("", response_model=Page[DocumentRecord])
async def list_documents(
    session: SessionDep,
    q: str | None = Query(None),
    vehicle_id: str | None = Query(None, alias="vehicleId"),
    document_type: DocumentType | None = Query(None, alias="type"),
    start_date_from: date | None = Query(None, alias="startDateFrom"),
    start_date_to: date | None = Query(None, alias="startDateTo"),
    expiration_date_from: date | None = Query(None, alias="expirationDateFrom"),
    expiration_date_to: date | None = Query(None, alias="expirationDateTo"),
    expired: bool | None = Query(None),
    expiring_soon: int | None = Query(None, ge=1, alias="expiringSoon", description="Days ahead."),
    skip: int | None = Query(None, ge=0),
    take: int | None = Query(None, ge=1),
) -> Page[DocumentRecord]:
    return await DocumentService(session).find(
        q=q,
        vehicle_id=vehicle_id,
        type=document_type,
        start_date_from=start_date_from,
        start_date_to=start_date_to,
        expiration_date_from=expiration_date_from,
        expiration_date_to=expiration_date_to,
        expired=expired,
        expiring_soon=expiring_soon,
        skip=skip,
        take=take,
    )


@router.post("/import", response_model=None)
async def import_documents(body: list[DocumentInput], session: SessionDep) -> JSONResponse:
    return import_response(await DocumentService(session).bulk_import(body))


@router.get("/{document_id}", response_model=DocumentRecord)
async def get_document(document_id: str, session: SessionDep) -> DocumentRecord:
    return await DocumentService(session).get_by_id(document_id)


@router.put("/{document_id}", response_model=DocumentRecord)
async def update_document(document_id: str, body: DocumentInput, session: SessionDep) -> DocumentRecord:
    return await DocumentService(session).update(document_id, body)


@router.delete("/{document_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_document(document_id: str, session: SessionDep) -> Response:
    await DocumentService(session).delete(document_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
