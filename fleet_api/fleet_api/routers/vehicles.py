"""API router for vehicles, including VIN lookup and decoding."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Query, Response, status
from fastapi.responses import JSONResponse

from fleet_api.dependencies import SessionDep, SettingsDep, VinDecoderDep
from fleet_api.enums import RecordStatus
from fleet_api.routers.bulk import import_response
from fleet_api.schemas import Page, VehicleInput, VehicleRecord, VinDecodeResult
from fleet_api.services.vehicle_service import VehicleService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/vehicles", tags=["vehicles"])


@router.post("", status_code=status.HTTP_201_CREATED, response_model=VehicleRecord)
async def create_vehicle(body: VehicleInput, session: SessionDep, settings: SettingsDep) -> VehicleRecord:
    """Create a vehicle; PERMIT alerts are raised for its expiration dates."""
    return await VehicleService(session, settings=settings).create(body)


@router.get("", response_model=Page[VehicleRecord])
async def list_vehicles(
    session: SessionDep,
    settings: SettingsDep,
    q: str | None = Query(None),
    record_status: RecordStatus | None = Query(None, alias="status"),
    make: str | None = Query(None),
    year: int | None = Query(None),
    tag_number: str | None = Query(None, alias="tagNumber"),
    skip: int | None = Query(None, ge=0),
    take: int | None = Query(None, ge=1),
) -> Page[VehicleRecord]:
    service = VehicleService(session, settings=settings)
    return await service.find(
        q=q,
        status=record_status,
        make=make,
        year=year,
        tag_number=tag_number,
        skip=skip,
        take=take,
    )


@router.post("/import", response_model=None)
async def import_vehicles(body: list[VehicleInput], session: SessionDep, settings: SettingsDep) -> JSONResponse:
    result = await VehicleService(session, settings=settings).bulk_import(body)
    return import_response(result)


@router.get("/vin/{vin}", response_model=VehicleRecord)
async def get_vehicle_by_vin(vin: str, session: SessionDep, settings: SettingsDep) -> VehicleRecord:
    return await VehicleService(session, settings=settings).get_by_vin(vin)


@router.get("/decode-vin/{vin}", response_model=VinDecodeResult)
async def decode_vin(
    vin: str,
    session: SessionDep,
    settings: SettingsDep,
    vin_decoder: VinDecoderDep,
) -> VinDecodeResult:
    """Decode a VIN through the NHTSA vPIC service."""
    return await VehicleService(session, settings=settings, vin_decoder=vin_decoder).decode_vin(vin)


@router.get("/{vehicle_id}", response_model=VehicleRecord)
async def get_vehicle(vehicle_id: str, session: SessionDep, settings: SettingsDep) -> VehicleRecord:
    return await VehicleService(session, settings=settings).get_by_id(vehicle_id)


@router.put("/{vehicle_id}", response_model=VehicleRecord)
async def update_vehicle(
    vehicle_id: str,
    body: VehicleInput,
    session: SessionDep,
    settings: SettingsDep,
) -> VehicleRecord:
    """Update a vehicle; changed expiration dates are re-evaluated."""
    return await VehicleService(session, settings=settings).update(vehicle_id, body)


@router.delete("/{vehicle_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_vehicle(vehicle_id: str, session: SessionDep, settings: SettingsDep) -> Response:
    await VehicleService(session, settings=settings).delete(vehicle_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
