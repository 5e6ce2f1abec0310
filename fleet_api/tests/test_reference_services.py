"""Tests for vendors, service types and vehicle documents."""

from __future__ import annotations

from datetime import date

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from fleet_api.enums import DocumentType, RecordStatus, ServiceTypeKind
from fleet_api.errors import ConflictError, RecordNotFoundError, RecordValidationError
from fleet_api.schemas import DocumentInput, ServiceTypeInput, VendorInput
from fleet_api.services.document_service import DocumentService
from fleet_api.services.service_type_service import ServiceTypeService
from fleet_api.services.vendor_service import VendorService

TODAY = date(2025, 6, 1)


class TestVendors:
    @pytest.mark.asyncio
    async def test_create_and_search(self, session: AsyncSession) -> None:
        service = VendorService(session)
        await service.create(VendorInput(name="  Harbor Fleet Repair ", address={"city": "Tampa"}))
        await service.create(VendorInput(name="Sunshine Parts", status="Inactive", type="PartsSupplier"))

        page = await service.find(q="harbor")
        assert [vendor.name for vendor in page.data] == ["Harbor Fleet Repair"]
        assert page.data[0].status == RecordStatus.ACTIVE
        assert page.data[0].address is not None and page.data[0].address.city == "Tampa"

        page = await service.find(status=RecordStatus.INACTIVE)
        assert [vendor.name for vendor in page.data] == ["Sunshine Parts"]

    @pytest.mark.asyncio
    async def test_name_required(self, session: AsyncSession) -> None:
        with pytest.raises(RecordValidationError, match="name is required"):
            await VendorService(session).create(VendorInput(status="Active"))

    @pytest.mark.asyncio
    async def test_duplicate_id(self, session: AsyncSession) -> None:
        service = VendorService(session)
        await service.create(VendorInput(id="ven_fixed", name="One"))
        with pytest.raises(ConflictError):
            await service.create(VendorInput(id="ven_fixed", name="Two"))

    @pytest.mark.asyncio
    async def test_bulk_import(self, session: AsyncSession) -> None:
        result = await VendorService(session).bulk_import(
            [VendorInput(name="A"), VendorInput(name=" "), VendorInput(name="B")]
        )
        assert [vendor.name for vendor in result.success] == ["A", "B"]
        assert [failure.error for failure in result.errors] == ["name is required"]


class TestServiceTypes:
    @pytest.mark.asyncio
    async def test_defaults_and_update(self, session: AsyncSession) -> None:
        service = ServiceTypeService(session)
        created = await service.create(ServiceTypeInput(name="Brake pads"))

        assert created.type == ServiceTypeKind.SERVICE
        assert created.description == ""

        updated = await service.update(created.id, ServiceTypeInput(description="Front axle", type="Sales"))
        assert updated.name == "Brake pads"
        assert updated.type == ServiceTypeKind.SALES

    @pytest.mark.asyncio
    async def test_blank_name_on_update(self, session: AsyncSession) -> None:
        service = ServiceTypeService(session)
        created = await service.create(ServiceTypeInput(name="Alignment"))
        with pytest.raises(RecordValidationError):
            await service.update(created.id, ServiceTypeInput(name=""))

    @pytest.mark.asyncio
    async def test_missing(self, session: AsyncSession) -> None:
        service = ServiceTypeService(session)
        with pytest.raises(RecordNotFoundError):
            await service.update("st_missing", ServiceTypeInput(name="X"))
        with pytest.raises(RecordNotFoundError):
            await service.delete("st_missing")


class TestDocuments:
    async def _seed(self, service: DocumentService) -> dict[str, str]:
        expired = await service.create(
            DocumentInput(vehicle_id="veh_1", type="Registration", expiration_date=date(2025, 5, 1))
        )
        soon = await service.create(
            DocumentInput(vehicle_id="veh_1", type="Annual Inspection", expiration_date=date(2025, 6, 20))
        )
        later = await service.create(
            DocumentInput(vehicle_id="veh_2", type="Registration", expiration_date=date(2026, 1, 1))
        )
        undated = await service.create(DocumentInput(vehicle_id="veh_2", type="Lease Paperwork"))
        return {"expired": expired.id, "soon": soon.id, "later": later.id, "undated": undated.id}

    @pytest.mark.asyncio
    async def test_type_required(self, session: AsyncSession) -> None:
        with pytest.raises(RecordValidationError, match="type is required"):
            await DocumentService(session).create(DocumentInput(vehicle_id="veh_1"))

    @pytest.mark.asyncio
    async def test_expired_filter(self, session: AsyncSession) -> None:
        service = DocumentService(session)
        ids = await self._seed(service)

        expired = await service.find(expired=True, today=TODAY)
        assert [doc.id for doc in expired.data] == [ids["expired"]]

        current = await service.find(expired=False, today=TODAY)
        assert {doc.id for doc in current.data} == {ids["soon"], ids["later"], ids["undated"]}

    @pytest.mark.asyncio
    async def test_expiring_soon_filter(self, session: AsyncSession) -> None:
        service = DocumentService(session)
        ids = await self._seed(service)

        page = await service.find(expiring_soon=30, today=TODAY)
        assert [doc.id for doc in page.data] == [ids["soon"]]

    @pytest.mark.asyncio
    async def test_list_for_vehicle(self, session: AsyncSession) -> None:
        service = DocumentService(session)
        ids = await self._seed(service)

        docs = await service.list_for_vehicle("veh_2", DocumentType.REGISTRATION)
        assert [doc.id for doc in docs] == [ids["later"]]

    @pytest.mark.asyncio
    async def test_file_metadata_round_trip(self, session: AsyncSession) -> None:
        service = DocumentService(session)
        created = await service.create(
            DocumentInput.model_validate(
                {
                    "vehicleId": "veh_1",
                    "type": "Custom Document",
                    "file": {
                        "id": "f1",
                        "name": "title.pdf",
                        "url": "https://files.test/title.pdf",
                        "size": 2048,
                        "contentType": "application/pdf",
                        "lastModified": "2025-05-01T10:00:00Z",
                    },
                }
            )
        )

        fetched = await service.get_by_id(created.id)
        assert fetched.file is not None
        assert fetched.file.content_type == "application/pdf"
        assert fetched.file.size == 2048
