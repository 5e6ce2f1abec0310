"""Tests for the line-item and vehicle alert rules."""

from __future__ import annotations

from datetime import date
from types import SimpleNamespace

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from fleet_api.engine.alert_rules import AlertRuleEngine
from fleet_api.state.repository import AlertRepository, InvoiceRepository, LineItemRepository
from fleet_api.state.tables import AlertTable

from conftest import add_line_item, seed_service_type


async def _alerts(session: AsyncSession, **filters: str) -> list[AlertTable]:
    criteria = [getattr(AlertTable, name) == value for name, value in filters.items()]
    return await AlertRepository(session).query(*criteria)


class TestLowerPriceRule:
    @pytest.mark.asyncio
    async def test_pricier_later_item_raises_one_higher_price_alert(
        self, session: AsyncSession, fleet: dict[str, str]
    ) -> None:
        cheap = await add_line_item(session, fleet, unit_price=50.0)
        pricey = await add_line_item(session, fleet, unit_price=80.0)

        alerts = await _alerts(session, type="HIGHER_PRICE")

        assert len(alerts) == 1
        assert alerts[0].line_item_id == pricey.id
        assert alerts[0].valid_line_item == cheap.id
        assert alerts[0].reasons == "LOWER_PRICE_FOUND"
        assert alerts[0].status == "Pending"
        assert alerts[0].category == "ServiceType"

    @pytest.mark.asyncio
    async def test_cheaper_later_item_raises_no_higher_price_alert(
        self, session: AsyncSession, fleet: dict[str, str]
    ) -> None:
        await add_line_item(session, fleet, unit_price=80.0)
        await add_line_item(session, fleet, unit_price=50.0)

        assert await _alerts(session, type="HIGHER_PRICE") == []

    @pytest.mark.asyncio
    async def test_cheapest_sibling_is_referenced(self, session: AsyncSession, fleet: dict[str, str]) -> None:
        await add_line_item(session, fleet, unit_price=60.0)
        cheapest = await add_line_item(session, fleet, unit_price=40.0)
        newest = await add_line_item(session, fleet, unit_price=90.0)

        alerts = await _alerts(session, type="HIGHER_PRICE", line_item_id=newest.id)
        assert [alert.valid_line_item for alert in alerts] == [cheapest.id]

    @pytest.mark.asyncio
    async def test_other_type_is_not_compared(self, session: AsyncSession, fleet: dict[str, str]) -> None:
        await add_line_item(session, fleet, unit_price=50.0, type="Labor")
        await add_line_item(session, fleet, unit_price=80.0, type="Parts")

        assert await _alerts(session, type="HIGHER_PRICE") == []
        assert await _alerts(session, type="SAME_SERVICE") == []


class TestSameServiceRule:
    @pytest.mark.asyncio
    async def test_repeat_service_references_latest_sibling(
        self, session: AsyncSession, fleet: dict[str, str]
    ) -> None:
        first = await add_line_item(session, fleet)
        second = await add_line_item(session, fleet)

        alerts = await _alerts(session, type="SAME_SERVICE")

        assert len(alerts) == 1
        assert alerts[0].line_item_id == second.id
        assert alerts[0].valid_line_item == first.id
        assert alerts[0].reasons == "SAME_SERVICE_FOUND"

    @pytest.mark.asyncio
    async def test_different_service_type_is_ignored(self, session: AsyncSession, fleet: dict[str, str]) -> None:
        brakes = await seed_service_type(session, name="Brake pads")
        await add_line_item(session, fleet)
        await add_line_item(session, fleet, service_type_id=brakes.id)

        assert await _alerts(session, type="SAME_SERVICE") == []

    @pytest.mark.asyncio
    async def test_single_item_never_matches_itself(self, session: AsyncSession, fleet: dict[str, str]) -> None:
        await add_line_item(session, fleet, warranty=True, warranty_date=date(2030, 1, 1), warranty_mileage=99999)

        assert await AlertRepository(session).query() == []


class TestWarrantyRules:
    @pytest.mark.asyncio
    async def test_warranty_date_covers_order_start(self, session: AsyncSession, fleet: dict[str, str]) -> None:
        covered = await add_line_item(session, fleet, warranty=True, warranty_date=date(2025, 6, 1))
        repeat = await add_line_item(session, fleet, type="Labor")

        alerts = await _alerts(session, type="WARRANTY", reasons="DATE_VALID")

        assert len(alerts) == 1
        assert alerts[0].line_item_id == repeat.id
        assert alerts[0].valid_line_item == covered.id

    @pytest.mark.asyncio
    async def test_expired_warranty_date_is_ignored(self, session: AsyncSession, fleet: dict[str, str]) -> None:
        await add_line_item(session, fleet, warranty=True, warranty_date=date(2024, 12, 31))
        await add_line_item(session, fleet, type="Labor")

        assert await _alerts(session, type="WARRANTY") == []

    @pytest.mark.asyncio
    async def test_latest_warranty_date_wins(self, session: AsyncSession, fleet: dict[str, str]) -> None:
        await add_line_item(session, fleet, type="Labor", warranty=True, warranty_date=date(2025, 5, 1))
        longest = await add_line_item(session, fleet, type="Labor", warranty=True, warranty_date=date(2026, 1, 1))
        repeat = await add_line_item(session, fleet)

        alerts = await _alerts(session, type="WARRANTY", reasons="DATE_VALID", line_item_id=repeat.id)
        assert [alert.valid_line_item for alert in alerts] == [longest.id]

    @pytest.mark.asyncio
    async def test_warranty_mileage_still_covered(self, session: AsyncSession, fleet: dict[str, str]) -> None:
        covered = await add_line_item(session, fleet, warranty=True, mileage=10000, warranty_mileage=5000)
        repeat = await add_line_item(session, fleet, type="Labor", mileage=12000)

        alerts = await _alerts(session, type="WARRANTY", reasons="MILEAGE_VALID")

        assert len(alerts) == 1
        assert alerts[0].line_item_id == repeat.id
        assert alerts[0].valid_line_item == covered.id
        assert "15000" in alerts[0].message

    @pytest.mark.asyncio
    async def test_warranty_mileage_exceeded(self, session: AsyncSession, fleet: dict[str, str]) -> None:
        await add_line_item(session, fleet, warranty=True, mileage=10000, warranty_mileage=5000)
        await add_line_item(session, fleet, type="Labor", mileage=16000)

        assert await _alerts(session, reasons="MILEAGE_VALID") == []

    @pytest.mark.asyncio
    async def test_warranty_mileage_needs_odometer_reading(
        self, session: AsyncSession, fleet: dict[str, str]
    ) -> None:
        await add_line_item(session, fleet, warranty=True, mileage=10000, warranty_mileage=5000)
        await add_line_item(session, fleet, type="Labor")

        assert await _alerts(session, reasons="MILEAGE_VALID") == []

    @pytest.mark.asyncio
    async def test_item_without_warranty_flag_is_not_a_candidate(
        self, session: AsyncSession, fleet: dict[str, str]
    ) -> None:
        await add_line_item(session, fleet, warranty=False, warranty_date=date(2030, 1, 1))
        await add_line_item(session, fleet, type="Labor")

        assert await _alerts(session, type="WARRANTY") == []


class TestRuleSideEffects:
    @pytest.mark.asyncio
    async def test_rule_alert_moves_invoice_to_review(self, session: AsyncSession, fleet: dict[str, str]) -> None:
        await add_line_item(session, fleet)
        await add_line_item(session, fleet)

        invoice = await InvoiceRepository(session).get(fleet["invoice_id"])
        assert invoice.status == "PendingAlertReview"

    @pytest.mark.asyncio
    async def test_alert_copies_line_item_references(self, session: AsyncSession, fleet: dict[str, str]) -> None:
        await add_line_item(session, fleet)
        second = await add_line_item(session, fleet)

        alert = (await _alerts(session, type="SAME_SERVICE"))[0]
        row = await LineItemRepository(session).get(second.id)
        assert alert.vehicle_id == row.vehicle_id == fleet["vehicle_id"]
        assert alert.invoice_id == fleet["invoice_id"]
        assert alert.service_type_id == fleet["service_type_id"]


class TestVehicleExpirationRule:
    def test_expiration_dates_skip_empty_fields(self) -> None:
        vehicle = SimpleNamespace(
            insurance_expiration_date=date(2025, 1, 1),
            tag_expiration_date=None,
            annual_inspection_expiration_date=date(2025, 7, 1),
            registration_expiration_date=None,
        )
        assert AlertRuleEngine.expiration_dates(vehicle) == [
            ("Insurance", date(2025, 1, 1)),
            ("Annual Inspection", date(2025, 7, 1)),
        ]

    @pytest.mark.asyncio
    async def test_rerun_for_same_date_is_a_no_op(self, session: AsyncSession, fleet: dict[str, str]) -> None:
        engine = AlertRuleEngine(session)

        first = await engine.check_vehicle_expiration(fleet["vehicle_id"], "Tag", date(2025, 9, 30))
        second = await engine.check_vehicle_expiration(fleet["vehicle_id"], "Tag", date(2025, 9, 30))

        assert first is not None
        assert first.type == "PERMIT"
        assert first.category == "PermitVehicle"
        assert first.reasons == "Expiration Date"
        assert first.message == f"Tag expiring on 2025-09-30 for vehicle {fleet['vehicle_id']}"
        assert second is None

    @pytest.mark.asyncio
    async def test_new_date_raises_new_alert(self, session: AsyncSession, fleet: dict[str, str]) -> None:
        engine = AlertRuleEngine(session)
        await engine.check_vehicle_expiration(fleet["vehicle_id"], "Tag", date(2025, 9, 30))
        renewed = await engine.check_vehicle_expiration(fleet["vehicle_id"], "Tag", date(2026, 9, 30))

        assert renewed is not None
        assert len(await _alerts(session, type="PERMIT")) == 2
