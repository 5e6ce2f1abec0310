"""Tests for line-item writes and the consistency work that follows them."""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from fleet_api.engine.orchestrator import ConsistencyOrchestrator
from fleet_api.engine.pricing import round2
from fleet_api.errors import ConflictError, InvoiceLockedError, RecordNotFoundError, RecordValidationError
from fleet_api.schemas import LineItemInput
from fleet_api.services.line_item_service import LineItemService
from fleet_api.state.repository import (
    AlertRepository,
    InvoiceRepository,
    LineItemRepository,
    VehicleRepository,
    VendorRepository,
)
from fleet_api.state.tables import AlertTable

from conftest import add_line_item, seed_invoice, seed_vendor


async def _invoice(session: AsyncSession, invoice_id: str):
    return await InvoiceRepository(session).get(invoice_id, refresh=True)


class TestCreate:
    @pytest.mark.asyncio
    async def test_prices_and_copies_invoice_references(self, session: AsyncSession, fleet: dict[str, str]) -> None:
        record = await add_line_item(session, fleet, unit_price=10.005, quantity=3, mileage=45210.8)

        assert record.total_price == 30.02
        assert record.unit_price == 10.01
        assert record.mileage == 45210
        assert record.vehicle_id == fleet["vehicle_id"]
        assert record.vendor_id == fleet["vendor_id"]
        assert record.id.startswith("li_")

    @pytest.mark.asyncio
    async def test_invoice_totals_follow_line_items(self, session: AsyncSession, fleet: dict[str, str]) -> None:
        await add_line_item(session, fleet, unit_price=100.0, quantity=2, taxable=True)
        await add_line_item(session, fleet, unit_price=19.99, quantity=1, type="Labor")

        invoice = await _invoice(session, fleet["invoice_id"])
        assert invoice.sub_total == 219.99
        assert invoice.tax == 14.0
        assert invoice.invoice_amount == round2(invoice.sub_total + invoice.tax) == 233.99

    @pytest.mark.asyncio
    async def test_defaults(self, session: AsyncSession, fleet: dict[str, str]) -> None:
        record = await LineItemService(session).create(
            LineItemInput(
                service_type_id=fleet["service_type_id"],
                invoice_id=fleet["invoice_id"],
                unit_price=5,
                quantity=1,
                warranty_mileage=0,
            )
        )
        assert record.type == "Parts"
        assert record.mileage == 0
        assert record.taxable is False
        assert record.warranty is False
        assert record.warranty_mileage is None
        assert record.description == ""

    @pytest.mark.asyncio
    async def test_locked_invoice_rejects_new_items(self, session: AsyncSession, fleet: dict[str, str]) -> None:
        await InvoiceRepository(session).set_status(fleet["invoice_id"], "Approved")

        with pytest.raises(ConflictError):
            await add_line_item(session, fleet)

    @pytest.mark.asyncio
    async def test_pending_review_invoice_accepts_items(self, session: AsyncSession, fleet: dict[str, str]) -> None:
        await InvoiceRepository(session).set_status(fleet["invoice_id"], "PendingAlertReview")
        record = await add_line_item(session, fleet)
        assert record.invoice_id == fleet["invoice_id"]

    @pytest.mark.asyncio
    async def test_missing_service_type(self, session: AsyncSession, fleet: dict[str, str]) -> None:
        with pytest.raises(RecordNotFoundError, match="ServiceType"):
            await add_line_item(session, fleet, service_type_id="st_missing")

    @pytest.mark.asyncio
    async def test_missing_invoice(self, session: AsyncSession, fleet: dict[str, str]) -> None:
        with pytest.raises(RecordNotFoundError, match="Invoice"):
            await add_line_item(session, fleet, invoice_id="inv_missing")

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("fields", "message"),
        [
            ({"service_type_id": None}, "serviceTypeId is required"),
            ({"invoice_id": None}, "invoiceId is required"),
            ({"unit_price": None}, "unitPrice is required"),
            ({"unit_price": -5}, "unitPrice is required and must be >= 0"),
            ({"quantity": 0}, "quantity is required and must be > 0"),
        ],
    )
    async def test_validation(
        self, session: AsyncSession, fleet: dict[str, str], fields: dict, message: str
    ) -> None:
        with pytest.raises(RecordValidationError, match=message):
            await add_line_item(session, fleet, **fields)

        assert await LineItemRepository(session).query() == []

    @pytest.mark.asyncio
    async def test_duplicate_id(self, session: AsyncSession, fleet: dict[str, str]) -> None:
        await add_line_item(session, fleet, id="li_fixed")
        with pytest.raises(ConflictError):
            await add_line_item(session, fleet, id="li_fixed")


class TestUpdate:
    @pytest.mark.asyncio
    async def test_price_change_recomputes_totals(self, session: AsyncSession, fleet: dict[str, str]) -> None:
        record = await add_line_item(session, fleet, unit_price=10.0, quantity=2, taxable=True)

        updated = await LineItemService(session).update(record.id, LineItemInput(quantity=3))

        assert updated.total_price == 30.0
        invoice = await _invoice(session, fleet["invoice_id"])
        assert invoice.sub_total == 30.0
        assert invoice.tax == 2.1
        assert invoice.invoice_amount == 32.1

    @pytest.mark.asyncio
    async def test_explicit_null_price_is_rejected(self, session: AsyncSession, fleet: dict[str, str]) -> None:
        record = await add_line_item(session, fleet)
        with pytest.raises(RecordValidationError, match="unitPrice"):
            await LineItemService(session).update(record.id, LineItemInput(unit_price=None))

    @pytest.mark.asyncio
    async def test_update_replaces_alerts_instead_of_duplicating(
        self, session: AsyncSession, fleet: dict[str, str]
    ) -> None:
        await add_line_item(session, fleet, unit_price=50.0)
        second = await add_line_item(session, fleet, unit_price=80.0)

        await LineItemService(session).update(second.id, LineItemInput(description="front axle"))

        alerts = await AlertRepository(session).query(AlertTable.line_item_id == second.id)
        assert sorted(alert.type for alert in alerts) == ["HIGHER_PRICE", "SAME_SERVICE"]

    @pytest.mark.asyncio
    async def test_cheaper_update_drops_higher_price_alert(
        self, session: AsyncSession, fleet: dict[str, str]
    ) -> None:
        await add_line_item(session, fleet, unit_price=50.0)
        second = await add_line_item(session, fleet, unit_price=80.0)

        await LineItemService(session).update(second.id, LineItemInput(unit_price=45.0))

        alerts = await AlertRepository(session).query(AlertTable.line_item_id == second.id)
        assert [alert.type for alert in alerts] == ["SAME_SERVICE"]

    @pytest.mark.asyncio
    async def test_moving_between_invoices_recomputes_both(
        self, session: AsyncSession, fleet: dict[str, str]
    ) -> None:
        vehicle = await VehicleRepository(session).get(fleet["vehicle_id"])
        other_vendor = await seed_vendor(session, name="Quick Lube")
        target = await seed_invoice(session, vehicle, other_vendor, invoice_number="INV-2002")
        record = await add_line_item(session, fleet, unit_price=40.0)

        moved = await LineItemService(session).update(record.id, LineItemInput(invoice_id=target.id))

        assert moved.invoice_id == target.id
        assert moved.vendor_id == other_vendor.id
        assert (await _invoice(session, fleet["invoice_id"])).sub_total == 0.0
        assert (await _invoice(session, target.id)).sub_total == 40.0

    @pytest.mark.asyncio
    async def test_locked_invoice_rejects_update(self, session: AsyncSession, fleet: dict[str, str]) -> None:
        record = await add_line_item(session, fleet)
        await InvoiceRepository(session).set_status(fleet["invoice_id"], "Paid")

        with pytest.raises(InvoiceLockedError):
            await LineItemService(session).update(record.id, LineItemInput(quantity=2))

    @pytest.mark.asyncio
    async def test_missing_line_item(self, session: AsyncSession) -> None:
        with pytest.raises(RecordNotFoundError):
            await LineItemService(session).update("li_missing", LineItemInput(quantity=2))


class TestDelete:
    @pytest.mark.asyncio
    async def test_delete_removes_alerts_and_recomputes_invoice(
        self, session: AsyncSession, fleet: dict[str, str]
    ) -> None:
        await add_line_item(session, fleet, unit_price=50.0)
        second = await add_line_item(session, fleet, unit_price=80.0)
        assert (await _invoice(session, fleet["invoice_id"])).status == "PendingAlertReview"

        orchestrator = ConsistencyOrchestrator(session)
        with patch.object(orchestrator.totals, "recompute", wraps=orchestrator.totals.recompute) as recompute:
            outcome = await orchestrator.delete_line_item(second.id)

        assert outcome.ok
        assert recompute.await_count == 1
        assert await AlertRepository(session).query(AlertTable.line_item_id == second.id) == []
        invoice = await _invoice(session, fleet["invoice_id"])
        assert invoice.status == "Draft"
        assert invoice.sub_total == 50.0

    @pytest.mark.asyncio
    async def test_locked_invoice_rejects_delete(self, session: AsyncSession, fleet: dict[str, str]) -> None:
        record = await add_line_item(session, fleet)
        await InvoiceRepository(session).set_status(fleet["invoice_id"], "Approved")

        with pytest.raises(ConflictError):
            await LineItemService(session).delete(record.id)
        assert await LineItemRepository(session).get(record.id) is not None

    @pytest.mark.asyncio
    async def test_missing_line_item(self, session: AsyncSession) -> None:
        with pytest.raises(RecordNotFoundError):
            await LineItemService(session).delete("li_missing")

    @pytest.mark.asyncio
    async def test_line_item_of_missing_invoice_can_be_deleted(
        self, session: AsyncSession, fleet: dict[str, str]
    ) -> None:
        record = await add_line_item(session, fleet, unit_price=30.0)
        await add_line_item(session, fleet, unit_price=45.0)
        await InvoiceRepository(session).delete(fleet["invoice_id"])
        orchestrator = ConsistencyOrchestrator(session)

        with patch.object(orchestrator.totals, "recompute", wraps=orchestrator.totals.recompute) as recompute:
            outcome = await orchestrator.delete_line_item(record.id)

        assert outcome.ok
        recompute.assert_not_awaited()
        assert await LineItemRepository(session).get(record.id) is None


class TestSideEffectFailures:
    @pytest.mark.asyncio
    async def test_failed_totals_recompute_keeps_line_item(
        self, session: AsyncSession, fleet: dict[str, str]
    ) -> None:
        orchestrator = ConsistencyOrchestrator(session)
        with patch.object(orchestrator.totals, "recompute", AsyncMock(side_effect=RuntimeError("db hiccup"))):
            outcome = await orchestrator.create_line_item(
                {
                    "service_type_id": fleet["service_type_id"],
                    "invoice_id": fleet["invoice_id"],
                    "unit_price": 12.5,
                    "quantity": 2,
                }
            )

        assert not outcome.ok
        assert [failure.step for failure in outcome.failures] == [f"totals:{fleet['invoice_id']}"]
        assert isinstance(outcome.failures[0].error.cause, RuntimeError)
        assert await LineItemRepository(session).get(outcome.record.id) is not None
        # Totals fell behind; the reconciliation service reports this as drift.
        assert (await _invoice(session, fleet["invoice_id"])).sub_total == 0.0

    @pytest.mark.asyncio
    async def test_failed_rule_does_not_stop_other_rules(
        self, session: AsyncSession, fleet: dict[str, str]
    ) -> None:
        await add_line_item(session, fleet, unit_price=50.0)

        orchestrator = ConsistencyOrchestrator(session)
        with patch.object(
            orchestrator.rules, "check_lower_price", AsyncMock(side_effect=RuntimeError("rule blew up"))
        ):
            outcome = await orchestrator.create_line_item(
                {
                    "service_type_id": fleet["service_type_id"],
                    "invoice_id": fleet["invoice_id"],
                    "unit_price": 80.0,
                    "quantity": 1,
                }
            )

        assert [failure.step for failure in outcome.failures] == [f"rule:lower_price:{outcome.record.id}"]
        alerts = await AlertRepository(session).query(AlertTable.line_item_id == outcome.record.id)
        assert [alert.type for alert in alerts] == ["SAME_SERVICE"]
        assert (await _invoice(session, fleet["invoice_id"])).sub_total == 130.0


class TestInvoiceReferencePropagation:
    @pytest.mark.asyncio
    async def test_vendor_change_is_copied_to_line_items(
        self, session: AsyncSession, fleet: dict[str, str]
    ) -> None:
        record = await add_line_item(session, fleet)
        new_vendor = await VendorRepository(session).create({"name": "Fleet Tire Co"})

        outcome = await ConsistencyOrchestrator(session).update_invoice(
            fleet["invoice_id"], {"vendor_id": new_vendor.id}
        )

        assert outcome.ok
        row = await LineItemRepository(session).get(record.id, refresh=True)
        assert row.vendor_id == new_vendor.id
