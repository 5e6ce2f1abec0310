"""Business rules that raise advisory alerts.

Each rule looks at one freshly written record and its siblings and either
creates exactly one new ``Pending`` alert or does nothing.  Rules never merge
with or suppress alerts that already exist, with one exception: the vehicle
expiration rule is keyed on the expiration value so that re-running it for an
unchanged date is a no-op.

The line item under evaluation is never compared with itself.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from datetime import date

from sqlalchemy.ext.asyncio import AsyncSession

from fleet_api.enums import AlertReason, AlertStatus, AlertType
from fleet_api.state.repository import AlertRepository, InvoiceRepository, LineItemRepository
from fleet_api.state.tables import AlertTable, LineItemTable, VehicleTable

logger = logging.getLogger(__name__)

LINE_ITEM_CATEGORY = "ServiceType"
PERMIT_CATEGORY = "PermitVehicle"

# Vehicle field -> alert subcategory, in evaluation order.
EXPIRATION_FIELDS: tuple[tuple[str, str], ...] = (
    ("insurance_expiration_date", "Insurance"),
    ("tag_expiration_date", "Tag"),
    ("annual_inspection_expiration_date", "Annual Inspection"),
    ("registration_expiration_date", "Registration"),
)

LineItemRule = Callable[[LineItemTable], Awaitable[AlertTable | None]]


class AlertRuleEngine:
    """Evaluates the line-item and vehicle alert rules."""

    def __init__(self, session: AsyncSession) -> None:
        self._alerts = AlertRepository(session)
        self._invoices = InvoiceRepository(session)
        self._line_items = LineItemRepository(session)

    def line_item_rules(self) -> list[tuple[str, LineItemRule]]:
        """The line-item rules as ``(name, evaluator)`` pairs, in run order."""
        return [
            ("warranty_date", self.check_warranty_date),
            ("warranty_mileage", self.check_warranty_mileage),
            ("lower_price", self.check_lower_price),
            ("same_service", self.check_same_service),
        ]

    # ------------------------------------------------------------------
    # Line-item rules
    # ------------------------------------------------------------------

    async def check_warranty_date(self, line_item: LineItemTable) -> AlertTable | None:
        """Another item for this vehicle and service is still under date warranty."""
        invoice = await self._invoices.get(line_item.invoice_id)
        if invoice is None:
            return None

        candidates = await self._line_items.list_siblings(line_item, same_type=False, warranty_only=True)
        matches = [
            item
            for item in candidates
            if item.warranty_date is not None and item.warranty_date >= invoice.order_start_date
        ]
        if not matches:
            return None

        best = max(matches, key=lambda item: (item.warranty_date, item.created_at))
        return await self._raise_for_line_item(
            line_item,
            alert_type=AlertType.WARRANTY,
            reasons=AlertReason.DATE_VALID,
            valid_line_item=best,
            message=(
                f"Line item {best.id} is under warranty until {best.warranty_date.isoformat()}, "
                f"on or after order start date {invoice.order_start_date.isoformat()}"
            ),
        )

    async def check_warranty_mileage(self, line_item: LineItemTable) -> AlertTable | None:
        """Another item for this vehicle and service is still under mileage warranty.

        Skipped when the item carries no odometer reading (mileage 0).
        """
        if not line_item.mileage:
            return None
        candidates = await self._line_items.list_siblings(line_item, same_type=False, warranty_only=True)
        matches = [
            item
            for item in candidates
            if item.warranty_mileage and item.warranty_mileage > 0
            and item.mileage + item.warranty_mileage >= line_item.mileage
        ]
        if not matches:
            return None

        best = max(matches, key=lambda item: (item.mileage + item.warranty_mileage, item.created_at))
        covered_to = best.mileage + best.warranty_mileage
        return await self._raise_for_line_item(
            line_item,
            alert_type=AlertType.WARRANTY,
            reasons=AlertReason.MILEAGE_VALID,
            valid_line_item=best,
            message=(
                f"Line item {best.id} is under warranty up to {covered_to} miles; "
                f"current mileage is {line_item.mileage}"
            ),
        )

    async def check_lower_price(self, line_item: LineItemTable) -> AlertTable | None:
        """The same service was billed cheaper before."""
        candidates = await self._line_items.list_siblings(line_item, same_type=True)
        matches = [item for item in candidates if item.unit_price < line_item.unit_price]
        if not matches:
            return None

        cheapest = min(matches, key=lambda item: (item.unit_price, item.created_at))
        return await self._raise_for_line_item(
            line_item,
            alert_type=AlertType.HIGHER_PRICE,
            reasons=AlertReason.LOWER_PRICE_FOUND,
            valid_line_item=cheapest,
            message=(
                f"Unit price {line_item.unit_price:.2f} is higher than {cheapest.unit_price:.2f} "
                f"billed on line item {cheapest.id}"
            ),
        )

    async def check_same_service(self, line_item: LineItemTable) -> AlertTable | None:
        """The same service was already billed for this vehicle."""
        candidates = await self._line_items.list_siblings(line_item, same_type=True)
        if not candidates:
            return None

        latest = max(candidates, key=lambda item: (item.created_at, item.id))
        return await self._raise_for_line_item(
            line_item,
            alert_type=AlertType.SAME_SERVICE,
            reasons=AlertReason.SAME_SERVICE_FOUND,
            valid_line_item=latest,
            message=f"Same service already billed for vehicle {line_item.vehicle_id} on line item {latest.id}",
        )

    async def _raise_for_line_item(
        self,
        line_item: LineItemTable,
        *,
        alert_type: AlertType,
        reasons: AlertReason,
        valid_line_item: LineItemTable,
        message: str,
    ) -> AlertTable:
        alert = await self._alerts.create(
            {
                "type": alert_type.value,
                "category": LINE_ITEM_CATEGORY,
                "vehicle_id": line_item.vehicle_id,
                "line_item_id": line_item.id,
                "invoice_id": line_item.invoice_id,
                "service_type_id": line_item.service_type_id,
                "valid_line_item": valid_line_item.id,
                "reasons": reasons.value,
                "status": AlertStatus.PENDING.value,
                "message": message,
            }
        )
        logger.info(
            "Alert %s raised for line item %s: %s/%s (valid line item %s)",
            alert.id,
            line_item.id,
            alert_type.value,
            reasons.value,
            valid_line_item.id,
        )
        return alert

    # ------------------------------------------------------------------
    # Vehicle rule
    # ------------------------------------------------------------------

    @staticmethod
    def expiration_dates(vehicle: VehicleTable) -> list[tuple[str, date]]:
        """Non-empty ``(subcategory, expiration_date)`` pairs of a vehicle."""
        found = []
        for field, subcategory in EXPIRATION_FIELDS:
            value = getattr(vehicle, field)
            if value is not None:
                found.append((subcategory, value))
        return found

    async def check_vehicle_expiration(
        self,
        vehicle_id: str,
        subcategory: str,
        expiration_date: date,
    ) -> AlertTable | None:
        """Raise a PERMIT alert for one expiration date unless one already exists.

        Returns the new alert, or ``None`` when an alert for this exact
        subcategory and date is already on file.
        """
        existing = await self._alerts.find_permit_alerts(
            vehicle_id=vehicle_id,
            subcategory=subcategory,
            expiration_date=expiration_date,
        )
        if existing:
            logger.debug(
                "Vehicle %s already has %d %s alert(s) for %s",
                vehicle_id,
                len(existing),
                subcategory,
                expiration_date,
            )
            return None

        alert = await self._alerts.create(
            {
                "type": AlertType.PERMIT.value,
                "category": PERMIT_CATEGORY,
                "subcategory": subcategory,
                "vehicle_id": vehicle_id,
                "reasons": AlertReason.EXPIRATION_DATE.value,
                "status": AlertStatus.PENDING.value,
                "expiration_date": expiration_date,
                "message": f"{subcategory} expiring on {expiration_date.isoformat()} for vehicle {vehicle_id}",
            }
        )
        logger.info(
            "Alert %s raised for vehicle %s: %s expiring %s",
            alert.id,
            vehicle_id,
            subcategory,
            expiration_date,
        )
        return alert
