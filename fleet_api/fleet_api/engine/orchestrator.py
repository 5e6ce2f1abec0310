"""Cross-entity consistency for line-item, alert, vehicle and invoice writes.

The orchestrator performs the primary write for a mutation and then runs the
follow-up work that keeps the other records consistent with it:

* line items -> invoice totals, then the line-item alert rules
* alerts -> invoice status transitions
* vehicles -> expiration (PERMIT) alerts
* invoices -> vehicle/vendor references copied onto their line items

Validation, not-found and conflict checks happen before anything is written
and propagate to the caller.  Everything after the primary write is a side
effect (see :mod:`fleet_api.engine.side_effects`): it is logged and reported
in the returned :class:`MutationOutcome` but never undoes the write.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from fleet_api.engine.alert_rules import EXPIRATION_FIELDS, AlertRuleEngine
from fleet_api.engine.pricing import floor_int, normalise_warranty_mileage, price_line_item
from fleet_api.engine.side_effects import SideEffectResult, run_side_effect
from fleet_api.engine.status_machine import InvoiceStatusStateMachine
from fleet_api.engine.totals import DEFAULT_TAX_RATE, InvoiceTotalsAggregator
from fleet_api.enums import LineItemType
from fleet_api.errors import RecordNotFoundError, RecordValidationError
from fleet_api.state.repository import (
    AlertRepository,
    InvoiceRepository,
    LineItemRepository,
    ServiceTypeRepository,
    VehicleRepository,
)
from fleet_api.state.tables import AlertTable, VehicleTable

logger = logging.getLogger(__name__)

# Line-item fields whose change can alter the invoice totals.
TOTALS_FIELDS = frozenset({"unit_price", "quantity", "taxable", "invoice_id"})


@dataclass
class MutationOutcome:
    """The persisted primary record plus the side effects that followed it."""

    record: Any
    side_effects: list[SideEffectResult] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return all(result.ok for result in self.side_effects)

    @property
    def failures(self) -> list[SideEffectResult]:
        return [result for result in self.side_effects if not result.ok]


class ConsistencyOrchestrator:
    """Sequences primary writes and their consistency side effects.

    Parameters
    ----------
    session:
        Request-scoped session; every write goes through it.
    tax_rate:
        Rate passed to the totals aggregator.
    totals_max_attempts:
        Conditional-write attempts made by the totals aggregator.
    """

    def __init__(
        self,
        session: AsyncSession,
        *,
        tax_rate: float = DEFAULT_TAX_RATE,
        totals_max_attempts: int = 3,
    ) -> None:
        self._session = session
        self._alerts = AlertRepository(session)
        self._invoices = InvoiceRepository(session)
        self._line_items = LineItemRepository(session)
        self._service_types = ServiceTypeRepository(session)
        self._vehicles = VehicleRepository(session)
        self.totals = InvoiceTotalsAggregator(session, tax_rate=tax_rate, max_attempts=totals_max_attempts)
        self.status = InvoiceStatusStateMachine(session)
        self.rules = AlertRuleEngine(session)

    # ------------------------------------------------------------------
    # Line items
    # ------------------------------------------------------------------

    async def create_line_item(self, values: dict[str, Any]) -> MutationOutcome:
        """Validate, price and store a line item, then update its invoice.

        Raises
        ------
        RecordValidationError
            Missing references or invalid price/quantity.
        RecordNotFoundError
            Unknown service type or invoice.
        InvoiceLockedError
            The invoice is not Draft or PendingAlertReview.
        """
        service_type_id = values.get("service_type_id")
        invoice_id = values.get("invoice_id")
        if not service_type_id:
            raise RecordValidationError("serviceTypeId is required")
        if not invoice_id:
            raise RecordValidationError("invoiceId is required")
        priced = price_line_item(values.get("unit_price"), values.get("quantity"))
        mileage = floor_int(values.get("mileage")) or 0
        warranty_mileage = normalise_warranty_mileage(values.get("warranty_mileage"))

        if await self._service_types.get(service_type_id) is None:
            raise RecordNotFoundError("ServiceType", service_type_id)
        invoice = await self.status.ensure_mutable(invoice_id)

        row = await self._line_items.create(
            {
                "id": values.get("id"),
                "service_type_id": service_type_id,
                "invoice_id": invoice.id,
                "vehicle_id": invoice.vehicle_id,
                "vendor_id": invoice.vendor_id,
                "type": values.get("type") or LineItemType.PARTS.value,
                "unit_price": priced.unit_price,
                "quantity": priced.quantity,
                "total_price": priced.total_price,
                "mileage": mileage,
                "taxable": bool(values.get("taxable", False)),
                "warranty": bool(values.get("warranty", False)),
                "warranty_mileage": warranty_mileage,
                "warranty_date": values.get("warranty_date"),
                "description": values.get("description") or "",
            }
        )
        logger.info("Line item %s created on invoice %s (total %.2f)", row.id, invoice.id, row.total_price)

        effects = [await self._recompute_totals(invoice.id)]
        effects.extend(await self._evaluate_line_item_rules(row.id))
        return await self._finish(row, effects)

    async def update_line_item(self, line_item_id: str, changes: dict[str, Any]) -> MutationOutcome:
        """Apply *changes* to a line item and re-run its consistency work.

        Alerts raised for the previous state of the line item are removed
        before the write and the rules are evaluated again afterwards.
        """
        current = await self._line_items.get(line_item_id)
        if current is None:
            raise RecordNotFoundError("LineItem", line_item_id)

        changes = {key: value for key, value in changes.items() if key != "id"}
        old_invoice_id = current.invoice_id
        new_invoice_id = changes.get("invoice_id") or old_invoice_id
        changes["invoice_id"] = new_invoice_id

        new_service_type_id = changes.get("service_type_id")
        if new_service_type_id is None:
            changes.pop("service_type_id", None)
        elif new_service_type_id != current.service_type_id:
            if await self._service_types.get(new_service_type_id) is None:
                raise RecordNotFoundError("ServiceType", new_service_type_id)

        await self.status.ensure_mutable(old_invoice_id)
        reassigned = new_invoice_id != old_invoice_id
        if reassigned:
            destination = await self.status.ensure_mutable(new_invoice_id)
            changes["vehicle_id"] = destination.vehicle_id
            changes["vendor_id"] = destination.vendor_id

        if "unit_price" in changes or "quantity" in changes:
            priced = price_line_item(
                changes.get("unit_price", current.unit_price),
                changes.get("quantity", current.quantity),
            )
            changes.update(
                unit_price=priced.unit_price,
                quantity=priced.quantity,
                total_price=priced.total_price,
            )
        if "mileage" in changes:
            changes["mileage"] = floor_int(changes["mileage"]) or 0
        if "warranty_mileage" in changes:
            changes["warranty_mileage"] = normalise_warranty_mileage(changes["warranty_mileage"])

        totals_changed = reassigned or any(
            key in changes and changes[key] != getattr(current, key) for key in TOTALS_FIELDS
        )

        cleared_invoice_ids = await self._clear_line_item_alerts(line_item_id)
        row = await self._line_items.replace(line_item_id, changes)
        logger.info("Line item %s updated (%s)", line_item_id, ", ".join(sorted(changes)))

        effects = await self._sync_invoice_statuses(cleared_invoice_ids)
        if totals_changed:
            effects.append(await self._recompute_totals(old_invoice_id))
            if reassigned:
                effects.append(await self._recompute_totals(new_invoice_id))
        effects.extend(await self._evaluate_line_item_rules(line_item_id))
        return await self._finish(row, effects)

    async def delete_line_item(self, line_item_id: str) -> MutationOutcome:
        """Delete a line item, its alerts, and update its former invoice.

        A line item whose invoice no longer exists is deleted without the
        mutability gate or a totals recompute.
        """
        current = await self._line_items.get(line_item_id)
        if current is None:
            raise RecordNotFoundError("LineItem", line_item_id)
        invoice_id = current.invoice_id
        orphaned = await self._invoices.get(invoice_id) is None
        if orphaned:
            logger.warning("Line item %s references missing invoice %s", line_item_id, invoice_id)
        else:
            await self.status.ensure_mutable(invoice_id)

        cleared_invoice_ids = await self._clear_line_item_alerts(line_item_id)
        await self._line_items.delete(line_item_id)
        logger.info("Line item %s deleted from invoice %s", line_item_id, invoice_id)

        effects = await self._sync_invoice_statuses(cleared_invoice_ids)
        if not orphaned:
            effects.append(await self._recompute_totals(invoice_id))
        return await self._finish(current, effects, refresh=False)

    async def _clear_line_item_alerts(self, line_item_id: str) -> list[str]:
        """Delete every alert referencing the line item.

        Returns the distinct invoice ids those alerts referenced.
        """
        invoice_ids: list[str] = []
        alerts = await self._alerts.list_for_line_item(line_item_id)
        for alert in alerts:
            if alert.invoice_id and alert.invoice_id not in invoice_ids:
                invoice_ids.append(alert.invoice_id)
            await self._alerts.delete(alert.id)
        if alerts:
            logger.info("Deleted %d alert(s) for line item %s", len(alerts), line_item_id)
        return invoice_ids

    async def _recompute_totals(self, invoice_id: str) -> SideEffectResult:
        return await run_side_effect(
            self._session,
            f"totals:{invoice_id}",
            lambda: self.totals.recompute(invoice_id),
        )

    async def _evaluate_line_item_rules(self, line_item_id: str) -> list[SideEffectResult]:
        results = []
        for name, rule in self.rules.line_item_rules():
            results.append(
                await run_side_effect(
                    self._session,
                    f"rule:{name}:{line_item_id}",
                    lambda rule=rule: self._apply_line_item_rule(rule, line_item_id),
                )
            )
        return results

    async def _apply_line_item_rule(self, rule: Any, line_item_id: str) -> AlertTable | None:
        line_item = await self._line_items.get(line_item_id)
        if line_item is None:
            return None
        alert = await rule(line_item)
        if alert is not None:
            await self.status.on_alert_created(alert)
        return alert

    async def _sync_invoice_statuses(self, invoice_ids: list[str]) -> list[SideEffectResult]:
        results = []
        for invoice_id in invoice_ids:
            results.append(
                await run_side_effect(
                    self._session,
                    f"status:{invoice_id}",
                    lambda invoice_id=invoice_id: self.status.sync(invoice_id),
                )
            )
        return results

    # ------------------------------------------------------------------
    # Alerts
    # ------------------------------------------------------------------

    async def create_alert(self, values: dict[str, Any]) -> MutationOutcome:
        row = await self._alerts.create(values)
        logger.info("Alert %s created (%s/%s, %s)", row.id, row.type, row.reasons, row.status)
        alert_id = row.id
        effect = await run_side_effect(
            self._session,
            f"status:alert-created:{alert_id}",
            lambda: self._on_alert_created(alert_id),
        )
        return await self._finish(row, [effect])

    async def update_alert(self, alert_id: str, changes: dict[str, Any]) -> MutationOutcome:
        current = await self._alerts.get(alert_id)
        if current is None:
            raise RecordNotFoundError("Alert", alert_id)
        previous_status = current.status
        previous_invoice_id = current.invoice_id

        row = await self._alerts.replace(alert_id, changes)
        effect = await run_side_effect(
            self._session,
            f"status:alert-updated:{alert_id}",
            lambda: self._on_alert_updated(alert_id, previous_status, previous_invoice_id),
        )
        return await self._finish(row, [effect])

    async def delete_alert(self, alert_id: str) -> MutationOutcome:
        current = await self._alerts.get(alert_id)
        if current is None:
            raise RecordNotFoundError("Alert", alert_id)
        await self._alerts.delete(alert_id)
        logger.info("Alert %s deleted", alert_id)
        effect = await run_side_effect(
            self._session,
            f"status:alert-deleted:{alert_id}",
            lambda: self.status.on_alert_deleted(current),
        )
        return await self._finish(current, [effect], refresh=False)

    async def _on_alert_created(self, alert_id: str) -> str | None:
        alert = await self._alerts.get(alert_id)
        return await self.status.on_alert_created(alert) if alert is not None else None

    async def _on_alert_updated(
        self,
        alert_id: str,
        previous_status: str,
        previous_invoice_id: str | None,
    ) -> list[str]:
        alert = await self._alerts.get(alert_id)
        if alert is None:
            return []
        return await self.status.on_alert_updated(
            alert,
            previous_status=previous_status,
            previous_invoice_id=previous_invoice_id,
        )

    # ------------------------------------------------------------------
    # Vehicles
    # ------------------------------------------------------------------

    async def create_vehicle(self, values: dict[str, Any]) -> MutationOutcome:
        row = await self._vehicles.create(values)
        logger.info("Vehicle %s created (vin %s)", row.id, row.vin)
        effects = await self.check_vehicle_expirations(row)
        return await self._finish(row, effects)

    async def update_vehicle(self, vehicle_id: str, changes: dict[str, Any]) -> MutationOutcome:
        """Update a vehicle; expiration alerts are re-checked only if a date changed."""
        current = await self._vehicles.get(vehicle_id)
        if current is None:
            raise RecordNotFoundError("Vehicle", vehicle_id)
        before = {name: getattr(current, name) for name, _ in EXPIRATION_FIELDS}

        row = await self._vehicles.replace(vehicle_id, changes)
        changed = [name for name, _ in EXPIRATION_FIELDS if getattr(row, name) != before[name]]
        effects: list[SideEffectResult] = []
        if changed:
            logger.info("Vehicle %s expiration dates changed: %s", vehicle_id, ", ".join(changed))
            effects = await self.check_vehicle_expirations(row)
        return await self._finish(row, effects)

    async def check_vehicle_expirations(self, vehicle: VehicleTable) -> list[SideEffectResult]:
        """Run the expiration rule for each date on the vehicle, each guarded on its own."""
        vehicle_id = vehicle.id
        results = []
        for subcategory, expiration_date in self.rules.expiration_dates(vehicle):
            results.append(
                await run_side_effect(
                    self._session,
                    f"rule:expiration:{subcategory}:{vehicle_id}",
                    lambda subcategory=subcategory, expiration_date=expiration_date: (
                        self.rules.check_vehicle_expiration(vehicle_id, subcategory, expiration_date)
                    ),
                )
            )
        return results

    # ------------------------------------------------------------------
    # Invoices
    # ------------------------------------------------------------------

    async def update_invoice(self, invoice_id: str, changes: dict[str, Any]) -> MutationOutcome:
        """Update invoice header fields and keep its line items' references in step."""
        current = await self._invoices.get(invoice_id)
        if current is None:
            raise RecordNotFoundError("Invoice", invoice_id)
        previous_refs = (current.vehicle_id, current.vendor_id)

        row = await self._invoices.replace(invoice_id, changes)
        vehicle_id, vendor_id = row.vehicle_id, row.vendor_id
        effects: list[SideEffectResult] = []
        if (vehicle_id, vendor_id) != previous_refs:
            effects.append(
                await run_side_effect(
                    self._session,
                    f"propagate:{invoice_id}",
                    lambda: self._line_items.reassign_parent_refs(invoice_id, vehicle_id, vendor_id),
                )
            )
        return await self._finish(row, effects)

    # ------------------------------------------------------------------

    async def _finish(
        self,
        record: Any,
        effects: list[SideEffectResult],
        *,
        refresh: bool = True,
    ) -> MutationOutcome:
        outcome = MutationOutcome(record=record, side_effects=effects)
        if not outcome.ok:
            # A rolled-back savepoint may have expired the record's attributes.
            if refresh:
                await self._session.refresh(record)
            logger.warning(
                "%s %s stored with %d failed side effect(s): %s",
                type(record).__name__,
                record.id,
                len(outcome.failures),
                ", ".join(result.step for result in outcome.failures),
            )
        return outcome
