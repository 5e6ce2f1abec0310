"""Cross-entity consistency and alerting engine."""

from fleet_api.engine.alert_rules import AlertRuleEngine
from fleet_api.engine.orchestrator import ConsistencyOrchestrator, MutationOutcome
from fleet_api.engine.pricing import PricedLineItem, price_line_item, round2
from fleet_api.engine.side_effects import SideEffectResult, run_side_effect
from fleet_api.engine.status_machine import MUTABLE_STATUSES, InvoiceStatusStateMachine
from fleet_api.engine.totals import InvoiceTotals, InvoiceTotalsAggregator, compute_totals

__all__ = [
    "MUTABLE_STATUSES",
    "AlertRuleEngine",
    "ConsistencyOrchestrator",
    "InvoiceStatusStateMachine",
    "InvoiceTotals",
    "InvoiceTotalsAggregator",
    "MutationOutcome",
    "PricedLineItem",
    "SideEffectResult",
    "compute_totals",
    "price_line_item",
    "round2",
    "run_side_effect",
]
