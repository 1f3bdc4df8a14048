"""
Cost aggregation: Sub-Item -> Trade -> Estimate -> Project.

  trade.total_cost      = labor + material + subcontractor
  trade direct costs    = component-wise sum of its sub-items (when it has any)
  estimate.subtotal     = sum(trade.total_cost)
  estimate.gross_profit = sum(trade.total_cost * effective_markup(trade) / 100)
  estimate.contingency  = subtotal * contingency% / 100   (of subtotal, not subtotal + profit)
  estimate.total        = subtotal + gross_profit + contingency

Both recalculations are pure functions of current leaf state, so calling them
again is always safe and is how a half-finished write gets repaired.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Iterable, Optional

from gc_estimator.records import EstimateRecord, TradeRecord
from gc_estimator.services import router
from gc_estimator.services.pricing import PricingDefaults, effective_markup, pricing_defaults
from gc_estimator.utils.helpers import round_currency, to_decimal, to_decimal_or_none

logger = logging.getLogger(__name__)

COST_FIELDS = ("labor_cost", "material_cost", "subcontractor_cost")
HUNDRED = Decimal("100")


def trade_total(labor: Any, material: Any, subcontractor: Any) -> Decimal:
    return to_decimal(labor) + to_decimal(material) + to_decimal(subcontractor)


@dataclass(frozen=True)
class EstimateTotals:
    subtotal: Decimal = Decimal("0.00")
    gross_profit: Decimal = Decimal("0.00")
    contingency: Decimal = Decimal("0.00")
    total_estimated: Decimal = Decimal("0.00")

    def as_changes(self) -> dict:
        return {
            "subtotal": self.subtotal,
            "gross_profit": self.gross_profit,
            "contingency": self.contingency,
            "total_estimated": self.total_estimated,
        }


def price_trades(
    trades: Iterable[TradeRecord],
    default_markup: Any,
    contingency_percent: Any,
    defaults: Optional[PricingDefaults] = None,
) -> EstimateTotals:
    """
    Price a set of trades. Negative costs are not rejected here; they aggregate
    like any other number. Components are rounded to cents before the grand
    total is summed so the persisted total always equals its parts.
    """
    defaults = defaults or pricing_defaults()
    subtotal = Decimal("0")
    gross_profit = Decimal("0")
    for trade in trades:
        cost = to_decimal(trade.total_cost)
        subtotal += cost
        gross_profit += cost * effective_markup(trade.markup_percent, default_markup, defaults) / HUNDRED

    pct = to_decimal_or_none(contingency_percent)
    if pct is None:
        pct = defaults.contingency_percent
    contingency = subtotal * pct / HUNDRED

    subtotal = round_currency(subtotal)
    gross_profit = round_currency(gross_profit)
    contingency = round_currency(contingency)
    return EstimateTotals(
        subtotal=subtotal,
        gross_profit=gross_profit,
        contingency=contingency,
        total_estimated=subtotal + gross_profit + contingency,
    )


def _unchanged(record, changes: dict) -> bool:
    return all(getattr(record, key) == value for key, value in changes.items())


def recalculate_trade(trade_id: str) -> TradeRecord:
    """
    With sub-items: overwrite the three direct costs with their sums, then total.
    Without: only total_cost is recomputed; direct costs are left alone.
    """
    trade = router.get_trade(trade_id)
    sub_items = router.list_sub_items(trade_id=trade_id)

    if sub_items:
        changes = {
            name: round_currency(sum((to_decimal(getattr(s, name)) for s in sub_items), Decimal("0")))
            for name in COST_FIELDS
        }
        changes["total_cost"] = sum(changes.values(), Decimal("0"))
    else:
        changes = {
            "total_cost": round_currency(
                trade_total(trade.labor_cost, trade.material_cost, trade.subcontractor_cost)
            )
        }

    if _unchanged(trade, changes):
        return trade
    logger.debug("Recalculated trade %s (%d sub-items): %s", trade_id, len(sub_items), changes)
    return router.update_trade(trade_id, changes)


def recalculate_estimate(estimate_id: str) -> EstimateRecord:
    """Re-price the estimate from its trades and refresh the project's summary total."""
    estimate = router.get_estimate(estimate_id)
    trades = router.list_trades(estimate_id=estimate_id)
    totals = price_trades(
        trades,
        estimate.default_markup_percent,
        estimate.default_contingency_percent,
    )

    changes = totals.as_changes()
    if not _unchanged(estimate, changes):
        estimate = router.update_estimate(estimate_id, changes)

    if estimate.project_id:
        project = router.get_project(estimate.project_id)
        if project.estimate_total != totals.total_estimated:
            router.update_project(project.id, {"estimate_total": totals.total_estimated})

    logger.debug(
        "Recalculated estimate %s: %d trades, subtotal=%s total=%s",
        estimate_id, len(trades), totals.subtotal, totals.total_estimated,
    )
    return estimate
