"""
Write-then-recompute pipeline.

Every mutation of a cost-bearing record goes through here, never straight to
the router, so the ancestor totals are refreshed before the call returns:

  sub-item write -> recalculate_trade -> recalculate_estimate -> project summary
  trade write    ->                      recalculate_estimate -> project summary

Bulk writes (``bulk`` / ``bulk_create_trades``) do the leaf writes first and
recalculate the estimate exactly once at the end. If a bulk write dies halfway
the totals are stale until the next recalculation, which repairs them.
"""
from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence

from gc_estimator.models.project import PROJECT_STATUSES
from gc_estimator.models.trade import ESTIMATE_STATUSES
from gc_estimator.records import EstimateRecord, ProjectRecord, SubItemRecord, TradeRecord
from gc_estimator.services import router
from gc_estimator.services.aggregation import COST_FIELDS, recalculate_estimate, recalculate_trade, trade_total
from gc_estimator.services.categories import category_group
from gc_estimator.services.context import current_org_context
from gc_estimator.services.errors import ValidationFailure
from gc_estimator.services.pricing import PricingDefaults, pricing_defaults
from gc_estimator.utils.helpers import round_currency, to_decimal, to_decimal_or_none, utcnow

logger = logging.getLogger(__name__)

# fields callers may never write directly (identity, bindings, derived values)
_TRADE_PROTECTED = {"id", "estimate_id", "org_id", "total_cost", "group", "created_at", "updated_at"}
_SUB_ITEM_PROTECTED = _TRADE_PROTECTED | {"trade_id"}
_PROJECT_EDITABLE = {"name", "address", "client", "meta"}


# ---------- small guards ----------
def _require_name(value: Any, what: str) -> str:
    name = (value or "").strip() if isinstance(value, str) else ""
    if not name:
        raise ValidationFailure(f"{what} name is required.")
    return name


def _reject(changes: Dict[str, Any], protected: set, what: str) -> None:
    bad = sorted(set(changes) & protected)
    if bad:
        raise ValidationFailure(f"{what} field(s) not writable: {', '.join(bad)}")


def _check_estimate_status(value: Any) -> None:
    if value is not None and value not in ESTIMATE_STATUSES:
        raise ValidationFailure(f"estimate_status must be one of {', '.join(ESTIMATE_STATUSES)}")


def _stamp(data: Dict[str, Any]) -> Dict[str, Any]:
    """Keep ``group`` in step with ``category`` and ``total_cost`` with the three costs."""
    if "category" in data:
        data["category"] = (data["category"] or "other").strip().lower() or "other"
        data["group"] = category_group(data["category"])
    if any(name in data for name in COST_FIELDS):
        data["total_cost"] = round_currency(trade_total(*(data.get(n) for n in COST_FIELDS)))
    return data


# ---------- projects ----------
def create_project(
    name: str,
    *,
    address: Optional[str] = None,
    client: Optional[dict] = None,
    meta: Optional[dict] = None,
    default_markup_percent: Any = None,
    default_contingency_percent: Any = None,
    org_id: Optional[str] = None,
) -> ProjectRecord:
    """Project plus its one estimate, seeded with the global pricing defaults."""
    defaults = pricing_defaults()
    org_id = org_id or current_org_context().org_id
    project = router.create_project(
        {
            "org_id": org_id,
            "name": _require_name(name, "Project"),
            "status": PROJECT_STATUSES[0],
            "address": address,
            "client": client or {},
            "meta": meta or {},
        }
    )
    markup = to_decimal_or_none(default_markup_percent)
    contingency = to_decimal_or_none(default_contingency_percent)
    router.create_estimate(
        {
            "project_id": project.id,
            "org_id": org_id,
            "default_markup_percent": defaults.markup_percent if markup is None else markup,
            "default_contingency_percent": defaults.contingency_percent if contingency is None else contingency,
        }
    )
    logger.info("Created project %s (%s)", project.id, project.name)
    return project


def update_project(project_id: str, changes: Dict[str, Any]) -> ProjectRecord:
    bad = sorted(set(changes) - _PROJECT_EDITABLE)
    if bad:
        raise ValidationFailure(f"Project field(s) not writable here: {', '.join(bad)}")
    changes = dict(changes)
    if "name" in changes:
        changes["name"] = _require_name(changes["name"], "Project")
    return router.update_project(project_id, changes)


def advance_project_status(project_id: str, status: str) -> ProjectRecord:
    """estimating -> in-progress -> complete; never backwards (see ``reopen_project``)."""
    if status not in PROJECT_STATUSES:
        raise ValidationFailure(f"Unknown project status {status!r}")
    project = router.get_project(project_id)
    current = PROJECT_STATUSES.index(project.status) if project.status in PROJECT_STATUSES else 0
    target = PROJECT_STATUSES.index(status)
    if target == current:
        return project
    if target < current:
        raise ValidationFailure(f"Project cannot move from {project.status!r} back to {status!r}; reopen it instead.")
    meta = dict(project.meta or {})
    meta.setdefault(f"{status.replace('-', '_')}_at", utcnow().isoformat())
    return router.update_project(project_id, {"status": status, "meta": meta})


def reopen_project(project_id: str) -> ProjectRecord:
    project = router.get_project(project_id)
    if project.status == PROJECT_STATUSES[0]:
        return project
    logger.info("Reopening project %s (was %s)", project_id, project.status)
    return router.update_project(project_id, {"status": PROJECT_STATUSES[0]})


def delete_project(project_id: str) -> None:
    """Cascades to the estimate, its trades and their sub-items."""
    router.delete_project(project_id)


def duplicate_project(source_project_id: str, name: str) -> ProjectRecord:
    """Fresh project (status 'estimating') carrying copies of the source's trades and sub-items."""
    source = router.get_project(source_project_id)
    source_estimate = router.get_estimate_for_project(source.id)
    # the copy starts over at "estimating"; status stamps belong to the source
    stamps = {f"{s.replace('-', '_')}_at" for s in PROJECT_STATUSES}
    meta = {k: v for k, v in (source.meta or {}).items() if k not in stamps}
    project = create_project(
        name,
        address=source.address,
        client=source.client,
        meta=meta,
        default_markup_percent=source_estimate.default_markup_percent,
        default_contingency_percent=source_estimate.default_contingency_percent,
        org_id=source.org_id,
    )
    target = router.get_estimate_for_project(project.id)
    with bulk(target.id) as batch:
        for trade in router.list_trades(estimate_id=source_estimate.id):
            copy = batch.add(trade_payload(trade))
            for sub in router.list_sub_items(trade_id=trade.id):
                batch.add_sub_item(copy.id, sub_item_payload(sub))
    return router.get_project(project.id)


# ---------- estimates ----------
def update_estimate_defaults(
    estimate_id: str,
    *,
    markup_percent: Any = None,
    contingency_percent: Any = None,
) -> EstimateRecord:
    changes = {}
    if markup_percent is not None:
        changes["default_markup_percent"] = to_decimal(markup_percent)
    if contingency_percent is not None:
        changes["default_contingency_percent"] = to_decimal(contingency_percent)
    if changes:
        router.update_estimate(estimate_id, changes)
    return recalculate_estimate(estimate_id)


def estimate_for_project(project_id: str) -> EstimateRecord:
    return router.get_estimate_for_project(project_id)


# ---------- payload builders ----------
def trade_payload(trade: TradeRecord) -> Dict[str, Any]:
    """A trade's cost structure without identity or estimate binding."""
    data = trade.to_dict()
    for key in ("id", "estimate_id", "org_id", "total_cost", "group", "created_at", "updated_at"):
        data.pop(key, None)
    return data


def sub_item_payload(sub: SubItemRecord) -> Dict[str, Any]:
    data = sub.to_dict()
    for key in ("id", "trade_id", "estimate_id", "org_id", "total_cost", "group", "created_at", "updated_at"):
        data.pop(key, None)
    return data


def _new_trade(estimate: EstimateRecord, data: Dict[str, Any], sort_order: int, defaults: PricingDefaults) -> Dict[str, Any]:
    _reject(data, _TRADE_PROTECTED, "Trade")
    _check_estimate_status(data.get("estimate_status"))
    payload = dict(data)
    payload["name"] = _require_name(payload.get("name"), "Trade")
    payload.setdefault("category", "other")
    for name in COST_FIELDS:
        payload[name] = to_decimal(payload.get(name))
    if to_decimal_or_none(payload.get("waste_factor")) is None:
        payload["waste_factor"] = defaults.waste_factor
    if payload.get("sort_order") is None:
        payload["sort_order"] = sort_order
    payload["estimate_id"] = estimate.id
    payload["org_id"] = estimate.org_id or current_org_context().org_id
    return _stamp(payload)


def _new_sub_item(trade: TradeRecord, data: Dict[str, Any], sort_order: int, defaults: PricingDefaults) -> Dict[str, Any]:
    _reject(data, _SUB_ITEM_PROTECTED, "Sub-item")
    payload = dict(data)
    payload["name"] = _require_name(payload.get("name"), "Sub-item")
    payload.setdefault("category", trade.category)
    for name in COST_FIELDS:
        payload[name] = to_decimal(payload.get(name))
    if to_decimal_or_none(payload.get("waste_factor")) is None:
        payload["waste_factor"] = defaults.waste_factor
    if payload.get("sort_order") is None:
        payload["sort_order"] = sort_order
    payload["trade_id"] = trade.id
    payload["estimate_id"] = trade.estimate_id
    payload["org_id"] = trade.org_id or current_org_context().org_id
    return _stamp(payload)


# ---------- trades ----------
def create_trade(estimate_id: str, data: Dict[str, Any]) -> TradeRecord:
    estimate = router.get_estimate(estimate_id)
    existing = router.list_trades(estimate_id=estimate_id)
    trade = router.create_trade(_new_trade(estimate, data, len(existing), pricing_defaults()))
    recalculate_estimate(estimate_id)
    return trade


def update_trade(trade_id: str, changes: Dict[str, Any]) -> TradeRecord:
    """
    Direct cost edits are refused while the trade owns sub-items; those costs
    are derived and only recalculation writes them.
    """
    _reject(changes, _TRADE_PROTECTED, "Trade")
    _check_estimate_status(changes.get("estimate_status"))
    trade = router.get_trade(trade_id)
    changes = dict(changes)
    if "name" in changes:
        changes["name"] = _require_name(changes["name"], "Trade")

    touched = [name for name in COST_FIELDS if name in changes]
    if touched and router.list_sub_items(trade_id=trade_id):
        raise ValidationFailure(
            f"Trade {trade_id} costs come from its sub-items; edit the sub-items instead."
        )
    if touched:
        for name in COST_FIELDS:
            changes[name] = to_decimal(changes[name]) if name in changes else getattr(trade, name)
    updated = router.update_trade(trade_id, _stamp(changes))
    recalculate_estimate(trade.estimate_id)
    return updated


def delete_trade(trade_id: str) -> None:
    trade = router.get_trade(trade_id)
    router.delete_trade(trade_id)
    recalculate_estimate(trade.estimate_id)


def reorder_trades(estimate_id: str, trade_ids: Sequence[str]) -> List[TradeRecord]:
    trades = {t.id: t for t in router.list_trades(estimate_id=estimate_id)}
    stray = [tid for tid in trade_ids if tid not in trades]
    if stray:
        raise ValidationFailure(f"Trade(s) not on estimate {estimate_id}: {', '.join(stray)}")
    for index, trade_id in enumerate(trade_ids):
        if trades[trade_id].sort_order != index:
            router.update_trade(trade_id, {"sort_order": index})
    recalculate_estimate(estimate_id)
    return router.list_trades(estimate_id=estimate_id)


# ---------- bulk ----------
@dataclass
class TradeBatch:
    """Leaf writes for one estimate; recalculation is deferred to ``bulk``'s exit."""

    estimate: EstimateRecord
    defaults: PricingDefaults
    next_sort: int = 0
    created: List[TradeRecord] = field(default_factory=list)
    sub_items: List[SubItemRecord] = field(default_factory=list)
    dirty: Dict[str, TradeRecord] = field(default_factory=dict)

    def add(self, data: Dict[str, Any]) -> TradeRecord:
        trade = router.create_trade(_new_trade(self.estimate, data, self.next_sort, self.defaults))
        self.next_sort += 1
        self.created.append(trade)
        return trade

    def add_sub_item(self, trade_id: str, data: Dict[str, Any]) -> SubItemRecord:
        trade = self.dirty.get(trade_id) or router.get_trade(trade_id)
        if trade.estimate_id != self.estimate.id:
            raise ValidationFailure(f"Trade {trade_id} is not on estimate {self.estimate.id}")
        order = sum(1 for s in self.sub_items if s.trade_id == trade_id)
        sub = router.create_sub_item(_new_sub_item(trade, data, order, self.defaults))
        self.sub_items.append(sub)
        self.dirty[trade_id] = trade
        return sub


@contextmanager
def bulk(estimate_id: str):
    estimate = router.get_estimate(estimate_id)
    existing = router.list_trades(estimate_id=estimate_id)
    batch = TradeBatch(estimate=estimate, defaults=pricing_defaults(), next_sort=len(existing))
    try:
        yield batch
    except Exception:
        logger.warning(
            "Bulk write on estimate %s stopped after %d trade(s); totals stale until next recalculation",
            estimate_id, len(batch.created),
        )
        raise
    for trade_id in batch.dirty:
        recalculate_trade(trade_id)
    recalculate_estimate(estimate_id)


def bulk_create_trades(estimate_id: str, rows: Iterable[Dict[str, Any]]) -> List[TradeRecord]:
    with bulk(estimate_id) as batch:
        for row in rows:
            batch.add(row)
    return batch.created


# ---------- sub-items ----------
def create_sub_item(trade_id: str, data: Dict[str, Any]) -> SubItemRecord:
    trade = router.get_trade(trade_id)
    existing = router.list_sub_items(trade_id=trade_id)
    sub = router.create_sub_item(_new_sub_item(trade, data, len(existing), pricing_defaults()))
    recalculate_trade(trade_id)
    recalculate_estimate(trade.estimate_id)
    return sub


def update_sub_item(sub_item_id: str, changes: Dict[str, Any]) -> SubItemRecord:
    _reject(changes, _SUB_ITEM_PROTECTED, "Sub-item")
    sub = router.get_sub_item(sub_item_id)
    changes = dict(changes)
    if "name" in changes:
        changes["name"] = _require_name(changes["name"], "Sub-item")
    if any(name in changes for name in COST_FIELDS):
        for name in COST_FIELDS:
            changes[name] = to_decimal(changes[name]) if name in changes else getattr(sub, name)
    updated = router.update_sub_item(sub_item_id, _stamp(changes))
    recalculate_trade(sub.trade_id)
    recalculate_estimate(sub.estimate_id)
    return updated


def delete_sub_item(sub_item_id: str) -> None:
    sub = router.get_sub_item(sub_item_id)
    router.delete_sub_item(sub_item_id)
    recalculate_trade(sub.trade_id)
    recalculate_estimate(sub.estimate_id)


# ---------- vendor quotes ----------
_QUOTE_COST_FIELDS = {
    "labor": "labor_cost",
    "material": "material_cost",
    "subcontractor": "subcontractor_cost",
}


def apply_vendor_quote(
    trade_id: str,
    *,
    vendor: str,
    amount: Any,
    cost_type: str = "subcontractor",
    quote_reference: Optional[str] = None,
    quote_date: Any = None,
    quote_file_url: Optional[str] = None,
) -> TradeRecord:
    """
    Accepted quote -> ordinary cost entry. A trade without sub-items takes the
    amount in the matching cost column; a trade with sub-items gets a new
    sub-item carrying it. The file URL is stored as given.
    """
    column = _QUOTE_COST_FIELDS.get(cost_type)
    if column is None:
        raise ValidationFailure(f"cost_type must be one of {', '.join(_QUOTE_COST_FIELDS)}")
    vendor = _require_name(vendor, "Vendor")
    amount = to_decimal_or_none(amount)
    if amount is None:
        raise ValidationFailure("Quote amount is required.")

    trade = router.get_trade(trade_id)
    quote_fields = {
        "quote_vendor": vendor,
        "quote_reference": quote_reference,
        "quote_date": quote_date or utcnow(),
        "quote_file_url": quote_file_url,
        "estimate_status": "quoted",
    }
    if cost_type == "subcontractor":
        quote_fields["is_subcontracted"] = True

    if router.list_sub_items(trade_id=trade_id):
        create_sub_item(trade_id, {"name": f"Quote: {vendor}", column: amount, "notes": quote_reference})
        return router.update_trade(trade_id, quote_fields)

    changes = {name: getattr(trade, name) for name in COST_FIELDS}
    changes[column] = amount
    changes.update(quote_fields)
    updated = router.update_trade(trade_id, _stamp(changes))
    recalculate_estimate(trade.estimate_id)
    logger.info("Applied %s quote from %s to trade %s", cost_type, vendor, trade_id)
    return updated


# ---------- analysis ----------
@dataclass(frozen=True)
class EstimateAnalysis:
    is_complete: bool
    warnings: List[str]
    trade_count: int
    total_estimated: Any


def estimate_warnings(estimate_id: str) -> EstimateAnalysis:
    """Completeness check over stored values; never recalculates."""
    estimate = router.get_estimate(estimate_id)
    trades = router.list_trades(estimate_id=estimate_id)
    warnings = []
    if not trades:
        warnings.append("No trades added to estimate")
    if to_decimal(estimate.default_markup_percent) == 0:
        warnings.append("No markup percentage set")
    if to_decimal(estimate.default_contingency_percent) == 0:
        warnings.append("No contingency percentage set")
    incomplete = [t for t in trades if to_decimal(t.total_cost) == 0 or to_decimal(t.quantity) == 0]
    if incomplete:
        warnings.append(f"{len(incomplete)} trade(s) with zero cost or quantity")
    high_waste = [t for t in trades if to_decimal(t.waste_factor) > 20]
    if high_waste:
        warnings.append(f"{len(high_waste)} trade(s) with waste factor over 20%")
    return EstimateAnalysis(
        is_complete=not warnings,
        warnings=warnings,
        trade_count=len(trades),
        total_estimated=estimate.total_estimated,
    )
