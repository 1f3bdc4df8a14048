from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional, Union

from gc_estimator.records import TemplateRecord, TradeRecord
from gc_estimator.services import router
from gc_estimator.services.categories import category_group
from gc_estimator.services.context import current_org_context
from gc_estimator.services.errors import ServiceError, ValidationFailure
from gc_estimator.services.pipeline import bulk
from gc_estimator.services.pricing import effective_markup, normalize_markup, pricing_defaults
from gc_estimator.utils.helpers import to_decimal_or_none, to_wire

logger = logging.getLogger(__name__)

# never part of a snapshot: identity, estimate binding, derived totals, quote state
_STRIPPED = (
    "id", "estimate_id", "org_id", "total_cost", "created_at", "updated_at",
    "estimate_status", "quote_vendor", "quote_date", "quote_reference", "quote_file_url",
)
_SNAPSHOT_FIELDS = tuple(name for name in TradeRecord.field_names() if name not in _STRIPPED)


def snapshot_trade(trade: Union[TradeRecord, Dict[str, Any]]) -> Dict[str, Any]:
    """Trade cost structure in wire form, identity stripped and ``group`` re-derived."""
    data = trade.to_dict() if isinstance(trade, TradeRecord) else TradeRecord.from_dict(trade).to_dict()
    snap = {name: data.get(name) for name in _SNAPSHOT_FIELDS}
    snap["group"] = category_group(snap.get("category"))
    return snap


def create_template(
    name: str,
    trades: Iterable[Union[TradeRecord, Dict[str, Any]]],
    *,
    description: Optional[str] = None,
    default_markup_percent: Any = None,
    default_contingency_percent: Any = None,
    org_id: Optional[str] = None,
) -> TemplateRecord:
    name = (name or "").strip()
    if not name:
        raise ValidationFailure("Template name is required.")
    defaults = pricing_defaults()
    markup = normalize_markup(default_markup_percent, defaults)
    contingency = to_decimal_or_none(default_contingency_percent)
    return router.create_template(
        {
            "org_id": org_id or current_org_context().org_id,
            "name": name,
            "description": description,
            "trades": [snapshot_trade(t) for t in trades],
            "default_markup_percent": defaults.markup_percent if markup is None else markup,
            "default_contingency_percent": defaults.contingency_percent if contingency is None else contingency,
            "usage_count": 0,
            "linked_plan_ids": [],
        }
    )


def create_template_from_estimate(
    estimate_id: str,
    name: str,
    *,
    description: Optional[str] = None,
) -> TemplateRecord:
    estimate = router.get_estimate(estimate_id)
    return create_template(
        name,
        router.list_trades(estimate_id=estimate_id),
        description=description,
        default_markup_percent=estimate.default_markup_percent,
        default_contingency_percent=estimate.default_contingency_percent,
        org_id=estimate.org_id,
    )


def list_templates(org_id: Optional[str] = None) -> List[TemplateRecord]:
    return router.list_templates(org_id=org_id or current_org_context().org_id)


def apply_template(template_id: str, estimate_id: str) -> List[TradeRecord]:
    """
    Instantiate every snapshotted trade into ``estimate_id`` with fresh ids.

    Markup per trade: snapshot markup, else the template default, else the
    global default. The template itself only changes by its usage counter.
    The estimate is recalculated once, after all trades are written.
    """
    template = router.get_template(template_id)
    defaults = pricing_defaults()
    with bulk(estimate_id) as batch:
        for snap in template.trades:
            data = {k: v for k, v in snap.items() if k in _SNAPSHOT_FIELDS and k not in ("group", "sort_order")}
            data["markup_percent"] = effective_markup(
                snap.get("markup_percent"), template.default_markup_percent, defaults
            )
            batch.add(data)
        increment_usage(template_id)
    logger.info("Applied template %s to estimate %s (%d trades)", template_id, estimate_id, len(batch.created))
    return batch.created


def increment_usage(template_id: str) -> None:
    """Fire-and-forget: a failed bump is logged, never raised. Drift under concurrent use is tolerated."""
    try:
        template = router.get_template(template_id)
        router.update_template(template_id, {"usage_count": (template.usage_count or 0) + 1})
    except ServiceError as e:
        logger.warning("Template %s usage counter not incremented: %s", template_id, e)


def link_plan(template_id: str, plan_id: str) -> TemplateRecord:
    template = router.get_template(template_id)
    if plan_id in template.linked_plan_ids:
        return template
    return router.update_template(template_id, {"linked_plan_ids": [*template.linked_plan_ids, plan_id]})


def unlink_plan(template_id: str, plan_id: str) -> TemplateRecord:
    template = router.get_template(template_id)
    if plan_id not in template.linked_plan_ids:
        return template
    return router.update_template(
        template_id, {"linked_plan_ids": [p for p in template.linked_plan_ids if p != plan_id]}
    )


def update_template(
    template_id: str,
    *,
    name: Optional[str] = None,
    description: Optional[str] = None,
    default_markup_percent: Any = None,
    default_contingency_percent: Any = None,
) -> TemplateRecord:
    """Metadata and defaults only; the trade snapshot is fixed at creation."""
    changes: Dict[str, Any] = {}
    if name is not None:
        name = name.strip()
        if not name:
            raise ValidationFailure("Template name is required.")
        changes["name"] = name
    if description is not None:
        changes["description"] = description
    if default_markup_percent is not None:
        changes["default_markup_percent"] = to_decimal_or_none(default_markup_percent)
    if default_contingency_percent is not None:
        changes["default_contingency_percent"] = to_decimal_or_none(default_contingency_percent)
    if not changes:
        return router.get_template(template_id)
    return router.update_template(template_id, to_wire(changes))


def delete_template(template_id: str) -> None:
    router.delete_template(template_id)
