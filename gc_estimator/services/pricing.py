from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Optional

from flask import current_app, has_app_context

from gc_estimator.utils.helpers import to_decimal, to_decimal_or_none


@dataclass(frozen=True)
class PricingDefaults:
    """Versioned global pricing defaults (from app config)."""

    version: int = 2
    markup_percent: Decimal = Decimal("20")
    legacy_markup_sentinel: Decimal = Decimal("11.1")
    contingency_percent: Decimal = Decimal("10")
    waste_factor: Decimal = Decimal("10")


def pricing_defaults() -> PricingDefaults:
    if not has_app_context():
        return PricingDefaults()
    cfg = current_app.config
    return PricingDefaults(
        version=int(cfg.get("PRICING_CONFIG_VERSION", 2)),
        markup_percent=to_decimal(cfg.get("DEFAULT_MARKUP_PERCENT"), "20"),
        legacy_markup_sentinel=to_decimal(cfg.get("LEGACY_MARKUP_SENTINEL"), "11.1"),
        contingency_percent=to_decimal(cfg.get("DEFAULT_CONTINGENCY_PERCENT"), "10"),
        waste_factor=to_decimal(cfg.get("DEFAULT_WASTE_FACTOR"), "10"),
    )


def normalize_markup(value: Any, defaults: Optional[PricingDefaults] = None) -> Optional[Decimal]:
    """
    Read-time normalization of a *default* markup (estimate or template level).

    None stays None; the legacy sentinel becomes the current global default.
    Only ever applied here, at the boundary where defaults are read.
    """
    defaults = defaults or pricing_defaults()
    markup = to_decimal_or_none(value)
    if markup is None:
        return None
    if markup == defaults.legacy_markup_sentinel:
        return defaults.markup_percent
    return markup


def effective_markup(
    trade_markup: Any,
    estimate_default: Any,
    defaults: Optional[PricingDefaults] = None,
) -> Decimal:
    """trade markup if set (0 counts), else the estimate default, else the global default."""
    defaults = defaults or pricing_defaults()
    markup = to_decimal_or_none(trade_markup)
    if markup is not None:
        return markup
    fallback = normalize_markup(estimate_default, defaults)
    if fallback is not None:
        return fallback
    return defaults.markup_percent
