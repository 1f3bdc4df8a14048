"""
Record shapes shared by every store.

Both the local (SQLAlchemy) store and the remote (HTTP) store hand back these
dataclasses, so callers never see which backend served a request.
Money and percentages are Decimal; timestamps are datetimes. ``to_dict`` is the
JSON-safe wire form (Decimal -> str, datetime -> ISO-8601).
"""
from __future__ import annotations

from dataclasses import dataclass, field, fields
from datetime import datetime
from decimal import Decimal
from typing import Any, ClassVar, Dict, List, Optional, Tuple

from gc_estimator.utils.helpers import parse_timestamp, to_decimal_or_none, to_wire

_TIMESTAMPS = ("created_at", "updated_at")
_COST_FIELDS = ("quantity", "labor_cost", "material_cost", "subcontractor_cost", "total_cost")


@dataclass
class Record:
    decimal_fields: ClassVar[Tuple[str, ...]] = ()
    datetime_fields: ClassVar[Tuple[str, ...]] = _TIMESTAMPS

    id: Optional[str] = None

    @classmethod
    def field_names(cls) -> Tuple[str, ...]:
        return tuple(f.name for f in fields(cls))

    @classmethod
    def coerce(cls, data: Dict[str, Any]) -> Dict[str, Any]:
        """Normalize wire values for the known fields; unknown keys pass through."""
        out = {}
        for key, value in data.items():
            if key in cls.decimal_fields:
                value = to_decimal_or_none(value)
            elif key in cls.datetime_fields:
                value = parse_timestamp(value)
            out[key] = value
        return out

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Record":
        names = set(cls.field_names())
        return cls(**cls.coerce({k: v for k, v in data.items() if k in names}))

    def to_dict(self) -> Dict[str, Any]:
        return {f.name: to_wire(getattr(self, f.name)) for f in fields(self)}


@dataclass
class ProjectRecord(Record):
    decimal_fields: ClassVar[Tuple[str, ...]] = ("estimate_total",)

    org_id: Optional[str] = None
    name: str = ""
    status: str = "estimating"
    address: Optional[str] = None
    client: Dict[str, Any] = field(default_factory=dict)
    meta: Dict[str, Any] = field(default_factory=dict)
    estimate_total: Decimal = Decimal("0")
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class EstimateRecord(Record):
    decimal_fields: ClassVar[Tuple[str, ...]] = (
        "default_markup_percent",
        "default_contingency_percent",
        "subtotal",
        "gross_profit",
        "contingency",
        "total_estimated",
    )

    project_id: Optional[str] = None
    org_id: Optional[str] = None
    default_markup_percent: Optional[Decimal] = None
    default_contingency_percent: Optional[Decimal] = None
    subtotal: Decimal = Decimal("0")
    gross_profit: Decimal = Decimal("0")
    contingency: Decimal = Decimal("0")
    total_estimated: Decimal = Decimal("0")
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class TradeRecord(Record):
    decimal_fields: ClassVar[Tuple[str, ...]] = _COST_FIELDS + (
        "labor_rate",
        "labor_hours",
        "material_rate",
        "markup_percent",
        "waste_factor",
    )
    datetime_fields: ClassVar[Tuple[str, ...]] = _TIMESTAMPS + ("quote_date",)

    estimate_id: Optional[str] = None
    org_id: Optional[str] = None
    category: str = "other"
    group: str = "other"
    name: str = ""
    description: Optional[str] = None
    quantity: Decimal = Decimal("0")
    unit: str = "ea"
    labor_cost: Decimal = Decimal("0")
    labor_rate: Optional[Decimal] = None
    labor_hours: Optional[Decimal] = None
    material_cost: Decimal = Decimal("0")
    material_rate: Optional[Decimal] = None
    subcontractor_cost: Decimal = Decimal("0")
    total_cost: Decimal = Decimal("0")
    markup_percent: Optional[Decimal] = None
    is_subcontracted: bool = False
    waste_factor: Decimal = Decimal("0")
    sort_order: int = 0
    estimate_status: str = "budget"
    quote_vendor: Optional[str] = None
    quote_date: Optional[datetime] = None
    quote_reference: Optional[str] = None
    quote_file_url: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class SubItemRecord(Record):
    decimal_fields: ClassVar[Tuple[str, ...]] = _COST_FIELDS + ("markup_percent", "waste_factor")

    trade_id: Optional[str] = None
    estimate_id: Optional[str] = None
    org_id: Optional[str] = None
    category: str = "other"
    group: str = "other"
    name: str = ""
    description: Optional[str] = None
    quantity: Decimal = Decimal("0")
    unit: str = "ea"
    labor_cost: Decimal = Decimal("0")
    material_cost: Decimal = Decimal("0")
    subcontractor_cost: Decimal = Decimal("0")
    total_cost: Decimal = Decimal("0")
    markup_percent: Optional[Decimal] = None
    waste_factor: Decimal = Decimal("0")
    sort_order: int = 0
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class TemplateRecord(Record):
    decimal_fields: ClassVar[Tuple[str, ...]] = ("default_markup_percent", "default_contingency_percent")

    org_id: Optional[str] = None
    name: str = ""
    description: Optional[str] = None
    # Trade snapshots in wire form (identity and estimate binding stripped)
    trades: List[Dict[str, Any]] = field(default_factory=list)
    default_markup_percent: Optional[Decimal] = None
    default_contingency_percent: Optional[Decimal] = None
    usage_count: int = 0
    linked_plan_ids: List[str] = field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class CategoryRecord(Record):
    org_id: Optional[str] = None
    key: str = ""
    label: str = ""
    icon: Optional[str] = None
    sort_order: int = 0
    is_system: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


RECORD_TYPES = {
    "projects": ProjectRecord,
    "estimates": EstimateRecord,
    "trades": TradeRecord,
    "sub_items": SubItemRecord,
    "templates": TemplateRecord,
    "categories": CategoryRecord,
}

# Filters each entity's ``list`` accepts, identical on both stores.
LIST_FILTERS = {
    "projects": ("org_id", "status"),
    "estimates": ("project_id",),
    "trades": ("estimate_id", "category"),
    "sub_items": ("trade_id", "estimate_id"),
    "templates": ("org_id",),
    "categories": ("org_id",),
}
