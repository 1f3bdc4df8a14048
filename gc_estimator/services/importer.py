"""
Import adapter: thin mapping only (no aggregation of its own)

  spreadsheet (CSV/XLSX) -> DataFrame -> ImportRow -> trade payload -> pipeline.bulk

Header matching is loose (case/punctuation-insensitive, see COLUMN_ALIASES).
When two headers map to the same field the leftmost one wins. A sheet with a
Description column but no name column uses the descriptions as names.
Rows flagged as subtotals and rows without a name are skipped.
"""
from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path
from typing import List, NamedTuple, Optional, Tuple

import pandas as pd

from gc_estimator.services import router
from gc_estimator.services.categories import BUILTIN, slugify
from gc_estimator.services.errors import ValidationFailure
from gc_estimator.services.pipeline import bulk
from gc_estimator.utils.helpers import round_currency

logger = logging.getLogger(__name__)


class ImportRow(NamedTuple):
    category: str
    name: str
    quantity: Decimal
    unit: str
    material_cost: Decimal
    labor_cost: Decimal
    subcontractor_cost: Decimal
    total_cost: Decimal
    markup_percent: Optional[Decimal] = None
    notes: Optional[str] = None
    is_subtotal: bool = False
    description: Optional[str] = None


@dataclass
class ImportResult:
    imported: int = 0
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    trade_ids: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.imported > 0


# normalized header -> ImportRow field
COLUMN_ALIASES = {
    "category": "category",
    "trade": "category",
    "tradecategory": "category",
    "name": "name",
    "item": "name",
    "itemname": "name",
    "itemdescription": "description",
    "description": "description",
    "qty": "quantity",
    "quantity": "quantity",
    "unit": "unit",
    "uom": "unit",
    "material": "material_cost",
    "materialcost": "material_cost",
    "materials": "material_cost",
    "labor": "labor_cost",
    "laborcost": "labor_cost",
    "sub": "subcontractor_cost",
    "subcontractor": "subcontractor_cost",
    "subcontractorcost": "subcontractor_cost",
    "total": "total_cost",
    "totalcost": "total_cost",
    "markup": "markup_percent",
    "markuppercent": "markup_percent",
    "markup%": "markup_percent",
    "notes": "notes",
    "note": "notes",
    "issubtotal": "is_subtotal",
    "subtotal": "is_subtotal",
}

CATEGORY_ALIASES = {
    "admin": "planning",
    "permits": "planning",
    "design": "planning",
    "sitework": "site-prep",
    "site-work": "site-prep",
    "clearing": "site-prep",
    "excavation": "excavation-foundation",
    "foundation": "excavation-foundation",
    "concrete": "excavation-foundation",
    "septic": "water-sewer",
    "water": "water-sewer",
    "sewer": "water-sewer",
    "framing": "rough-framing",
    "windows": "windows-doors",
    "doors": "windows-doors",
    "siding": "exterior-finishes",
    "exterior": "exterior-finishes",
    "roof": "roofing",
    "masonry": "masonry-paving",
    "paving": "masonry-paving",
    "driveway": "masonry-paving",
    "decks": "porches-decks",
    "porch": "porches-decks",
    "mechanical": "hvac",
    "finishes": "interior-finishes",
    "paint": "interior-finishes",
    "flooring": "interior-finishes",
    "cabinets": "kitchen",
    "bathroom": "bath",
    "baths": "bath",
}

UNIT_ALIASES = {
    "ea": "ea",
    "each": "ea",
    "sqft": "sqft",
    "sq ft": "sqft",
    "sf": "sqft",
    "square feet": "sqft",
    "lf": "lf",
    "linear feet": "lf",
    "linear foot": "lf",
    "cubic feet": "cuft",
    "cuft": "cuft",
    "cu ft": "cuft",
    "cubic yard": "cuyd",
    "cuyd": "cuyd",
    "cu yd": "cuyd",
    "lb": "lb",
    "pound": "lb",
    "pounds": "lb",
    "ton": "ton",
    "tons": "ton",
    "hour": "hour",
    "hr": "hour",
    "hours": "hour",
    "day": "day",
    "days": "day",
    "week": "week",
    "weeks": "week",
    "month": "month",
    "months": "month",
    "ls": "ls",
    "lump sum": "ls",
}

_MONEY_COLUMNS = ("quantity", "material_cost", "labor_cost", "subcontractor_cost", "total_cost")
_SUBTOTAL_RE = re.compile(r"^\s*(sub\s*-?\s*)?total\b", re.IGNORECASE)


def _header_key(col: object) -> str:
    return re.sub(r"[^a-z0-9%]+", "", str(col).strip().lower())


def normalize_category(value: object) -> str:
    slug = slugify("" if value is None else str(value))
    if slug in BUILTIN:
        return slug
    return CATEGORY_ALIASES.get(slug, "other")


def normalize_unit(value: object) -> str:
    text = re.sub(r"\s+", " ", ("" if value is None else str(value)).strip().lower()).rstrip(".")
    return UNIT_ALIASES.get(text, "ea")


def _text(value: object) -> str:
    if value is None or (isinstance(value, float) and math.isnan(value)):
        return ""
    return str(value).strip()


def _money(value: float) -> Decimal:
    return round_currency(str(value))


def read_table(path) -> pd.DataFrame:
    path = Path(path)
    if path.suffix.lower() == ".csv":
        return pd.read_csv(path)
    if path.suffix.lower() in (".xlsx", ".xls"):
        return pd.read_excel(path)
    raise ValidationFailure(f"Unsupported import file type: {path.suffix or path.name}")


def rows_from_frame(df: pd.DataFrame) -> List[ImportRow]:
    """Map a parsed sheet onto ImportRow tuples (numbers coerced, blanks -> 0)."""
    targets, keep = [], []
    for pos, col in enumerate(df.columns):
        target = COLUMN_ALIASES.get(_header_key(col), col)
        if target in targets:
            continue
        targets.append(target)
        keep.append(pos)
    df = df.iloc[:, keep].copy()
    df.columns = targets
    if "name" not in df.columns and "description" in df.columns:
        df = df.rename(columns={"description": "name"})

    for col in _MONEY_COLUMNS:
        df[col] = pd.to_numeric(df[col], errors="coerce").fillna(0).round(2) if col in df.columns else 0.0
    markup = (
        pd.to_numeric(df["markup_percent"], errors="coerce")
        if "markup_percent" in df.columns
        else pd.Series([float("nan")] * len(df), index=df.index)
    )

    rows = []
    for idx, r in df.iterrows():
        name = _text(r.get("name"))
        flagged = r.get("is_subtotal")
        is_subtotal = bool(_SUBTOTAL_RE.match(name)) or (
            _text(flagged).lower() in ("1", "true", "yes", "y", "x")
        )
        m = markup.loc[idx]
        rows.append(
            ImportRow(
                category=normalize_category(_text(r.get("category"))),
                name=name,
                quantity=_money(r["quantity"]),
                unit=normalize_unit(_text(r.get("unit"))),
                material_cost=_money(r["material_cost"]),
                labor_cost=_money(r["labor_cost"]),
                subcontractor_cost=_money(r["subcontractor_cost"]),
                total_cost=_money(r["total_cost"]),
                markup_percent=None if pd.isna(m) else _money(m),
                notes=_text(r.get("notes")) or None,
                description=_text(r.get("description")) or None,
                is_subtotal=is_subtotal,
            )
        )
    return rows


def validate_rows(rows: List[ImportRow]) -> Tuple[List[ImportRow], List[str], List[str]]:
    """Returns (usable rows, errors, warnings). Costs are not range-checked here."""
    usable: List[ImportRow] = []
    errors: List[str] = []
    warnings: List[str] = []
    skipped_subtotals = 0

    for line, row in enumerate(rows, start=1):
        if row.is_subtotal:
            skipped_subtotals += 1
            continue
        if not row.name:
            continue
        components = row.material_cost + row.labor_cost + row.subcontractor_cost
        if components == 0 and row.total_cost > 0:
            # total-only rows: keep the money, book it as material
            warnings.append(f"Row {line} ({row.name}): only a total was given; booked as material cost")
            row = row._replace(material_cost=row.total_cost)
        elif row.total_cost and components != row.total_cost:
            warnings.append(
                f"Row {line} ({row.name}): total {row.total_cost} differs from cost sum {components}; using the sum"
            )
        usable.append(row)

    if skipped_subtotals:
        warnings.append(f"Skipped {skipped_subtotals} subtotal row(s)")
    if not usable:
        errors.append("No valid trade items found in the imported data")
    return usable, errors, warnings


def _payload(row: ImportRow) -> dict:
    return {
        "category": row.category,
        "name": row.name,
        "quantity": row.quantity,
        "unit": row.unit,
        "material_cost": row.material_cost,
        "labor_cost": row.labor_cost,
        "subcontractor_cost": row.subcontractor_cost,
        "markup_percent": row.markup_percent,
        "is_subcontracted": row.subcontractor_cost > 0,
        "notes": row.notes,
        "description": row.description,
    }


def import_trades(project_id: str, rows: List[ImportRow]) -> ImportResult:
    """
    Create one trade per usable row on the project's estimate (created if
    missing). A row the pipeline rejects is reported and the rest still land;
    the estimate is recalculated once at the end.
    """
    estimate = router.get_estimate_for_project(project_id)
    usable, errors, warnings = validate_rows(rows)
    result = ImportResult(errors=errors, warnings=warnings)
    if not usable:
        return result

    with bulk(estimate.id) as batch:
        for row in usable:
            try:
                trade = batch.add(_payload(row))
            except ValidationFailure as e:
                result.errors.append(f"Failed to import {row.name!r}: {e}")
                continue
            result.trade_ids.append(trade.id)

    result.imported = len(result.trade_ids)
    if result.imported < len(usable):
        result.warnings.append(f"{len(usable) - result.imported} trade(s) failed to import")
    logger.info("Imported %d trade(s) into project %s", result.imported, project_id)
    return result


def import_file(project_id: str, path) -> ImportResult:
    return import_trades(project_id, rows_from_frame(read_table(path)))
