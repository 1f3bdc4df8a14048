"""
Category registry: org-scoped dynamic rows first, built-in table as fallback.

A category key resolves to a display label/icon in this order:
  1) the organization's rows in the active store
  2) the built-in system table (also used when the store is empty or unreachable)
  3) the key itself, humanized ("water-sewer" -> "Water Sewer"), never the raw key
"""
from __future__ import annotations

import logging
import re
from typing import Dict, List, Optional

from gc_estimator.records import CategoryRecord
from gc_estimator.services import router
from gc_estimator.services.context import current_org_context
from gc_estimator.services.errors import BackendUnavailable, KeyConflict, ValidationFailure

logger = logging.getLogger(__name__)

DEFAULT_ICON = "📦"

# (key, label, icon, group) in display order
SYSTEM_CATEGORIES = (
    ("planning", "Planning", "📋", "admin"),
    ("site-prep", "Site Prep", "🚜", "exterior"),
    ("excavation-foundation", "Excavation/Foundation", "🏗️", "exterior"),
    ("utilities", "Utilities", "⚡", "exterior"),
    ("water-sewer", "Water + Sewer", "🚰", "exterior"),
    ("rough-framing", "Rough Framing", "🔨", "structure"),
    ("windows-doors", "Windows + Doors", "🚪", "structure"),
    ("exterior-finishes", "Exterior Finishes", "🏘️", "exterior"),
    ("roofing", "Roofing", "🏠", "exterior"),
    ("masonry-paving", "Masonry/Paving", "🧱", "exterior"),
    ("porches-decks", "Porches + Decks", "🏡", "exterior"),
    ("insulation", "Insulation", "🧊", "mep"),
    ("plumbing", "Plumbing", "🚰", "mep"),
    ("electrical", "Electrical", "⚡", "mep"),
    ("hvac", "HVAC", "❄️", "mep"),
    ("drywall", "Drywall", "📐", "interior"),
    ("interior-finishes", "Interior Finishes", "🎨", "interior"),
    ("kitchen", "Kitchen", "🍳", "interior"),
    ("bath", "Bath", "🛁", "interior"),
    ("appliances", "Appliances", "🔌", "interior"),
    ("other", "Other", "📦", "other"),
)

BUILTIN: Dict[str, dict] = {
    key: {"label": label, "icon": icon, "sort_order": i + 1, "group": group}
    for i, (key, label, icon, group) in enumerate(SYSTEM_CATEGORIES)
}

CATEGORY_TO_GROUP: Dict[str, str] = {key: meta["group"] for key, meta in BUILTIN.items()}

CATEGORY_GROUPS = ("admin", "exterior", "structure", "mep", "interior", "other")

_KEY_RE = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")


def _norm(key: Optional[str]) -> str:
    return (key or "").strip().lower()


def slugify(text: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", (text or "").lower()).strip("-")


def humanize_key(key: Optional[str]) -> str:
    words = [w for w in re.split(r"[-_\s]+", (key or "").strip()) if w]
    return " ".join(w.capitalize() for w in words) or BUILTIN["other"]["label"]


def category_group(key: Optional[str]) -> str:
    """Grouping stamped onto trades/sub-items/template trades; custom keys land in 'other'."""
    return CATEGORY_TO_GROUP.get(_norm(key), "other")


def builtin_categories() -> List[CategoryRecord]:
    return [
        CategoryRecord(
            id=f"system-{key}",
            key=key,
            label=meta["label"],
            icon=meta["icon"],
            sort_order=meta["sort_order"],
            is_system=True,
        )
        for key, meta in BUILTIN.items()
    ]


def _org(org_id: Optional[str]) -> Optional[str]:
    return org_id or current_org_context().org_id


def list_categories(org_id: Optional[str] = None) -> List[CategoryRecord]:
    """Dynamic rows for the org, or the built-in table when there are none (or the store is down)."""
    try:
        rows = router.list_categories(org_id=_org(org_id))
    except BackendUnavailable as e:
        logger.warning("Category store unavailable, using built-in table: %s", e)
        return builtin_categories()
    if not rows:
        return builtin_categories()
    return sorted(rows, key=lambda c: (c.sort_order, c.label.lower()))


def resolve(key: str, org_id: Optional[str] = None) -> dict:
    wanted = _norm(key)
    for cat in list_categories(org_id):
        if _norm(cat.key) == wanted:
            return {"key": cat.key, "label": cat.label or humanize_key(cat.key), "icon": cat.icon or DEFAULT_ICON}
    if wanted in BUILTIN:
        meta = BUILTIN[wanted]
        return {"key": wanted, "label": meta["label"], "icon": meta["icon"]}
    return {"key": key, "label": humanize_key(key), "icon": DEFAULT_ICON}


def _taken_keys(org_id: Optional[str]) -> set:
    taken = {_norm(c.key) for c in list_categories(org_id)}
    return taken | set(BUILTIN)


def suggest_key(base: str, org_id: Optional[str] = None) -> str:
    """First free key derived from ``base``: 'decking', 'decking-2', 'decking-3', ..."""
    slug = slugify(base) or "custom"
    taken = _taken_keys(org_id)
    candidate, n = slug, 2
    while candidate in taken:
        candidate = f"{slug}-{n}"
        n += 1
    return candidate


def create_category(
    key: str,
    label: str,
    *,
    icon: Optional[str] = None,
    sort_order: Optional[int] = None,
    org_id: Optional[str] = None,
) -> CategoryRecord:
    org_id = _org(org_id)
    key = _norm(key)
    label = (label or "").strip()
    if not _KEY_RE.match(key):
        raise ValidationFailure("Category key must be lowercase letters, digits and dashes.")
    if not label:
        raise ValidationFailure("Category label is required.")

    existing = list_categories(org_id)
    if key in {_norm(c.key) for c in existing} | set(BUILTIN):
        raise KeyConflict(f"Category key {key!r} already exists.", suggestion=suggest_key(key, org_id))

    if sort_order is None:
        sort_order = max((c.sort_order for c in existing), default=0) + 1
    data = {
        "org_id": org_id,
        "key": key,
        "label": label,
        "icon": icon or DEFAULT_ICON,
        "sort_order": sort_order,
        "is_system": False,
    }
    try:
        return router.create_category(data)
    except KeyConflict as e:
        # lost a race with another writer; same answer as the pre-check
        raise KeyConflict(str(e), suggestion=suggest_key(key, org_id)) from e


def _custom(category_id: str) -> CategoryRecord:
    cat = router.get_category(category_id)
    if cat.is_system:
        raise ValidationFailure(f"System category {cat.key!r} cannot be changed.")
    return cat


def update_category(
    category_id: str,
    *,
    label: Optional[str] = None,
    icon: Optional[str] = None,
    sort_order: Optional[int] = None,
) -> CategoryRecord:
    """Label/icon/sort only; keys are never renamed."""
    _custom(category_id)
    changes = {}
    if label is not None:
        label = label.strip()
        if not label:
            raise ValidationFailure("Category label is required.")
        changes["label"] = label
    if icon is not None:
        changes["icon"] = icon
    if sort_order is not None:
        changes["sort_order"] = int(sort_order)
    if not changes:
        return router.get_category(category_id)
    return router.update_category(category_id, changes)


def delete_category(category_id: str) -> None:
    _custom(category_id)
    router.delete_category(category_id)


def seed_system_categories(org_id: Optional[str] = None) -> int:
    """Copy the built-in table into the org's dynamic rows; existing keys are left alone."""
    org_id = _org(org_id)
    present = {_norm(c.key) for c in router.list_categories(org_id=org_id)}
    created = 0
    for key, meta in BUILTIN.items():
        if key in present:
            continue
        router.create_category(
            {
                "org_id": org_id,
                "key": key,
                "label": meta["label"],
                "icon": meta["icon"],
                "sort_order": meta["sort_order"],
                "is_system": True,
            }
        )
        created += 1
    if created:
        logger.info("Seeded %d system categories for org %s", created, org_id)
    return created
