"""
Manual export/import between stores.

The two stores never sync on their own. Moving a project from one to the other
is: export from the active store, switch the mode, import into the new store.
Imported records always get fresh ids; totals are recomputed on arrival rather
than copied.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from gc_estimator.records import ProjectRecord
from gc_estimator.services import router
from gc_estimator.services.errors import ValidationFailure
from gc_estimator.services.pipeline import (
    advance_project_status,
    bulk,
    create_project,
    sub_item_payload,
    trade_payload,
)
from gc_estimator.utils.helpers import to_wire, utcnow

logger = logging.getLogger(__name__)

SNAPSHOT_FORMAT = "gc-estimator/project"
SNAPSHOT_VERSION = 1


def export_project(project_id: str) -> Dict[str, Any]:
    project = router.get_project(project_id)
    estimate = router.get_estimate_for_project(project_id)
    trades = []
    for trade in router.list_trades(estimate_id=estimate.id):
        data = trade_payload(trade)
        data["sub_items"] = [sub_item_payload(s) for s in router.list_sub_items(trade_id=trade.id)]
        trades.append(data)

    return to_wire(
        {
            "format": SNAPSHOT_FORMAT,
            "version": SNAPSHOT_VERSION,
            "exported_at": utcnow(),
            "source_store": router.store_mode(),
            "project": {
                "name": project.name,
                "status": project.status,
                "address": project.address,
                "client": project.client,
                "meta": project.meta,
            },
            "estimate": {
                "default_markup_percent": estimate.default_markup_percent,
                "default_contingency_percent": estimate.default_contingency_percent,
                # informational only; recomputed on import
                "total_estimated": estimate.total_estimated,
            },
            "trades": trades,
        }
    )


def import_project(snapshot: Dict[str, Any], *, org_id: Optional[str] = None) -> ProjectRecord:
    if not isinstance(snapshot, dict) or snapshot.get("format") != SNAPSHOT_FORMAT:
        raise ValidationFailure("Not a project export.")
    if int(snapshot.get("version") or 0) > SNAPSHOT_VERSION:
        raise ValidationFailure(f"Project export version {snapshot.get('version')} is newer than supported.")

    src = snapshot.get("project") or {}
    est = snapshot.get("estimate") or {}
    project = create_project(
        src.get("name"),
        address=src.get("address"),
        client=src.get("client"),
        meta=src.get("meta"),
        default_markup_percent=est.get("default_markup_percent"),
        default_contingency_percent=est.get("default_contingency_percent"),
        org_id=org_id,
    )
    estimate = router.get_estimate_for_project(project.id)

    with bulk(estimate.id) as batch:
        for row in snapshot.get("trades") or []:
            row = dict(row)
            subs = row.pop("sub_items", None) or []
            trade = batch.add(row)
            for sub in subs:
                batch.add_sub_item(trade.id, sub)

    status = src.get("status")
    if status and status != project.status:
        advance_project_status(project.id, status)

    logger.info(
        "Imported project %s from %s export (%d trades)",
        project.id, snapshot.get("source_store") or "unknown", len(batch.created),
    )
    return router.get_project(project.id)
