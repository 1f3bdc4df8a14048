"""
Backend router.

Every read/write in the services layer goes through the functions below; none of
them touch a concrete store. The ``STORE_MODE`` flag is read on each call, so
flipping it (``set_store_mode``) takes effect immediately. A failing remote call
raises ``BackendUnavailable`` and is never retried against the local store.
"""
from __future__ import annotations

import logging
from typing import Callable, List, Union

from flask import current_app

from gc_estimator.extensions import db
from gc_estimator.records import (
    CategoryRecord,
    EstimateRecord,
    ProjectRecord,
    SubItemRecord,
    TemplateRecord,
    TradeRecord,
)
from gc_estimator.services.errors import ValidationFailure
from gc_estimator.services.pricing import pricing_defaults
from gc_estimator.services.stores import LocalStore, RecordStore, RemoteStore

logger = logging.getLogger(__name__)

LOCAL = "local"
REMOTE = "remote"

_EXT_KEY = "gc_estimator.stores"

StoreFactory = Callable[[], RecordStore]


# ---------- store registry ----------
def _remote_factory(app) -> StoreFactory:
    cache = {}

    def build() -> RecordStore:
        if "store" not in cache:
            cache["store"] = RemoteStore(
                app.config["REMOTE_API_URL"],
                token=app.config.get("REMOTE_API_TOKEN"),
                timeout=app.config.get("REMOTE_TIMEOUT", 15),
            )
        return cache["store"]

    return build


def init_stores(app) -> None:
    registry = app.extensions.setdefault(_EXT_KEY, {})
    registry.setdefault(LOCAL, lambda: LocalStore(db.session))
    registry.setdefault(REMOTE, _remote_factory(app))


def register_store(mode: str, store: Union[RecordStore, StoreFactory]) -> None:
    """Install (or replace) the implementation serving ``mode``."""
    factory = (lambda: store) if isinstance(store, RecordStore) else store
    current_app.extensions.setdefault(_EXT_KEY, {})[mode] = factory


def store_mode() -> str:
    return (current_app.config.get("STORE_MODE") or LOCAL).lower()


def set_store_mode(mode: str) -> str:
    mode = (mode or "").strip().lower()
    if mode not in current_app.extensions.get(_EXT_KEY, {}):
        raise ValidationFailure(f"Unknown store mode {mode!r}")
    previous = store_mode()
    current_app.config["STORE_MODE"] = mode
    if previous != mode:
        logger.info("Store mode switched %s -> %s", previous, mode)
    return mode


def active_store() -> RecordStore:
    mode = store_mode()
    factory = current_app.extensions.get(_EXT_KEY, {}).get(mode)
    if factory is None:
        raise ValidationFailure(f"Unknown store mode {mode!r}")
    return factory()


# ---------- projects ----------
def get_project(project_id: str) -> ProjectRecord:
    return active_store().get("projects", project_id)


def list_projects(**filters) -> List[ProjectRecord]:
    return active_store().list("projects", **filters)


def create_project(data: dict) -> ProjectRecord:
    return active_store().create("projects", data)


def update_project(project_id: str, changes: dict) -> ProjectRecord:
    return active_store().update("projects", project_id, changes)


def delete_project(project_id: str) -> None:
    active_store().delete("projects", project_id)


# ---------- estimates ----------
def get_estimate(estimate_id: str) -> EstimateRecord:
    return active_store().get("estimates", estimate_id)


def list_estimates(**filters) -> List[EstimateRecord]:
    return active_store().list("estimates", **filters)


def create_estimate(data: dict) -> EstimateRecord:
    return active_store().create("estimates", data)


def update_estimate(estimate_id: str, changes: dict) -> EstimateRecord:
    return active_store().update("estimates", estimate_id, changes)


def delete_estimate(estimate_id: str) -> None:
    active_store().delete("estimates", estimate_id)


def get_estimate_for_project(project_id: str) -> EstimateRecord:
    """
    The project's estimate. Side-effecting read: a project found without one
    gets a fresh estimate (global defaults) and the repair is logged.
    """
    found = list_estimates(project_id=project_id)
    if found:
        return found[0]

    project = get_project(project_id)
    defaults = pricing_defaults()
    estimate = create_estimate(
        {
            "project_id": project.id,
            "org_id": project.org_id,
            "default_markup_percent": defaults.markup_percent,
            "default_contingency_percent": defaults.contingency_percent,
        }
    )
    logger.warning(
        "Self-heal: project %s had no estimate; created estimate %s", project.id, estimate.id
    )
    return estimate


# ---------- trades ----------
def get_trade(trade_id: str) -> TradeRecord:
    return active_store().get("trades", trade_id)


def list_trades(**filters) -> List[TradeRecord]:
    return active_store().list("trades", **filters)


def create_trade(data: dict) -> TradeRecord:
    return active_store().create("trades", data)


def update_trade(trade_id: str, changes: dict) -> TradeRecord:
    return active_store().update("trades", trade_id, changes)


def delete_trade(trade_id: str) -> None:
    active_store().delete("trades", trade_id)


# ---------- sub-items ----------
def get_sub_item(sub_item_id: str) -> SubItemRecord:
    return active_store().get("sub_items", sub_item_id)


def list_sub_items(**filters) -> List[SubItemRecord]:
    return active_store().list("sub_items", **filters)


def create_sub_item(data: dict) -> SubItemRecord:
    return active_store().create("sub_items", data)


def update_sub_item(sub_item_id: str, changes: dict) -> SubItemRecord:
    return active_store().update("sub_items", sub_item_id, changes)


def delete_sub_item(sub_item_id: str) -> None:
    active_store().delete("sub_items", sub_item_id)


# ---------- templates ----------
def get_template(template_id: str) -> TemplateRecord:
    return active_store().get("templates", template_id)


def list_templates(**filters) -> List[TemplateRecord]:
    return active_store().list("templates", **filters)


def create_template(data: dict) -> TemplateRecord:
    return active_store().create("templates", data)


def update_template(template_id: str, changes: dict) -> TemplateRecord:
    return active_store().update("templates", template_id, changes)


def delete_template(template_id: str) -> None:
    active_store().delete("templates", template_id)


# ---------- categories ----------
def get_category(category_id: str) -> CategoryRecord:
    return active_store().get("categories", category_id)


def list_categories(**filters) -> List[CategoryRecord]:
    return active_store().list("categories", **filters)


def create_category(data: dict) -> CategoryRecord:
    return active_store().create("categories", data)


def update_category(category_id: str, changes: dict) -> CategoryRecord:
    return active_store().update("categories", category_id, changes)


def delete_category(category_id: str) -> None:
    active_store().delete("categories", category_id)
