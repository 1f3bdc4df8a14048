from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Dict, List

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from gc_estimator.models import Estimate, EstimateTemplate, Project, SubItem, Trade, TradeCategory
from gc_estimator.records import Record
from gc_estimator.services.errors import BackendUnavailable, KeyConflict, NotFound, ValidationFailure
from gc_estimator.services.stores.base import RecordStore
from gc_estimator.utils.helpers import utcnow

logger = logging.getLogger(__name__)

MODELS = {
    "projects": Project,
    "estimates": Estimate,
    "trades": Trade,
    "sub_items": SubItem,
    "templates": EstimateTemplate,
    "categories": TradeCategory,
}

# child entity -> (parent foreign key, parent entity); checked before insert
PARENTS = {
    "estimates": ("project_id", "projects"),
    "trades": ("estimate_id", "estimates"),
    "sub_items": ("trade_id", "trades"),
}

_IMMUTABLE = {"id", "created_at"}

LABELS = {
    "projects": "Project",
    "estimates": "Estimate",
    "trades": "Trade",
    "sub_items": "Sub-item",
    "templates": "Template",
    "categories": "Category",
}


class LocalStore(RecordStore):
    """Embedded store: one SQLAlchemy session, commit per operation."""

    name = "local"

    def __init__(self, session: Session):
        self.session = session

    # -- helpers --------------------------------------------------------------
    @contextmanager
    def _reading(self, entity: str):
        try:
            yield
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.exception("Local store read failed for %s", entity)
            raise BackendUnavailable(f"Local store read failed: {e}") from e

    def _load(self, entity: str, record_id: str):
        model = MODELS[entity]
        # other sessions (the record API) may have written since this one last looked
        with self._reading(entity):
            obj = self.session.get(model, record_id, populate_existing=True)
        if obj is None:
            raise NotFound(f"{LABELS[entity]} {record_id} not found")
        return obj

    def _values(self, entity: str, data: Dict[str, Any], *, skip=()) -> Dict[str, Any]:
        model = MODELS[entity]
        columns = set(model.column_names())
        unknown = sorted(set(data) - columns)
        if unknown:
            raise ValidationFailure(f"Unknown field(s) for {entity}: {', '.join(unknown)}")
        values = self.record_type(entity).coerce(data)
        return {k: v for k, v in values.items() if k not in skip}

    def _commit(self, entity: str) -> None:
        try:
            self.session.commit()
        except IntegrityError as e:
            self.session.rollback()
            if entity == "categories":
                raise KeyConflict("Category key already exists.") from e
            raise ValidationFailure(f"Constraint violated writing {entity}.") from e
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.exception("Local store commit failed for %s", entity)
            raise BackendUnavailable(f"Local store write failed: {e}") from e

    def _to_record(self, entity: str, obj) -> Record:
        return self.record_type(entity).from_dict(obj.to_dict())

    # -- contract -------------------------------------------------------------
    def get(self, entity: str, record_id: str) -> Record:
        self.record_type(entity)
        return self._to_record(entity, self._load(entity, record_id))

    def list(self, entity: str, **filters: Any) -> List[Record]:
        self.record_type(entity)
        model = MODELS[entity]
        criteria = self.clean_filters(entity, filters)
        with self._reading(entity):
            query = self.session.query(model).populate_existing().filter_by(**criteria)
            if hasattr(model, "sort_order"):
                query = query.order_by(model.sort_order, model.created_at, model.id)
            elif entity == "projects":
                query = query.order_by(model.created_at.desc(), model.id)
            else:
                query = query.order_by(model.created_at, model.id)
            rows = query.all()
        return [self._to_record(entity, obj) for obj in rows]

    def create(self, entity: str, data: Dict[str, Any]) -> Record:
        self.record_type(entity)
        values = self._values(entity, data)
        parent = PARENTS.get(entity)
        if parent:
            fk, parent_entity = parent
            if not values.get(fk):
                raise ValidationFailure(f"{fk} is required.")
            self._load(parent_entity, values[fk])
        obj = MODELS[entity](**values)
        self.session.add(obj)
        self._commit(entity)
        return self._to_record(entity, obj)

    def update(self, entity: str, record_id: str, changes: Dict[str, Any]) -> Record:
        self.record_type(entity)
        obj = self._load(entity, record_id)
        for key, value in self._values(entity, changes, skip=_IMMUTABLE).items():
            setattr(obj, key, value)
        obj.updated_at = utcnow()
        self._commit(entity)
        return self._to_record(entity, obj)

    def delete(self, entity: str, record_id: str) -> None:
        self.record_type(entity)
        obj = self._load(entity, record_id)
        # ORM cascades: project -> estimate -> trades -> sub_items
        self.session.delete(obj)
        self._commit(entity)
