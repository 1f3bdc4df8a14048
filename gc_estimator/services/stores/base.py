from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, List

from gc_estimator.records import LIST_FILTERS, RECORD_TYPES, Record
from gc_estimator.services.errors import NotFound, ValidationFailure


class RecordStore(ABC):
    """
    CRUD contract over Project/Estimate/Trade/SubItem/Template/Category records.

    Every implementation returns the dataclasses from ``gc_estimator.records``
    and raises the errors from ``gc_estimator.services.errors``; callers must not
    be able to tell which implementation served them.
    """

    name = "abstract"

    @abstractmethod
    def get(self, entity: str, record_id: str) -> Record: ...

    @abstractmethod
    def list(self, entity: str, **filters: Any) -> List[Record]: ...

    @abstractmethod
    def create(self, entity: str, data: Dict[str, Any]) -> Record: ...

    @abstractmethod
    def update(self, entity: str, record_id: str, changes: Dict[str, Any]) -> Record: ...

    @abstractmethod
    def delete(self, entity: str, record_id: str) -> None: ...

    # -- shared guards ------------------------------------------------------
    @staticmethod
    def record_type(entity: str):
        try:
            return RECORD_TYPES[entity]
        except KeyError:
            raise NotFound(f"Unknown entity {entity!r}") from None

    @staticmethod
    def clean_filters(entity: str, filters: Dict[str, Any]) -> Dict[str, Any]:
        allowed = LIST_FILTERS.get(entity, ())
        unknown = sorted(set(filters) - set(allowed))
        if unknown:
            raise ValidationFailure(f"Unsupported filter(s) for {entity}: {', '.join(unknown)}")
        return {k: v for k, v in filters.items() if v is not None}
