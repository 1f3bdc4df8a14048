from __future__ import annotations

import uuid

from sqlalchemy import inspect
from sqlalchemy.dialects.postgresql import JSONB

from gc_estimator.extensions import db
from gc_estimator.utils.helpers import utcnow

# JSONB on Postgres, plain JSON elsewhere (SQLite in tests / embedded mode)
JSONType = db.JSON().with_variant(JSONB(), "postgresql")

Money = db.Numeric(12, 2)
Percent = db.Numeric(6, 2)


def new_id() -> str:
    return str(uuid.uuid4())


class RecordMixin:
    """Shared identity/timestamps plus a column-driven ``to_dict``."""

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=db.func.now())

    @classmethod
    def column_names(cls) -> tuple:
        return tuple(attr.key for attr in inspect(cls).column_attrs)

    def to_dict(self) -> dict:
        return {name: getattr(self, name) for name in self.column_names()}

    def __repr__(self) -> str:
        label = getattr(self, "name", None) or getattr(self, "key", None) or ""
        return f"<{type(self).__name__} id={self.id} {label!r}>"
