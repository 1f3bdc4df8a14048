from __future__ import annotations

from sqlalchemy import Index, text
from sqlalchemy.sql import func

from gc_estimator.extensions import db
from gc_estimator.models.mixins import RecordMixin

"""
trade_categories: dynamic category registry (doc only)

  - ux_trade_categories_org_lower_key: UNIQUE INDEX on (org_id, lower(key))
    Rationale: keys are case-insensitive per organization; the service layer
    reports collisions as KeyConflict before the index ever fires.
  - System rows (is_system = true) are seeded copies of the built-in table and
    are never edited in-app.
"""


class TradeCategory(RecordMixin, db.Model):
    __tablename__ = "trade_categories"
    __allow_unmapped__ = True

    org_id     = db.Column(db.String(64), nullable=True, index=True)
    key        = db.Column(db.String(64), nullable=False)
    label      = db.Column(db.String(128), nullable=False)
    icon       = db.Column(db.String(16), nullable=True)
    sort_order = db.Column(db.Integer, nullable=False, default=0)
    is_system  = db.Column(db.Boolean, nullable=False, default=False, server_default=text("false"))

    __table_args__ = (
        Index("ux_trade_categories_org_lower_key", org_id, func.lower(key), unique=True),
    )
