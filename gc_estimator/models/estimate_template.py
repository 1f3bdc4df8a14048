from __future__ import annotations

from sqlalchemy import Index, text
from sqlalchemy.sql import func

from gc_estimator.extensions import db
from gc_estimator.models.mixins import JSONType, Percent, RecordMixin


class EstimateTemplate(RecordMixin, db.Model):
    __tablename__ = "estimate_templates"
    __allow_unmapped__ = True

    org_id      = db.Column(db.String(64), nullable=True, index=True)
    name        = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)

    # Snapshot of trade cost structures, fixed at creation
    trades = db.Column(JSONType, nullable=False, default=list)

    default_markup_percent      = db.Column(Percent, nullable=True)
    default_contingency_percent = db.Column(Percent, nullable=True)

    usage_count     = db.Column(db.Integer, nullable=False, default=0, server_default=text("0"))
    linked_plan_ids = db.Column(JSONType, nullable=False, default=list)

    __table_args__ = (
        Index("ix_estimate_templates_lower_name", func.lower(name)),
    )
