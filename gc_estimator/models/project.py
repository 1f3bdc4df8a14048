from __future__ import annotations

from sqlalchemy import Index, text
from sqlalchemy.sql import func

from gc_estimator.extensions import db
from gc_estimator.models.mixins import JSONType, Money, RecordMixin

PROJECT_STATUSES = ("estimating", "in-progress", "complete")


class Project(RecordMixin, db.Model):
    __tablename__ = "projects"
    __allow_unmapped__ = True

    org_id = db.Column(db.String(64), nullable=True, index=True)

    name    = db.Column(db.String(255), nullable=False)
    status  = db.Column(db.String(32), nullable=False, default="estimating", server_default=text("'estimating'"))
    address = db.Column(db.String(255), nullable=True)
    client  = db.Column(JSONType, nullable=False, default=dict)
    # "metadata" is reserved on declarative classes
    meta    = db.Column("metadata", JSONType, nullable=False, default=dict)

    # Denormalized from the owned estimate by recalculation
    estimate_total = db.Column(Money, nullable=False, default=0, server_default=text("0"))

    estimates = db.relationship(
        "Estimate",
        backref="project",
        lazy="select",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        Index("ix_projects_lower_name", func.lower(name)),
        Index("ix_projects_created_at", "created_at"),
    )
