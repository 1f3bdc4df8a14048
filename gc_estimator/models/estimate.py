from __future__ import annotations

from sqlalchemy import ForeignKey, text

from gc_estimator.extensions import db
from gc_estimator.models.mixins import Money, Percent, RecordMixin


class Estimate(RecordMixin, db.Model):
    __tablename__ = "estimates"
    __allow_unmapped__ = True

    project_id = db.Column(db.String(36), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    org_id     = db.Column(db.String(64), nullable=True, index=True)

    # Inputs (null markup = use the global default)
    default_markup_percent      = db.Column(Percent, nullable=True)
    default_contingency_percent = db.Column(Percent, nullable=True)

    # Derived by recalculation; never edited directly
    subtotal        = db.Column(Money, nullable=False, default=0, server_default=text("0"))
    gross_profit    = db.Column(Money, nullable=False, default=0, server_default=text("0"))
    contingency     = db.Column(Money, nullable=False, default=0, server_default=text("0"))
    total_estimated = db.Column(Money, nullable=False, default=0, server_default=text("0"))

    trades = db.relationship(
        "Trade",
        backref="estimate",
        lazy="select",
        cascade="all, delete-orphan",
    )
