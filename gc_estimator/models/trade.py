from __future__ import annotations

from sqlalchemy import ForeignKey, Index, text

from gc_estimator.extensions import db
from gc_estimator.models.mixins import Money, Percent, RecordMixin

"""
Trade + SubItem: cost rollup notes (doc only)

• trades.total_cost = labor_cost + material_cost + subcontractor_cost, always.
• When a trade owns sub_items its three direct cost columns are derived
  (component-wise sums of the sub-items) and only recalculation writes them.
• sub_items.estimate_id is denormalized from the parent trade so an estimate's
  sub-items can be listed without a join on the remote API.
"""

ESTIMATE_STATUSES = ("budget", "quoted", "approved")


class Trade(RecordMixin, db.Model):
    __tablename__ = "trades"
    __allow_unmapped__ = True

    estimate_id = db.Column(db.String(36), ForeignKey("estimates.id", ondelete="CASCADE"), nullable=False)
    org_id      = db.Column(db.String(64), nullable=True, index=True)

    category    = db.Column(db.String(64), nullable=False, default="other")
    group       = db.Column(db.String(32), nullable=False, default="other")
    name        = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)

    quantity = db.Column(Money, nullable=False, default=0)
    unit     = db.Column(db.String(32), nullable=False, default="ea")

    labor_cost         = db.Column(Money, nullable=False, default=0, server_default=text("0"))
    labor_rate         = db.Column(Money, nullable=True)
    labor_hours        = db.Column(Money, nullable=True)
    material_cost      = db.Column(Money, nullable=False, default=0, server_default=text("0"))
    material_rate      = db.Column(Money, nullable=True)
    subcontractor_cost = db.Column(Money, nullable=False, default=0, server_default=text("0"))
    total_cost         = db.Column(Money, nullable=False, default=0, server_default=text("0"))

    markup_percent   = db.Column(Percent, nullable=True)
    is_subcontracted = db.Column(db.Boolean, nullable=False, default=False, server_default=text("false"))
    waste_factor     = db.Column(Percent, nullable=False, default=0)
    sort_order       = db.Column(db.Integer, nullable=False, default=0)

    # Quote tracking (vendor quotes land here as ordinary cost entries)
    estimate_status = db.Column(db.String(16), nullable=False, default="budget", server_default=text("'budget'"))
    quote_vendor    = db.Column(db.String(255), nullable=True)
    quote_date      = db.Column(db.DateTime(timezone=True), nullable=True)
    quote_reference = db.Column(db.String(255), nullable=True)
    quote_file_url  = db.Column(db.Text, nullable=True)  # opaque; never dereferenced

    notes = db.Column(db.Text, nullable=True)

    sub_items = db.relationship(
        "SubItem",
        backref="trade",
        lazy="select",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        Index("ix_trades_estimate_sort", "estimate_id", "sort_order"),
    )


class SubItem(RecordMixin, db.Model):
    __tablename__ = "sub_items"
    __allow_unmapped__ = True

    trade_id    = db.Column(db.String(36), ForeignKey("trades.id", ondelete="CASCADE"), nullable=False)
    estimate_id = db.Column(db.String(36), ForeignKey("estimates.id", ondelete="CASCADE"), nullable=False, index=True)
    org_id      = db.Column(db.String(64), nullable=True, index=True)

    category    = db.Column(db.String(64), nullable=False, default="other")
    group       = db.Column(db.String(32), nullable=False, default="other")
    name        = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)

    quantity = db.Column(Money, nullable=False, default=0)
    unit     = db.Column(db.String(32), nullable=False, default="ea")

    labor_cost         = db.Column(Money, nullable=False, default=0, server_default=text("0"))
    material_cost      = db.Column(Money, nullable=False, default=0, server_default=text("0"))
    subcontractor_cost = db.Column(Money, nullable=False, default=0, server_default=text("0"))
    total_cost         = db.Column(Money, nullable=False, default=0, server_default=text("0"))

    markup_percent = db.Column(Percent, nullable=True)
    waste_factor   = db.Column(Percent, nullable=False, default=0)
    sort_order     = db.Column(db.Integer, nullable=False, default=0)
    notes          = db.Column(db.Text, nullable=True)

    __table_args__ = (
        Index("ix_sub_items_trade_sort", "trade_id", "sort_order"),
    )
