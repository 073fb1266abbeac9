from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z

RECONCILIATION_STATUSES = ("pending", "reconciled", "variance_pending")
VARIANCE_TYPES = ("cash_shortage", "cash_overage", "stock_discrepancy", "pricing_error", "other")


class Reconciliation(db.Model):
    """
    Daily cash reconciliation for one shop.

    expected = cash payments on paid/partial orders of the day
    variance = actual - expected

    Investigation appends VarianceRecord rows without touching status;
    approval sets approved_by/approval_time and forces status=reconciled.
    """
    __tablename__ = "reconciliations"
    __table_args__ = (
        db.UniqueConstraint("shop_id", "reconciliation_date", name="uq_reconciliations_shop_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    shop_id = db.Column(db.Integer, db.ForeignKey("shops.id"), nullable=False, index=True)
    reconciliation_date = db.Column(db.Date, nullable=False, index=True)

    expected_cash_cents = db.Column(db.Integer, nullable=False)
    actual_cash_cents = db.Column(db.Integer, nullable=False)
    variance_cents = db.Column(db.Integer, nullable=False)
    variance_percentage = db.Column(db.Float, nullable=False, default=0.0)

    status = db.Column(db.String(32), nullable=False, default="pending", index=True)
    reconciliation_notes = db.Column(db.Text, nullable=True)

    reconciled_by = db.Column(db.Integer, nullable=False)
    reconciliation_time = db.Column(db.DateTime(timezone=True), nullable=False)

    approved_by = db.Column(db.Integer, nullable=True)
    approval_time = db.Column(db.DateTime(timezone=True), nullable=True)

    variances = db.relationship(
        "VarianceRecord",
        backref="reconciliation",
        lazy=True,
        order_by="VarianceRecord.id",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "shop_id": self.shop_id,
            "reconciliation_date": self.reconciliation_date.isoformat(),
            "expected_cash_cents": self.expected_cash_cents,
            "actual_cash_cents": self.actual_cash_cents,
            "variance_cents": self.variance_cents,
            "variance_percentage": self.variance_percentage,
            "status": self.status,
            "reconciliation_notes": self.reconciliation_notes,
            "reconciled_by": self.reconciled_by,
            "reconciliation_time": to_utc_z(self.reconciliation_time),
            "approved_by": self.approved_by,
            "approval_time": to_utc_z(self.approval_time),
            "variances": [v.to_dict() for v in self.variances],
        }


class VarianceRecord(db.Model):
    __tablename__ = "variance_records"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    reconciliation_id = db.Column(db.Integer, db.ForeignKey("reconciliations.id"), nullable=False, index=True)

    variance_type = db.Column(db.String(32), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    investigation_notes = db.Column(db.Text, nullable=False)
    status = db.Column(db.String(16), nullable=False, default="investigated")
    recorded_by = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.variance_type,
            "amount_cents": self.amount_cents,
            "investigation_notes": self.investigation_notes,
            "status": self.status,
            "recorded_by": self.recorded_by,
            "created_at": to_utc_z(self.created_at),
        }


class StockReconciliation(db.Model):
    """
    Physical count of one product at one location versus the ledger.

    A non-zero variance is booked as a `correction` StockAdjustment, linked
    through adjustment_id.
    """
    __tablename__ = "stock_reconciliations"
    __table_args__ = (
        db.Index("ix_stock_recon_shop_date", "shop_id", "reconciliation_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    shop_id = db.Column(db.Integer, db.ForeignKey("shops.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=True)

    system_quantity = db.Column(db.Integer, nullable=False)
    physical_count = db.Column(db.Integer, nullable=False)
    variance = db.Column(db.Integer, nullable=False)

    reconciliation_date = db.Column(db.Date, nullable=False)
    reconciled_by = db.Column(db.Integer, nullable=False)
    notes = db.Column(db.Text, nullable=True)

    adjustment_id = db.Column(db.Integer, db.ForeignKey("stock_adjustments.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "shop_id": self.shop_id,
            "product_id": self.product_id,
            "branch_id": self.branch_id,
            "system_quantity": self.system_quantity,
            "physical_count": self.physical_count,
            "variance": self.variance,
            "reconciliation_date": self.reconciliation_date.isoformat(),
            "reconciled_by": self.reconciled_by,
            "notes": self.notes,
            "adjustment_id": self.adjustment_id,
            "created_at": to_utc_z(self.created_at),
        }
