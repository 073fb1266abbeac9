from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow

PAYMENT_METHODS = ("cash", "card", "mobile_money", "bank_transfer", "other")

STOCK_SYNC_PENDING = "pending"
STOCK_SYNC_PROCESSING = "processing"
STOCK_SYNC_DONE = "done"
STOCK_SYNC_FAILED = "failed"


class Order(db.Model):
    """
    A completed checkout.

    The order row is committed before any stock is deducted. Deduction runs
    through StockSyncJob rows written in the same transaction as the order,
    so a ledger failure can never lose the sale; it leaves a failed job and an
    inventory_warning on the order instead.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.UniqueConstraint("shop_id", "order_number", name="uq_orders_shop_number"),
        db.Index("ix_orders_shop_created", "shop_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    shop_id = db.Column(db.Integer, db.ForeignKey("shops.id"), nullable=False, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=True, index=True)

    # e.g. "STK-2026-7QX2KD"
    order_number = db.Column(db.String(32), nullable=False)
    actor_id = db.Column(db.Integer, nullable=False)

    status = db.Column(db.String(16), nullable=False, default="completed")
    payment_status = db.Column(db.String(16), nullable=False, default="unpaid", index=True)

    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False, default=0)

    customer_name = db.Column(db.String(255), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    # Populated when post-commit stock deduction degrades
    inventory_warning = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    items = db.relationship("OrderItem", backref="order", lazy=True, order_by="OrderItem.id")
    payments = db.relationship("OrderPayment", backref="order", lazy=True, order_by="OrderPayment.id")
    stock_sync_jobs = db.relationship("StockSyncJob", backref="order", lazy=True, order_by="StockSyncJob.id")

    @property
    def stock_sync_status(self) -> str:
        statuses = {job.status for job in self.stock_sync_jobs}
        if not statuses or statuses == {STOCK_SYNC_DONE}:
            return "synced"
        if STOCK_SYNC_FAILED in statuses:
            return "degraded"
        return "pending"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "shop_id": self.shop_id,
            "branch_id": self.branch_id,
            "order_number": self.order_number,
            "actor_id": self.actor_id,
            "status": self.status,
            "payment_status": self.payment_status,
            "subtotal_cents": self.subtotal_cents,
            "tax_cents": self.tax_cents,
            "total_cents": self.total_cents,
            "customer_name": self.customer_name,
            "notes": self.notes,
            "inventory_warning": self.inventory_warning,
            "stock_sync_status": self.stock_sync_status,
            "created_at": to_utc_z(self.created_at),
            "items": [item.to_dict() for item in self.items],
            "payments": [payment.to_dict() for payment in self.payments],
        }


class OrderItem(db.Model):
    __tablename__ = "order_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    name = db.Column(db.String(255), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    line_total_cents = db.Column(db.Integer, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "name": self.name,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "line_total_cents": self.line_total_cents,
        }


class OrderPayment(db.Model):
    __tablename__ = "order_payments"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)

    method = db.Column(db.String(32), nullable=False, index=True)
    amount_cents = db.Column(db.Integer, nullable=False)
    reference = db.Column(db.String(64), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "method": self.method,
            "amount_cents": self.amount_cents,
            "reference": self.reference,
        }


class StockSyncJob(db.Model):
    """
    Durable retry-queue entry: one per order line awaiting ledger deduction.

    pending -> processing -> done
    pending -> processing -> failed -> (retry) -> processing -> done | failed

    "processing" is the claim a worker takes inside its deduction
    transaction; it is never committed on its own.
    """
    __tablename__ = "stock_sync_jobs"
    __table_args__ = (
        db.Index("ix_stock_sync_jobs_status_next", "status", "next_attempt_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    shop_id = db.Column(db.Integer, db.ForeignKey("shops.id"), nullable=False, index=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    order_item_id = db.Column(db.Integer, db.ForeignKey("order_items.id"), nullable=False)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=True)
    quantity = db.Column(db.Integer, nullable=False)

    status = db.Column(db.String(16), nullable=False, default=STOCK_SYNC_PENDING)
    attempts = db.Column(db.Integer, nullable=False, default=0)
    last_error = db.Column(db.Text, nullable=True)
    next_attempt_at = db.Column(db.DateTime(timezone=True), nullable=True)
    processed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    adjustment_id = db.Column(db.Integer, db.ForeignKey("stock_adjustments.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    order_item = db.relationship("OrderItem")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "shop_id": self.shop_id,
            "order_id": self.order_id,
            "order_item_id": self.order_item_id,
            "product_id": self.product_id,
            "branch_id": self.branch_id,
            "quantity": self.quantity,
            "status": self.status,
            "attempts": self.attempts,
            "last_error": self.last_error,
            "next_attempt_at": to_utc_z(self.next_attempt_at),
            "processed_at": to_utc_z(self.processed_at),
            "adjustment_id": self.adjustment_id,
        }
