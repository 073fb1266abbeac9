from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z

ADJUSTMENT_REASONS = (
    "sale",
    "purchase_received",
    "correction",
    "transfer",
    "damage",
    "loss",
    "return",
    "other",
)


class Product(db.Model):
    """
    Product master data and the shop's default ("main") stock pool.

    MULTI-TENANT: Products are scoped to shops via shop_id.

    LEDGER:
    - `stock` is the default pool quantity, used whenever no branch is given.
    - Per-branch quantities live in BranchStock rows keyed by (product, branch).
    - Neither value is ever written with read-modify-write from Python; all
      changes go through ledger_service.apply_delta.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("shop_id", "sku", name="uq_products_shop_sku"),
        db.Index("ix_products_shop_name", "shop_id", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    shop_id = db.Column(db.Integer, db.ForeignKey("shops.id"), nullable=False, index=True)

    sku = db.Column(db.String(64), nullable=False)
    barcode = db.Column(db.String(64), nullable=True, index=True)
    name = db.Column(db.String(255), nullable=False)

    # Authoritative storage in cents
    unit_cost_cents = db.Column(db.Integer, nullable=False, default=0)
    unit_price_cents = db.Column(db.Integer, nullable=False, default=0)

    stock = db.Column(db.Integer, nullable=False, default=0)

    status = db.Column(db.String(16), nullable=False, default="active", index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    shop = db.relationship("Shop", backref=db.backref("products", lazy=True))

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} shop_id={self.shop_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "shop_id": self.shop_id,
            "sku": self.sku,
            "barcode": self.barcode,
            "name": self.name,
            "unit_cost_cents": self.unit_cost_cents,
            "unit_price_cents": self.unit_price_cents,
            "stock": self.stock,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class BranchStock(db.Model):
    """
    Per-branch ledger row.

    A missing row means the branch shares the default pool. The first write
    to a (product, branch) key seeds `quantity` from Product.stock at that
    moment, then applies the delta.
    """
    __tablename__ = "branch_stock"
    __table_args__ = (
        db.UniqueConstraint("product_id", "branch_id", name="uq_branch_stock_product_branch"),
        db.Index("ix_branch_stock_shop_branch", "shop_id", "branch_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    shop_id = db.Column(db.Integer, db.ForeignKey("shops.id"), nullable=False)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False)

    quantity = db.Column(db.Integer, nullable=False, default=0)
    reorder_point = db.Column(db.Integer, nullable=True)
    reorder_quantity = db.Column(db.Integer, nullable=True)
    last_restock_date = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product", backref=db.backref("branch_stock", lazy=True))
    branch = db.relationship("Branch")

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "branch_id": self.branch_id,
            "quantity": self.quantity,
            "reorder_point": self.reorder_point,
            "reorder_quantity": self.reorder_quantity,
            "last_restock_date": to_utc_z(self.last_restock_date),
        }


class StockAdjustment(db.Model):
    """
    Append-only explanation of one ledger delta.

    Rows are inserted once and never updated or deleted; there is no code
    path that does either. `reference` carries the business document number
    (order or transfer), `notes` the human-readable context.
    """
    __tablename__ = "stock_adjustments"
    __table_args__ = (
        db.Index("ix_stock_adj_shop_product_created", "shop_id", "product_id", "created_at"),
        db.Index("ix_stock_adj_shop_reason", "shop_id", "reason"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    shop_id = db.Column(db.Integer, db.ForeignKey("shops.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    # NULL = the shop's default pool
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=True)

    quantity_change = db.Column(db.Integer, nullable=False)
    resulting_quantity = db.Column(db.Integer, nullable=True)
    reason = db.Column(db.String(32), nullable=False)

    actor_id = db.Column(db.Integer, nullable=False)
    reference = db.Column(db.String(64), nullable=True, index=True)
    notes = db.Column(db.String(500), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "shop_id": self.shop_id,
            "product_id": self.product_id,
            "branch_id": self.branch_id,
            "location": str(self.branch_id) if self.branch_id is not None else "main",
            "quantity_change": self.quantity_change,
            "resulting_quantity": self.resulting_quantity,
            "reason": self.reason,
            "actor_id": self.actor_id,
            "reference": self.reference,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }
