from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class StockTransfer(db.Model):
    """
    Stock transfer between two locations of one shop.

    LIFECYCLE:
    draft -> pending_approval -> approved -> in_transit -> partially_received -> received
    rejected: from draft / pending_approval only
    cancelled: from any non-terminal state (in-flight goods return to the source)

    LOCATIONS: the shop's default pool is modeled explicitly with
    is_from_main_store / is_to_main_store and a NULL branch id. A NULL branch
    id with the flag unset is rejected by the check constraints.

    CONCURRENCY: every transition is a conditional UPDATE guarded on
    (status, version_id); see transfer_service._transition.
    """
    __tablename__ = "stock_transfers"
    __table_args__ = (
        # Transfer numbers are unique per shop (sequence is per shop, per day)
        db.UniqueConstraint("shop_id", "transfer_number", name="uq_stock_transfers_shop_number"),
        db.Index("ix_stock_transfers_shop_status", "shop_id", "status"),
        db.Index("ix_stock_transfers_shop_created", "shop_id", "created_at"),
        db.CheckConstraint(
            "(is_from_main_store AND from_branch_id IS NULL) OR "
            "(NOT is_from_main_store AND from_branch_id IS NOT NULL)",
            name="source_location",
        ),
        db.CheckConstraint(
            "(is_to_main_store AND to_branch_id IS NULL) OR "
            "(NOT is_to_main_store AND to_branch_id IS NOT NULL)",
            name="destination_location",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    shop_id = db.Column(db.Integer, db.ForeignKey("shops.id"), nullable=False, index=True)

    # e.g. "TRF-20261017-0001"
    transfer_number = db.Column(db.String(32), nullable=False)

    from_branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=True, index=True)
    from_branch_name = db.Column(db.String(120), nullable=False)
    is_from_main_store = db.Column(db.Boolean, nullable=False, default=False)

    to_branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=True, index=True)
    to_branch_name = db.Column(db.String(120), nullable=False)
    is_to_main_store = db.Column(db.Boolean, nullable=False, default=False)

    transfer_type = db.Column(db.String(32), nullable=False, default="branch_to_branch")
    status = db.Column(db.String(32), nullable=False, default="pending_approval")
    priority = db.Column(db.String(16), nullable=False, default="normal")

    reason = db.Column(db.Text, nullable=True)
    notes = db.Column(db.Text, nullable=True)

    requested_by = db.Column(db.Integer, nullable=False)
    requested_at = db.Column(db.DateTime(timezone=True), nullable=False)

    approved_by = db.Column(db.Integer, nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    approval_notes = db.Column(db.Text, nullable=True)

    shipped_by = db.Column(db.Integer, nullable=True)
    shipped_at = db.Column(db.DateTime(timezone=True), nullable=True)
    tracking_number = db.Column(db.String(64), nullable=True)
    carrier = db.Column(db.String(64), nullable=True)
    expected_delivery_date = db.Column(db.DateTime(timezone=True), nullable=True)

    received_by = db.Column(db.Integer, nullable=True)
    received_at = db.Column(db.DateTime(timezone=True), nullable=True)
    receipt_notes = db.Column(db.Text, nullable=True)

    rejected_by = db.Column(db.Integer, nullable=True)
    rejected_at = db.Column(db.DateTime(timezone=True), nullable=True)
    rejection_reason = db.Column(db.Text, nullable=True)

    cancelled_by = db.Column(db.Integer, nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancellation_reason = db.Column(db.Text, nullable=True)

    # Cost snapshot taken at creation, not re-priced later
    total_value_cents = db.Column(db.Integer, nullable=False, default=0)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    items = db.relationship(
        "TransferItem",
        backref="transfer",
        lazy=True,
        order_by="TransferItem.id",
        cascade="all, delete-orphan",
    )

    @property
    def total_items(self) -> int:
        return sum(item.quantity for item in self.items)

    @property
    def total_received(self) -> int:
        return sum(item.received_quantity for item in self.items)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "shop_id": self.shop_id,
            "transfer_number": self.transfer_number,
            "from_branch_id": self.from_branch_id,
            "from_branch_name": self.from_branch_name,
            "is_from_main_store": self.is_from_main_store,
            "to_branch_id": self.to_branch_id,
            "to_branch_name": self.to_branch_name,
            "is_to_main_store": self.is_to_main_store,
            "transfer_type": self.transfer_type,
            "status": self.status,
            "priority": self.priority,
            "reason": self.reason,
            "notes": self.notes,
            "requested_by": self.requested_by,
            "requested_at": to_utc_z(self.requested_at),
            "approved_by": self.approved_by,
            "approved_at": to_utc_z(self.approved_at),
            "approval_notes": self.approval_notes,
            "shipped_by": self.shipped_by,
            "shipped_at": to_utc_z(self.shipped_at),
            "tracking_number": self.tracking_number,
            "carrier": self.carrier,
            "expected_delivery_date": to_utc_z(self.expected_delivery_date),
            "received_by": self.received_by,
            "received_at": to_utc_z(self.received_at),
            "receipt_notes": self.receipt_notes,
            "rejected_by": self.rejected_by,
            "rejected_at": to_utc_z(self.rejected_at),
            "rejection_reason": self.rejection_reason,
            "cancelled_by": self.cancelled_by,
            "cancelled_at": to_utc_z(self.cancelled_at),
            "cancellation_reason": self.cancellation_reason,
            "total_value_cents": self.total_value_cents,
            "total_items": self.total_items,
            "total_received": self.total_received,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "items": [item.to_dict() for item in self.items],
        }


class TransferItem(db.Model):
    """
    One product line on a transfer.

    received_quantity accumulates across receive calls and never exceeds
    quantity. damaged_quantity is the part of received_quantity that arrived
    unusable; it is not an extra loss on top of it.
    """
    __tablename__ = "transfer_items"
    __table_args__ = (
        db.UniqueConstraint("transfer_id", "product_id", name="uq_transfer_items_transfer_product"),
        db.CheckConstraint("quantity > 0", name="quantity_positive"),
        db.CheckConstraint("received_quantity >= 0 AND received_quantity <= quantity", name="received_bounds"),
        db.CheckConstraint("damaged_quantity >= 0 AND damaged_quantity <= received_quantity", name="damaged_bounds"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    transfer_id = db.Column(db.Integer, db.ForeignKey("stock_transfers.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    product_name = db.Column(db.String(255), nullable=False)
    sku = db.Column(db.String(64), nullable=False, default="")

    quantity = db.Column(db.Integer, nullable=False)
    unit_cost_cents = db.Column(db.Integer, nullable=False, default=0)

    received_quantity = db.Column(db.Integer, nullable=False, default=0)
    damaged_quantity = db.Column(db.Integer, nullable=False, default=0)
    received_at = db.Column(db.DateTime(timezone=True), nullable=True)

    notes = db.Column(db.Text, nullable=True)

    @property
    def outstanding_quantity(self) -> int:
        return self.quantity - self.received_quantity

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "sku": self.sku,
            "quantity": self.quantity,
            "unit_cost_cents": self.unit_cost_cents,
            "received_quantity": self.received_quantity,
            "damaged_quantity": self.damaged_quantity,
            "outstanding_quantity": self.outstanding_quantity,
            "received_at": to_utc_z(self.received_at),
            "notes": self.notes,
        }


class DocumentSequence(db.Model):
    """
    Atomic per-shop, per-period document sequences.

    WHY: Prevent two concurrent creates from minting the same
    human-readable document number.
    """
    __tablename__ = "document_sequences"
    __table_args__ = (
        db.UniqueConstraint("shop_id", "document_type", "period", name="uq_doc_sequences_shop_type_period"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    shop_id = db.Column(db.Integer, db.ForeignKey("shops.id"), nullable=False, index=True)
    document_type = db.Column(db.String(32), nullable=False)
    # e.g. "20261017" for day-scoped sequences
    period = db.Column(db.String(16), nullable=False)
    next_number = db.Column(db.Integer, nullable=False, default=1)
