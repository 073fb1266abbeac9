from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class AuditEvent(db.Model):
    """
    Append-only compliance record of one state-changing call.

    Written by the default database audit sink. before/after are JSON
    snapshots of the resource's projection.
    """
    __tablename__ = "audit_events"
    __table_args__ = (
        db.Index("ix_audit_events_shop_resource", "shop_id", "resource", "resource_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    shop_id = db.Column(db.Integer, nullable=False, index=True)
    branch_id = db.Column(db.Integer, nullable=True)
    actor_id = db.Column(db.Integer, nullable=False)

    # e.g. "ship_stock_transfer"
    action = db.Column(db.String(64), nullable=False, index=True)
    # e.g. "stock_transfer"
    resource = db.Column(db.String(64), nullable=False)
    resource_id = db.Column(db.String(64), nullable=True)

    before = db.Column(db.JSON, nullable=True)
    after = db.Column(db.JSON, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "shop_id": self.shop_id,
            "branch_id": self.branch_id,
            "actor_id": self.actor_id,
            "action": self.action,
            "resource": self.resource,
            "resource_id": self.resource_id,
            "before": self.before,
            "after": self.after,
            "created_at": to_utc_z(self.created_at),
        }
