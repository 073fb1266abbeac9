# backend/branchstock/services/adjustment_service.py
"""
Adjustment log: the append-only "why did stock change" record.

WHY: Every ledger delta, whatever its source (checkout, transfer, count or a
manual correction), leaves exactly one StockAdjustment explaining it. The
log is insert-only; this module has no update or delete path and none
should be added.
"""
from __future__ import annotations

from datetime import datetime

from ..errors import ValidationError
from ..extensions import db
from ..models import ADJUSTMENT_REASONS, BranchStock, StockAdjustment
from ..time_utils import utcnow
from .audit_service import emit_audit
from .ledger_service import apply_delta, get_stock
from .tenant_service import require_product_in_shop

REASON_SALE = "sale"
REASON_PURCHASE_RECEIVED = "purchase_received"
REASON_CORRECTION = "correction"
REASON_TRANSFER = "transfer"


def record_adjustment(
    *,
    shop_id: int,
    product_id: int,
    branch_id: int | None,
    quantity_change: int,
    reason: str,
    actor_id: int,
    resulting_quantity: int | None = None,
    reference: str | None = None,
    notes: str | None = None,
) -> StockAdjustment:
    """
    Append one adjustment row in the caller's transaction.

    Callers apply the matching ledger delta themselves; this only records it.
    """
    if reason not in ADJUSTMENT_REASONS:
        raise ValidationError(f"Invalid adjustment reason: {reason}")

    adjustment = StockAdjustment(
        shop_id=shop_id,
        product_id=product_id,
        branch_id=branch_id,
        quantity_change=quantity_change,
        resulting_quantity=resulting_quantity,
        reason=reason,
        actor_id=actor_id,
        reference=reference,
        notes=notes[:500] if notes else None,
    )
    db.session.add(adjustment)
    db.session.flush()
    return adjustment


def adjust_stock(
    shop_id: int,
    actor_id: int,
    product_id: int,
    quantity_change: int,
    reason: str,
    branch_id: int | None = None,
    notes: str | None = None,
    reference: str | None = None,
) -> StockAdjustment:
    """
    Manual stock adjustment.

    Args:
        quantity_change: Signed, non-zero delta
        reason: One of ADJUSTMENT_REASONS
        branch_id: None for the shop's default pool

    Returns:
        StockAdjustment: The appended row; resulting_quantity holds the new level

    Raises:
        ValidationError: zero change or unknown reason
        NotFoundError: product/branch not in this shop
        InsufficientStockError: reject policy and the delta would go below zero
    """
    if isinstance(quantity_change, bool) or not isinstance(quantity_change, int):
        raise ValidationError("quantity_change must be an integer")
    if quantity_change == 0:
        raise ValidationError("quantity_change cannot be zero")
    if reason not in ADJUSTMENT_REASONS:
        raise ValidationError(f"Invalid adjustment reason: {reason}")

    product = require_product_in_shop(shop_id, product_id)
    before = get_stock(shop_id, product_id, branch_id)

    level = apply_delta(shop_id, product_id, branch_id, quantity_change)

    if reason == REASON_PURCHASE_RECEIVED and branch_id is not None:
        _stamp_restock(shop_id, product_id, branch_id, utcnow())

    adjustment = record_adjustment(
        shop_id=shop_id,
        product_id=product_id,
        branch_id=branch_id,
        quantity_change=quantity_change,
        reason=reason,
        actor_id=actor_id,
        resulting_quantity=level.quantity,
        reference=reference,
        notes=notes,
    )

    emit_audit(
        shop_id=shop_id,
        actor_id=actor_id,
        action="adjust_stock",
        resource="product",
        resource_id=product.id,
        before={"quantity": before},
        after={"quantity": level.quantity, "went_negative": level.went_negative},
        branch_id=branch_id,
        adjustment_id=adjustment.id,
        reason=reason,
    )
    return adjustment


def _stamp_restock(shop_id: int, product_id: int, branch_id: int, when: datetime) -> None:
    row = (
        db.session.query(BranchStock)
        .filter_by(shop_id=shop_id, product_id=product_id, branch_id=branch_id)
        .one()
    )
    row.last_restock_date = when
    db.session.flush()


def list_adjustments(
    shop_id: int,
    *,
    product_id: int | None = None,
    reason: str | None = None,
    branch_id: int | None = None,
    reference: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    limit: int = 100,
) -> list[StockAdjustment]:
    """Adjustments for a shop, newest first. `end` is exclusive."""
    query = db.session.query(StockAdjustment).filter(StockAdjustment.shop_id == shop_id)
    if product_id is not None:
        query = query.filter(StockAdjustment.product_id == product_id)
    if reason:
        query = query.filter(StockAdjustment.reason == reason)
    if branch_id is not None:
        query = query.filter(StockAdjustment.branch_id == branch_id)
    if reference:
        query = query.filter(StockAdjustment.reference == reference)
    if start:
        query = query.filter(StockAdjustment.created_at >= start)
    if end:
        query = query.filter(StockAdjustment.created_at < end)

    limit = max(1, min(limit, 500))
    return query.order_by(StockAdjustment.id.desc()).limit(limit).all()
