# backend/branchstock/services/reconciliation_service.py
"""
Reconciliation engine: cash and physical stock, kept as separate flows.

CASH:
expected = sum of `cash` payments on the day's paid/partial orders
variance = actual - expected
variance_percentage = variance / expected * 100 (0 when expected is 0)
status = reconciled when |variance| <= CASH_VARIANCE_THRESHOLD_CENTS,
         variance_pending otherwise

Investigation appends VarianceRecord rows and leaves status alone.
Approval records the approver and forces status=reconciled: a human
decision overrides the automatic classification.

STOCK:
variance = physical_count - system stock at the location. A non-zero
variance is booked as one `correction` adjustment through the ledger (the
count is authoritative, so it may take stock to any counted value) and the
reconciliation row links to it. Cash reconciliation never touches stock.
"""
from __future__ import annotations

import logging
from datetime import date

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..errors import ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Order, OrderPayment, Reconciliation, StockReconciliation, VarianceRecord
from ..models.reconciliation import VARIANCE_TYPES
from ..time_utils import day_bounds, utcnow
from ..validation import MAX_AMOUNT_CENTS, coerce_int, optional_text, parse_date_field, require_choice, require_text
from .adjustment_service import REASON_CORRECTION, record_adjustment
from .audit_service import emit_audit
from .ledger_service import apply_delta, get_stock
from .tenant_service import require_product_in_shop

logger = logging.getLogger(__name__)

STATUS_PENDING = "pending"
STATUS_RECONCILED = "reconciled"
STATUS_VARIANCE_PENDING = "variance_pending"

COUNTED_PAYMENT_STATUSES = ("paid", "partial")


# =============================================================================
# Cash reconciliation
# =============================================================================

def expected_cash_cents(shop_id: int, day: date) -> int:
    """Cash taken on the day's paid and partially paid orders."""
    start, end = day_bounds(day)
    total = (
        db.session.query(func.coalesce(func.sum(OrderPayment.amount_cents), 0))
        .join(Order, Order.id == OrderPayment.order_id)
        .filter(
            Order.shop_id == shop_id,
            Order.payment_status.in_(COUNTED_PAYMENT_STATUSES),
            Order.created_at >= start,
            Order.created_at < end,
            OrderPayment.method == "cash",
        )
        .scalar()
    )
    return int(total or 0)


def classify_variance(variance_cents: int) -> str:
    threshold = current_app.config.get("CASH_VARIANCE_THRESHOLD_CENTS", 10000)
    return STATUS_RECONCILED if abs(variance_cents) <= threshold else STATUS_VARIANCE_PENDING


def create_daily_reconciliation(
    shop_id: int,
    actor_id: int,
    day,
    actual_cash_cents,
    notes: str | None = None,
) -> Reconciliation:
    """
    Reconcile one day's counted cash against recorded cash payments.

    Raises:
        ValidationError: bad date or amount
        ConflictError: the shop already has a reconciliation for that date
    """
    day = parse_date_field(day, "date")
    actual = coerce_int(actual_cash_cents, "actual_cash_cents", minimum=0, maximum=MAX_AMOUNT_CENTS)

    existing = (
        db.session.query(Reconciliation.id)
        .filter_by(shop_id=shop_id, reconciliation_date=day)
        .first()
    )
    if existing:
        raise ConflictError(f"Reconciliation for {day.isoformat()} already exists")

    expected = expected_cash_cents(shop_id, day)
    variance = actual - expected
    percentage = round(variance / expected * 100, 2) if expected > 0 else 0.0

    reconciliation = Reconciliation(
        shop_id=shop_id,
        reconciliation_date=day,
        expected_cash_cents=expected,
        actual_cash_cents=actual,
        variance_cents=variance,
        variance_percentage=percentage,
        status=classify_variance(variance),
        reconciliation_notes=optional_text(notes, "notes"),
        reconciled_by=actor_id,
        reconciliation_time=utcnow(),
    )
    try:
        with db.session.begin_nested():
            db.session.add(reconciliation)
    except IntegrityError:
        raise ConflictError(f"Reconciliation for {day.isoformat()} already exists")

    emit_audit(
        shop_id=shop_id,
        actor_id=actor_id,
        action="create_reconciliation",
        resource="reconciliation",
        resource_id=reconciliation.id,
        after={
            "date": day.isoformat(),
            "expected_cash_cents": expected,
            "actual_cash_cents": actual,
            "variance_cents": variance,
            "status": reconciliation.status,
        },
    )
    logger.info(
        "Daily reconciliation for shop %s on %s: expected %s, actual %s, variance %s",
        shop_id, day.isoformat(), expected, actual, variance,
    )
    return reconciliation


def get_reconciliation(shop_id: int, reconciliation_id: int) -> Reconciliation:
    reconciliation = (
        db.session.query(Reconciliation)
        .filter_by(id=reconciliation_id, shop_id=shop_id)
        .first()
    )
    if not reconciliation:
        raise NotFoundError("Reconciliation not found")
    return reconciliation


def investigate_variance(
    shop_id: int,
    reconciliation_id: int,
    actor_id: int,
    variance_type: str,
    investigation_notes: str | None,
) -> Reconciliation:
    """Append a VarianceRecord for the reconciliation's variance; status is unchanged."""
    variance_type = require_choice(variance_type, "variance_type", VARIANCE_TYPES)
    investigation_notes = require_text(investigation_notes, "investigation_notes")
    reconciliation = get_reconciliation(shop_id, reconciliation_id)

    record = VarianceRecord(
        reconciliation_id=reconciliation.id,
        variance_type=variance_type,
        amount_cents=reconciliation.variance_cents,
        investigation_notes=investigation_notes,
        status="investigated",
        recorded_by=actor_id,
    )
    db.session.add(record)
    db.session.flush()
    db.session.refresh(reconciliation)

    emit_audit(
        shop_id=shop_id,
        actor_id=actor_id,
        action="investigate_variance",
        resource="reconciliation",
        resource_id=reconciliation.id,
        after={"variance_type": variance_type, "amount_cents": record.amount_cents},
    )
    logger.info("Variance investigation recorded for reconciliation %s", reconciliation.id)
    return reconciliation


def approve_reconciliation(shop_id: int, reconciliation_id: int, actor_id: int) -> Reconciliation:
    reconciliation = get_reconciliation(shop_id, reconciliation_id)
    if reconciliation.approved_by is not None:
        raise ConflictError("Reconciliation already approved")

    before = reconciliation.status
    reconciliation.approved_by = actor_id
    reconciliation.approval_time = utcnow()
    reconciliation.status = STATUS_RECONCILED
    db.session.flush()

    emit_audit(
        shop_id=shop_id,
        actor_id=actor_id,
        action="approve_reconciliation",
        resource="reconciliation",
        resource_id=reconciliation.id,
        before={"status": before},
        after={"status": reconciliation.status, "variance_cents": reconciliation.variance_cents},
    )
    return reconciliation


def get_reconciliation_history(
    shop_id: int,
    start: date | None = None,
    end: date | None = None,
    status: str | None = None,
) -> list[Reconciliation]:
    query = db.session.query(Reconciliation).filter(Reconciliation.shop_id == shop_id)
    if start:
        query = query.filter(Reconciliation.reconciliation_date >= start)
    if end:
        query = query.filter(Reconciliation.reconciliation_date <= end)
    if status:
        query = query.filter(Reconciliation.status == status)
    return query.order_by(Reconciliation.reconciliation_date.desc()).all()


def get_variance_report(shop_id: int, start: date, end: date) -> dict:
    """Variance summary over an inclusive date range."""
    if start > end:
        raise ValidationError("start must not be after end")
    rows = get_reconciliation_history(shop_id, start, end)

    report = {
        "start": start.isoformat(),
        "end": end.isoformat(),
        "total_reconciliations": len(rows),
        "total_variance_cents": 0,
        "net_variance_cents": 0,
        "total_shortage_cents": 0,
        "total_overage_cents": 0,
        "average_variance_cents": 0,
        "max_variance_cents": 0,
        "min_variance_cents": 0,
        "average_variance_percentage": 0.0,
        "pending_variances": 0,
    }
    if not rows:
        return report

    absolute = [abs(r.variance_cents) for r in rows]
    report.update({
        "total_variance_cents": sum(absolute),
        "net_variance_cents": sum(r.variance_cents for r in rows),
        "total_shortage_cents": sum(-r.variance_cents for r in rows if r.variance_cents < 0),
        "total_overage_cents": sum(r.variance_cents for r in rows if r.variance_cents > 0),
        "average_variance_cents": round(sum(absolute) / len(rows)),
        "max_variance_cents": max(absolute),
        "min_variance_cents": min(absolute),
        "average_variance_percentage": round(
            sum(abs(r.variance_percentage) for r in rows) / len(rows), 2
        ),
        "pending_variances": sum(1 for r in rows if r.status == STATUS_VARIANCE_PENDING),
    })
    return report


def get_reconciliation_stats(shop_id: int) -> dict:
    rows = get_reconciliation_history(shop_id)
    if not rows:
        return {
            "total_reconciliations": 0,
            "reconciled": 0,
            "pending_variances": 0,
            "average_variance_cents": 0,
            "last_reconciliation": None,
        }
    return {
        "total_reconciliations": len(rows),
        "reconciled": sum(1 for r in rows if r.status == STATUS_RECONCILED),
        "pending_variances": sum(1 for r in rows if r.status == STATUS_VARIANCE_PENDING),
        "average_variance_cents": round(sum(abs(r.variance_cents) for r in rows) / len(rows)),
        "last_reconciliation": rows[0].reconciliation_date.isoformat(),
    }


# =============================================================================
# Physical stock reconciliation
# =============================================================================

def create_stock_reconciliation(
    shop_id: int,
    actor_id: int,
    product_id: int,
    physical_count,
    branch_id: int | None = None,
    day=None,
    notes: str | None = None,
) -> StockReconciliation:
    """
    Record a physical count and book any variance as a correction.

    Raises:
        ValidationError: negative or non-integer count
        NotFoundError: product/branch not in this shop
    """
    counted = coerce_int(physical_count, "physical_count", minimum=0)
    day = parse_date_field(day, "date", required=False) or utcnow().date()
    notes = optional_text(notes, "notes")
    product = require_product_in_shop(shop_id, product_id)

    system_quantity = get_stock(shop_id, product.id, branch_id)
    variance = counted - system_quantity

    adjustment = None
    if variance != 0:
        level = apply_delta(shop_id, product.id, branch_id, variance, allow_negative=True)
        location = "main store" if branch_id is None else f"branch {branch_id}"
        adjustment = record_adjustment(
            shop_id=shop_id,
            product_id=product.id,
            branch_id=branch_id,
            quantity_change=variance,
            reason=REASON_CORRECTION,
            actor_id=actor_id,
            resulting_quantity=level.quantity,
            reference=f"COUNT-{day.strftime('%Y%m%d')}",
            notes=f"Physical count at {location}: counted {counted}, system {system_quantity}"
                  + (f". {notes}" if notes else ""),
        )

    record = StockReconciliation(
        shop_id=shop_id,
        product_id=product.id,
        branch_id=branch_id,
        system_quantity=system_quantity,
        physical_count=counted,
        variance=variance,
        reconciliation_date=day,
        reconciled_by=actor_id,
        notes=notes,
        adjustment_id=adjustment.id if adjustment else None,
    )
    db.session.add(record)
    db.session.flush()

    emit_audit(
        shop_id=shop_id,
        actor_id=actor_id,
        action="stock_reconciliation",
        resource="product",
        resource_id=product.id,
        before={"quantity": system_quantity},
        after={"quantity": counted, "variance": variance},
        branch_id=branch_id,
        stock_reconciliation_id=record.id,
    )
    if variance:
        logger.info(
            "Stock count for product %s at %s differs by %s; correction booked",
            product.id, "main" if branch_id is None else f"branch {branch_id}", variance,
        )
    return record


def get_stock_reconciliation_history(
    shop_id: int,
    *,
    product_id: int | None = None,
    branch_id: int | None = None,
    start: date | None = None,
    end: date | None = None,
    only_variances: bool = False,
    limit: int = 100,
) -> list[StockReconciliation]:
    query = db.session.query(StockReconciliation).filter(StockReconciliation.shop_id == shop_id)
    if product_id is not None:
        query = query.filter(StockReconciliation.product_id == product_id)
    if branch_id is not None:
        query = query.filter(StockReconciliation.branch_id == branch_id)
    if start:
        query = query.filter(StockReconciliation.reconciliation_date >= start)
    if end:
        query = query.filter(StockReconciliation.reconciliation_date <= end)
    if only_variances:
        query = query.filter(StockReconciliation.variance != 0)
    return (
        query.order_by(StockReconciliation.reconciliation_date.desc(), StockReconciliation.id.desc())
        .limit(max(1, min(limit, 500)))
        .all()
    )
