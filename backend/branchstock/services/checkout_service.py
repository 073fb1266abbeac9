# backend/branchstock/services/checkout_service.py
"""
Checkout stock binder.

WHY: The sale must never be lost because inventory sync failed. Checkout
therefore runs in two phases:

1. Validate the whole cart against the ledger. Any shortfall rejects the
   checkout wholesale; nothing is persisted.
2. Persist the order, its payments and one StockSyncJob per line in ONE
   transaction and commit. The jobs are a durable retry queue (outbox).

Only then are the jobs drained, each in its own transaction: deduct the
line from the ledger and append a `sale` adjustment referencing the order
number. A failing line marks its job failed (with backoff), annotates the
order with an INVENTORY SYNC WARNING and is logged; it is never raised to
the checkout caller and never undoes the order or other lines.
`retry_stock_sync_jobs` re-drives failed jobs later.
"""
from __future__ import annotations

import logging
import secrets
import string
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import timedelta
from decimal import ROUND_HALF_UP, Decimal

from flask import current_app
from sqlalchemy import or_, update
from sqlalchemy.exc import SQLAlchemyError

from ..errors import ConflictError, InsufficientStockError, InventoryError, NotFoundError, Shortfall, ValidationError
from ..extensions import db
from ..models import Order, OrderItem, OrderPayment, StockSyncJob
from ..models.sales import (
    PAYMENT_METHODS,
    STOCK_SYNC_DONE,
    STOCK_SYNC_FAILED,
    STOCK_SYNC_PENDING,
    STOCK_SYNC_PROCESSING,
)
from ..time_utils import utcnow
from ..validation import MAX_AMOUNT_CENTS, coerce_int, optional_int, optional_text, require_choice, require_list
from .adjustment_service import REASON_SALE, record_adjustment
from .audit_service import emit_audit
from .ledger_service import apply_delta, get_stock
from .tenant_service import require_branch_in_shop, require_product_in_shop

logger = logging.getLogger(__name__)

ORDER_NUMBER_ALPHABET = string.ascii_uppercase + string.digits
SYNC_WARNING_PREFIX = "INVENTORY SYNC WARNING"

# Outcome status for a job another worker already claimed
STOCK_SYNC_SKIPPED = "skipped"

# Retry backoff: 30s, 60s, 120s ... capped at one hour
RETRY_BACKOFF_BASE_SECONDS = 30
RETRY_BACKOFF_MAX_SECONDS = 3600


@dataclass
class CheckoutResult:
    order: Order
    deductions: list[dict] = field(default_factory=list)
    # Stock sync failures never fail the checkout
    success: bool = True

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "order": self.order.to_dict(),
            "deductions": self.deductions,
        }


def _aggregate_quantities(items: list[dict]) -> "OrderedDict[int, int]":
    totals: OrderedDict[int, int] = OrderedDict()
    for item in items:
        totals[item["product_id"]] = totals.get(item["product_id"], 0) + item["quantity"]
    return totals


def validate_stock_availability(shop_id: int, branch_id: int | None, items: list[dict]) -> list[Shortfall]:
    """
    Compare requested quantities with effective stock at the branch.

    Lines for the same product are summed before comparing. The read is a
    point-in-time check; the deduction itself is guarded separately by the
    ledger.

    Raises:
        NotFoundError: a product is unknown or belongs to another shop
    """
    shortfalls = []
    for product_id, requested in _aggregate_quantities(items).items():
        product = require_product_in_shop(shop_id, product_id)
        available = get_stock(shop_id, product_id, branch_id)
        if available < requested:
            shortfalls.append(Shortfall(
                product_id=product.id,
                name=product.name,
                requested=requested,
                available=available,
            ))
    return shortfalls


def _parse_cart(shop_id: int, payload: dict) -> list[dict]:
    lines = []
    for index, raw in enumerate(require_list(payload.get("items"), "items")):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{index}] must be an object")
        product_id = coerce_int(raw.get("product_id"), f"items[{index}].product_id", minimum=1)
        quantity = coerce_int(raw.get("quantity"), f"items[{index}].quantity", minimum=1)
        product = require_product_in_shop(shop_id, product_id)
        unit_price = optional_int(
            raw.get("unit_price_cents"),
            f"items[{index}].unit_price_cents",
            minimum=0,
            maximum=MAX_AMOUNT_CENTS,
        )
        if unit_price is None:
            unit_price = product.unit_price_cents
        lines.append({
            "product_id": product.id,
            "name": optional_text(raw.get("name"), f"items[{index}].name", max_length=255) or product.name,
            "quantity": quantity,
            "unit_price_cents": unit_price,
        })
    return lines


def _parse_payments(payload: dict) -> list[dict]:
    raw_payments = payload.get("payments") or []
    if not isinstance(raw_payments, list):
        raise ValidationError("payments must be a list")
    payments = []
    for index, raw in enumerate(raw_payments):
        if not isinstance(raw, dict):
            raise ValidationError(f"payments[{index}] must be an object")
        payments.append({
            "method": require_choice(raw.get("method"), f"payments[{index}].method", PAYMENT_METHODS),
            "amount_cents": coerce_int(
                raw.get("amount_cents"), f"payments[{index}].amount_cents", minimum=1, maximum=MAX_AMOUNT_CENTS
            ),
            "reference": optional_text(raw.get("reference"), f"payments[{index}].reference", max_length=64),
        })
    return payments


def compute_tax_cents(subtotal_cents: int, rate: float) -> int:
    """Flat-rate tax, rounded half-up to the cent."""
    tax = Decimal(subtotal_cents) * Decimal(str(rate))
    return int(tax.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _payment_status(paid_cents: int, total_cents: int) -> str:
    if paid_cents >= total_cents:
        return "paid"
    if paid_cents > 0:
        return "partial"
    return "unpaid"


def _generate_order_number(shop_id: int) -> str:
    year = utcnow().year
    for _ in range(5):
        suffix = "".join(secrets.choice(ORDER_NUMBER_ALPHABET) for _ in range(6))
        number = f"STK-{year}-{suffix}"
        taken = db.session.query(Order.id).filter_by(shop_id=shop_id, order_number=number).first()
        if not taken:
            return number
    raise ConflictError(f"Could not allocate a unique order number for shop {shop_id}")


def checkout(shop_id: int, actor_id: int, branch_id: int | None, payload: dict) -> CheckoutResult:
    """
    Complete a sale and bind it to the ledger.

    Payload:
        items: [{product_id, quantity, name?, unit_price_cents?}]
        payments: [{method, amount_cents, reference?}]
        status, customer_name, notes (optional)

    Returns:
        CheckoutResult: the committed order and one deduction outcome per line

    Raises:
        ValidationError: malformed cart or payments
        NotFoundError: unknown branch or product
        InsufficientStockError: any line short; nothing is persisted
    """
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")
    if branch_id is not None:
        require_branch_in_shop(shop_id, branch_id)

    lines = _parse_cart(shop_id, payload)
    payments = _parse_payments(payload)

    subtotal = sum(line["unit_price_cents"] * line["quantity"] for line in lines)
    if subtotal <= 0:
        raise ValidationError("Subtotal must be greater than zero")

    shortfalls = validate_stock_availability(shop_id, branch_id, lines)
    if shortfalls:
        raise InsufficientStockError(
            "Insufficient stock: " + "; ".join(s.describe() for s in shortfalls),
            shortfalls,
        )

    tax = compute_tax_cents(subtotal, current_app.config.get("DEFAULT_TAX_RATE", 0.16))
    total = subtotal + tax
    paid = sum(p["amount_cents"] for p in payments)

    order = Order(
        shop_id=shop_id,
        branch_id=branch_id,
        order_number=_generate_order_number(shop_id),
        actor_id=actor_id,
        status=optional_text(payload.get("status"), "status", max_length=16) or "completed",
        payment_status=_payment_status(paid, total),
        subtotal_cents=subtotal,
        tax_cents=tax,
        total_cents=total,
        customer_name=optional_text(payload.get("customer_name"), "customer_name", max_length=255),
        notes=optional_text(payload.get("notes"), "notes"),
    )
    db.session.add(order)
    db.session.flush()

    for line in lines:
        item = OrderItem(
            order_id=order.id,
            product_id=line["product_id"],
            name=line["name"],
            quantity=line["quantity"],
            unit_price_cents=line["unit_price_cents"],
            line_total_cents=line["unit_price_cents"] * line["quantity"],
        )
        db.session.add(item)
        db.session.flush()
        db.session.add(StockSyncJob(
            shop_id=shop_id,
            order_id=order.id,
            order_item_id=item.id,
            product_id=line["product_id"],
            branch_id=branch_id,
            quantity=line["quantity"],
            status=STOCK_SYNC_PENDING,
        ))
    for payment in payments:
        db.session.add(OrderPayment(order_id=order.id, **payment))
    db.session.flush()

    emit_audit(
        shop_id=shop_id,
        actor_id=actor_id,
        action="checkout",
        resource="order",
        resource_id=order.id,
        after={
            "order_number": order.order_number,
            "total_cents": total,
            "payment_status": order.payment_status,
            "items": [{"product_id": l["product_id"], "quantity": l["quantity"]} for l in lines],
        },
        branch_id=branch_id,
    )
    db.session.commit()
    logger.info("Order %s committed with %s line(s)", order.order_number, len(lines))

    order_id = order.id
    job_ids = [
        job_id for (job_id,) in
        db.session.query(StockSyncJob.id).filter_by(order_id=order_id).order_by(StockSyncJob.id).all()
    ]
    deductions = [process_stock_sync_job(job_id) for job_id in job_ids]

    order = db.session.get(Order, order_id)
    db.session.refresh(order)
    return CheckoutResult(order=order, deductions=deductions)


def _backoff(attempts: int) -> timedelta:
    seconds = RETRY_BACKOFF_BASE_SECONDS * (2 ** max(attempts - 1, 0))
    return timedelta(seconds=min(seconds, RETRY_BACKOFF_MAX_SECONDS))


def _claim_job(job_id: int, seen_attempts: int) -> bool:
    """
    Take the job for the current transaction before touching the ledger.

    Matches only while the job is still pending/failed with the attempt count
    this worker read. A second worker holding the same view claims nothing.
    """
    result = db.session.execute(
        update(StockSyncJob)
        .where(
            StockSyncJob.id == job_id,
            StockSyncJob.status.in_((STOCK_SYNC_PENDING, STOCK_SYNC_FAILED)),
            StockSyncJob.attempts == seen_attempts,
        )
        .values(status=STOCK_SYNC_PROCESSING, attempts=StockSyncJob.attempts + 1)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def process_stock_sync_job(job_id: int) -> dict:
    """
    Apply one queued deduction in its own transaction and commit.

    Failures are recorded on the job and the order, logged, and returned as
    an outcome; they are not raised. A job claimed by another worker is
    left alone and reported as skipped.
    """
    job = db.session.get(StockSyncJob, job_id)
    if job is None:
        raise NotFoundError(f"Stock sync job {job_id} not found")
    if job.status == STOCK_SYNC_DONE:
        return {"job_id": job.id, "product_id": job.product_id, "status": STOCK_SYNC_DONE, "error": None}

    product_id = job.product_id
    if not _claim_job(job_id, job.attempts):
        db.session.rollback()
        logger.info("Stock sync job %s already claimed, skipping", job_id)
        return {"job_id": job_id, "product_id": product_id, "status": STOCK_SYNC_SKIPPED, "error": None}

    try:
        order = job.order
        item = job.order_item
        level = apply_delta(job.shop_id, job.product_id, job.branch_id, -job.quantity)
        adjustment = record_adjustment(
            shop_id=job.shop_id,
            product_id=job.product_id,
            branch_id=job.branch_id,
            quantity_change=-job.quantity,
            reason=REASON_SALE,
            actor_id=order.actor_id,
            resulting_quantity=level.quantity,
            reference=order.order_number,
            notes=f"Order {order.order_number} - {item.name} x{job.quantity}",
        )
        # attempts was bumped by the claim
        job.status = STOCK_SYNC_DONE
        job.last_error = None
        job.next_attempt_at = None
        job.processed_at = utcnow()
        job.adjustment_id = adjustment.id

        emit_audit(
            shop_id=job.shop_id,
            actor_id=order.actor_id,
            action="stock_sync_deduction",
            resource="order",
            resource_id=order.id,
            before={"product_id": job.product_id, "quantity": level.quantity + job.quantity},
            after={"product_id": job.product_id, "quantity": level.quantity},
            branch_id=job.branch_id,
            order_number=order.order_number,
            job_id=job_id,
            adjustment_id=adjustment.id,
        )
        db.session.commit()
        return {
            "job_id": job_id,
            "product_id": product_id,
            "status": STOCK_SYNC_DONE,
            "error": None,
            "resulting_quantity": level.quantity,
            "went_negative": level.went_negative,
        }
    except (InventoryError, SQLAlchemyError) as exc:
        db.session.rollback()
        message = exc.message if isinstance(exc, InventoryError) else str(exc)
        _record_failure(job_id, message)
        return {"job_id": job_id, "product_id": product_id, "status": STOCK_SYNC_FAILED, "error": message}


def _record_failure(job_id: int, message: str) -> None:
    job = db.session.get(StockSyncJob, job_id, populate_existing=True)
    if job.status == STOCK_SYNC_DONE:
        # Another worker finished it after our claim rolled back
        db.session.rollback()
        return
    order = job.order
    item = job.order_item

    job.status = STOCK_SYNC_FAILED
    job.attempts += 1
    job.last_error = message
    job.next_attempt_at = utcnow() + _backoff(job.attempts)

    warning = f"{SYNC_WARNING_PREFIX}: Failed to reduce stock for {item.name}: {message}"
    order.inventory_warning = f"{order.inventory_warning}\n{warning}" if order.inventory_warning else warning
    db.session.commit()

    logger.error(
        "Stock reduction failed for order %s (job %s, product %s, attempt %s): %s",
        order.order_number,
        job.id,
        job.product_id,
        job.attempts,
        message,
    )


def retry_stock_sync_jobs(limit: int = 100, max_attempts: int | None = None, shop_id: int | None = None) -> dict:
    """Re-drive due pending/failed jobs that still have attempts left."""
    if max_attempts is None:
        max_attempts = current_app.config.get("STOCK_SYNC_MAX_ATTEMPTS", 5)

    query = db.session.query(StockSyncJob.id).filter(
        StockSyncJob.status.in_((STOCK_SYNC_PENDING, STOCK_SYNC_FAILED)),
        StockSyncJob.attempts < max_attempts,
        or_(StockSyncJob.next_attempt_at.is_(None), StockSyncJob.next_attempt_at <= utcnow()),
    )
    if shop_id is not None:
        query = query.filter(StockSyncJob.shop_id == shop_id)
    job_ids = [job_id for (job_id,) in query.order_by(StockSyncJob.id).limit(limit).all()]

    outcomes = [process_stock_sync_job(job_id) for job_id in job_ids]
    succeeded = sum(1 for o in outcomes if o["status"] == STOCK_SYNC_DONE)
    failed = sum(1 for o in outcomes if o["status"] == STOCK_SYNC_FAILED)
    if outcomes:
        logger.info("Stock sync retry: %s processed, %s succeeded", len(outcomes), succeeded)
    return {
        "processed": len(outcomes),
        "succeeded": succeeded,
        "failed": failed,
        "skipped": len(outcomes) - succeeded - failed,
        "outcomes": outcomes,
    }


def list_stock_sync_jobs(
    shop_id: int,
    *,
    status: str | None = None,
    order_id: int | None = None,
    limit: int = 100,
) -> list[StockSyncJob]:
    query = db.session.query(StockSyncJob).filter(StockSyncJob.shop_id == shop_id)
    if status:
        query = query.filter(StockSyncJob.status == require_choice(
            status, "status", (STOCK_SYNC_PENDING, STOCK_SYNC_DONE, STOCK_SYNC_FAILED)
        ))
    if order_id is not None:
        query = query.filter(StockSyncJob.order_id == order_id)
    return query.order_by(StockSyncJob.id.desc()).limit(max(1, min(limit, 500))).all()


def get_order(shop_id: int, order_id: int) -> Order:
    order = db.session.query(Order).filter_by(id=order_id, shop_id=shop_id).first()
    if not order:
        raise NotFoundError("Order not found")
    return order
