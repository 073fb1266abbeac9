# backend/branchstock/services/transfer_service.py
"""
Stock transfer engine.

WHY: Move stock between two locations of one shop with an approval step
and an audit trail, without ever double-shipping or double-receiving.

LIFECYCLE:
1. draft: Saved but not yet submitted (optional)
2. pending_approval: Requested, waiting for a manager
3. approved: Manager approved; no ledger effect yet
4. in_transit: Shipped; source ledger decremented by every item
5. partially_received: Some units arrived; re-enterable
6. received: Every item fully received (terminal)
7. rejected: Refused from draft/pending_approval (terminal)
8. cancelled: Abandoned before completion (terminal); goods still in
   flight are returned to the source

CONCURRENCY:
Each transition is one conditional UPDATE guarded on (status, version_id).
A miss means another request moved the transfer first and raises
StaleStateError; callers re-fetch and retry a bounded number of times.
The guarded UPDATE runs before any ledger write, so the loser of a race
never touches stock.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any

from flask import current_app
from sqlalchemy import func, or_, update

from ..errors import ConflictError, InsufficientStockError, NotFoundError, Shortfall, StaleStateError, ValidationError
from ..extensions import db
from ..models import StockTransfer, TransferItem
from ..time_utils import utcnow
from ..validation import (
    Location,
    coerce_int,
    optional_text,
    parse_datetime_field,
    parse_location,
    require_choice,
    require_list,
    require_text,
)
from .adjustment_service import REASON_TRANSFER, record_adjustment
from .audit_service import emit_audit
from .document_service import next_document_number
from .ledger_service import apply_delta, get_stock
from .tenant_service import require_branch_in_shop, require_product_in_shop

logger = logging.getLogger(__name__)

# Transfer status constants
STATUS_DRAFT = "draft"
STATUS_PENDING_APPROVAL = "pending_approval"
STATUS_APPROVED = "approved"
STATUS_IN_TRANSIT = "in_transit"
STATUS_PARTIALLY_RECEIVED = "partially_received"
STATUS_RECEIVED = "received"
STATUS_REJECTED = "rejected"
STATUS_CANCELLED = "cancelled"

TRANSFER_STATUSES = (
    STATUS_DRAFT,
    STATUS_PENDING_APPROVAL,
    STATUS_APPROVED,
    STATUS_IN_TRANSIT,
    STATUS_PARTIALLY_RECEIVED,
    STATUS_RECEIVED,
    STATUS_REJECTED,
    STATUS_CANCELLED,
)
TERMINAL_STATUSES = (STATUS_RECEIVED, STATUS_REJECTED, STATUS_CANCELLED)
IN_FLIGHT_STATUSES = (STATUS_IN_TRANSIT, STATUS_PARTIALLY_RECEIVED)

PRIORITIES = ("low", "normal", "high", "urgent")

TYPE_BRANCH_TO_BRANCH = "branch_to_branch"
TYPE_MAIN_TO_BRANCH = "main_to_branch"
TYPE_BRANCH_TO_MAIN = "branch_to_main"
TRANSFER_TYPES = (TYPE_BRANCH_TO_BRANCH, TYPE_MAIN_TO_BRANCH, TYPE_BRANCH_TO_MAIN)

DIRECTIONS = ("incoming", "outgoing", "all")

MAIN_STORE_NAME = "Main Store"


# =============================================================================
# Helpers
# =============================================================================

def _source(transfer: StockTransfer) -> Location:
    if transfer.is_from_main_store:
        return Location.main()
    return Location.branch(transfer.from_branch_id)


def _destination(transfer: StockTransfer) -> Location:
    if transfer.is_to_main_store:
        return Location.main()
    return Location.branch(transfer.to_branch_id)


def _resolve_location(shop_id: int, location: Location, role: str) -> tuple[str, bool]:
    """Return (display name, can_transfer_stock) for a location of this shop."""
    if location.is_main:
        return MAIN_STORE_NAME, True
    try:
        branch = require_branch_in_shop(shop_id, location.branch_id)
    except NotFoundError:
        raise NotFoundError(f"{role} branch not found")
    if not branch.is_active:
        raise ValidationError(f"{role} branch {branch.name} is inactive")
    return branch.name, branch.can_transfer_stock


def _require_status(transfer: StockTransfer, allowed: tuple[str, ...], verb: str) -> None:
    if transfer.status not in allowed:
        raise ConflictError(f"Cannot {verb} transfer with status: {transfer.status}")


def _transition(transfer: StockTransfer, expected: tuple[str, ...], values: dict) -> StockTransfer:
    """
    Apply a status-guarded, version-checked UPDATE and reload the row.

    Raises:
        StaleStateError: the row no longer has an expected status or the
            version this request read
    """
    result = db.session.execute(
        update(StockTransfer)
        .where(
            StockTransfer.id == transfer.id,
            StockTransfer.shop_id == transfer.shop_id,
            StockTransfer.status.in_(expected),
            StockTransfer.version_id == transfer.version_id,
        )
        .values(version_id=StockTransfer.version_id + 1, updated_at=utcnow(), **values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise StaleStateError(
            f"Transfer {transfer.transfer_number} was changed by another request; re-fetch and retry",
            {"transfer_id": transfer.id, "seen_version": transfer.version_id},
        )
    db.session.refresh(transfer)
    return transfer


def _audit(transfer: StockTransfer, actor_id: int, action: str, before_status: str | None, **after) -> None:
    emit_audit(
        shop_id=transfer.shop_id,
        actor_id=actor_id,
        action=action,
        resource="stock_transfer",
        resource_id=transfer.id,
        before={"status": before_status} if before_status else None,
        after={"status": transfer.status, "version_id": transfer.version_id, **after},
        branch_id=transfer.from_branch_id,
        transfer_number=transfer.transfer_number,
    )


def _parse_items(shop_id: int, raw_items: Any) -> list[dict]:
    items = require_list(raw_items, "items")
    parsed = []
    seen: set[int] = set()
    for index, raw in enumerate(items):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{index}] must be an object")
        product_id = coerce_int(raw.get("product_id"), f"items[{index}].product_id", minimum=1)
        quantity = coerce_int(raw.get("quantity"), f"items[{index}].quantity", minimum=1)
        if product_id in seen:
            raise ValidationError(f"Product {product_id} appears more than once in items")
        seen.add(product_id)
        product = require_product_in_shop(shop_id, product_id)
        parsed.append({
            "product": product,
            "quantity": quantity,
            "notes": optional_text(raw.get("notes"), f"items[{index}].notes", max_length=500),
        })
    return parsed


# =============================================================================
# Commands
# =============================================================================

def create_transfer(
    shop_id: int,
    actor_id: int,
    payload: dict,
    *,
    as_draft: bool = False,
) -> StockTransfer:
    """
    Create a transfer request.

    Payload:
        from_branch_id: branch id or "main"
        to_branch_id: branch id or "main"
        items: [{product_id, quantity, notes?}]
        transfer_type, priority, reason, notes, expected_delivery_date (optional)

    Stock is checked against the source but not reserved; nothing leaves
    the source until ship.

    Raises:
        ValidationError: bad payload, same source and destination, source
            does not allow transfers
        NotFoundError: branch or product not in this shop
        InsufficientStockError: a line exceeds current source stock
    """
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")

    source = parse_location(payload.get("from_branch_id"), "from_branch_id")
    destination = parse_location(payload.get("to_branch_id"), "to_branch_id")
    if source.key() == destination.key():
        raise ValidationError("Source and destination branches must be different")

    from_name, source_can_transfer = _resolve_location(shop_id, source, "Source")
    to_name, _ = _resolve_location(shop_id, destination, "Destination")
    if not source_can_transfer:
        raise ValidationError(f"Source branch {from_name} does not allow stock transfers")

    items = _parse_items(shop_id, payload.get("items"))

    if payload.get("transfer_type"):
        transfer_type = require_choice(payload["transfer_type"], "transfer_type", TRANSFER_TYPES)
    elif source.is_main:
        transfer_type = TYPE_MAIN_TO_BRANCH
    elif destination.is_main:
        transfer_type = TYPE_BRANCH_TO_MAIN
    else:
        transfer_type = TYPE_BRANCH_TO_BRANCH
    priority = require_choice(payload.get("priority") or "normal", "priority", PRIORITIES)

    shortfalls = []
    for item in items:
        product = item["product"]
        available = get_stock(shop_id, product.id, source.branch_id)
        if available < item["quantity"]:
            shortfalls.append(Shortfall(
                product_id=product.id,
                name=product.name,
                requested=item["quantity"],
                available=available,
            ))
    if shortfalls:
        message = "; ".join(
            f"Insufficient stock in source branch for {s.name}. "
            f"Available: {s.available}, Requested: {s.requested}"
            for s in shortfalls
        )
        raise InsufficientStockError(message, shortfalls)

    now = utcnow()
    transfer_number = next_document_number(
        shop_id=shop_id,
        document_type="stock_transfer",
        prefix="TRF",
        period=now.strftime("%Y%m%d"),
    )

    transfer = StockTransfer(
        shop_id=shop_id,
        transfer_number=transfer_number,
        from_branch_id=source.branch_id,
        from_branch_name=from_name,
        is_from_main_store=source.is_main,
        to_branch_id=destination.branch_id,
        to_branch_name=to_name,
        is_to_main_store=destination.is_main,
        transfer_type=transfer_type,
        status=STATUS_DRAFT if as_draft else STATUS_PENDING_APPROVAL,
        priority=priority,
        reason=optional_text(payload.get("reason"), "reason"),
        notes=optional_text(payload.get("notes"), "notes"),
        requested_by=actor_id,
        requested_at=now,
        expected_delivery_date=parse_datetime_field(payload.get("expected_delivery_date"), "expected_delivery_date"),
        total_value_cents=0,
        version_id=1,
    )

    total_value = 0
    for item in items:
        product = item["product"]
        # Cost snapshot; later price changes do not re-value the transfer
        unit_cost = product.unit_cost_cents or 0
        total_value += unit_cost * item["quantity"]
        transfer.items.append(TransferItem(
            product_id=product.id,
            product_name=product.name,
            sku=product.sku or product.barcode or "",
            quantity=item["quantity"],
            unit_cost_cents=unit_cost,
            notes=item["notes"],
        ))
    transfer.total_value_cents = total_value

    db.session.add(transfer)
    db.session.flush()

    emit_audit(
        shop_id=shop_id,
        actor_id=actor_id,
        action="create_stock_transfer",
        resource="stock_transfer",
        resource_id=transfer.id,
        after=transfer.to_dict(),
        branch_id=transfer.from_branch_id,
    )
    logger.info("Stock transfer %s created: %s -> %s", transfer_number, from_name, to_name)
    return transfer


def submit_transfer(shop_id: int, transfer_id: int, actor_id: int) -> StockTransfer:
    transfer = get_transfer(shop_id, transfer_id)
    _require_status(transfer, (STATUS_DRAFT,), "submit")

    _transition(transfer, (STATUS_DRAFT,), {"status": STATUS_PENDING_APPROVAL})
    _audit(transfer, actor_id, "submit_stock_transfer", STATUS_DRAFT)
    logger.info("Stock transfer %s submitted for approval", transfer.transfer_number)
    return transfer


def approve_transfer(shop_id: int, transfer_id: int, actor_id: int, notes: str | None = None) -> StockTransfer:
    transfer = get_transfer(shop_id, transfer_id)
    _require_status(transfer, (STATUS_PENDING_APPROVAL,), "approve")

    _transition(transfer, (STATUS_PENDING_APPROVAL,), {
        "status": STATUS_APPROVED,
        "approved_by": actor_id,
        "approved_at": utcnow(),
        "approval_notes": notes,
    })
    _audit(transfer, actor_id, "approve_stock_transfer", STATUS_PENDING_APPROVAL, approval_notes=notes)
    logger.info("Stock transfer %s approved", transfer.transfer_number)
    return transfer


def reject_transfer(shop_id: int, transfer_id: int, actor_id: int, reason: str | None) -> StockTransfer:
    reason = require_text(reason, "reason")
    transfer = get_transfer(shop_id, transfer_id)
    allowed = (STATUS_DRAFT, STATUS_PENDING_APPROVAL)
    _require_status(transfer, allowed, "reject")

    before = transfer.status
    _transition(transfer, allowed, {
        "status": STATUS_REJECTED,
        "rejected_by": actor_id,
        "rejected_at": utcnow(),
        "rejection_reason": reason,
    })
    _audit(transfer, actor_id, "reject_stock_transfer", before, rejection_reason=reason)
    logger.info("Stock transfer %s rejected", transfer.transfer_number)
    return transfer


def ship_transfer(
    shop_id: int,
    transfer_id: int,
    actor_id: int,
    tracking_number: str | None = None,
    carrier: str | None = None,
) -> StockTransfer:
    """
    Mark an approved transfer as shipped.

    This is where stock leaves the source: every item's quantity is
    deducted from the source ledger with a `transfer` adjustment.

    Raises:
        ConflictError: transfer is not approved
        StaleStateError: lost a race with another transition
        InsufficientStockError: reject policy and the source ran short since creation
    """
    transfer = get_transfer(shop_id, transfer_id)
    _require_status(transfer, (STATUS_APPROVED,), "ship")

    values = {"status": STATUS_IN_TRANSIT, "shipped_by": actor_id, "shipped_at": utcnow()}
    if tracking_number:
        values["tracking_number"] = tracking_number
    if carrier:
        values["carrier"] = carrier
    _transition(transfer, (STATUS_APPROVED,), values)

    source = _source(transfer)
    for item in transfer.items:
        level = apply_delta(shop_id, item.product_id, source.branch_id, -item.quantity)
        record_adjustment(
            shop_id=shop_id,
            product_id=item.product_id,
            branch_id=source.branch_id,
            quantity_change=-item.quantity,
            reason=REASON_TRANSFER,
            actor_id=actor_id,
            resulting_quantity=level.quantity,
            reference=transfer.transfer_number,
            notes=f"Transfer {transfer.transfer_number} to {transfer.to_branch_name}",
        )

    _audit(transfer, actor_id, "ship_stock_transfer", STATUS_APPROVED,
           tracking_number=tracking_number, carrier=carrier)
    logger.info("Stock transfer %s shipped", transfer.transfer_number)
    return transfer


def _parse_receipt(transfer: StockTransfer, raw_items: Any) -> list[tuple[TransferItem, int, int, str | None]]:
    """Validate a whole receipt before anything is written."""
    lines = require_list(raw_items, "items")
    by_product = {item.product_id: item for item in transfer.items}
    parsed = []
    seen: set[int] = set()
    for index, raw in enumerate(lines):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{index}] must be an object")
        product_id = coerce_int(raw.get("product_id"), f"items[{index}].product_id", minimum=1)
        received = coerce_int(raw.get("received_quantity"), f"items[{index}].received_quantity", minimum=0)
        damaged_raw = raw.get("damaged_quantity")
        damaged = 0 if damaged_raw in (None, "") else coerce_int(
            damaged_raw, f"items[{index}].damaged_quantity", minimum=0
        )

        item = by_product.get(product_id)
        if item is None:
            raise ValidationError(f"Product {product_id} not in transfer")
        if product_id in seen:
            raise ValidationError(f"Product {product_id} appears more than once in receipt")
        seen.add(product_id)
        if damaged > received:
            raise ValidationError(
                f"Damaged quantity ({damaged}) cannot exceed received quantity ({received}) for {item.product_name}"
            )
        if item.received_quantity + received > item.quantity:
            raise ValidationError(
                f"Cannot receive {received} of {item.product_name}: only {item.outstanding_quantity} outstanding"
            )
        parsed.append((item, received, damaged, optional_text(raw.get("notes"), f"items[{index}].notes")))

    if not any(received for _, received, _, _ in parsed):
        raise ValidationError("Receipt must include at least one received unit")
    return parsed


def receive_transfer(
    shop_id: int,
    transfer_id: int,
    actor_id: int,
    items: Any,
    notes: str | None = None,
) -> StockTransfer:
    """
    Record goods arriving at the destination.

    Receipts accumulate across calls. Each line adds received - damaged to
    the destination ledger; damaged units stay on the transfer item only.
    Status becomes received once every item is fully received, otherwise
    partially_received.
    """
    transfer = get_transfer(shop_id, transfer_id)
    _require_status(transfer, IN_FLIGHT_STATUSES, "receive")
    receipt = _parse_receipt(transfer, items)

    planned = {item.id: item.received_quantity for item in transfer.items}
    for item, received, _, _ in receipt:
        planned[item.id] += received
    complete = all(planned[item.id] == item.quantity for item in transfer.items)
    before = transfer.status
    now = utcnow()

    _transition(transfer, IN_FLIGHT_STATUSES, {
        "status": STATUS_RECEIVED if complete else STATUS_PARTIALLY_RECEIVED,
        "received_by": actor_id,
        "received_at": now,
        "receipt_notes": notes,
    })

    destination = _destination(transfer)
    for item, received, damaged, line_notes in receipt:
        item.received_quantity += received
        item.damaged_quantity += damaged
        item.received_at = now
        if line_notes:
            item.notes = f"{item.notes} | {line_notes}" if item.notes else line_notes

        usable = received - damaged
        if usable <= 0:
            continue
        level = apply_delta(shop_id, item.product_id, destination.branch_id, usable)
        note = f"Transfer {transfer.transfer_number} from {transfer.from_branch_name}"
        if damaged:
            note += f" ({damaged} damaged)"
        record_adjustment(
            shop_id=shop_id,
            product_id=item.product_id,
            branch_id=destination.branch_id,
            quantity_change=usable,
            reason=REASON_TRANSFER,
            actor_id=actor_id,
            resulting_quantity=level.quantity,
            reference=transfer.transfer_number,
            notes=note,
        )
    db.session.flush()

    _audit(
        transfer,
        actor_id,
        "receive_stock_transfer",
        before,
        received_items=[
            {"product_id": item.product_id, "received_quantity": received, "damaged_quantity": damaged}
            for item, received, damaged, _ in receipt
        ],
    )
    logger.info("Stock transfer %s %s", transfer.transfer_number, transfer.status)
    return transfer


def cancel_transfer(shop_id: int, transfer_id: int, actor_id: int, reason: str | None) -> StockTransfer:
    """
    Cancel a transfer that has not reached a terminal state.

    Goods in flight (in_transit or partially_received) that have not been
    received are returned to the source ledger before the status changes,
    so ship followed by cancel nets to zero at the source.
    """
    reason = require_text(reason, "reason")
    transfer = get_transfer(shop_id, transfer_id)
    allowed = tuple(s for s in TRANSFER_STATUSES if s not in TERMINAL_STATUSES)
    _require_status(transfer, allowed, "cancel")

    before = transfer.status
    _transition(transfer, allowed, {
        "status": STATUS_CANCELLED,
        "cancelled_by": actor_id,
        "cancelled_at": utcnow(),
        "cancellation_reason": reason,
    })

    returned = []
    if before in IN_FLIGHT_STATUSES:
        source = _source(transfer)
        for item in transfer.items:
            outstanding = item.outstanding_quantity
            if outstanding <= 0:
                continue
            level = apply_delta(shop_id, item.product_id, source.branch_id, outstanding)
            record_adjustment(
                shop_id=shop_id,
                product_id=item.product_id,
                branch_id=source.branch_id,
                quantity_change=outstanding,
                reason=REASON_TRANSFER,
                actor_id=actor_id,
                resulting_quantity=level.quantity,
                reference=transfer.transfer_number,
                notes=f"Transfer {transfer.transfer_number} cancelled: returned to {transfer.from_branch_name}",
            )
            returned.append({"product_id": item.product_id, "quantity": outstanding})

    _audit(transfer, actor_id, "cancel_stock_transfer", before,
           cancellation_reason=reason, returned_to_source=returned)
    logger.info("Stock transfer %s cancelled", transfer.transfer_number)
    return transfer


# =============================================================================
# Queries
# =============================================================================

def get_transfer(shop_id: int, transfer_id: int) -> StockTransfer:
    transfer = (
        db.session.query(StockTransfer)
        .filter_by(id=transfer_id, shop_id=shop_id)
        .first()
    )
    if not transfer:
        raise NotFoundError("Stock transfer not found")
    return transfer


def list_transfers(
    shop_id: int,
    *,
    status: str | None = None,
    from_branch_id: int | str | None = None,
    to_branch_id: int | str | None = None,
    priority: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    page: int = 1,
    limit: int = 20,
) -> dict:
    """
    Paginated transfers, newest first.

    from_branch_id / to_branch_id take a branch id or "main" for the shop's
    default pool.
    """
    query = db.session.query(StockTransfer).filter(StockTransfer.shop_id == shop_id)
    if status:
        query = query.filter(StockTransfer.status == require_choice(status, "status", TRANSFER_STATUSES))
    if from_branch_id is not None:
        source = parse_location(from_branch_id, "from_branch_id")
        if source.is_main:
            query = query.filter(StockTransfer.is_from_main_store.is_(True))
        else:
            query = query.filter(StockTransfer.from_branch_id == source.branch_id)
    if to_branch_id is not None:
        destination = parse_location(to_branch_id, "to_branch_id")
        if destination.is_main:
            query = query.filter(StockTransfer.is_to_main_store.is_(True))
        else:
            query = query.filter(StockTransfer.to_branch_id == destination.branch_id)
    if priority:
        query = query.filter(StockTransfer.priority == priority)
    if start:
        query = query.filter(StockTransfer.requested_at >= start)
    if end:
        query = query.filter(StockTransfer.requested_at <= end)

    page = max(page, 1)
    limit = max(1, min(limit, 100))
    total = query.count()
    transfers = (
        query.order_by(StockTransfer.requested_at.desc(), StockTransfer.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return {
        "transfers": transfers,
        "total": total,
        "page": page,
        "pages": (total + limit - 1) // limit,
    }


def list_transfers_for_branch(shop_id: int, branch_id: int, direction: str = "all") -> list[StockTransfer]:
    """Incoming, outgoing or all transfers touching a branch, newest first."""
    direction = require_choice(direction, "direction", DIRECTIONS)
    require_branch_in_shop(shop_id, branch_id)

    query = db.session.query(StockTransfer).filter(StockTransfer.shop_id == shop_id)
    if direction == "incoming":
        query = query.filter(StockTransfer.to_branch_id == branch_id)
    elif direction == "outgoing":
        query = query.filter(StockTransfer.from_branch_id == branch_id)
    else:
        query = query.filter(or_(
            StockTransfer.from_branch_id == branch_id,
            StockTransfer.to_branch_id == branch_id,
        ))
    return query.order_by(StockTransfer.requested_at.desc(), StockTransfer.id.desc()).limit(50).all()


def get_transfer_stats(shop_id: int, branch_id: int | None = None) -> dict:
    query = db.session.query(StockTransfer.status, func.count(StockTransfer.id)).filter(
        StockTransfer.shop_id == shop_id
    )
    branch_filter = None
    if branch_id is not None:
        require_branch_in_shop(shop_id, branch_id)
        branch_filter = or_(StockTransfer.from_branch_id == branch_id, StockTransfer.to_branch_id == branch_id)
        query = query.filter(branch_filter)
    counts = dict(query.group_by(StockTransfer.status).all())

    value_query = db.session.query(func.coalesce(func.sum(StockTransfer.total_value_cents), 0)).filter(
        StockTransfer.shop_id == shop_id,
        StockTransfer.status == STATUS_RECEIVED,
    )
    now = utcnow()
    month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    month_query = db.session.query(func.count(StockTransfer.id)).filter(
        StockTransfer.shop_id == shop_id,
        StockTransfer.requested_at >= month_start,
    )
    if branch_filter is not None:
        value_query = value_query.filter(branch_filter)
        month_query = month_query.filter(branch_filter)

    return {
        "draft": counts.get(STATUS_DRAFT, 0),
        "pending": counts.get(STATUS_PENDING_APPROVAL, 0),
        "approved": counts.get(STATUS_APPROVED, 0),
        "in_transit": counts.get(STATUS_IN_TRANSIT, 0),
        "partially_received": counts.get(STATUS_PARTIALLY_RECEIVED, 0),
        "received": counts.get(STATUS_RECEIVED, 0),
        "rejected": counts.get(STATUS_REJECTED, 0),
        "cancelled": counts.get(STATUS_CANCELLED, 0),
        "total_value_cents": int(value_query.scalar() or 0),
        "this_month": month_query.scalar() or 0,
    }


def list_stale_transfers(shop_id: int, older_than_days: int | None = None) -> list[StockTransfer]:
    """
    In-flight transfers shipped more than N days ago.

    Reported only; nothing is cancelled automatically.
    """
    if older_than_days is None:
        older_than_days = current_app.config.get("STALE_TRANSFER_DAYS", 7)
    if older_than_days < 0:
        raise ValidationError("older_than_days cannot be negative")
    cutoff = utcnow() - timedelta(days=older_than_days)
    return (
        db.session.query(StockTransfer)
        .filter(
            StockTransfer.shop_id == shop_id,
            StockTransfer.status.in_(IN_FLIGHT_STATUSES),
            StockTransfer.shipped_at <= cutoff,
        )
        .order_by(StockTransfer.shipped_at)
        .all()
    )
