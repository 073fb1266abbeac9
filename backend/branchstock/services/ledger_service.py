# Overview: Branch-scoped stock ledger; the only code path that changes a stock quantity.

from __future__ import annotations

import logging
from dataclasses import dataclass

from flask import current_app
from sqlalchemy import insert, literal, select, update
from sqlalchemy.exc import IntegrityError

from ..errors import InsufficientStockError, Shortfall, ValidationError
from ..extensions import db
from ..models import BranchStock, Product
from .audit_service import emit_audit
from .tenant_service import require_branch_in_shop, require_product_in_shop
"""
Ledger Invariants

Keys:
- A ledger key is (shop, product, location). The "main" location is the
  product's own `stock` column; every branch location is a BranchStock row.
- A branch without a BranchStock row shares the default pool: its effective
  stock equals Product.stock.

Writes:
- Every change is a single UPDATE ... SET quantity = quantity + :delta.
  No caller reads a quantity, adds to it in Python and writes it back.
- The first write to a branch key inserts the row seeded with the default
  pool value at that moment (not zero), then applies the delta.

Negative stock:
- NEGATIVE_STOCK_POLICY="reject": the UPDATE carries `quantity + :delta >= 0`;
  a miss raises InsufficientStockError and nothing changes.
- NEGATIVE_STOCK_POLICY="allow": the delta is applied; the result reports
  went_negative=True and a warning is logged.
"""

logger = logging.getLogger(__name__)

POLICY_REJECT = "reject"
POLICY_ALLOW = "allow"


@dataclass(frozen=True)
class StockLevel:
    quantity: int
    went_negative: bool = False

    def to_dict(self) -> dict:
        return {"quantity": self.quantity, "went_negative": self.went_negative}


def negative_stock_allowed(allow_negative: bool | None = None) -> bool:
    if allow_negative is not None:
        return allow_negative
    policy = current_app.config.get("NEGATIVE_STOCK_POLICY", POLICY_REJECT)
    return str(policy).lower() == POLICY_ALLOW


def _default_pool_quantity(shop_id: int, product_id: int) -> int | None:
    return db.session.execute(
        select(Product.stock).where(Product.id == product_id, Product.shop_id == shop_id)
    ).scalar_one_or_none()


def _branch_quantity(shop_id: int, product_id: int, branch_id: int) -> int | None:
    return db.session.execute(
        select(BranchStock.quantity).where(
            BranchStock.shop_id == shop_id,
            BranchStock.product_id == product_id,
            BranchStock.branch_id == branch_id,
        )
    ).scalar_one_or_none()


def get_stock(shop_id: int, product_id: int, branch_id: int | None = None) -> int:
    """
    Effective stock for a ledger key.

    Reads go to the database, not the identity map, so a value written by
    apply_delta earlier in the same transaction is always visible.
    """
    pool = _default_pool_quantity(shop_id, product_id)
    if pool is None:
        require_product_in_shop(shop_id, product_id)
    if branch_id is None:
        return pool

    require_branch_in_shop(shop_id, branch_id)
    quantity = _branch_quantity(shop_id, product_id, branch_id)
    return pool if quantity is None else quantity


def _seed_branch_row(shop_id: int, product_id: int, branch_id: int) -> None:
    """Create the BranchStock row for a key from the current default pool value."""
    if _branch_quantity(shop_id, product_id, branch_id) is not None:
        return

    seed = select(
        literal(shop_id, type_=db.Integer),
        Product.id,
        literal(branch_id, type_=db.Integer),
        Product.stock,
    ).where(Product.id == product_id, Product.shop_id == shop_id)
    stmt = insert(BranchStock).from_select(
        ["shop_id", "product_id", "branch_id", "quantity"], seed
    )
    try:
        with db.session.begin_nested():
            db.session.execute(stmt)
    except IntegrityError:
        # Another writer seeded the same key first; its row is the one we update.
        logger.debug("Branch stock row for product %s branch %s seeded concurrently", product_id, branch_id)


def apply_delta(
    shop_id: int,
    product_id: int,
    branch_id: int | None,
    delta: int,
    *,
    allow_negative: bool | None = None,
) -> StockLevel:
    """
    Atomically add `delta` to one ledger key and return the new level.

    Runs in the caller's transaction and does not commit.

    Raises:
        NotFoundError: unknown or cross-tenant product/branch
        InsufficientStockError: reject policy and the result would be < 0
    """
    if isinstance(delta, bool) or not isinstance(delta, int):
        raise ValidationError("Stock delta must be an integer")

    product = require_product_in_shop(shop_id, product_id)

    if branch_id is None:
        column = Product.stock
        stmt = update(Product).where(Product.id == product_id, Product.shop_id == shop_id)
    else:
        require_branch_in_shop(shop_id, branch_id)
        _seed_branch_row(shop_id, product_id, branch_id)
        column = BranchStock.quantity
        stmt = update(BranchStock).where(
            BranchStock.shop_id == shop_id,
            BranchStock.product_id == product_id,
            BranchStock.branch_id == branch_id,
        )

    negative_ok = negative_stock_allowed(allow_negative)
    if delta < 0 and not negative_ok:
        stmt = stmt.where(column + delta >= 0)

    result = db.session.execute(
        stmt.values({column: column + delta}).execution_options(synchronize_session=False)
    )

    if result.rowcount == 0:
        available = get_stock(shop_id, product_id, branch_id)
        raise InsufficientStockError(
            f"Insufficient stock for {product.name}. Available: {available}, Requested: {-delta}",
            [Shortfall(product_id=product.id, name=product.name, requested=-delta, available=available)],
        )

    quantity = _refresh_cached_quantity(product, branch_id)
    went_negative = quantity < 0
    if went_negative:
        logger.warning(
            "Stock for product %s (%s) at %s went negative: %s",
            product.id,
            product.name,
            "main" if branch_id is None else f"branch {branch_id}",
            quantity,
        )
    return StockLevel(quantity=quantity, went_negative=went_negative)


def _refresh_cached_quantity(product: Product, branch_id: int | None) -> int:
    """Re-read the key after a Core UPDATE and bring loaded ORM objects up to date."""
    if branch_id is None:
        db.session.refresh(product, ["stock"])
        return product.stock
    row = (
        db.session.query(BranchStock)
        .filter_by(shop_id=product.shop_id, product_id=product.id, branch_id=branch_id)
        .populate_existing()
        .one()
    )
    return row.quantity


def list_branch_stock(shop_id: int, branch_id: int) -> list[dict]:
    """Effective stock of every active product at one branch."""
    require_branch_in_shop(shop_id, branch_id)

    rows = (
        db.session.query(Product, BranchStock)
        .outerjoin(
            BranchStock,
            (BranchStock.product_id == Product.id) & (BranchStock.branch_id == branch_id),
        )
        .filter(Product.shop_id == shop_id, Product.status == "active")
        .order_by(Product.name)
        .populate_existing()
        .all()
    )

    result = []
    for product, entry in rows:
        result.append({
            "product_id": product.id,
            "name": product.name,
            "sku": product.sku,
            "branch_id": branch_id,
            "quantity": entry.quantity if entry else product.stock,
            "has_branch_entry": entry is not None,
            "reorder_point": entry.reorder_point if entry else None,
            "reorder_quantity": entry.reorder_quantity if entry else None,
            "last_restock_date": entry.to_dict()["last_restock_date"] if entry else None,
        })
    return result


def get_low_stock_products(
    shop_id: int,
    branch_id: int | None = None,
    threshold: int | None = None,
) -> list[dict]:
    """
    Products at or under their reorder level.

    An explicit threshold wins; otherwise a branch row's reorder_point is
    used when set, falling back to LOW_STOCK_THRESHOLD.
    """
    default_threshold = current_app.config.get("LOW_STOCK_THRESHOLD", 10)

    if branch_id is None:
        limit = default_threshold if threshold is None else threshold
        products = (
            db.session.query(Product)
            .filter(Product.shop_id == shop_id, Product.status == "active", Product.stock <= limit)
            .order_by(Product.stock, Product.name)
            .populate_existing()
            .all()
        )
        return [
            {
                "product_id": p.id,
                "name": p.name,
                "sku": p.sku,
                "branch_id": None,
                "quantity": p.stock,
                "threshold": limit,
            }
            for p in products
        ]

    low = []
    for row in list_branch_stock(shop_id, branch_id):
        if threshold is not None:
            limit = threshold
        elif row["reorder_point"] is not None:
            limit = row["reorder_point"]
        else:
            limit = default_threshold
        if row["quantity"] <= limit:
            low.append({
                "product_id": row["product_id"],
                "name": row["name"],
                "sku": row["sku"],
                "branch_id": branch_id,
                "quantity": row["quantity"],
                "threshold": limit,
            })
    low.sort(key=lambda r: (r["quantity"], r["name"]))
    return low


def set_reorder_settings(
    shop_id: int,
    product_id: int,
    branch_id: int,
    reorder_point: int | None,
    reorder_quantity: int | None,
    *,
    actor_id: int,
) -> BranchStock:
    require_product_in_shop(shop_id, product_id)
    require_branch_in_shop(shop_id, branch_id)
    for field, value in (("reorder_point", reorder_point), ("reorder_quantity", reorder_quantity)):
        if value is not None and value < 0:
            raise ValidationError(f"{field} cannot be negative")

    _seed_branch_row(shop_id, product_id, branch_id)
    row = (
        db.session.query(BranchStock)
        .filter_by(shop_id=shop_id, product_id=product_id, branch_id=branch_id)
        .populate_existing()
        .one()
    )
    before = {"reorder_point": row.reorder_point, "reorder_quantity": row.reorder_quantity}
    row.reorder_point = reorder_point
    row.reorder_quantity = reorder_quantity
    db.session.flush()

    emit_audit(
        shop_id=shop_id,
        actor_id=actor_id,
        action="set_reorder_settings",
        resource="branch_stock",
        resource_id=row.id,
        before=before,
        after={"reorder_point": reorder_point, "reorder_quantity": reorder_quantity},
        branch_id=branch_id,
        product_id=product_id,
    )
    return row


