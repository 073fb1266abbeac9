"""
Tenant validation and scoping helpers.

Every service call receives shop_id explicitly and resolves ids through
these helpers. Ids that belong to another shop are reported exactly like ids
that do not exist, so a caller cannot discover other tenants' data.

USAGE:
    branch = require_branch_in_shop(shop_id, branch_id)
    product = require_product_in_shop(shop_id, product_id)
"""
from __future__ import annotations

from ..errors import NotFoundError
from ..extensions import db
from ..models import Branch, Product, Shop


def require_active_shop(shop_id: int) -> Shop:
    shop = db.session.query(Shop).filter_by(id=shop_id).first()
    if not shop or not shop.is_active:
        raise NotFoundError(f"Shop {shop_id} not found")
    return shop


def require_branch_in_shop(shop_id: int, branch_id: int) -> Branch:
    branch = db.session.query(Branch).filter_by(id=branch_id, shop_id=shop_id).first()
    if not branch:
        raise NotFoundError(f"Branch {branch_id} not found")
    return branch


def require_product_in_shop(shop_id: int, product_id: int) -> Product:
    product = db.session.query(Product).filter_by(id=product_id, shop_id=shop_id).first()
    if not product:
        raise NotFoundError(f"Product {product_id} not found")
    return product


def get_shop_branches(shop_id: int) -> list[Branch]:
    return (
        db.session.query(Branch)
        .filter_by(shop_id=shop_id)
        .order_by(Branch.name)
        .all()
    )
