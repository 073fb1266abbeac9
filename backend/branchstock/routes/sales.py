# backend/branchstock/routes/sales.py
"""
Checkout and stock-sync queue routes.

SALE vs STOCK:
- A 201 from /checkout means the order is committed. Stock deduction
  outcomes are reported per line in `deductions`; a failed line leaves a
  failed stock sync job and an inventory_warning on the order instead of
  failing the request.
"""
from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_tenant
from ..errors import InventoryError
from ..extensions import db
from ..services import checkout_service
from ..validation import optional_int, parse_branch_id, parse_limit


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.post("/checkout")
@require_tenant
def checkout_route():
    """
    Request body:
    {
        "branch_id": int | "main" (optional),
        "items": [{"product_id": int, "quantity": int, "name": str?, "unit_price_cents": int?}],
        "payments": [{"method": str, "amount_cents": int, "reference": str?}],
        "customer_name": str (optional),
        "notes": str (optional)
    }

    Returns:
        201: {success, order, deductions}
        400: Invalid request
        404: Product/branch not found
        409: Insufficient stock ({error, shortfalls}); nothing persisted
    """
    data = request.get_json(silent=True) or {}

    try:
        branch_id = parse_branch_id(data.get("branch_id"))
        result = checkout_service.checkout(g.shop_id, g.actor_id, branch_id, data)
        return jsonify(result.to_dict()), 201

    except InventoryError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Checkout failed")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("/orders/<int:order_id>")
@require_tenant
def get_order_route(order_id: int):
    try:
        return jsonify(checkout_service.get_order(g.shop_id, order_id).to_dict()), 200
    except InventoryError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load order")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("/stock-sync-jobs")
@require_tenant
def list_stock_sync_jobs_route():
    """
    Query: status (pending | done | failed), order_id, limit
    """
    try:
        jobs = checkout_service.list_stock_sync_jobs(
            g.shop_id,
            status=request.args.get("status") or None,
            order_id=optional_int(request.args.get("order_id"), "order_id", minimum=1),
            limit=parse_limit(request.args.get("limit")),
        )
        return jsonify({"jobs": [j.to_dict() for j in jobs], "count": len(jobs)}), 200
    except InventoryError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list stock sync jobs")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.post("/stock-sync-jobs/retry")
@require_tenant
def retry_stock_sync_jobs_route():
    """
    Re-drive this shop's due failed/pending stock sync jobs.

    Request body (optional):
    {
        "limit": int
    }
    """
    data = request.get_json(silent=True) or {}

    try:
        summary = checkout_service.retry_stock_sync_jobs(
            limit=parse_limit(data.get("limit")),
            shop_id=g.shop_id,
        )
        return jsonify(summary), 200
    except InventoryError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Stock sync retry failed")
        return jsonify({"error": "Internal server error"}), 500
