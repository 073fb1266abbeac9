# backend/branchstock/routes/inventory.py
"""
Inventory ledger routes.

All routes require tenant context (X-Shop-Id / X-Actor-Id).

Locations:
- branch_id is an integer branch id, or "main" / omitted for the shop's
  default pool.
"""
from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_tenant
from ..errors import InventoryError
from ..extensions import db
from ..services import adjustment_service, ledger_service, reconciliation_service
from ..services.concurrency import run_in_transaction
from ..validation import (
    coerce_int,
    optional_int,
    optional_text,
    parse_branch_id,
    parse_date_field,
    parse_datetime_field,
    parse_limit,
    require_text,
)


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.get("/products/<int:product_id>/stock")
@require_tenant
def get_stock_route(product_id: int):
    """
    Effective stock for one product at one location.

    Query: branch_id (optional, "main" or integer)
    """
    try:
        branch_id = parse_branch_id(request.args.get("branch_id"))
        quantity = ledger_service.get_stock(g.shop_id, product_id, branch_id)
        return jsonify({
            "product_id": product_id,
            "branch_id": branch_id,
            "location": "main" if branch_id is None else str(branch_id),
            "quantity": quantity,
        }), 200
    except InventoryError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to read stock")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/branches/<int:branch_id>/stock")
@require_tenant
def list_branch_stock_route(branch_id: int):
    try:
        rows = ledger_service.list_branch_stock(g.shop_id, branch_id)
        return jsonify({"branch_id": branch_id, "items": rows, "count": len(rows)}), 200
    except InventoryError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list branch stock")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/low-stock")
@require_tenant
def low_stock_route():
    """
    Products at or under their reorder level.

    Query: branch_id (optional), threshold (optional integer)
    """
    try:
        branch_id = parse_branch_id(request.args.get("branch_id"))
        threshold = optional_int(request.args.get("threshold"), "threshold", minimum=0)
        rows = ledger_service.get_low_stock_products(g.shop_id, branch_id, threshold)
        return jsonify({"items": rows, "count": len(rows)}), 200
    except InventoryError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list low stock")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.post("/adjustments")
@require_tenant
def create_adjustment_route():
    """
    Manual stock adjustment.

    Request body:
    {
        "product_id": int,
        "quantity_change": int (signed, non-zero),
        "reason": str,
        "branch_id": int | "main" (optional),
        "notes": str (optional),
        "reference": str (optional)
    }

    Returns:
        201: Adjustment recorded
        400: Invalid request
        404: Product/branch not found
        409: Insufficient stock (reject policy)
    """
    data = request.get_json(silent=True) or {}

    try:
        product_id = coerce_int(data.get("product_id"), "product_id", minimum=1)
        quantity_change = coerce_int(data.get("quantity_change"), "quantity_change")
        reason = require_text(data.get("reason"), "reason")
        branch_id = parse_branch_id(data.get("branch_id"))
        notes = optional_text(data.get("notes"), "notes", max_length=500)
        reference = optional_text(data.get("reference"), "reference", max_length=64)

        adjustment = run_in_transaction(lambda: adjustment_service.adjust_stock(
            g.shop_id,
            g.actor_id,
            product_id,
            quantity_change,
            reason,
            branch_id=branch_id,
            notes=notes,
            reference=reference,
        ))
        result = adjustment.to_dict()
        result["went_negative"] = (adjustment.resulting_quantity or 0) < 0
        return jsonify(result), 201

    except InventoryError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to adjust stock")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/adjustments")
@require_tenant
def list_adjustments_route():
    """
    Query: product_id, reason, branch_id, reference, start, end (ISO-8601), limit
    """
    try:
        adjustments = adjustment_service.list_adjustments(
            g.shop_id,
            product_id=optional_int(request.args.get("product_id"), "product_id", minimum=1),
            reason=request.args.get("reason") or None,
            branch_id=parse_branch_id(request.args.get("branch_id")),
            reference=request.args.get("reference") or None,
            start=parse_datetime_field(request.args.get("start"), "start"),
            end=parse_datetime_field(request.args.get("end"), "end"),
            limit=parse_limit(request.args.get("limit")),
        )
        return jsonify({"adjustments": [a.to_dict() for a in adjustments], "count": len(adjustments)}), 200
    except InventoryError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list adjustments")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.put("/products/<int:product_id>/branches/<int:branch_id>/reorder")
@require_tenant
def set_reorder_route(product_id: int, branch_id: int):
    """
    Request body:
    {
        "reorder_point": int | null,
        "reorder_quantity": int | null
    }
    """
    data = request.get_json(silent=True) or {}

    try:
        reorder_point = optional_int(data.get("reorder_point"), "reorder_point", minimum=0)
        reorder_quantity = optional_int(data.get("reorder_quantity"), "reorder_quantity", minimum=0)
        row = run_in_transaction(lambda: ledger_service.set_reorder_settings(
            g.shop_id, product_id, branch_id, reorder_point, reorder_quantity, actor_id=g.actor_id
        ))
        return jsonify(row.to_dict()), 200

    except InventoryError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to update reorder settings")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.post("/stock-reconciliations")
@require_tenant
def create_stock_reconciliation_route():
    """
    Record a physical count; a non-zero variance books a correction.

    Request body:
    {
        "product_id": int,
        "physical_count": int (>= 0),
        "branch_id": int | "main" (optional),
        "date": "YYYY-MM-DD" (optional, defaults to today),
        "notes": str (optional)
    }
    """
    data = request.get_json(silent=True) or {}

    try:
        product_id = coerce_int(data.get("product_id"), "product_id", minimum=1)
        branch_id = parse_branch_id(data.get("branch_id"))
        record = run_in_transaction(lambda: reconciliation_service.create_stock_reconciliation(
            g.shop_id,
            g.actor_id,
            product_id,
            data.get("physical_count"),
            branch_id=branch_id,
            day=data.get("date"),
            notes=data.get("notes"),
        ))
        return jsonify(record.to_dict()), 201

    except InventoryError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to record stock reconciliation")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/stock-reconciliations")
@require_tenant
def list_stock_reconciliations_route():
    """
    Query: product_id, branch_id, start, end (YYYY-MM-DD), only_variances, limit
    """
    try:
        records = reconciliation_service.get_stock_reconciliation_history(
            g.shop_id,
            product_id=optional_int(request.args.get("product_id"), "product_id", minimum=1),
            branch_id=parse_branch_id(request.args.get("branch_id")),
            start=parse_date_field(request.args.get("start"), "start", required=False),
            end=parse_date_field(request.args.get("end"), "end", required=False),
            only_variances=request.args.get("only_variances", "").lower() in ("1", "true", "yes"),
            limit=parse_limit(request.args.get("limit")),
        )
        return jsonify({"reconciliations": [r.to_dict() for r in records], "count": len(records)}), 200
    except InventoryError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list stock reconciliations")
        return jsonify({"error": "Internal server error"}), 500
