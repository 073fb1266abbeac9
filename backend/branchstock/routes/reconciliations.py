# backend/branchstock/routes/reconciliations.py
"""
Daily cash reconciliation routes.

Physical stock counts live under /api/inventory/stock-reconciliations.
"""
from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_tenant
from ..errors import InventoryError
from ..extensions import db
from ..services import reconciliation_service
from ..services.concurrency import run_in_transaction
from ..validation import parse_date_field


reconciliations_bp = Blueprint("reconciliations", __name__, url_prefix="/api/reconciliations")


@reconciliations_bp.post("")
@require_tenant
def create_reconciliation_route():
    """
    Request body:
    {
        "date": "YYYY-MM-DD",
        "actual_cash_cents": int,
        "notes": str (optional)
    }

    Returns:
        201: Reconciliation created
        400: Invalid request
        409: Already reconciled for that date
    """
    data = request.get_json(silent=True) or {}

    try:
        reconciliation = run_in_transaction(lambda: reconciliation_service.create_daily_reconciliation(
            g.shop_id,
            g.actor_id,
            data.get("date"),
            data.get("actual_cash_cents"),
            notes=data.get("notes"),
        ))
        return jsonify(reconciliation.to_dict()), 201

    except InventoryError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create reconciliation")
        return jsonify({"error": "Internal server error"}), 500


@reconciliations_bp.get("")
@require_tenant
def reconciliation_history_route():
    """
    Query: start, end (YYYY-MM-DD, inclusive), status
    """
    try:
        rows = reconciliation_service.get_reconciliation_history(
            g.shop_id,
            start=parse_date_field(request.args.get("start"), "start", required=False),
            end=parse_date_field(request.args.get("end"), "end", required=False),
            status=request.args.get("status") or None,
        )
        return jsonify({"reconciliations": [r.to_dict() for r in rows], "count": len(rows)}), 200
    except InventoryError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load reconciliation history")
        return jsonify({"error": "Internal server error"}), 500


@reconciliations_bp.get("/variance-report")
@require_tenant
def variance_report_route():
    """
    Query: start, end (YYYY-MM-DD, required, inclusive)
    """
    try:
        report = reconciliation_service.get_variance_report(
            g.shop_id,
            parse_date_field(request.args.get("start"), "start"),
            parse_date_field(request.args.get("end"), "end"),
        )
        return jsonify(report), 200
    except InventoryError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to build variance report")
        return jsonify({"error": "Internal server error"}), 500


@reconciliations_bp.get("/stats")
@require_tenant
def reconciliation_stats_route():
    try:
        return jsonify(reconciliation_service.get_reconciliation_stats(g.shop_id)), 200
    except Exception:
        current_app.logger.exception("Failed to compute reconciliation stats")
        return jsonify({"error": "Internal server error"}), 500


@reconciliations_bp.post("/<int:reconciliation_id>/investigate")
@require_tenant
def investigate_variance_route(reconciliation_id: int):
    """
    Request body:
    {
        "variance_type": "cash_shortage" | "cash_overage" | "stock_discrepancy" | "pricing_error" | "other",
        "investigation_notes": str
    }
    """
    data = request.get_json(silent=True) or {}

    try:
        reconciliation = run_in_transaction(lambda: reconciliation_service.investigate_variance(
            g.shop_id,
            reconciliation_id,
            g.actor_id,
            data.get("variance_type"),
            data.get("investigation_notes"),
        ))
        return jsonify(reconciliation.to_dict()), 200

    except InventoryError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to record variance investigation")
        return jsonify({"error": "Internal server error"}), 500


@reconciliations_bp.post("/<int:reconciliation_id>/approve")
@require_tenant
def approve_reconciliation_route(reconciliation_id: int):
    try:
        reconciliation = run_in_transaction(lambda: reconciliation_service.approve_reconciliation(
            g.shop_id, reconciliation_id, g.actor_id
        ))
        return jsonify(reconciliation.to_dict()), 200

    except InventoryError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to approve reconciliation")
        return jsonify({"error": "Internal server error"}), 500
