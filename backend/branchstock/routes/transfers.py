# backend/branchstock/routes/transfers.py
"""
Stock transfer API routes.

Transitions are retried a bounded number of times
(TRANSFER_CONFLICT_RETRIES) when they lose an optimistic race; a retry
re-reads the transfer, so a transition that is no longer valid fails with
409 instead of repeating. Receive is never retried automatically: a
receipt is additive and the caller must confirm against the new state.
"""
from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_tenant
from ..errors import InventoryError
from ..extensions import db
from ..services import transfer_service
from ..services.concurrency import run_in_transaction
from ..validation import optional_int, optional_text, parse_datetime_field, parse_limit


transfers_bp = Blueprint("transfers", __name__, url_prefix="/api/transfers")


def _conflict_attempts() -> int:
    return max(1, int(current_app.config.get("TRANSFER_CONFLICT_RETRIES", 3)))


def _transition_response(op, failure_message: str):
    try:
        transfer = run_in_transaction(op, conflict_attempts=_conflict_attempts())
        return jsonify(transfer.to_dict()), 200
    except InventoryError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception(failure_message)
        return jsonify({"error": "Internal server error"}), 500


@transfers_bp.route("", methods=["POST"])
@require_tenant
def create_transfer():
    """
    Create a transfer request.

    Request body:
    {
        "from_branch_id": int | "main",
        "to_branch_id": int | "main",
        "items": [{"product_id": int, "quantity": int, "notes": str?}],
        "priority": "low" | "normal" | "high" | "urgent" (optional),
        "transfer_type": str (optional),
        "reason": str (optional),
        "notes": str (optional),
        "expected_delivery_date": ISO-8601 (optional),
        "draft": bool (optional)
    }

    Returns:
        201: Transfer created
        400: Invalid request
        404: Branch or product not found
        409: Insufficient stock at source
    """
    data = request.get_json(silent=True) or {}

    try:
        transfer = run_in_transaction(lambda: transfer_service.create_transfer(
            g.shop_id,
            g.actor_id,
            data,
            as_draft=bool(data.get("draft")),
        ))
        return jsonify(transfer.to_dict()), 201

    except InventoryError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create stock transfer")
        return jsonify({"error": "Internal server error"}), 500


@transfers_bp.route("", methods=["GET"])
@require_tenant
def list_transfers():
    """
    Query: status, from_branch_id, to_branch_id (branch id or "main"), priority, start, end, page, limit
    """
    try:
        result = transfer_service.list_transfers(
            g.shop_id,
            status=request.args.get("status") or None,
            from_branch_id=request.args.get("from_branch_id") or None,
            to_branch_id=request.args.get("to_branch_id") or None,
            priority=request.args.get("priority") or None,
            start=parse_datetime_field(request.args.get("start"), "start"),
            end=parse_datetime_field(request.args.get("end"), "end"),
            page=optional_int(request.args.get("page"), "page", minimum=1) or 1,
            limit=parse_limit(request.args.get("limit"), default=20, maximum=100),
        )
        result["transfers"] = [t.to_dict() for t in result["transfers"]]
        return jsonify(result), 200
    except InventoryError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list stock transfers")
        return jsonify({"error": "Internal server error"}), 500


@transfers_bp.route("/stats", methods=["GET"])
@require_tenant
def transfer_stats():
    try:
        branch_id = optional_int(request.args.get("branch_id"), "branch_id", minimum=1)
        return jsonify(transfer_service.get_transfer_stats(g.shop_id, branch_id)), 200
    except InventoryError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to compute transfer stats")
        return jsonify({"error": "Internal server error"}), 500


@transfers_bp.route("/stale", methods=["GET"])
@require_tenant
def stale_transfers():
    """
    In-flight transfers shipped more than `days` ago (default STALE_TRANSFER_DAYS).
    """
    try:
        days = optional_int(request.args.get("days"), "days", minimum=0)
        transfers = transfer_service.list_stale_transfers(g.shop_id, days)
        return jsonify({"transfers": [t.to_dict() for t in transfers], "count": len(transfers)}), 200
    except InventoryError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list stale transfers")
        return jsonify({"error": "Internal server error"}), 500


@transfers_bp.route("/branch/<int:branch_id>", methods=["GET"])
@require_tenant
def branch_transfers(branch_id: int):
    """
    Query: direction = incoming | outgoing | all (default)
    """
    try:
        transfers = transfer_service.list_transfers_for_branch(
            g.shop_id, branch_id, request.args.get("direction") or "all"
        )
        return jsonify({"transfers": [t.to_dict() for t in transfers], "count": len(transfers)}), 200
    except InventoryError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list branch transfers")
        return jsonify({"error": "Internal server error"}), 500


@transfers_bp.route("/<int:transfer_id>", methods=["GET"])
@require_tenant
def get_transfer(transfer_id: int):
    try:
        return jsonify(transfer_service.get_transfer(g.shop_id, transfer_id).to_dict()), 200
    except InventoryError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load stock transfer")
        return jsonify({"error": "Internal server error"}), 500


@transfers_bp.route("/<int:transfer_id>/submit", methods=["POST"])
@require_tenant
def submit_transfer(transfer_id: int):
    """Submit a draft for approval."""
    return _transition_response(
        lambda: transfer_service.submit_transfer(g.shop_id, transfer_id, g.actor_id),
        "Failed to submit stock transfer",
    )


@transfers_bp.route("/<int:transfer_id>/approve", methods=["POST"])
@require_tenant
def approve_transfer(transfer_id: int):
    """
    Request body (optional):
    {
        "notes": str
    }
    """
    data = request.get_json(silent=True) or {}
    return _transition_response(
        lambda: transfer_service.approve_transfer(
            g.shop_id, transfer_id, g.actor_id, notes=optional_text(data.get("notes"), "notes")
        ),
        "Failed to approve stock transfer",
    )


@transfers_bp.route("/<int:transfer_id>/reject", methods=["POST"])
@require_tenant
def reject_transfer(transfer_id: int):
    """
    Request body:
    {
        "reason": str (required)
    }
    """
    data = request.get_json(silent=True) or {}
    return _transition_response(
        lambda: transfer_service.reject_transfer(g.shop_id, transfer_id, g.actor_id, data.get("reason")),
        "Failed to reject stock transfer",
    )


@transfers_bp.route("/<int:transfer_id>/ship", methods=["POST"])
@require_tenant
def ship_transfer(transfer_id: int):
    """
    Ship an approved transfer; deducts stock at the source.

    Request body (optional):
    {
        "tracking_number": str,
        "carrier": str
    }
    """
    data = request.get_json(silent=True) or {}
    return _transition_response(
        lambda: transfer_service.ship_transfer(
            g.shop_id,
            transfer_id,
            g.actor_id,
            tracking_number=optional_text(data.get("tracking_number"), "tracking_number", max_length=64),
            carrier=optional_text(data.get("carrier"), "carrier", max_length=64),
        ),
        "Failed to ship stock transfer",
    )


@transfers_bp.route("/<int:transfer_id>/receive", methods=["POST"])
@require_tenant
def receive_transfer(transfer_id: int):
    """
    Record goods arriving at the destination.

    Request body:
    {
        "items": [{"product_id": int, "received_quantity": int, "damaged_quantity": int?, "notes": str?}],
        "notes": str (optional)
    }
    """
    data = request.get_json(silent=True) or {}

    try:
        transfer = run_in_transaction(lambda: transfer_service.receive_transfer(
            g.shop_id,
            transfer_id,
            g.actor_id,
            data.get("items"),
            notes=optional_text(data.get("notes"), "notes"),
        ))
        return jsonify(transfer.to_dict()), 200

    except InventoryError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to receive stock transfer")
        return jsonify({"error": "Internal server error"}), 500


@transfers_bp.route("/<int:transfer_id>/cancel", methods=["POST"])
@require_tenant
def cancel_transfer(transfer_id: int):
    """
    Cancel a non-terminal transfer; in-flight goods return to the source.

    Request body:
    {
        "reason": str (required)
    }
    """
    data = request.get_json(silent=True) or {}
    return _transition_response(
        lambda: transfer_service.cancel_transfer(g.shop_id, transfer_id, g.actor_id, data.get("reason")),
        "Failed to cancel stock transfer",
    )
