# backend/branchstock/routes/audit.py
"""
Read-only access to the audit trail written by the default sink.
"""
from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_tenant
from ..errors import InventoryError
from ..services import audit_service
from ..validation import parse_limit


audit_bp = Blueprint("audit", __name__, url_prefix="/api/audit")


@audit_bp.get("/events")
@require_tenant
def list_audit_events_route():
    """
    Query: resource, resource_id, action, limit
    """
    try:
        events = audit_service.list_audit_events(
            g.shop_id,
            resource=request.args.get("resource") or None,
            resource_id=request.args.get("resource_id") or None,
            action=request.args.get("action") or None,
            limit=parse_limit(request.args.get("limit")),
        )
        return jsonify({"events": [e.to_dict() for e in events], "count": len(events)}), 200
    except InventoryError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list audit events")
        return jsonify({"error": "Internal server error"}), 500
