# Overview: Tenant-context decorator for API routes.

from functools import wraps
from flask import request, jsonify, g

from .extensions import db
from .models import Shop

SHOP_HEADER = "X-Shop-Id"
ACTOR_HEADER = "X-Actor-Id"


def _header_id(name: str) -> int | None:
    raw = (request.headers.get(name) or "").strip()
    if not raw.isdigit():
        return None
    value = int(raw)
    return value if value > 0 else None


def require_tenant(f):
    """
    Establish tenant context from the upstream auth gateway.

    Authentication itself happens before requests reach this service; the
    gateway forwards the resolved identities as headers.

    MULTI-TENANT: Sets the following Flask g attributes:
    - g.shop_id: The tenant (shop) ID - REQUIRED
    - g.actor_id: The acting user's ID - REQUIRED

    SECURITY: Returns 401 if:
    - Either header is missing or not a positive integer
    - The shop does not exist or is deactivated
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        shop_id = _header_id(SHOP_HEADER)
        actor_id = _header_id(ACTOR_HEADER)

        if shop_id is None or actor_id is None:
            return jsonify({"error": "Tenant context required"}), 401

        shop = db.session.query(Shop).filter_by(id=shop_id).first()
        if not shop or not shop.is_active:
            return jsonify({"error": "Invalid tenant context"}), 401

        g.shop_id = shop.id
        g.actor_id = actor_id

        return f(*args, **kwargs)

    return decorated_function
