# Overview: Request context decorators for API routes.

from functools import wraps
from flask import request, jsonify, g


def _header_int(name: str) -> int | None:
    raw = request.headers.get(name)
    if raw is None or not raw.strip().isdigit():
        return None
    return int(raw)


def require_context(f):
    """
    Establish tenant and user context from gateway headers.

    Authentication happens upstream; this layer only refuses requests that
    arrive without identity. Sets:
    - g.tenant_id: tenant scope for every query (X-Tenant-Id)
    - g.user_id: acting user (X-User-Id)
    - g.location_id / g.terminal_id: optional POS context
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        tenant_id = _header_int("X-Tenant-Id")
        user_id = _header_int("X-User-Id")
        if tenant_id is None or user_id is None:
            return jsonify({"error": "Tenant and user context required", "kind": "UNAUTHENTICATED"}), 401

        g.tenant_id = tenant_id
        g.user_id = user_id
        g.location_id = _header_int("X-Location-Id")
        terminal_id = request.headers.get("X-Terminal-Id")
        g.terminal_id = terminal_id.strip() if terminal_id and terminal_id.strip() else None

        return f(*args, **kwargs)

    return decorated_function


def require_pos_context(f):
    """Require location and terminal headers on top of tenant/user context."""
    @wraps(f)
    @require_context
    def decorated_function(*args, **kwargs):
        if g.location_id is None or g.terminal_id is None:
            return jsonify({
                "error": "X-Location-Id and X-Terminal-Id headers are required",
                "kind": "VALIDATION_FAILED",
            }), 400
        return f(*args, **kwargs)

    return decorated_function
