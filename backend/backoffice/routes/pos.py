# Overview: Flask API routes for POS sessions, checkout and suspended sales.

# backend/backoffice/routes/pos.py
"""
POS API Routes

DESIGN:
- Session lifecycle: start -> end (counted cash) -> reconcile
- Manual drawer movements (PAY_IN / PAY_OUT) while a session is open
- Checkout: priced cart + payments posted in one transaction
- Suspend/resume: park a cart with reserved stock, recall it once

CONTEXT:
- Every route needs X-Tenant-Id / X-User-Id
- Terminal routes also need X-Location-Id / X-Terminal-Id (require_pos_context)
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_context, require_pos_context
from ..errors import DomainError
from ..services import checkout_service, pos_session_service, suspend_service
from ..validation import (
    optional_decimal,
    optional_int,
    optional_str,
    require_decimal,
    require_int,
    require_list,
    require_payload,
    require_str,
)


pos_bp = Blueprint("pos", __name__, url_prefix="/api/pos")


def _domain_error(e: DomainError):
    return jsonify(e.to_dict()), e.status_code


def _internal_error(message: str, *args):
    current_app.logger.exception(message, *args)
    return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# SESSIONS
# =============================================================================

@pos_bp.get("/sessions/current")
@require_pos_context
def current_session_route():
    """The caller's OPEN session at this terminal, with running totals."""
    try:
        session = pos_session_service.get_current_session(
            tenant_id=g.tenant_id,
            user_id=g.user_id,
            terminal_id=g.terminal_id,
            location_id=g.location_id,
        )
        if session is None:
            return jsonify({"session": None}), 200
        report = pos_session_service.get_session_report(session.id, g.tenant_id)
        return jsonify(report.to_dict()), 200
    except DomainError as e:
        return _domain_error(e)


@pos_bp.post("/sessions/start")
@require_pos_context
def start_session_route():
    """
    Open a drawer session.

    Request body:
    {
        "starting_cash": 100.00,
        "notes": "..."  (optional)
    }
    """
    try:
        data = require_payload(request.get_json(silent=True))

        session = pos_session_service.start_session(
            tenant_id=g.tenant_id,
            user_id=g.user_id,
            terminal_id=g.terminal_id,
            location_id=g.location_id,
            starting_cash=require_decimal(data, "starting_cash"),
            notes=optional_str(data, "notes"),
        )
        return jsonify({"session": session.to_dict()}), 201

    except DomainError as e:
        return _domain_error(e)
    except Exception:
        return _internal_error("Failed to start POS session")


@pos_bp.post("/sessions/<int:session_id>/end")
@require_pos_context
def end_session_route(session_id: int):
    """
    Close a session with the counted drawer amount.

    Request body:
    {
        "ending_cash": 245.50,
        "notes": "..."  (optional)
    }
    """
    try:
        data = require_payload(request.get_json(silent=True))

        report = pos_session_service.end_session(
            session_id=session_id,
            tenant_id=g.tenant_id,
            user_id=g.user_id,
            terminal_id=g.terminal_id,
            location_id=g.location_id,
            ending_cash=require_decimal(data, "ending_cash"),
            notes=optional_str(data, "notes"),
        )
        return jsonify(report.to_dict()), 200

    except DomainError as e:
        return _domain_error(e)
    except Exception:
        return _internal_error("Failed to end POS session %s", session_id)


@pos_bp.post("/sessions/<int:session_id>/reconcile")
@require_context
def reconcile_session_route(session_id: int):
    try:
        data = request.get_json(silent=True) or {}
        require_payload(data)

        report = pos_session_service.reconcile_session(
            session_id=session_id,
            tenant_id=g.tenant_id,
            user_id=g.user_id,
            notes=optional_str(data, "notes"),
        )
        return jsonify(report.to_dict()), 200

    except DomainError as e:
        return _domain_error(e)
    except Exception:
        return _internal_error("Failed to reconcile POS session %s", session_id)


@pos_bp.post("/sessions/<int:session_id>/cash")
@require_context
def record_cash_route(session_id: int):
    """
    Record a manual drawer movement.

    Request body:
    {
        "transaction_type": "PAY_IN" | "PAY_OUT",
        "amount": 20.00,
        "notes": "..."  (optional)
    }
    """
    try:
        data = require_payload(request.get_json(silent=True))

        tx = pos_session_service.record_cash_transaction(
            session_id=session_id,
            tenant_id=g.tenant_id,
            user_id=g.user_id,
            transaction_type=require_str(data, "transaction_type").upper(),
            amount=require_decimal(data, "amount"),
            notes=optional_str(data, "notes"),
        )
        return jsonify({"transaction": tx.to_dict()}), 201

    except DomainError as e:
        return _domain_error(e)
    except Exception:
        return _internal_error("Failed to record cash movement for session %s", session_id)


@pos_bp.get("/sessions/<int:session_id>")
@require_context
def get_session_route(session_id: int):
    try:
        report = pos_session_service.get_session_report(session_id, g.tenant_id)
        return jsonify(report.to_dict()), 200
    except DomainError as e:
        return _domain_error(e)


@pos_bp.get("/sessions")
@require_context
def list_sessions_route():
    """List sessions. Filters: status, location_id, user_id, limit, offset."""
    try:
        rows, total = pos_session_service.list_sessions(
            tenant_id=g.tenant_id,
            status=request.args.get("status"),
            location_id=request.args.get("location_id", type=int),
            user_id=request.args.get("user_id", type=int),
            limit=request.args.get("limit", 50, type=int),
            offset=request.args.get("offset", 0, type=int),
        )
        return jsonify({"sessions": [s.to_dict() for s in rows], "total": total}), 200
    except DomainError as e:
        return _domain_error(e)


# =============================================================================
# SALES
# =============================================================================

@pos_bp.post("/checkout")
@require_pos_context
def checkout_route():
    """
    Complete a sale.

    Request body:
    {
        "session_id": 12,
        "items": [{"product_id": 1, "quantity": 2, "discount_percent": 0.1}],
        "payments": [{"payment_method": "CASH", "amount": 18.00}],
        "customer_id": 5,               (optional)
        "cart_discount_amount": 1.00,   (optional)
        "cart_discount_percent": 0.05,  (optional, ignored when amount given)
        "cart_discount_code": "SPRING", (optional)
        "shipping_address": {...},      (optional)
        "notes": "..."                  (optional)
    }
    """
    try:
        data = require_payload(request.get_json(silent=True))

        order = checkout_service.process_checkout(
            session_id=require_int(data, "session_id"),
            tenant_id=g.tenant_id,
            user_id=g.user_id,
            terminal_id=g.terminal_id,
            location_id=g.location_id,
            items=require_list(data, "items"),
            payments=require_list(data, "payments"),
            customer_id=optional_int(data, "customer_id"),
            cart_discount_amount=optional_decimal(data, "cart_discount_amount"),
            cart_discount_percent=optional_decimal(data, "cart_discount_percent"),
            cart_discount_code=optional_str(data, "cart_discount_code", max_length=64),
            notes=optional_str(data, "notes"),
            shipping_address=data.get("shipping_address"),
        )
        return jsonify({"order": order.to_dict()}), 201

    except DomainError as e:
        return _domain_error(e)
    except Exception:
        return _internal_error("Checkout failed")


@pos_bp.get("/orders/<int:order_id>")
@require_context
def get_order_route(order_id: int):
    try:
        order = checkout_service.get_order(order_id, g.tenant_id)
        return jsonify({"order": order.to_dict()}), 200
    except DomainError as e:
        return _domain_error(e)


@pos_bp.post("/suspend")
@require_pos_context
def suspend_route():
    """
    Park the current cart.

    Request body:
    {
        "session_id": 12,
        "items": [{"product_id": 1, "quantity": 2}],
        "discount_amount": 0,  (optional)
        "customer_id": 5,      (optional)
        "notes": "..."         (optional)
    }
    """
    try:
        data = require_payload(request.get_json(silent=True))

        order = suspend_service.suspend_order(
            session_id=require_int(data, "session_id"),
            tenant_id=g.tenant_id,
            user_id=g.user_id,
            terminal_id=g.terminal_id,
            location_id=g.location_id,
            items=require_list(data, "items"),
            customer_id=optional_int(data, "customer_id"),
            discount_amount=optional_decimal(data, "discount_amount") or 0,
            notes=optional_str(data, "notes"),
            shipping_address=data.get("shipping_address"),
        )
        return jsonify({"order": order.to_dict()}), 201

    except DomainError as e:
        return _domain_error(e)
    except Exception:
        return _internal_error("Suspend failed")


@pos_bp.get("/sales/suspended")
@require_pos_context
def list_suspended_route():
    orders = suspend_service.list_suspended_orders(g.tenant_id, g.location_id)
    return jsonify({"orders": [o.to_dict() for o in orders], "count": len(orders)}), 200


@pos_bp.delete("/sales/suspended/<int:order_id>")
@require_pos_context
def resume_route(order_id: int):
    """Recall a suspended order; the response carries the cart to rebuild."""
    try:
        cart = suspend_service.resume_order(
            order_id=order_id,
            tenant_id=g.tenant_id,
            user_id=g.user_id,
            terminal_id=g.terminal_id,
            location_id=g.location_id,
        )
        return jsonify({"order": cart}), 200

    except DomainError as e:
        return _domain_error(e)
    except Exception:
        return _internal_error("Resume of order %s failed", order_id)
