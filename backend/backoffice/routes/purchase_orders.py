# Overview: Flask API routes for purchase orders; parses input and returns JSON responses.

# backend/backoffice/routes/purchase_orders.py
"""
Purchase Order API Routes

DESIGN:
- Create/edit/list purchase orders per tenant
- Lifecycle actions: submit -> approve -> send -> receive -> close, cancel
- Receiving posts stock and PURCHASE_RECEIPT ledger rows atomically

CONTEXT:
- X-Tenant-Id / X-User-Id headers identify the caller (require_context)
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_context
from ..errors import DomainError
from ..services import purchase_order_service, sequence_service
from ..validation import (
    optional_date,
    optional_decimal,
    optional_str,
    require_int,
    require_list,
    require_payload,
)


purchase_orders_bp = Blueprint("purchase_orders", __name__, url_prefix="/api/purchase-orders")


def _domain_error(e: DomainError):
    return jsonify(e.to_dict()), e.status_code


@purchase_orders_bp.post("/")
@purchase_orders_bp.post("")
@require_context
def create_purchase_order_route():
    """
    Create a DRAFT purchase order.

    Request body:
    {
        "supplier_id": 1,
        "location_id": 1,
        "items": [{"product_id": 1, "quantity_ordered": 10, "unit_cost": 2.5, "tax_rate": 0.1}],
        "shipping_cost": 5,                 (optional)
        "expected_delivery_date": "2026-01-31",  (optional)
        "po_number": "PO-EXT-1",            (optional, must be unique)
        "notes": "..."                      (optional)
    }
    """
    try:
        data = require_payload(request.get_json(silent=True))

        po = purchase_order_service.create_purchase_order(
            tenant_id=g.tenant_id,
            user_id=g.user_id,
            supplier_id=require_int(data, "supplier_id"),
            location_id=require_int(data, "location_id"),
            items=require_list(data, "items"),
            shipping_cost=optional_decimal(data, "shipping_cost") or 0,
            notes=optional_str(data, "notes"),
            expected_delivery_date=optional_date(data, "expected_delivery_date"),
            po_number=optional_str(data, "po_number", max_length=64),
        )
        return jsonify({"purchase_order": po.to_dict()}), 201

    except DomainError as e:
        return _domain_error(e)
    except Exception:
        current_app.logger.exception("Failed to create purchase order")
        return jsonify({"error": "Internal server error"}), 500


@purchase_orders_bp.get("/")
@purchase_orders_bp.get("")
@require_context
def list_purchase_orders_route():
    """List purchase orders. Filters: status, supplier_id, location_id, limit, offset."""
    try:
        rows, total = purchase_order_service.list_purchase_orders(
            tenant_id=g.tenant_id,
            status=request.args.get("status"),
            supplier_id=request.args.get("supplier_id", type=int),
            location_id=request.args.get("location_id", type=int),
            limit=request.args.get("limit", 50, type=int),
            offset=request.args.get("offset", 0, type=int),
        )
        return jsonify({
            "purchase_orders": [po.to_dict(include_items=False) for po in rows],
            "total": total,
        }), 200

    except DomainError as e:
        return _domain_error(e)
    except Exception:
        current_app.logger.exception("Failed to list purchase orders")
        return jsonify({"error": "Internal server error"}), 500


@purchase_orders_bp.get("/<int:po_id>")
@require_context
def get_purchase_order_route(po_id: int):
    try:
        po = purchase_order_service.get_purchase_order(po_id, g.tenant_id)
        return jsonify({"purchase_order": po.to_dict()}), 200
    except DomainError as e:
        return _domain_error(e)


@purchase_orders_bp.patch("/<int:po_id>")
@require_context
def update_purchase_order_route(po_id: int):
    """
    Edit header fields.

    notes and expected_delivery_date are editable in any status;
    shipping_cost only while DRAFT. Omitted keys are left unchanged.
    """
    try:
        data = require_payload(request.get_json(silent=True))

        changes = {}
        if "notes" in data:
            changes["notes"] = optional_str(data, "notes")
        if "expected_delivery_date" in data:
            changes["expected_delivery_date"] = optional_date(data, "expected_delivery_date")
        if "shipping_cost" in data:
            changes["shipping_cost"] = optional_decimal(data, "shipping_cost")

        po = purchase_order_service.update_purchase_order(
            po_id=po_id,
            tenant_id=g.tenant_id,
            user_id=g.user_id,
            **changes,
        )
        return jsonify({"purchase_order": po.to_dict()}), 200

    except DomainError as e:
        return _domain_error(e)
    except Exception:
        current_app.logger.exception("Failed to update purchase order %s", po_id)
        return jsonify({"error": "Internal server error"}), 500


@purchase_orders_bp.post("/<int:po_id>/receive")
@require_context
def receive_purchase_order_route(po_id: int):
    """
    Receive stock against a SENT or PARTIALLY_RECEIVED purchase order.

    Request body:
    {
        "items": [
            {"po_item_id": 1, "quantity_received": 4},
            {"po_item_id": 2, "quantity_received": 2, "serial_numbers": ["SN-1", "SN-2"]},
            {"po_item_id": 3, "quantity_received": 1, "lot_number": "L-9", "expiry_date": "2027-01-01"}
        ]
    }
    """
    try:
        data = require_payload(request.get_json(silent=True))

        result = purchase_order_service.receive_purchase_order_items(
            po_id=po_id,
            tenant_id=g.tenant_id,
            user_id=g.user_id,
            lines=require_list(data, "items"),
        )
        po = purchase_order_service.get_purchase_order(po_id, g.tenant_id)
        return jsonify({**result.to_dict(), "purchase_order": po.to_dict()}), 200

    except DomainError as e:
        return _domain_error(e)
    except Exception:
        current_app.logger.exception("Failed to receive purchase order %s", po_id)
        return jsonify({"error": "Internal server error"}), 500


@purchase_orders_bp.post("/<int:po_id>/<action>")
@require_context
def transition_purchase_order_route(po_id: int, action: str):
    """
    Lifecycle action: submit, approve, send, cancel or close.

    Request body (optional): {"notes": "..."}; cancel without notes records
    a default reason.
    """
    try:
        data = request.get_json(silent=True) or {}
        require_payload(data)

        po = purchase_order_service.transition_purchase_order(
            po_id=po_id,
            tenant_id=g.tenant_id,
            user_id=g.user_id,
            action=action,
            notes=optional_str(data, "notes"),
        )
        return jsonify({"purchase_order": po.to_dict()}), 200

    except DomainError as e:
        return _domain_error(e)
    except Exception:
        current_app.logger.exception("Failed to %s purchase order %s", action, po_id)
        return jsonify({"error": "Internal server error"}), 500


@purchase_orders_bp.get("/next-number")
@require_context
def peek_po_number_route():
    """Preview the next generated PO number (not reserved)."""
    number = sequence_service.peek_next_number(g.tenant_id, sequence_service.DOCUMENT_PURCHASE_ORDER)
    prefix = current_app.config["PO_NUMBER_PREFIX"]
    pad = current_app.config["DOCUMENT_NUMBER_PAD"]
    return jsonify({"next_po_number": f"{prefix}-{number:0{pad}d}"}), 200
