# Overview: Park a POS cart as a SUSPENDED order with reserved stock, and recall it exactly once.

"""
Suspend / Resume Service

Suspending stores the cart as an Order in SUSPENDED status and reserves
(allocates) stock for its stock-tracked lines so other checkouts cannot
sell it. Nothing is deducted and no ledger rows are written.

Resuming claims the order, releases each reservation once and deletes the
order; the caller gets the cart back and checks it out normally. Two
terminals racing to resume the same order: exactly one wins, the other
gets ConflictError.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import OperationalError

from ..errors import ConflictError, ValidationFailedError
from ..events import SUSPENDED_COUNT_UPDATE, get_event_hub
from ..extensions import db
from ..models import Order, Product
from ..money import ZERO, clamp, decimal_str, to_decimal
from . import audit_service, catalog_service, inventory_service, pos_session_service
from .checkout_service import (
    ORDER_TYPE_POS,
    STATUS_RESUMING,
    STATUS_SUSPENDED,
    allocate_order_number,
    build_order_items,
    json_safe_address,
    price_line,
    validate_cart_lines,
)
from .concurrency import atomic, is_lock_not_available, lock_for_update, supports_nowait_locks

ENTITY_ORDER = "order"

ALREADY_RESUMED_MESSAGE = "Order is no longer suspended or is being resumed by another terminal"


def count_suspended_orders(tenant_id: int, location_id: int) -> int:
    return (
        db.session.query(Order)
        .filter_by(tenant_id=tenant_id, location_id=location_id, status=STATUS_SUSPENDED)
        .count()
    )


def list_suspended_orders(tenant_id: int, location_id: int) -> list[Order]:
    """SUSPENDED orders at a location, newest first."""
    return (
        db.session.query(Order)
        .filter_by(tenant_id=tenant_id, location_id=location_id, status=STATUS_SUSPENDED)
        .order_by(Order.created_at.desc(), Order.id.desc())
        .all()
    )


def _broadcast_suspended_count(tenant_id: int, location_id: int) -> None:
    get_event_hub().broadcast(tenant_id, location_id, SUSPENDED_COUNT_UPDATE, {
        "location_id": location_id,
        "count": count_suspended_orders(tenant_id, location_id),
    })


def suspend_order(
    *,
    session_id: int,
    tenant_id: int,
    user_id: int,
    terminal_id: str,
    location_id: int,
    items: list,
    customer_id: int | None = None,
    discount_amount=0,
    notes: str | None = None,
    shipping_address: dict | None = None,
) -> Order:
    """
    Park a cart.

    Lines are priced as given (override or catalog price, item discounts);
    the cart discount is clamped to the subtotal. No payment is taken and
    no stock check is made: the reservation may exceed what is available.
    """
    lines = validate_cart_lines(items)
    cart_discount = to_decimal(discount_amount, "discount_amount", allow_none=True) or ZERO
    if cart_discount < ZERO:
        raise ValidationFailedError("Cart discount cannot be negative")
    address = json_safe_address(shipping_address)

    pos_session_service.require_active_session(
        tenant_id=tenant_id,
        user_id=user_id,
        terminal_id=terminal_id,
        location_id=location_id,
        session_id=session_id,
    )
    products = catalog_service.load_active_products(tenant_id, [line.product_id for line in lines])

    with atomic("suspend_order", session_id=session_id, tenant_id=tenant_id, user_id=user_id):
        priced = [price_line(line, products[line.product_id]) for line in lines]
        subtotal = sum((p.line_total for p in priced), ZERO)
        discount = clamp(cart_discount, ZERO, subtotal)

        order = Order(
            tenant_id=tenant_id,
            order_number=allocate_order_number(tenant_id),
            customer_id=customer_id,
            location_id=location_id,
            pos_terminal_id=terminal_id,
            pos_session_id=session_id,
            user_id=user_id,
            order_type=ORDER_TYPE_POS,
            status=STATUS_SUSPENDED,
            subtotal=subtotal,
            discount_amount=discount,
            tax_amount=ZERO,
            shipping_cost=ZERO,
            total_amount=subtotal - discount,
            currency_code=current_app.config.get("DEFAULT_CURRENCY", "USD"),
            shipping_address=address,
            notes=notes,
            items=build_order_items(tenant_id, priced),
        )
        db.session.add(order)
        db.session.flush()

        for p in priced:
            if p.product.is_stock_tracked:
                inventory_service.adjust_allocated_quantity(
                    tenant_id=tenant_id,
                    product_id=p.product.id,
                    location_id=location_id,
                    delta=p.line.quantity,
                )

        order_id = order.id
        order_number = order.order_number
        total = order.total_amount

    current_app.logger.info("Order %s suspended at location %s", order_number, location_id)

    audit_service.record_audit_event(
        tenant_id=tenant_id,
        user_id=user_id,
        action=audit_service.ACTION_ORDER_SUSPENDED,
        entity_type=ENTITY_ORDER,
        entity_id=order_id,
        details={"order_number": order_number, "total_amount": decimal_str(total), "session_id": session_id},
    )
    _broadcast_suspended_count(tenant_id, location_id)

    return db.session.get(Order, order_id)


def _claim_suspended_order(order_id: int, tenant_id: int, location_id: int) -> Order:
    """
    Take exclusive ownership of a suspended order inside the open transaction.

    Row-lock dialects use FOR UPDATE NOWAIT so a second claimant fails fast.
    Elsewhere a conditional status flip does the job: only one UPDATE can
    see status SUSPENDED.
    """
    scope = dict(id=order_id, tenant_id=tenant_id, location_id=location_id, status=STATUS_SUSPENDED)

    if supports_nowait_locks():
        try:
            order = (
                lock_for_update(db.session.query(Order).filter_by(**scope), nowait=True)
                .populate_existing()
                .first()
            )
        except OperationalError as exc:
            if is_lock_not_available(exc):
                raise ConflictError(ALREADY_RESUMED_MESSAGE, {"order_id": order_id}) from exc
            raise
        if order is None:
            raise ConflictError(ALREADY_RESUMED_MESSAGE, {"order_id": order_id})
        return order

    result = db.session.execute(
        update(Order)
        .where(
            Order.id == order_id,
            Order.tenant_id == tenant_id,
            Order.location_id == location_id,
            Order.status == STATUS_SUSPENDED,
        )
        .values(status=STATUS_RESUMING)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise ConflictError(ALREADY_RESUMED_MESSAGE, {"order_id": order_id})
    return db.session.query(Order).filter_by(id=order_id).populate_existing().one()


def _cart_snapshot(order: Order) -> dict:
    data = order.to_dict(include_lines=False)
    data["items"] = [item.to_dict() for item in order.items]
    return data


def resume_order(
    *,
    order_id: int,
    tenant_id: int,
    user_id: int,
    terminal_id: str,
    location_id: int,
) -> dict:
    """
    Recall a suspended order into the caller's session.

    Returns:
        The recalled order (items included) as a dict; the order row
        itself no longer exists.

    Raises:
        InvalidStateError: Caller has no open session here
        ConflictError: Order missing, not SUSPENDED, at another location,
            or already claimed by a concurrent resume
    """
    session = pos_session_service.require_active_session(
        tenant_id=tenant_id,
        user_id=user_id,
        terminal_id=terminal_id,
        location_id=location_id,
    )
    session_id = session.id

    with atomic("resume_order", order_id=order_id, tenant_id=tenant_id, user_id=user_id):
        order = _claim_suspended_order(order_id, tenant_id, location_id)
        snapshot = _cart_snapshot(order)

        tracked = {
            product_id
            for (product_id,) in db.session.query(Product.id).filter(
                Product.id.in_({item.product_id for item in order.items}),
                Product.is_stock_tracked.is_(True),
            )
        }
        released = []
        for item in order.items:
            if item.product_id not in tracked:
                continue
            inventory_service.adjust_allocated_quantity(
                tenant_id=tenant_id,
                product_id=item.product_id,
                location_id=location_id,
                delta=-item.quantity,
            )
            released.append(item.product_id)

        db.session.delete(order)

    snapshot["status"] = STATUS_SUSPENDED
    snapshot["resumed_by_user_id"] = user_id
    snapshot["resumed_into_session_id"] = session_id

    current_app.logger.info("Order %s resumed by user %s", snapshot["order_number"], user_id)

    audit_service.record_audit_event(
        tenant_id=tenant_id,
        user_id=user_id,
        action=audit_service.ACTION_ORDER_RESUMED,
        entity_type=ENTITY_ORDER,
        entity_id=order_id,
        details={"order_number": snapshot["order_number"], "session_id": session_id},
    )
    _broadcast_suspended_count(tenant_id, location_id)
    inventory_service.publish_stock_levels(tenant_id, location_id, released)

    return snapshot
