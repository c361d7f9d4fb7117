# Overview: POS checkout: cart pricing, stock check, payment reconciliation and atomic sale posting.

"""
POS Checkout Service

One checkout is one transaction. Inside it:
1. the session is re-locked and must still be OPEN
2. every line is priced (override or catalog price, minus item discount)
3. the cart discount is applied
4. stock-tracked products are checked against on hand minus allocated
5. sum(payments) must equal the order total exactly
6. order, items, payments, session log rows, stock decrements and SALE
   ledger rows are written

Steps 1-5 write nothing, so a rejected checkout leaves no trace. Cache
invalidation and client broadcasts run only after commit.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from flask import current_app

from ..errors import NotFoundError, ValidationFailedError
from ..events import SESSION_SUMMARY_UPDATE, get_event_hub
from ..extensions import db
from ..models import Order, OrderItem, Payment, PosSessionTransaction, Product
from ..money import ONE, ZERO, clamp, decimal_str, quantize_money, to_decimal
from . import catalog_service, inventory_service, pos_session_service
from .concurrency import atomic
from .sequence_service import DOCUMENT_ORDER, next_document_number
from .tax_service import CONTEXT_POS, get_tax_strategy

ORDER_TYPE_POS = "POS"

STATUS_COMPLETED = "COMPLETED"
STATUS_SUSPENDED = "SUSPENDED"
STATUS_RESUMING = "RESUMING"

PAYMENT_STATUS_COMPLETED = "COMPLETED"

PAYMENT_CASH = "CASH"
PAYMENT_CREDIT_CARD = "CREDIT_CARD"
PAYMENT_DEBIT_CARD = "DEBIT_CARD"
PAYMENT_MOBILE_MONEY = "MOBILE_MONEY"
PAYMENT_CHECK = "CHECK"
PAYMENT_BANK_TRANSFER = "BANK_TRANSFER"
PAYMENT_OTHER = "OTHER"

# Payment method -> session log type
PAYMENT_SESSION_TYPES = {
    PAYMENT_CASH: pos_session_service.TX_CASH_SALE,
    PAYMENT_CREDIT_CARD: pos_session_service.TX_CARD_SALE,
    PAYMENT_DEBIT_CARD: pos_session_service.TX_CARD_SALE,
    PAYMENT_MOBILE_MONEY: pos_session_service.TX_MOBILE_MONEY_SALE,
    PAYMENT_CHECK: pos_session_service.TX_CHECK_SALE,
    PAYMENT_BANK_TRANSFER: pos_session_service.TX_BANK_TRANSFER_SALE,
    PAYMENT_OTHER: pos_session_service.TX_OTHER_SALE,
}


@dataclass
class CartLine:
    product_id: int
    quantity: Decimal
    unit_price: Decimal | None = None
    discount_amount: Decimal | None = None
    discount_percent: Decimal | None = None
    lot_number: str | None = None
    serial_number: str | None = None
    notes: str | None = None

    @classmethod
    def coerce(cls, value) -> "CartLine":
        if isinstance(value, cls):
            return value
        if not isinstance(value, dict):
            raise ValidationFailedError("Each cart item must be an object")
        product_id = value.get("product_id")
        if not isinstance(product_id, int) or isinstance(product_id, bool):
            raise ValidationFailedError("product_id must be an integer", {"field": "product_id"})
        line = cls(
            product_id=product_id,
            quantity=to_decimal(value.get("quantity"), "quantity"),
            unit_price=to_decimal(value.get("unit_price"), "unit_price", allow_none=True),
            discount_amount=to_decimal(value.get("discount_amount"), "discount_amount", allow_none=True),
            discount_percent=to_decimal(value.get("discount_percent"), "discount_percent", allow_none=True),
            lot_number=value.get("lot_number"),
            serial_number=value.get("serial_number"),
            notes=value.get("notes"),
        )
        return line


@dataclass
class PaymentInput:
    payment_method: str
    amount: Decimal
    transaction_reference: str | None = None

    @classmethod
    def coerce(cls, value) -> "PaymentInput":
        if isinstance(value, cls):
            return value
        if not isinstance(value, dict):
            raise ValidationFailedError("Each payment must be an object")
        method = value.get("payment_method")
        return cls(
            payment_method=method.strip().upper() if isinstance(method, str) else method,
            amount=to_decimal(value.get("amount"), "amount"),
            transaction_reference=value.get("transaction_reference"),
        )


@dataclass
class PricedLine:
    line: CartLine
    product: Product
    original_unit_price: Decimal
    unit_discount: Decimal
    unit_price: Decimal
    line_total: Decimal
    tax_amount: Decimal = ZERO


# =============================================================================
# Pricing
# =============================================================================

def validate_cart_lines(items) -> list[CartLine]:
    lines = [CartLine.coerce(item) for item in items or []]
    if not lines:
        raise ValidationFailedError("Cart must contain at least one item")
    for line in lines:
        if line.quantity <= ZERO:
            raise ValidationFailedError(
                f"Quantity for product {line.product_id} must be greater than zero",
                {"product_id": line.product_id, "quantity": decimal_str(line.quantity)},
            )
    return lines


def price_line(line: CartLine, product: Product) -> PricedLine:
    """
    Price one cart line.

    Base price is the override when given, else the catalog price. The
    per-unit discount is the fixed amount when given, else base x
    min(percent, 1); it is clamped to [0, base] so the price floor is 0.
    """
    base = line.unit_price if line.unit_price is not None else product.base_price
    if base < ZERO:
        raise ValidationFailedError(
            f"Price for product {product.sku} cannot be negative",
            {"product_id": product.id, "unit_price": decimal_str(base)},
        )

    if line.discount_amount is not None:
        discount = line.discount_amount
    elif line.discount_percent is not None:
        if line.discount_percent < ZERO:
            raise ValidationFailedError(
                f"Discount percent for product {product.sku} cannot be negative",
                {"product_id": product.id},
            )
        discount = quantize_money(base * min(line.discount_percent, ONE))
    else:
        discount = ZERO
    discount = clamp(discount, ZERO, base)

    unit_price = base - discount
    return PricedLine(
        line=line,
        product=product,
        original_unit_price=base,
        unit_discount=discount,
        unit_price=unit_price,
        line_total=quantize_money(unit_price * line.quantity),
    )


def cart_discount(subtotal: Decimal, amount: Decimal | None, percent: Decimal | None) -> Decimal:
    """Fixed amount when given, else subtotal x min(percent, 1); never above subtotal."""
    if amount is not None:
        discount = amount
    elif percent is not None:
        if percent < ZERO:
            raise ValidationFailedError("Cart discount percent cannot be negative")
        discount = quantize_money(subtotal * min(percent, ONE))
    else:
        discount = ZERO
    return clamp(discount, ZERO, subtotal)


def _aggregate_quantities(priced: list[PricedLine]) -> dict[int, Decimal]:
    totals: dict[int, Decimal] = {}
    for p in priced:
        if p.product.is_stock_tracked:
            totals[p.product.id] = totals.get(p.product.id, ZERO) + p.line.quantity
    return totals


def _check_stock(tenant_id: int, location_id: int, priced: list[PricedLine]) -> bool:
    """
    Compare requested quantities with available stock.

    Returns True when the order has to be flagged as backordered (only
    possible with ALLOW_BACKORDER); otherwise a shortfall raises.
    """
    allow_backorder = current_app.config.get("ALLOW_BACKORDER", False)
    products = {p.product.id: p.product for p in priced}
    backordered = False
    for product_id, requested in _aggregate_quantities(priced).items():
        available = inventory_service.get_available_quantity(tenant_id, product_id, location_id)
        if available >= requested:
            continue
        if allow_backorder:
            backordered = True
            continue
        product = products[product_id]
        raise ValidationFailedError(
            f"Insufficient stock for product {product.sku}. "
            f"Available: {decimal_str(available)}, Requested: {decimal_str(requested)}",
            {
                "product_id": product_id,
                "sku": product.sku,
                "available": decimal_str(available),
                "requested": decimal_str(requested),
            },
        )
    return backordered


def json_safe_address(address):
    if address is None:
        return None
    if not isinstance(address, dict):
        raise ValidationFailedError("shipping_address must be an object")
    return {key: (decimal_str(value) if isinstance(value, Decimal) else value) for key, value in address.items()}


def build_order_items(tenant_id: int, priced: list[PricedLine]) -> list[OrderItem]:
    return [
        OrderItem(
            tenant_id=tenant_id,
            product_id=p.product.id,
            product_snapshot=p.product.snapshot(),
            quantity=p.line.quantity,
            original_unit_price=p.original_unit_price,
            discount_amount=p.unit_discount,
            unit_price=p.unit_price,
            tax_amount=p.tax_amount,
            line_total=p.line_total,
            lot_number=p.line.lot_number,
            serial_number=p.line.serial_number,
            notes=p.line.notes,
        )
        for p in priced
    ]


def allocate_order_number(tenant_id: int) -> str:
    return next_document_number(
        tenant_id=tenant_id,
        document_type=DOCUMENT_ORDER,
        prefix=current_app.config["ORDER_NUMBER_PREFIX"],
        pad=current_app.config["DOCUMENT_NUMBER_PAD"],
    )


# =============================================================================
# Checkout
# =============================================================================

def process_checkout(
    *,
    session_id: int,
    tenant_id: int,
    user_id: int,
    terminal_id: str,
    location_id: int,
    items: list,
    payments: list,
    customer_id: int | None = None,
    cart_discount_amount=None,
    cart_discount_percent=None,
    cart_discount_code: str | None = None,
    notes: str | None = None,
    shipping_address: dict | None = None,
) -> Order:
    """
    Complete a POS sale.

    Args:
        session_id: Caller's OPEN session
        items: CartLine objects or dicts (product_id, quantity, optional
            unit_price, discount_amount, discount_percent, lot/serial, notes)
        payments: PaymentInput objects or dicts (payment_method, amount,
            optional transaction_reference); must sum to the order total
        cart_discount_amount / cart_discount_percent: Cart-level discount

    Returns:
        The COMPLETED Order with items and payments

    Raises:
        InvalidStateError: No matching open session
        ValidationFailedError: Empty cart/payments, inactive products,
            insufficient stock, payment total mismatch
        TransientInfraError: Checkout transaction timed out under load
        InternalError: Anything unexpected (sanitized)
    """
    lines = validate_cart_lines(items)

    tenders = [PaymentInput.coerce(p) for p in payments or []]
    if not tenders:
        raise ValidationFailedError("At least one payment is required")
    for tender in tenders:
        if tender.payment_method not in PAYMENT_SESSION_TYPES:
            raise ValidationFailedError(
                f"Unsupported payment method {tender.payment_method}",
                {"payment_method": tender.payment_method, "allowed": sorted(PAYMENT_SESSION_TYPES)},
            )
        if tender.amount <= ZERO:
            raise ValidationFailedError(
                "Payment amounts must be greater than zero",
                {"payment_method": tender.payment_method, "amount": decimal_str(tender.amount)},
            )
    payment_total = sum((t.amount for t in tenders), ZERO)
    if payment_total <= ZERO:
        raise ValidationFailedError("Total payment amount must be positive")

    discount_amount = to_decimal(cart_discount_amount, "cart_discount_amount", allow_none=True)
    discount_percent = to_decimal(cart_discount_percent, "cart_discount_percent", allow_none=True)
    address = json_safe_address(shipping_address)

    pos_session_service.require_active_session(
        tenant_id=tenant_id,
        user_id=user_id,
        terminal_id=terminal_id,
        location_id=location_id,
        session_id=session_id,
    )
    products = catalog_service.load_active_products(tenant_id, [line.product_id for line in lines])

    tax_strategy = get_tax_strategy(CONTEXT_POS)
    touched_products: list[int] = []

    with atomic(
        "process_checkout",
        timeout_ms=current_app.config.get("CHECKOUT_TRANSACTION_TIMEOUT_MS"),
        session_id=session_id,
        tenant_id=tenant_id,
        user_id=user_id,
    ):
        pos_session_service.lock_open_session(session_id, tenant_id)

        priced = [price_line(line, products[line.product_id]) for line in lines]
        subtotal = sum((p.line_total for p in priced), ZERO)
        discount = cart_discount(subtotal, discount_amount, discount_percent)

        is_backordered = _check_stock(tenant_id, location_id, priced)

        tax_total = ZERO
        for p in priced:
            p.tax_amount = quantize_money(tax_strategy.line_tax(p.line_total, ZERO))
            tax_total += p.tax_amount
        shipping = ZERO
        order_total = subtotal - discount + shipping + tax_total

        if payment_total != order_total:
            raise ValidationFailedError(
                f"Payment total ({decimal_str(payment_total)}) does not match "
                f"calculated order total ({decimal_str(order_total)})",
                {"payment_total": decimal_str(payment_total), "order_total": decimal_str(order_total)},
            )

        # Nothing above this line writes.
        currency = current_app.config.get("DEFAULT_CURRENCY", "USD")
        order = Order(
            tenant_id=tenant_id,
            order_number=allocate_order_number(tenant_id),
            customer_id=customer_id,
            location_id=location_id,
            pos_terminal_id=terminal_id,
            pos_session_id=session_id,
            user_id=user_id,
            order_type=ORDER_TYPE_POS,
            status=STATUS_COMPLETED,
            subtotal=subtotal,
            discount_amount=discount,
            tax_amount=tax_total,
            shipping_cost=shipping,
            total_amount=order_total,
            currency_code=currency,
            discount_code=cart_discount_code,
            shipping_address=address,
            notes=notes,
            is_backordered=is_backordered,
            items=build_order_items(tenant_id, priced),
            payments=[
                Payment(
                    tenant_id=tenant_id,
                    payment_method=t.payment_method,
                    amount=t.amount,
                    currency_code=currency,
                    status=PAYMENT_STATUS_COMPLETED,
                    transaction_reference=t.transaction_reference,
                    processed_by_user_id=user_id,
                )
                for t in tenders
            ],
        )
        db.session.add(order)
        db.session.flush()

        db.session.add_all([
            PosSessionTransaction(
                tenant_id=tenant_id,
                pos_session_id=session_id,
                transaction_type=PAYMENT_SESSION_TYPES[t.payment_method],
                amount=t.amount,
                related_order_id=order.id,
                notes=f"{t.payment_method} payment for {order.order_number}",
                user_id=user_id,
            )
            for t in tenders
        ])

        entries = []
        for p, order_item in zip(priced, order.items):
            if not p.product.is_stock_tracked:
                continue
            inventory_service.update_inventory_item_quantity(
                tenant_id=tenant_id,
                product_id=p.product.id,
                location_id=location_id,
                delta=-p.line.quantity,
            )
            entries.append(inventory_service.build_ledger_entry(
                tenant_id=tenant_id,
                product_id=p.product.id,
                location_id=location_id,
                transaction_type=inventory_service.TX_SALE,
                quantity_change=-p.line.quantity,
                user_id=user_id,
                order_id=order.id,
                order_item_id=order_item.id,
                lot_number=p.line.lot_number,
                serial_number=p.line.serial_number,
                notes=f"POS sale {order.order_number}",
            ))
            touched_products.append(p.product.id)
        inventory_service.record_ledger_entries(entries)

        order_id = order.id
        order_number = order.order_number

    current_app.logger.info(
        "POS checkout %s completed on session %s: total %s, %d payments%s",
        order_number, session_id, decimal_str(order_total), len(tenders),
        " (backordered)" if is_backordered else "",
    )

    inventory_service.publish_stock_levels(tenant_id, location_id, touched_products, check_low_stock=True)
    _publish_session_summary(tenant_id, location_id, session_id)

    return get_order(order_id, tenant_id)


def _publish_session_summary(tenant_id: int, location_id: int, session_id: int) -> None:
    try:
        report = pos_session_service.get_session_report(session_id, tenant_id)
        get_event_hub().broadcast(tenant_id, location_id, SESSION_SUMMARY_UPDATE, {
            "session_id": session_id,
            **report.payment_summary.to_dict(),
        })
    except NotFoundError:
        current_app.logger.warning("Session %s vanished before summary broadcast", session_id)


def get_order(order_id: int, tenant_id: int) -> Order:
    order = db.session.query(Order).filter_by(id=order_id, tenant_id=tenant_id).first()
    if order is None:
        raise NotFoundError(f"Order {order_id} not found", {"order_id": order_id})
    return order
