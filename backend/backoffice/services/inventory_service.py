# Overview: Inventory aggregate balances and the append-only stock ledger.

"""
Every stock mutation in the core goes through this module.

- update_inventory_item_quantity: on-hand delta (receipts, sales)
- adjust_allocated_quantity: reservations (suspended carts)
- build_ledger_entry / record_ledger_entries: ledger rows, batch inserted

Aggregate rows are changed with a single SQL-level arithmetic UPDATE, never
read-modify-write, so concurrent writers on the same (tenant, product,
location) serialize on the row lock instead of losing updates. None of
these helpers commit; they participate in the caller's transaction.
"""

from __future__ import annotations

from decimal import Decimal

from flask import current_app
from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..errors import ConflictError, ValidationFailedError
from ..events import LOW_STOCK, STOCK_UPDATE, get_event_hub
from ..extensions import db
from ..models import InventoryItem, InventoryTransaction
from ..money import ZERO, decimal_str, quantize_money
from ..time_utils import to_utc_z, utcnow

TX_PURCHASE_RECEIPT = "PURCHASE_RECEIPT"
TX_SALE = "SALE"
TX_ADJUSTMENT = "ADJUSTMENT"
TX_RETURN = "RETURN"

LEDGER_TRANSACTION_TYPES = {TX_PURCHASE_RECEIPT, TX_SALE, TX_ADJUSTMENT, TX_RETURN}


def _increment_column(tenant_id: int, product_id: int, location_id: int, column, delta: Decimal) -> bool:
    stmt = (
        update(InventoryItem)
        .where(
            InventoryItem.tenant_id == tenant_id,
            InventoryItem.product_id == product_id,
            InventoryItem.location_id == location_id,
        )
        .values({column: column + delta})
        .execution_options(synchronize_session=False)
    )
    return bool(db.session.execute(stmt).rowcount)


def _upsert_increment(tenant_id: int, product_id: int, location_id: int, field: str, delta: Decimal) -> InventoryItem:
    column = getattr(InventoryItem, field)
    if not _increment_column(tenant_id, product_id, location_id, column, delta):
        values = {
            "tenant_id": tenant_id,
            "product_id": product_id,
            "location_id": location_id,
            "quantity_on_hand": ZERO,
            "quantity_allocated": ZERO,
            "quantity_incoming": ZERO,
        }
        values[field] = delta
        try:
            with db.session.begin_nested():
                db.session.add(InventoryItem(**values))
        except IntegrityError:
            # Created concurrently; fall back to the increment
            if not _increment_column(tenant_id, product_id, location_id, column, delta):
                raise

    return get_inventory_item(tenant_id, product_id, location_id, refresh=True)


def get_inventory_item(tenant_id: int, product_id: int, location_id: int, *, refresh: bool = False) -> InventoryItem | None:
    query = db.session.query(InventoryItem).filter_by(
        tenant_id=tenant_id,
        product_id=product_id,
        location_id=location_id,
    )
    if refresh:
        query = query.populate_existing()
    return query.first()


def get_available_quantity(tenant_id: int, product_id: int, location_id: int) -> Decimal:
    """On hand minus allocated; zero when no aggregate row exists yet."""
    item = get_inventory_item(tenant_id, product_id, location_id, refresh=True)
    if item is None:
        return ZERO
    return item.quantity_on_hand - item.quantity_allocated


def update_inventory_item_quantity(
    *,
    tenant_id: int,
    product_id: int,
    location_id: int,
    delta: Decimal,
) -> InventoryItem:
    """
    Apply a signed on-hand delta and return the refreshed aggregate row.

    Raises:
        ValidationFailedError: zero delta, or the result would leave on-hand
            negative while ALLOW_NEGATIVE_STOCK is off. The check runs after
            the increment, inside the caller's transaction, so raising rolls
            the increment back with everything else.
    """
    if delta == ZERO:
        raise ValidationFailedError(
            "Stock movement quantity cannot be zero",
            {"product_id": product_id, "location_id": location_id},
        )

    item = _upsert_increment(tenant_id, product_id, location_id, "quantity_on_hand", delta)

    if item.quantity_on_hand < ZERO and not current_app.config.get("ALLOW_NEGATIVE_STOCK", False):
        raise ValidationFailedError(
            f"Operation results in negative stock for product ID {product_id} at location {location_id}",
            {
                "product_id": product_id,
                "location_id": location_id,
                "resulting_quantity": decimal_str(item.quantity_on_hand),
            },
        )
    return item


def adjust_allocated_quantity(
    *,
    tenant_id: int,
    product_id: int,
    location_id: int,
    delta: Decimal,
) -> InventoryItem:
    """
    Reserve (positive delta) or release (negative delta) stock.

    A release that would drive allocation below zero means the same
    reservation is being released twice and is refused.
    """
    if delta == ZERO:
        raise ValidationFailedError(
            "Allocation change cannot be zero",
            {"product_id": product_id, "location_id": location_id},
        )

    item = _upsert_increment(tenant_id, product_id, location_id, "quantity_allocated", delta)

    if item.quantity_allocated < ZERO:
        raise ConflictError(
            f"Allocated stock for product ID {product_id} at location {location_id} was already released",
            {"product_id": product_id, "location_id": location_id},
        )
    return item


def build_ledger_entry(
    *,
    tenant_id: int,
    product_id: int,
    location_id: int,
    transaction_type: str,
    quantity_change: Decimal,
    user_id: int | None = None,
    unit_cost: Decimal | None = None,
    purchase_order_id: int | None = None,
    purchase_order_item_id: int | None = None,
    order_id: int | None = None,
    order_item_id: int | None = None,
    lot_number: str | None = None,
    serial_number: str | None = None,
    expiry_date=None,
    notes: str | None = None,
) -> InventoryTransaction:
    """Build (not persist) one ledger row."""
    if transaction_type not in LEDGER_TRANSACTION_TYPES:
        raise ValidationFailedError(f"Unknown inventory transaction type {transaction_type}")
    return InventoryTransaction(
        tenant_id=tenant_id,
        product_id=product_id,
        location_id=location_id,
        transaction_type=transaction_type,
        quantity_change=quantity_change,
        unit_cost=unit_cost,
        purchase_order_id=purchase_order_id,
        purchase_order_item_id=purchase_order_item_id,
        order_id=order_id,
        order_item_id=order_item_id,
        lot_number=lot_number,
        serial_number=serial_number,
        expiry_date=expiry_date,
        notes=notes,
        user_id=user_id,
    )


def record_ledger_entries(entries: list[InventoryTransaction]) -> int:
    """Insert a batch of ledger rows in one flush."""
    if not entries:
        return 0
    db.session.add_all(entries)
    db.session.flush()
    return len(entries)


def get_ledger_balance(tenant_id: int, product_id: int, location_id: int) -> Decimal:
    total = (
        db.session.query(func.coalesce(func.sum(InventoryTransaction.quantity_change), 0))
        .filter(
            InventoryTransaction.tenant_id == tenant_id,
            InventoryTransaction.product_id == product_id,
            InventoryTransaction.location_id == location_id,
        )
        .scalar()
    )
    return quantize_money(Decimal(str(total)))


def find_ledger_mismatches(tenant_id: int | None = None) -> list[dict]:
    """
    Compare every aggregate row with the sum of its ledger.

    Returns one entry per (tenant, product, location) where they differ,
    including ledger keys that have no aggregate row at all.
    """
    ledger_query = db.session.query(
        InventoryTransaction.tenant_id,
        InventoryTransaction.product_id,
        InventoryTransaction.location_id,
        func.sum(InventoryTransaction.quantity_change),
    ).group_by(
        InventoryTransaction.tenant_id,
        InventoryTransaction.product_id,
        InventoryTransaction.location_id,
    )
    items_query = db.session.query(InventoryItem)
    if tenant_id is not None:
        ledger_query = ledger_query.filter(InventoryTransaction.tenant_id == tenant_id)
        items_query = items_query.filter(InventoryItem.tenant_id == tenant_id)

    ledger = {
        (row[0], row[1], row[2]): quantize_money(Decimal(str(row[3] or 0)))
        for row in ledger_query.all()
    }
    on_hand = {
        (item.tenant_id, item.product_id, item.location_id): item.quantity_on_hand
        for item in items_query.all()
    }

    mismatches = []
    for key in sorted(set(ledger) | set(on_hand)):
        ledger_sum = ledger.get(key, ZERO)
        balance = on_hand.get(key, ZERO)
        if ledger_sum != balance:
            mismatches.append({
                "tenant_id": key[0],
                "product_id": key[1],
                "location_id": key[2],
                "ledger_total": decimal_str(ledger_sum),
                "quantity_on_hand": decimal_str(balance),
            })
    return mismatches


def publish_stock_levels(
    tenant_id: int,
    location_id: int,
    product_ids,
    *,
    check_low_stock: bool = False,
) -> None:
    """
    Post-commit fan-out for changed stock: cache invalidation, STOCK_UPDATE
    broadcast and, when asked, a LOW_STOCK notification once available
    stock falls to the reorder point.

    Best effort. The stock change is already committed, so a failure here
    is logged and never raised.
    """
    notify_low_stock = check_low_stock and current_app.config.get("LOW_STOCK_NOTIFICATIONS_ENABLED", True)
    try:
        hub = get_event_hub()
        for product_id in sorted(set(product_ids)):
            hub.invalidate_product(tenant_id, product_id)
            item = get_inventory_item(tenant_id, product_id, location_id, refresh=True)
            if item is None:
                continue
            hub.broadcast(tenant_id, location_id, STOCK_UPDATE, {
                "product_id": product_id,
                "location_id": location_id,
                "quantity_on_hand": decimal_str(item.quantity_on_hand),
                "quantity_allocated": decimal_str(item.quantity_allocated),
                "timestamp": to_utc_z(utcnow()),
            })
            reorder_point = item.reorder_point
            if notify_low_stock and reorder_point is not None and reorder_point > ZERO \
                    and item.quantity_available <= reorder_point:
                hub.notify(tenant_id, LOW_STOCK, {
                    "product_id": product_id,
                    "sku": item.product.sku,
                    "location_id": location_id,
                    "quantity_available": decimal_str(item.quantity_available),
                    "reorder_point": decimal_str(reorder_point),
                })
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.warning("Stock level publication failed for tenant %s", tenant_id, exc_info=True)
