# Overview: Purchase order lifecycle: creation, edits, status transitions and receiving.

"""
Purchase Order Service

LIFECYCLE:
1. DRAFT: created with calculated totals, shipping still editable
2. PENDING_APPROVAL: submitted for approval
3. APPROVED: ready to send
4. SENT: with the supplier, receivable
5. PARTIALLY_RECEIVED / FULLY_RECEIVED: driven by receiving, never by hand
6. CLOSED: stopped receiving short of the ordered quantity
7. CANCELLED

DESIGN:
- Totals are computed once at creation; later edits only touch shipping
  (DRAFT only), notes and expected delivery date.
- Receiving writes aggregate increments, ledger rows and received
  quantities in one transaction; nothing is persisted on any failure.
- The PO row carries an optimistic version column, so two racing
  transitions cannot both commit from the same stale status.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

from flask import current_app
from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError

from ..errors import ConflictError, InvalidStateError, NotFoundError, ValidationFailedError
from ..extensions import db
from ..models import PurchaseOrder, PurchaseOrderItem
from ..money import ONE, RECEIPT_TOLERANCE, ZERO, decimal_str, is_whole_number, quantize_money, to_decimal
from ..time_utils import parse_iso_date
from . import catalog_service, inventory_service
from .concurrency import atomic, lock_for_update
from .sequence_service import DOCUMENT_PURCHASE_ORDER, next_document_number
from .tax_service import CONTEXT_PURCHASE_ORDER, get_tax_strategy


# Valid statuses
STATUS_DRAFT = "DRAFT"
STATUS_PENDING_APPROVAL = "PENDING_APPROVAL"
STATUS_APPROVED = "APPROVED"
STATUS_SENT = "SENT"
STATUS_PARTIALLY_RECEIVED = "PARTIALLY_RECEIVED"
STATUS_FULLY_RECEIVED = "FULLY_RECEIVED"
STATUS_CLOSED = "CLOSED"
STATUS_CANCELLED = "CANCELLED"

PO_STATUSES = {
    STATUS_DRAFT,
    STATUS_PENDING_APPROVAL,
    STATUS_APPROVED,
    STATUS_SENT,
    STATUS_PARTIALLY_RECEIVED,
    STATUS_FULLY_RECEIVED,
    STATUS_CLOSED,
    STATUS_CANCELLED,
}

RECEIVABLE_STATUSES = frozenset({STATUS_SENT, STATUS_PARTIALLY_RECEIVED})

# action -> (allowed from, target)
TRANSITIONS = {
    "submit": (frozenset({STATUS_DRAFT}), STATUS_PENDING_APPROVAL),
    "approve": (frozenset({STATUS_DRAFT, STATUS_PENDING_APPROVAL}), STATUS_APPROVED),
    "send": (frozenset({STATUS_APPROVED}), STATUS_SENT),
    "cancel": (
        frozenset({
            STATUS_DRAFT,
            STATUS_PENDING_APPROVAL,
            STATUS_APPROVED,
            STATUS_SENT,
            STATUS_PARTIALLY_RECEIVED,
        }),
        STATUS_CANCELLED,
    ),
    "close": (frozenset({STATUS_SENT, STATUS_PARTIALLY_RECEIVED}), STATUS_CLOSED),
}

DEFAULT_CANCEL_REASON = "Cancelled by user"

_UNSET = object()


@dataclass
class PurchaseOrderLine:
    product_id: int
    quantity_ordered: Decimal
    unit_cost: Decimal
    tax_rate: Decimal = ZERO
    description: str | None = None
    lot_number: str | None = None
    serial_number: str | None = None

    @classmethod
    def coerce(cls, value) -> "PurchaseOrderLine":
        if isinstance(value, cls):
            return value
        if not isinstance(value, dict):
            raise ValidationFailedError("Each purchase order item must be an object")
        product_id = value.get("product_id")
        if not isinstance(product_id, int) or isinstance(product_id, bool):
            raise ValidationFailedError("product_id must be an integer", {"field": "product_id"})
        return cls(
            product_id=product_id,
            quantity_ordered=to_decimal(value.get("quantity_ordered", value.get("quantity")), "quantity_ordered"),
            unit_cost=to_decimal(value.get("unit_cost"), "unit_cost"),
            tax_rate=to_decimal(value.get("tax_rate", 0), "tax_rate"),
            description=value.get("description"),
            lot_number=value.get("lot_number"),
            serial_number=value.get("serial_number"),
        )


@dataclass
class ReceiptLine:
    po_item_id: int
    quantity_received: Decimal
    lot_number: str | None = None
    serial_number: str | None = None
    serial_numbers: list[str] = field(default_factory=list)
    expiry_date: object = None
    notes: str | None = None

    @classmethod
    def coerce(cls, value) -> "ReceiptLine":
        if isinstance(value, cls):
            return value
        if not isinstance(value, dict):
            raise ValidationFailedError("Each receipt line must be an object")
        po_item_id = value.get("po_item_id")
        if not isinstance(po_item_id, int) or isinstance(po_item_id, bool):
            raise ValidationFailedError("po_item_id must be an integer", {"field": "po_item_id"})
        serial_numbers = value.get("serial_numbers") or []
        if not isinstance(serial_numbers, list) or not all(isinstance(s, str) for s in serial_numbers):
            raise ValidationFailedError("serial_numbers must be a list of strings", {"po_item_id": po_item_id})
        try:
            expiry_date = parse_iso_date(value.get("expiry_date"))
        except (TypeError, ValueError):
            raise ValidationFailedError("expiry_date must be an ISO-8601 date", {"po_item_id": po_item_id})
        return cls(
            po_item_id=po_item_id,
            quantity_received=to_decimal(value.get("quantity_received"), "quantity_received"),
            lot_number=value.get("lot_number"),
            serial_number=value.get("serial_number"),
            serial_numbers=list(serial_numbers),
            expiry_date=expiry_date,
            notes=value.get("notes"),
        )

    @property
    def serials(self) -> list[str]:
        """Supplied serial numbers; a lone serial_number counts as a list of one."""
        serials = [s.strip() for s in self.serial_numbers if s and s.strip()]
        if not serials and self.serial_number and self.serial_number.strip():
            serials = [self.serial_number.strip()]
        return serials


@dataclass
class ReceiveResult:
    success: bool
    updated_status: str
    received_lines: int = 0
    ledger_entries: int = 0

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "updated_status": self.updated_status,
            "received_lines": self.received_lines,
            "ledger_entries": self.ledger_entries,
        }


# =============================================================================
# Reads
# =============================================================================

def _po_query(tenant_id: int):
    return db.session.query(PurchaseOrder).filter(PurchaseOrder.tenant_id == tenant_id)


def get_purchase_order(po_id: int, tenant_id: int) -> PurchaseOrder:
    po = _po_query(tenant_id).filter(PurchaseOrder.id == po_id).first()
    if po is None:
        raise NotFoundError(f"Purchase order {po_id} not found", {"purchase_order_id": po_id})
    return po


def list_purchase_orders(
    *,
    tenant_id: int,
    status: str | None = None,
    supplier_id: int | None = None,
    location_id: int | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[PurchaseOrder], int]:
    """
    List purchase orders for a tenant, newest first.

    Returns:
        (purchase orders for the requested page, total matching count)
    """
    if status is not None and status not in PO_STATUSES:
        raise ValidationFailedError(f"Unknown purchase order status {status}", {"status": status})

    query = _po_query(tenant_id)
    if status:
        query = query.filter(PurchaseOrder.status == status)
    if supplier_id:
        query = query.filter(PurchaseOrder.supplier_id == supplier_id)
    if location_id:
        query = query.filter(PurchaseOrder.location_id == location_id)

    total = query.count()
    rows = (
        query.order_by(PurchaseOrder.created_at.desc(), PurchaseOrder.id.desc())
        .offset(max(offset, 0))
        .limit(min(max(limit, 1), 200))
        .all()
    )
    return rows, total


# =============================================================================
# Creation
# =============================================================================

def _prepare_items(tenant_id: int, lines: list[PurchaseOrderLine]) -> tuple[list[PurchaseOrderItem], Decimal, Decimal]:
    """Validate lines and compute line totals; returns (items, subtotal, tax)."""
    strategy = get_tax_strategy(CONTEXT_PURCHASE_ORDER)
    items = []
    subtotal = ZERO
    tax_total = ZERO

    for line in lines:
        if line.quantity_ordered <= ZERO:
            raise ValidationFailedError(
                f"Quantity for product {line.product_id} must be greater than zero",
                {"product_id": line.product_id, "quantity_ordered": decimal_str(line.quantity_ordered)},
            )
        if line.unit_cost < ZERO:
            raise ValidationFailedError(
                f"Unit cost for product {line.product_id} cannot be negative",
                {"product_id": line.product_id, "unit_cost": decimal_str(line.unit_cost)},
            )
        if line.tax_rate < ZERO:
            raise ValidationFailedError(
                f"Tax rate for product {line.product_id} cannot be negative",
                {"product_id": line.product_id, "tax_rate": decimal_str(line.tax_rate)},
            )

        line_total = quantize_money(line.quantity_ordered * line.unit_cost)
        line_tax = quantize_money(strategy.line_tax(line_total, line.tax_rate))
        subtotal += line_total
        tax_total += line_tax

        items.append(PurchaseOrderItem(
            tenant_id=tenant_id,
            product_id=line.product_id,
            description=line.description,
            quantity_ordered=line.quantity_ordered,
            quantity_received=ZERO,
            unit_cost=line.unit_cost,
            tax_rate=line.tax_rate,
            tax_amount=line_tax,
            line_total=line_total,
            lot_number=line.lot_number,
            serial_number=line.serial_number,
        ))

    return items, subtotal, tax_total


def _po_number_taken(tenant_id: int, po_number: str) -> bool:
    return db.session.query(
        _po_query(tenant_id).filter(PurchaseOrder.po_number == po_number).exists()
    ).scalar()


def create_purchase_order(
    *,
    tenant_id: int,
    user_id: int,
    supplier_id: int,
    location_id: int,
    items: list,
    shipping_cost=ZERO,
    notes: str | None = None,
    expected_delivery_date=None,
    po_number: str | None = None,
) -> PurchaseOrder:
    """
    Create a DRAFT purchase order with calculated totals.

    Args:
        tenant_id: Owning tenant
        user_id: Creating user
        supplier_id: Active supplier of the tenant
        location_id: Active receiving location of the tenant
        items: PurchaseOrderLine objects or dicts with product_id,
            quantity_ordered, unit_cost and optional tax_rate
        shipping_cost: Added to the total (default 0)
        notes: Free text
        expected_delivery_date: date or ISO string
        po_number: Manual number; allocated from the tenant sequence when omitted

    Returns:
        The created PurchaseOrder with items

    Raises:
        NotFoundError: Supplier or location missing/inactive
        ValidationFailedError: Empty items, bad quantity/cost/rate, inactive products
        ConflictError: Manual PO number already used
    """
    lines = [PurchaseOrderLine.coerce(item) for item in items or []]
    if not lines:
        raise ValidationFailedError("Purchase order must contain at least one item")

    shipping = to_decimal(shipping_cost if shipping_cost is not None else ZERO, "shipping_cost")
    if shipping < ZERO:
        raise ValidationFailedError("Shipping cost cannot be negative", {"shipping_cost": decimal_str(shipping)})

    try:
        delivery_date = parse_iso_date(expected_delivery_date)
    except (TypeError, ValueError):
        raise ValidationFailedError("expected_delivery_date must be an ISO-8601 date")

    catalog_service.get_active_supplier(tenant_id, supplier_id)
    catalog_service.get_active_location(tenant_id, location_id)
    catalog_service.load_active_products(tenant_id, [line.product_id for line in lines])

    po_items, subtotal, tax_total = _prepare_items(tenant_id, lines)

    manual_number = po_number.strip() if po_number and po_number.strip() else None
    if manual_number and _po_number_taken(tenant_id, manual_number):
        raise ConflictError(
            f"Purchase order number {manual_number} already exists",
            {"po_number": manual_number},
        )

    with atomic("create_purchase_order", tenant_id=tenant_id, supplier_id=supplier_id):
        number = manual_number or next_document_number(
            tenant_id=tenant_id,
            document_type=DOCUMENT_PURCHASE_ORDER,
            prefix=current_app.config["PO_NUMBER_PREFIX"],
            pad=current_app.config["DOCUMENT_NUMBER_PAD"],
        )
        po = PurchaseOrder(
            tenant_id=tenant_id,
            po_number=number,
            supplier_id=supplier_id,
            location_id=location_id,
            status=STATUS_DRAFT,
            expected_delivery_date=delivery_date,
            notes=notes,
            subtotal=subtotal,
            tax_amount=tax_total,
            shipping_cost=shipping,
            total_amount=subtotal + shipping + tax_total,
            created_by_user_id=user_id,
            items=po_items,
        )
        db.session.add(po)
        try:
            db.session.flush()
        except IntegrityError:
            raise ConflictError(f"Purchase order number {number} already exists", {"po_number": number})

    current_app.logger.info(
        "Created purchase order %s for tenant %s (%d items, total %s)",
        po.po_number, tenant_id, len(po_items), decimal_str(po.total_amount),
    )
    return po


# =============================================================================
# Update
# =============================================================================

def update_purchase_order(
    *,
    po_id: int,
    tenant_id: int,
    user_id: int,
    notes=_UNSET,
    expected_delivery_date=_UNSET,
    shipping_cost=_UNSET,
) -> PurchaseOrder:
    """
    Edit the mutable header fields of a purchase order.

    Notes and expected delivery date are editable in any status. Shipping
    cost is editable only in DRAFT and silently ignored otherwise; changing
    it recomputes the total from the stored subtotal and tax (items are not
    re-priced). Passing values equal to the current ones is a no-op that
    returns the record.
    """
    po = get_purchase_order(po_id, tenant_id)

    changes = {}
    if notes is not _UNSET and notes != po.notes:
        changes["notes"] = notes
    if expected_delivery_date is not _UNSET:
        try:
            delivery_date = parse_iso_date(expected_delivery_date)
        except (TypeError, ValueError):
            raise ValidationFailedError("expected_delivery_date must be an ISO-8601 date")
        if delivery_date != po.expected_delivery_date:
            changes["expected_delivery_date"] = delivery_date
    if shipping_cost is not _UNSET and shipping_cost is not None:
        shipping = to_decimal(shipping_cost, "shipping_cost")
        if shipping < ZERO:
            raise ValidationFailedError("Shipping cost cannot be negative", {"shipping_cost": decimal_str(shipping)})
        if shipping != po.shipping_cost:
            if po.status == STATUS_DRAFT:
                changes["shipping_cost"] = shipping
            else:
                current_app.logger.info(
                    "Ignoring shipping cost change on purchase order %s in status %s", po.po_number, po.status
                )

    if not changes:
        return po

    with atomic("update_purchase_order", po_id=po_id, tenant_id=tenant_id):
        for key, value in changes.items():
            setattr(po, key, value)
        if "shipping_cost" in changes:
            po.total_amount = po.subtotal + po.tax_amount + po.shipping_cost

    current_app.logger.info("User %s updated purchase order %s: %s", user_id, po.po_number, sorted(changes))
    return po


# =============================================================================
# Status transitions
# =============================================================================

def _append_note(existing: str | None, line: str) -> str:
    return f"{existing}\n{line}" if existing else line


def _transition(
    *,
    po_id: int,
    tenant_id: int,
    user_id: int,
    allowed_from: frozenset,
    target: str,
    notes: str | None = None,
) -> PurchaseOrder:
    """
    Move a PO to ``target`` if its current status allows it.

    Already at target: returns the PO unchanged (idempotent).
    """
    with atomic("transition_purchase_order", po_id=po_id, target=target):
        po = lock_for_update(_po_query(tenant_id).filter(PurchaseOrder.id == po_id)).first()
        if po is None:
            raise NotFoundError(f"Purchase order {po_id} not found", {"purchase_order_id": po_id})
        if po.status == target:
            return po
        if po.status not in allowed_from:
            raise InvalidStateError(
                f"Cannot change purchase order {po.po_number} from {po.status} to {target}",
                {
                    "current_status": po.status,
                    "target_status": target,
                    "allowed_from": sorted(allowed_from),
                },
            )

        previous = po.status
        po.status = target
        audit_line = f"[{target} by User {user_id}]"
        if notes:
            audit_line = f"{audit_line}: {notes}"
        po.notes = _append_note(po.notes, audit_line)

    current_app.logger.info("Purchase order %s: %s -> %s by user %s", po.po_number, previous, target, user_id)
    return po


def transition_purchase_order(
    *,
    po_id: int,
    tenant_id: int,
    user_id: int,
    action: str,
    notes: str | None = None,
) -> PurchaseOrder:
    action_key = (action or "").strip().lower()
    if action_key not in TRANSITIONS:
        raise ValidationFailedError(
            f"Unknown purchase order action {action}",
            {"action": action, "allowed_actions": sorted(TRANSITIONS)},
        )
    allowed_from, target = TRANSITIONS[action_key]
    if action_key == "cancel" and not notes:
        notes = DEFAULT_CANCEL_REASON
    return _transition(
        po_id=po_id,
        tenant_id=tenant_id,
        user_id=user_id,
        allowed_from=allowed_from,
        target=target,
        notes=notes,
    )


def submit_purchase_order(*, po_id: int, tenant_id: int, user_id: int, notes: str | None = None) -> PurchaseOrder:
    return transition_purchase_order(po_id=po_id, tenant_id=tenant_id, user_id=user_id, action="submit", notes=notes)


def approve_purchase_order(*, po_id: int, tenant_id: int, user_id: int, notes: str | None = None) -> PurchaseOrder:
    return transition_purchase_order(po_id=po_id, tenant_id=tenant_id, user_id=user_id, action="approve", notes=notes)


def send_purchase_order(*, po_id: int, tenant_id: int, user_id: int, notes: str | None = None) -> PurchaseOrder:
    return transition_purchase_order(po_id=po_id, tenant_id=tenant_id, user_id=user_id, action="send", notes=notes)


def cancel_purchase_order(*, po_id: int, tenant_id: int, user_id: int, notes: str | None = None) -> PurchaseOrder:
    return transition_purchase_order(po_id=po_id, tenant_id=tenant_id, user_id=user_id, action="cancel", notes=notes)


def close_purchase_order(*, po_id: int, tenant_id: int, user_id: int, notes: str | None = None) -> PurchaseOrder:
    return transition_purchase_order(po_id=po_id, tenant_id=tenant_id, user_id=user_id, action="close", notes=notes)


# =============================================================================
# Receiving
# =============================================================================

def classify_receipt_status(total_ordered: Decimal, total_received: Decimal, current_status: str) -> str:
    """FULLY_RECEIVED within tolerance, PARTIALLY_RECEIVED once anything arrived."""
    if total_received + RECEIPT_TOLERANCE >= total_ordered:
        return STATUS_FULLY_RECEIVED
    if total_received > ZERO:
        return STATUS_PARTIALLY_RECEIVED
    return current_status


def _validate_receipt_lines(po: PurchaseOrder, receipts: list[ReceiptLine]) -> list[tuple[PurchaseOrderItem, ReceiptLine]]:
    items_by_id = {item.id: item for item in po.items}
    pending: dict[int, Decimal] = {}
    planned = []

    for receipt in receipts:
        item = items_by_id.get(receipt.po_item_id)
        if item is None:
            raise ValidationFailedError(
                f"PO item {receipt.po_item_id} does not belong to purchase order {po.po_number}",
                {"po_item_id": receipt.po_item_id},
            )

        product = item.product
        if not product.is_stock_tracked:
            current_app.logger.debug("Skipping receipt of non stock-tracked product %s", product.sku)
            continue

        quantity = receipt.quantity_received
        if quantity <= ZERO:
            continue

        outstanding = item.quantity_ordered - item.quantity_received - pending.get(item.id, ZERO)
        if quantity > outstanding:
            raise ValidationFailedError(
                f"Received quantity {decimal_str(quantity)} exceeds outstanding quantity "
                f"{decimal_str(outstanding)} for PO item {item.id}",
                {
                    "po_item_id": item.id,
                    "quantity_received": decimal_str(quantity),
                    "outstanding": decimal_str(outstanding),
                },
            )

        if product.requires_serial_number:
            serials = receipt.serials
            if not is_whole_number(quantity) or Decimal(len(serials)) != quantity:
                raise ValidationFailedError(
                    f"Product {product.sku} requires exactly {decimal_str(quantity)} serial numbers "
                    f"for PO item {item.id}; {len(serials)} supplied",
                    {
                        "po_item_id": item.id,
                        "quantity_received": decimal_str(quantity),
                        "serial_count": len(serials),
                    },
                )
            if len(set(serials)) != len(serials):
                raise ValidationFailedError(
                    f"Duplicate serial numbers supplied for PO item {item.id}",
                    {"po_item_id": item.id},
                )

        pending[item.id] = pending.get(item.id, ZERO) + quantity
        planned.append((item, receipt))

    return planned


def _increment_received(item_id: int, quantity: Decimal) -> None:
    """Guarded SQL increment; a concurrent receipt that already filled the line makes it fail."""
    stmt = (
        update(PurchaseOrderItem)
        .where(
            PurchaseOrderItem.id == item_id,
            PurchaseOrderItem.quantity_received + quantity <= PurchaseOrderItem.quantity_ordered,
        )
        .values(quantity_received=PurchaseOrderItem.quantity_received + quantity)
        .execution_options(synchronize_session=False)
    )
    if not db.session.execute(stmt).rowcount:
        raise ValidationFailedError(
            f"Received quantity {decimal_str(quantity)} exceeds outstanding quantity for PO item {item_id}",
            {"po_item_id": item_id, "quantity_received": decimal_str(quantity)},
        )


def _receipt_totals(po_id: int) -> tuple[Decimal, Decimal]:
    ordered, received = (
        db.session.query(
            func.coalesce(func.sum(PurchaseOrderItem.quantity_ordered), 0),
            func.coalesce(func.sum(PurchaseOrderItem.quantity_received), 0),
        )
        .filter(PurchaseOrderItem.purchase_order_id == po_id)
        .one()
    )
    return quantize_money(Decimal(str(ordered))), quantize_money(Decimal(str(received)))


def receive_purchase_order_items(
    *,
    po_id: int,
    tenant_id: int,
    user_id: int,
    lines: list,
) -> ReceiveResult:
    """
    Receive stock against a SENT or PARTIALLY_RECEIVED purchase order.

    Args:
        po_id: Purchase order
        tenant_id: Owning tenant
        user_id: Receiving user (stamped on ledger rows)
        lines: ReceiptLine objects or dicts with po_item_id,
            quantity_received and optional lot_number, serial_number,
            serial_numbers, expiry_date, notes

    Returns:
        ReceiveResult; when every line was skipped (zero quantities,
        non stock-tracked products) success is reported with the unchanged
        status and nothing is written.

    Raises:
        NotFoundError: PO absent or in another tenant
        InvalidStateError: PO not receivable
        ValidationFailedError: Unknown item, over-receipt, serial count mismatch
        TransientInfraError: Transaction timed out under load
    """
    receipts = [ReceiptLine.coerce(line) for line in lines or []]
    if not receipts:
        raise ValidationFailedError("At least one receipt line is required")

    po = get_purchase_order(po_id, tenant_id)
    if po.status not in RECEIVABLE_STATUSES:
        raise InvalidStateError(
            f"Purchase order {po.po_number} cannot receive items in status {po.status}",
            {"status": po.status, "receivable_statuses": sorted(RECEIVABLE_STATUSES)},
        )

    planned = _validate_receipt_lines(po, receipts)
    if not planned:
        return ReceiveResult(success=True, updated_status=po.status)

    location_id = po.location_id
    touched_products = sorted({item.product_id for item, _ in planned})

    with atomic(
        "receive_purchase_order_items",
        timeout_ms=current_app.config.get("RECEIVE_TRANSACTION_TIMEOUT_MS"),
        po_id=po_id,
        tenant_id=tenant_id,
    ):
        locked = (
            lock_for_update(_po_query(tenant_id).filter(PurchaseOrder.id == po_id))
            .populate_existing()
            .first()
        )
        if locked is None:
            raise NotFoundError(f"Purchase order {po_id} not found", {"purchase_order_id": po_id})
        if locked.status not in RECEIVABLE_STATUSES:
            raise InvalidStateError(
                f"Purchase order {locked.po_number} cannot receive items in status {locked.status}",
                {"status": locked.status},
            )

        entries = []
        for item, receipt in planned:
            quantity = receipt.quantity_received
            inventory_service.update_inventory_item_quantity(
                tenant_id=tenant_id,
                product_id=item.product_id,
                location_id=location_id,
                delta=quantity,
            )

            common = dict(
                tenant_id=tenant_id,
                product_id=item.product_id,
                location_id=location_id,
                transaction_type=inventory_service.TX_PURCHASE_RECEIPT,
                user_id=user_id,
                unit_cost=item.unit_cost,
                purchase_order_id=po_id,
                purchase_order_item_id=item.id,
                lot_number=receipt.lot_number or item.lot_number,
                expiry_date=receipt.expiry_date,
                notes=receipt.notes or f"Received against {locked.po_number}",
            )
            if item.product.requires_serial_number:
                for serial in receipt.serials:
                    entries.append(inventory_service.build_ledger_entry(
                        quantity_change=ONE, serial_number=serial, **common
                    ))
            else:
                entries.append(inventory_service.build_ledger_entry(
                    quantity_change=quantity, serial_number=receipt.serial_number, **common
                ))

            _increment_received(item.id, quantity)

        inventory_service.record_ledger_entries(entries)

        total_ordered, total_received = _receipt_totals(po_id)
        new_status = classify_receipt_status(total_ordered, total_received, locked.status)
        if new_status != locked.status:
            locked.status = new_status
        updated_status = locked.status

    current_app.logger.info(
        "Received %d lines (%d ledger rows) on purchase order %s; status %s",
        len(planned), len(entries), po_id, updated_status,
    )
    inventory_service.publish_stock_levels(tenant_id, location_id, touched_products)

    return ReceiveResult(
        success=True,
        updated_status=updated_status,
        received_lines=len(planned),
        ledger_entries=len(entries),
    )

