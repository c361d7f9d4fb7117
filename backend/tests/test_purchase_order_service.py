# Overview: Pytest coverage for purchase order creation, lifecycle and receiving.

"""
Purchase Order Engine Tests

Covers:
- Totals, numbering and validation on create
- Header edits (shipping only while DRAFT)
- Status machine incl. idempotent transitions and audit note lines
- Receiving: full/partial, over-receipt, serial tracking, skipped lines,
  ledger rows and stock aggregates
"""

from decimal import Decimal

import pytest

from backoffice.errors import ConflictError, InvalidStateError, NotFoundError, ValidationFailedError
from backoffice.events import STOCK_UPDATE
from backoffice.models import InventoryTransaction, PurchaseOrder
from backoffice.services import inventory_service
from backoffice.services import purchase_order_service as po_service
from backoffice.services.purchase_order_service import (
    STATUS_APPROVED,
    STATUS_CANCELLED,
    STATUS_CLOSED,
    STATUS_DRAFT,
    STATUS_FULLY_RECEIVED,
    STATUS_PARTIALLY_RECEIVED,
    STATUS_PENDING_APPROVAL,
    STATUS_SENT,
)

from conftest import USER_ID, make_product


def _create(tenant, supplier, location, items, **kwargs):
    return po_service.create_purchase_order(
        tenant_id=tenant.id,
        user_id=USER_ID,
        supplier_id=supplier.id,
        location_id=location.id,
        items=items,
        **kwargs,
    )


def _send(po, tenant):
    for action in ("submit", "approve", "send"):
        po = po_service.transition_purchase_order(po_id=po.id, tenant_id=tenant.id, user_id=USER_ID, action=action)
    return po


def _receive(po, tenant, lines):
    return po_service.receive_purchase_order_items(po_id=po.id, tenant_id=tenant.id, user_id=USER_ID, lines=lines)


@pytest.fixture
def sent_po(db_session, tenant, supplier, location, product):
    """SENT PO: 10 x product @ 5.00."""
    po = _create(tenant, supplier, location, [{"product_id": product.id, "quantity_ordered": 10, "unit_cost": "5.00"}])
    return _send(po, tenant)


class TestCreatePurchaseOrder:
    def test_totals_and_number(self, db_session, tenant, supplier, location, product):
        po = _create(
            tenant, supplier, location,
            [
                {"product_id": product.id, "quantity_ordered": 10, "unit_cost": "5.00", "tax_rate": "0.1"},
                {"product_id": product.id, "quantity_ordered": "2.5", "unit_cost": "4.00"},
            ],
            shipping_cost="7.50",
        )

        assert po.po_number == "PO-000001"
        assert po.status == STATUS_DRAFT
        assert po.subtotal == Decimal("60.00")
        assert po.tax_amount == Decimal("5.00")
        assert po.shipping_cost == Decimal("7.50")
        assert po.total_amount == Decimal("72.50")
        assert [item.line_total for item in po.items] == [Decimal("50.00"), Decimal("10.00")]

    def test_sequential_numbers(self, db_session, tenant, supplier, location, product):
        items = [{"product_id": product.id, "quantity_ordered": 1, "unit_cost": 1}]
        first = _create(tenant, supplier, location, items)
        second = _create(tenant, supplier, location, items)

        assert (first.po_number, second.po_number) == ("PO-000001", "PO-000002")

    def test_manual_number_must_be_unique(self, db_session, tenant, supplier, location, product):
        items = [{"product_id": product.id, "quantity_ordered": 1, "unit_cost": 1}]
        _create(tenant, supplier, location, items, po_number="EXT-42")

        with pytest.raises(ConflictError):
            _create(tenant, supplier, location, items, po_number="EXT-42")

    def test_empty_items_rejected(self, db_session, tenant, supplier, location):
        with pytest.raises(ValidationFailedError):
            _create(tenant, supplier, location, [])

    @pytest.mark.parametrize("line", [
        {"quantity_ordered": 0, "unit_cost": 1},
        {"quantity_ordered": 1, "unit_cost": -1},
        {"quantity_ordered": 1, "unit_cost": 1, "tax_rate": -0.1},
    ])
    def test_invalid_line_rejected(self, db_session, tenant, supplier, location, product, line):
        with pytest.raises(ValidationFailedError):
            _create(tenant, supplier, location, [{"product_id": product.id, **line}])

    def test_negative_shipping_rejected(self, db_session, tenant, supplier, location, product):
        with pytest.raises(ValidationFailedError):
            _create(
                tenant, supplier, location,
                [{"product_id": product.id, "quantity_ordered": 1, "unit_cost": 1}],
                shipping_cost=-1,
            )

    def test_inactive_products_all_named(self, db_session, tenant, supplier, location, product):
        retired = make_product(db_session, tenant, "OLD-1", is_active=False)

        with pytest.raises(ValidationFailedError) as exc:
            _create(
                tenant, supplier, location,
                [
                    {"product_id": retired.id, "quantity_ordered": 1, "unit_cost": 1},
                    {"product_id": 99999, "quantity_ordered": 1, "unit_cost": 1},
                ],
            )

        assert exc.value.details["missing_product_ids"] == sorted([retired.id, 99999])
        assert db_session.query(PurchaseOrder).count() == 0

    def test_foreign_supplier_not_found(self, db_session, tenant, other_tenant, location, product):
        from backoffice.models import Supplier
        foreign = Supplier(tenant_id=other_tenant.id, name="Beta Supply")
        db_session.add(foreign)
        db_session.commit()

        with pytest.raises(NotFoundError):
            _create(tenant, foreign, location, [{"product_id": product.id, "quantity_ordered": 1, "unit_cost": 1}])


class TestReadPurchaseOrders:
    def test_get_is_tenant_scoped(self, db_session, tenant, other_tenant, sent_po):
        assert po_service.get_purchase_order(sent_po.id, tenant.id).id == sent_po.id
        with pytest.raises(NotFoundError):
            po_service.get_purchase_order(sent_po.id, other_tenant.id)

    def test_list_filters_and_counts(self, db_session, tenant, supplier, location, product, sent_po):
        _create(tenant, supplier, location, [{"product_id": product.id, "quantity_ordered": 1, "unit_cost": 1}])

        rows, total = po_service.list_purchase_orders(tenant_id=tenant.id)
        assert total == 2
        assert rows[0].po_number == "PO-000002"

        rows, total = po_service.list_purchase_orders(tenant_id=tenant.id, status=STATUS_SENT)
        assert total == 1
        assert rows[0].id == sent_po.id

    def test_list_unknown_status_rejected(self, db_session, tenant):
        with pytest.raises(ValidationFailedError):
            po_service.list_purchase_orders(tenant_id=tenant.id, status="LOST")


class TestUpdatePurchaseOrder:
    def test_shipping_recomputes_total_in_draft(self, db_session, tenant, supplier, location, product):
        po = _create(tenant, supplier, location, [{"product_id": product.id, "quantity_ordered": 2, "unit_cost": 5}])

        po = po_service.update_purchase_order(po_id=po.id, tenant_id=tenant.id, user_id=USER_ID, shipping_cost="3")

        assert po.total_amount == Decimal("13")

    def test_shipping_ignored_after_draft(self, db_session, tenant, sent_po):
        version = sent_po.version_id
        po = po_service.update_purchase_order(po_id=sent_po.id, tenant_id=tenant.id, user_id=USER_ID, shipping_cost="3")

        assert po.shipping_cost == Decimal("0")
        assert po.total_amount == Decimal("50")
        assert po.version_id == version

    def test_other_fields_applied_when_shipping_ignored(self, db_session, tenant, sent_po):
        po = po_service.update_purchase_order(
            po_id=sent_po.id, tenant_id=tenant.id, user_id=USER_ID, notes="call supplier", shipping_cost="9"
        )

        assert po.notes == "call supplier"
        assert po.shipping_cost == Decimal("0")
        assert po.total_amount == Decimal("50")

    def test_notes_editable_in_any_status(self, db_session, tenant, sent_po):
        po = po_service.update_purchase_order(
            po_id=sent_po.id, tenant_id=tenant.id, user_id=USER_ID, notes="Call before delivery"
        )
        assert po.notes == "Call before delivery"

    def test_no_op_returns_record(self, db_session, tenant, sent_po):
        version = sent_po.version_id
        po = po_service.update_purchase_order(po_id=sent_po.id, tenant_id=tenant.id, user_id=USER_ID)
        assert po.version_id == version


class TestStatusTransitions:
    def test_happy_path_appends_audit_notes(self, db_session, tenant, supplier, location, product):
        po = _create(tenant, supplier, location, [{"product_id": product.id, "quantity_ordered": 1, "unit_cost": 1}])

        po = po_service.submit_purchase_order(po_id=po.id, tenant_id=tenant.id, user_id=USER_ID, notes="please")
        assert po.status == STATUS_PENDING_APPROVAL
        po = po_service.approve_purchase_order(po_id=po.id, tenant_id=tenant.id, user_id=USER_ID)
        assert po.status == STATUS_APPROVED
        po = po_service.send_purchase_order(po_id=po.id, tenant_id=tenant.id, user_id=USER_ID)
        assert po.status == STATUS_SENT

        assert po.notes.splitlines() == [
            f"[{STATUS_PENDING_APPROVAL} by User {USER_ID}]: please",
            f"[{STATUS_APPROVED} by User {USER_ID}]",
            f"[{STATUS_SENT} by User {USER_ID}]",
        ]

    def test_approve_directly_from_draft(self, db_session, tenant, supplier, location, product):
        po = _create(tenant, supplier, location, [{"product_id": product.id, "quantity_ordered": 1, "unit_cost": 1}])
        po = po_service.approve_purchase_order(po_id=po.id, tenant_id=tenant.id, user_id=USER_ID)
        assert po.status == STATUS_APPROVED

    def test_repeat_transition_is_idempotent(self, db_session, tenant, sent_po):
        notes_before = sent_po.notes

        po = po_service.send_purchase_order(po_id=sent_po.id, tenant_id=tenant.id, user_id=USER_ID)

        assert po.status == STATUS_SENT
        assert po.notes == notes_before

    def test_illegal_transition(self, db_session, tenant, supplier, location, product):
        po = _create(tenant, supplier, location, [{"product_id": product.id, "quantity_ordered": 1, "unit_cost": 1}])

        with pytest.raises(InvalidStateError) as exc:
            po_service.send_purchase_order(po_id=po.id, tenant_id=tenant.id, user_id=USER_ID)

        assert exc.value.details["current_status"] == STATUS_DRAFT

    def test_cancel_records_default_reason(self, db_session, tenant, sent_po):
        po = po_service.cancel_purchase_order(po_id=sent_po.id, tenant_id=tenant.id, user_id=USER_ID)

        assert po.status == STATUS_CANCELLED
        assert po.notes.endswith(f"[{STATUS_CANCELLED} by User {USER_ID}]: Cancelled by user")

    def test_cancelled_is_terminal(self, db_session, tenant, sent_po):
        po_service.cancel_purchase_order(po_id=sent_po.id, tenant_id=tenant.id, user_id=USER_ID)
        with pytest.raises(InvalidStateError):
            po_service.close_purchase_order(po_id=sent_po.id, tenant_id=tenant.id, user_id=USER_ID)

    def test_close_partially_received(self, db_session, tenant, sent_po):
        item = sent_po.items[0]
        _receive(sent_po, tenant, [{"po_item_id": item.id, "quantity_received": 4}])

        po = po_service.close_purchase_order(po_id=sent_po.id, tenant_id=tenant.id, user_id=USER_ID)
        assert po.status == STATUS_CLOSED

    def test_unknown_action(self, db_session, tenant, sent_po):
        with pytest.raises(ValidationFailedError):
            po_service.transition_purchase_order(
                po_id=sent_po.id, tenant_id=tenant.id, user_id=USER_ID, action="teleport"
            )

    def test_missing_po_not_found(self, db_session, tenant):
        with pytest.raises(NotFoundError):
            po_service.submit_purchase_order(po_id=424242, tenant_id=tenant.id, user_id=USER_ID)


class TestReceiving:
    def test_first_receipt_creates_stock_row(self, db_session, tenant, location, product, sent_po):
        """No stock row at the location yet: the receipt creates it."""
        assert inventory_service.get_inventory_item(tenant.id, product.id, location.id) is None

        _receive(sent_po, tenant, [{"po_item_id": sent_po.items[0].id, "quantity_received": 10}])

        stock = inventory_service.get_inventory_item(tenant.id, product.id, location.id, refresh=True)
        assert stock.quantity_on_hand == Decimal("10")
        assert stock.quantity_allocated == Decimal("0")
        assert stock.quantity_incoming == Decimal("0")

    def test_full_receipt(self, db_session, events, tenant, location, product, sent_po):
        """10 ordered, 10 received: FULLY_RECEIVED, +10 on hand, one ledger row."""
        item = sent_po.items[0]

        result = _receive(sent_po, tenant, [{"po_item_id": item.id, "quantity_received": 10}])

        assert result.success is True
        assert result.updated_status == STATUS_FULLY_RECEIVED
        assert result.ledger_entries == 1

        stock = inventory_service.get_inventory_item(tenant.id, product.id, location.id, refresh=True)
        assert stock.quantity_on_hand == Decimal("10")

        (row,) = db_session.query(InventoryTransaction).all()
        assert row.transaction_type == inventory_service.TX_PURCHASE_RECEIPT
        assert row.quantity_change == Decimal("10")
        assert row.unit_cost == Decimal("5")
        assert row.purchase_order_item_id == item.id

        assert any(b[2] == STOCK_UPDATE for b in events["broadcast"])
        assert events["invalidate"] == [(tenant.id, product.id)]

    def test_partial_then_over_receipt(self, db_session, tenant, location, product, sent_po):
        """4 of 10 received; a further 7 would exceed the 6 outstanding."""
        item_id = sent_po.items[0].id

        result = _receive(sent_po, tenant, [{"po_item_id": item_id, "quantity_received": 4}])
        assert result.updated_status == STATUS_PARTIALLY_RECEIVED

        with pytest.raises(ValidationFailedError) as exc:
            _receive(sent_po, tenant, [{"po_item_id": item_id, "quantity_received": 7}])

        assert exc.value.message == "Received quantity 7 exceeds outstanding quantity 6 for PO item %d" % item_id
        assert exc.value.details["outstanding"] == "6"

        stock = inventory_service.get_inventory_item(tenant.id, product.id, location.id, refresh=True)
        assert stock.quantity_on_hand == Decimal("4")

    def test_duplicate_lines_count_against_outstanding(self, db_session, tenant, sent_po):
        item_id = sent_po.items[0].id
        with pytest.raises(ValidationFailedError):
            _receive(sent_po, tenant, [
                {"po_item_id": item_id, "quantity_received": 6},
                {"po_item_id": item_id, "quantity_received": 6},
            ])
        assert db_session.query(InventoryTransaction).count() == 0

    def test_receiving_requires_sent_status(self, db_session, tenant, supplier, location, product):
        po = _create(tenant, supplier, location, [{"product_id": product.id, "quantity_ordered": 1, "unit_cost": 1}])
        with pytest.raises(InvalidStateError):
            _receive(po, tenant, [{"po_item_id": po.items[0].id, "quantity_received": 1}])

    def test_unknown_item_rejected(self, db_session, tenant, sent_po):
        with pytest.raises(ValidationFailedError):
            _receive(sent_po, tenant, [{"po_item_id": 99999, "quantity_received": 1}])

    def test_zero_quantity_lines_are_no_op(self, db_session, tenant, sent_po):
        result = _receive(sent_po, tenant, [{"po_item_id": sent_po.items[0].id, "quantity_received": 0}])

        assert result.success is True
        assert result.updated_status == STATUS_SENT
        assert result.received_lines == 0
        assert db_session.query(InventoryTransaction).count() == 0

    def test_non_stock_tracked_lines_skipped(self, db_session, tenant, supplier, location, service_product):
        po = _send(_create(
            tenant, supplier, location,
            [{"product_id": service_product.id, "quantity_ordered": 3, "unit_cost": 1}],
        ), tenant)

        result = _receive(po, tenant, [{"po_item_id": po.items[0].id, "quantity_received": 3}])

        assert result.updated_status == STATUS_SENT
        assert inventory_service.get_inventory_item(tenant.id, service_product.id, location.id) is None

    def test_serial_tracked_one_row_per_serial(self, db_session, tenant, supplier, location, serial_product):
        po = _send(_create(
            tenant, supplier, location,
            [{"product_id": serial_product.id, "quantity_ordered": 2, "unit_cost": 250}],
        ), tenant)

        result = _receive(po, tenant, [{
            "po_item_id": po.items[0].id,
            "quantity_received": 2,
            "serial_numbers": ["SN-1", "SN-2"],
        }])

        assert result.updated_status == STATUS_FULLY_RECEIVED
        rows = db_session.query(InventoryTransaction).order_by(InventoryTransaction.id).all()
        assert [(r.serial_number, r.quantity_change) for r in rows] == [
            ("SN-1", Decimal("1")),
            ("SN-2", Decimal("1")),
        ]

    @pytest.mark.parametrize("quantity,serials", [
        (2, ["SN-1"]),
        ("1.5", ["SN-1"]),
        (2, ["SN-1", "SN-1"]),
    ])
    def test_serial_count_must_match(self, db_session, tenant, supplier, location, serial_product, quantity, serials):
        po = _send(_create(
            tenant, supplier, location,
            [{"product_id": serial_product.id, "quantity_ordered": 2, "unit_cost": 250}],
        ), tenant)

        with pytest.raises(ValidationFailedError):
            _receive(po, tenant, [{"po_item_id": po.items[0].id, "quantity_received": quantity, "serial_numbers": serials}])

    def test_ledger_matches_aggregate_after_receipts(self, db_session, tenant, location, product, sent_po):
        item_id = sent_po.items[0].id
        _receive(sent_po, tenant, [{"po_item_id": item_id, "quantity_received": "2.5"}])
        _receive(sent_po, tenant, [{"po_item_id": item_id, "quantity_received": "7.5"}])

        assert inventory_service.get_ledger_balance(tenant.id, product.id, location.id) == Decimal("10")
        assert inventory_service.find_ledger_mismatches(tenant.id) == []
        po = po_service.get_purchase_order(sent_po.id, tenant.id)
        assert po.status == STATUS_FULLY_RECEIVED


class TestClassifyReceiptStatus:
    def test_tolerance(self):
        assert po_service.classify_receipt_status(Decimal("10"), Decimal("9.999995"), STATUS_SENT) == STATUS_FULLY_RECEIVED
        assert po_service.classify_receipt_status(Decimal("10"), Decimal("9.99"), STATUS_SENT) == STATUS_PARTIALLY_RECEIVED
        assert po_service.classify_receipt_status(Decimal("10"), Decimal("0"), STATUS_SENT) == STATUS_SENT
