# Overview: Pytest coverage for stock aggregates, the ledger and post-commit stock events.

"""
Inventory Ledger Tests

Covers:
- SQL-level on-hand increments, including first-time row creation
- Negative stock guard and the ALLOW_NEGATIVE_STOCK override
- Allocation reserve/release and double-release refusal
- Ledger balance vs aggregate consistency check
- STOCK_UPDATE / LOW_STOCK publication
"""

from decimal import Decimal

import pytest

from backoffice.errors import ConflictError, ValidationFailedError
from backoffice.events import LOW_STOCK, STOCK_UPDATE
from backoffice.models import InventoryTransaction
from backoffice.services import inventory_service

from conftest import set_stock


def _receive(db_session, tenant, product, location, quantity):
    """On-hand increment plus its ledger row, committed."""
    inventory_service.update_inventory_item_quantity(
        tenant_id=tenant.id, product_id=product.id, location_id=location.id, delta=Decimal(quantity)
    )
    inventory_service.record_ledger_entries([
        inventory_service.build_ledger_entry(
            tenant_id=tenant.id,
            product_id=product.id,
            location_id=location.id,
            transaction_type=inventory_service.TX_ADJUSTMENT,
            quantity_change=Decimal(quantity),
        )
    ])
    db_session.commit()


class TestUpdateInventoryItemQuantity:
    """On-hand deltas through SQL arithmetic."""

    def test_creates_row_on_first_movement(self, db_session, tenant, location, product):
        item = inventory_service.update_inventory_item_quantity(
            tenant_id=tenant.id, product_id=product.id, location_id=location.id, delta=Decimal("5")
        )
        db_session.commit()

        assert item.quantity_on_hand == Decimal("5")
        assert item.quantity_allocated == Decimal("0")

    def test_increments_existing_row(self, db_session, tenant, location, product):
        set_stock(db_session, tenant, product, location, on_hand=3)

        item = inventory_service.update_inventory_item_quantity(
            tenant_id=tenant.id, product_id=product.id, location_id=location.id, delta=Decimal("2.5")
        )
        db_session.commit()

        assert item.quantity_on_hand == Decimal("5.5")

    def test_zero_delta_rejected(self, db_session, tenant, location, product):
        with pytest.raises(ValidationFailedError):
            inventory_service.update_inventory_item_quantity(
                tenant_id=tenant.id, product_id=product.id, location_id=location.id, delta=Decimal("0")
            )

    def test_negative_result_rejected(self, db_session, tenant, location, product):
        set_stock(db_session, tenant, product, location, on_hand=2)

        with pytest.raises(ValidationFailedError) as exc:
            inventory_service.update_inventory_item_quantity(
                tenant_id=tenant.id, product_id=product.id, location_id=location.id, delta=Decimal("-3")
            )
        db_session.rollback()

        assert "negative stock" in exc.value.message
        item = inventory_service.get_inventory_item(tenant.id, product.id, location.id, refresh=True)
        assert item.quantity_on_hand == Decimal("2")

    def test_negative_allowed_by_config(self, db_session, config_override, tenant, location, product):
        config_override(ALLOW_NEGATIVE_STOCK=True)
        set_stock(db_session, tenant, product, location, on_hand=2)

        item = inventory_service.update_inventory_item_quantity(
            tenant_id=tenant.id, product_id=product.id, location_id=location.id, delta=Decimal("-3")
        )
        db_session.commit()

        assert item.quantity_on_hand == Decimal("-1")


class TestAllocation:
    def test_reserve_and_release(self, db_session, tenant, location, product):
        set_stock(db_session, tenant, product, location, on_hand=10)

        inventory_service.adjust_allocated_quantity(
            tenant_id=tenant.id, product_id=product.id, location_id=location.id, delta=Decimal("4")
        )
        db_session.commit()
        assert inventory_service.get_available_quantity(tenant.id, product.id, location.id) == Decimal("6")

        inventory_service.adjust_allocated_quantity(
            tenant_id=tenant.id, product_id=product.id, location_id=location.id, delta=Decimal("-4")
        )
        db_session.commit()
        assert inventory_service.get_available_quantity(tenant.id, product.id, location.id) == Decimal("10")

    def test_first_reservation_creates_row(self, db_session, tenant, location, product):
        item = inventory_service.adjust_allocated_quantity(
            tenant_id=tenant.id, product_id=product.id, location_id=location.id, delta=Decimal("5")
        )
        db_session.commit()

        assert item.quantity_allocated == Decimal("5")
        assert item.quantity_on_hand == Decimal("0")

    def test_double_release_refused(self, db_session, tenant, location, product):
        set_stock(db_session, tenant, product, location, on_hand=10, allocated=3)

        with pytest.raises(ConflictError):
            inventory_service.adjust_allocated_quantity(
                tenant_id=tenant.id, product_id=product.id, location_id=location.id, delta=Decimal("-5")
            )
        db_session.rollback()

    def test_available_is_zero_without_row(self, db_session, tenant, location, product):
        assert inventory_service.get_available_quantity(tenant.id, product.id, location.id) == Decimal("0")


class TestLedger:
    def test_unknown_transaction_type_rejected(self, db_session, tenant, location, product):
        with pytest.raises(ValidationFailedError):
            inventory_service.build_ledger_entry(
                tenant_id=tenant.id,
                product_id=product.id,
                location_id=location.id,
                transaction_type="TELEPORT",
                quantity_change=Decimal("1"),
            )

    def test_balance_matches_aggregate(self, db_session, tenant, location, product):
        _receive(db_session, tenant, product, location, "7")
        _receive(db_session, tenant, product, location, "3")

        assert inventory_service.get_ledger_balance(tenant.id, product.id, location.id) == Decimal("10")
        assert db_session.query(InventoryTransaction).count() == 2
        assert inventory_service.find_ledger_mismatches(tenant.id) == []

    def test_mismatch_reported(self, db_session, tenant, location, product):
        """An aggregate seeded without ledger rows is flagged."""
        set_stock(db_session, tenant, product, location, on_hand=4)

        mismatches = inventory_service.find_ledger_mismatches(tenant.id)

        assert mismatches == [{
            "tenant_id": tenant.id,
            "product_id": product.id,
            "location_id": location.id,
            "ledger_total": "0",
            "quantity_on_hand": "4",
        }]


class TestPublishStockLevels:
    def test_broadcasts_and_invalidates(self, db_session, events, tenant, location, product):
        set_stock(db_session, tenant, product, location, on_hand=8)

        inventory_service.publish_stock_levels(tenant.id, location.id, [product.id])

        assert events["invalidate"] == [(tenant.id, product.id)]
        (tenant_id, location_id, event_type, payload), = events["broadcast"]
        assert (tenant_id, location_id, event_type) == (tenant.id, location.id, STOCK_UPDATE)
        assert payload["quantity_on_hand"] == "8"
        assert events["notify"] == []

    def test_low_stock_notification(self, db_session, events, tenant, location, product):
        set_stock(db_session, tenant, product, location, on_hand=3, reorder_point=5)

        inventory_service.publish_stock_levels(tenant.id, location.id, [product.id], check_low_stock=True)

        (tenant_id, event_type, payload), = events["notify"]
        assert event_type == LOW_STOCK
        assert payload["sku"] == product.sku
        assert payload["quantity_available"] == "3"

    def test_zero_reorder_point_never_notifies(self, db_session, events, tenant, location, product):
        set_stock(db_session, tenant, product, location, on_hand=0, reorder_point=0)

        inventory_service.publish_stock_levels(tenant.id, location.id, [product.id], check_low_stock=True)

        assert events["notify"] == []
