from __future__ import annotations

from ..extensions import db
from backoffice.money import decimal_str
from backoffice.time_utils import to_iso_date, to_utc_z


class Product(db.Model):
    """
    Sellable/stockable catalog item.

    Non stock-tracked products (services, gift wrap) are sold and ordered
    but never touch inventory rows or the ledger.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "sku", name="uq_products_tenant_sku"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)

    sku = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    base_price = db.Column(db.Numeric(18, 4), nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    is_stock_tracked = db.Column(db.Boolean, nullable=False, default=True)
    requires_serial_number = db.Column(db.Boolean, nullable=False, default=False)
    requires_lot_tracking = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "sku": self.sku,
            "name": self.name,
            "description": self.description,
            "base_price": decimal_str(self.base_price),
            "is_active": self.is_active,
            "is_stock_tracked": self.is_stock_tracked,
            "requires_serial_number": self.requires_serial_number,
            "requires_lot_tracking": self.requires_lot_tracking,
        }

    def snapshot(self) -> dict:
        """Frozen copy stored on order lines."""
        return {
            "id": self.id,
            "sku": self.sku,
            "name": self.name,
            "base_price": decimal_str(self.base_price),
        }


class InventoryItem(db.Model):
    """
    Aggregate stock balance per (tenant, product, location).

    Mutated only through SQL-level increments in inventory_service so
    concurrent writers never lose updates. quantity_on_hand must always
    equal the sum of ledger quantity_change for the same key.
    """
    __tablename__ = "inventory_items"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "product_id", "location_id", name="uq_inventory_items_key"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)

    quantity_on_hand = db.Column(db.Numeric(18, 4), nullable=False, default=0)
    quantity_allocated = db.Column(db.Numeric(18, 4), nullable=False, default=0)
    quantity_incoming = db.Column(db.Numeric(18, 4), nullable=False, default=0)
    reorder_point = db.Column(db.Numeric(18, 4), nullable=True)

    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    product = db.relationship("Product", backref=db.backref("inventory_items", lazy=True))

    @property
    def quantity_available(self):
        return self.quantity_on_hand - self.quantity_allocated

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "product_id": self.product_id,
            "location_id": self.location_id,
            "quantity_on_hand": decimal_str(self.quantity_on_hand),
            "quantity_allocated": decimal_str(self.quantity_allocated),
            "quantity_incoming": decimal_str(self.quantity_incoming),
            "quantity_available": decimal_str(self.quantity_available),
            "reorder_point": decimal_str(self.reorder_point),
            "updated_at": to_utc_z(self.updated_at),
        }


class InventoryTransaction(db.Model):
    """
    Append-only stock ledger. One row per atomic quantity change.

    Rows are never updated or deleted; corrections are new rows.
    """
    __tablename__ = "inventory_transactions"
    __table_args__ = (
        db.Index("ix_invtx_tenant_product_location", "tenant_id", "product_id", "location_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False)

    transaction_type = db.Column(db.String(32), nullable=False, index=True)  # PURCHASE_RECEIPT, SALE, ...
    quantity_change = db.Column(db.Numeric(18, 4), nullable=False)  # signed
    unit_cost = db.Column(db.Numeric(18, 4), nullable=True)

    purchase_order_id = db.Column(db.Integer, db.ForeignKey("purchase_orders.id"), nullable=True, index=True)
    purchase_order_item_id = db.Column(db.Integer, db.ForeignKey("purchase_order_items.id"), nullable=True)
    # Orders can be deleted (resumed suspensions), so no FK here
    order_id = db.Column(db.Integer, nullable=True, index=True)
    order_item_id = db.Column(db.Integer, nullable=True)

    lot_number = db.Column(db.String(128), nullable=True)
    serial_number = db.Column(db.String(128), nullable=True)
    expiry_date = db.Column(db.Date, nullable=True)

    notes = db.Column(db.Text, nullable=True)
    user_id = db.Column(db.Integer, nullable=True)
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "product_id": self.product_id,
            "location_id": self.location_id,
            "transaction_type": self.transaction_type,
            "quantity_change": decimal_str(self.quantity_change),
            "unit_cost": decimal_str(self.unit_cost),
            "purchase_order_id": self.purchase_order_id,
            "purchase_order_item_id": self.purchase_order_item_id,
            "order_id": self.order_id,
            "order_item_id": self.order_item_id,
            "lot_number": self.lot_number,
            "serial_number": self.serial_number,
            "expiry_date": to_iso_date(self.expiry_date),
            "notes": self.notes,
            "user_id": self.user_id,
            "occurred_at": to_utc_z(self.occurred_at),
        }
