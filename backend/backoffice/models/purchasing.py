from __future__ import annotations

from ..extensions import db
from backoffice.money import decimal_str
from backoffice.time_utils import to_iso_date, to_utc_z


class PurchaseOrder(db.Model):
    """
    Purchase order to a supplier for delivery at one location.

    LIFECYCLE:
    DRAFT -> PENDING_APPROVAL -> APPROVED -> SENT
    SENT -> PARTIALLY_RECEIVED <-> FULLY_RECEIVED (driven by receiving)
    SENT / PARTIALLY_RECEIVED -> CLOSED ("close short")
    DRAFT .. PARTIALLY_RECEIVED -> CANCELLED

    INVARIANT: total_amount == subtotal + tax_amount + shipping_cost.
    Never hard-deleted.
    """
    __tablename__ = "purchase_orders"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "po_number", name="uq_purchase_orders_tenant_number"),
        db.Index("ix_purchase_orders_tenant_status_created", "tenant_id", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    po_number = db.Column(db.String(64), nullable=False)

    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=False, index=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)

    status = db.Column(db.String(32), nullable=False, default="DRAFT", index=True)

    order_date = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    expected_delivery_date = db.Column(db.Date, nullable=True)
    notes = db.Column(db.Text, nullable=True)

    subtotal = db.Column(db.Numeric(18, 4), nullable=False, default=0)
    tax_amount = db.Column(db.Numeric(18, 4), nullable=False, default=0)
    shipping_cost = db.Column(db.Numeric(18, 4), nullable=False, default=0)
    total_amount = db.Column(db.Numeric(18, 4), nullable=False, default=0)

    created_by_user_id = db.Column(db.Integer, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    supplier = db.relationship("Supplier", backref=db.backref("purchase_orders", lazy=True))
    location = db.relationship("Location", backref=db.backref("purchase_orders", lazy=True))
    items = db.relationship(
        "PurchaseOrderItem",
        backref="purchase_order",
        lazy=True,
        order_by="PurchaseOrderItem.id",
        cascade="all, delete-orphan",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "po_number": self.po_number,
            "supplier_id": self.supplier_id,
            "supplier": self.supplier.to_dict() if self.supplier else None,
            "location_id": self.location_id,
            "location": self.location.to_dict() if self.location else None,
            "status": self.status,
            "order_date": to_utc_z(self.order_date),
            "expected_delivery_date": to_iso_date(self.expected_delivery_date),
            "notes": self.notes,
            "subtotal": decimal_str(self.subtotal),
            "tax_amount": decimal_str(self.tax_amount),
            "shipping_cost": decimal_str(self.shipping_cost),
            "total_amount": decimal_str(self.total_amount),
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class PurchaseOrderItem(db.Model):
    """
    One ordered product on a purchase order.

    INVARIANT: 0 <= quantity_received <= quantity_ordered, and
    quantity_received never decreases.
    """
    __tablename__ = "purchase_order_items"
    __table_args__ = (
        db.CheckConstraint("quantity_ordered > 0", name="ck_po_items_qty_ordered_positive"),
        db.CheckConstraint("quantity_received >= 0", name="ck_po_items_qty_received_nonneg"),
        db.CheckConstraint("quantity_received <= quantity_ordered", name="ck_po_items_qty_received_bounded"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    purchase_order_id = db.Column(db.Integer, db.ForeignKey("purchase_orders.id"), nullable=False, index=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    description = db.Column(db.String(255), nullable=True)
    quantity_ordered = db.Column(db.Numeric(18, 4), nullable=False)
    quantity_received = db.Column(db.Numeric(18, 4), nullable=False, default=0)

    unit_cost = db.Column(db.Numeric(18, 4), nullable=False)
    tax_rate = db.Column(db.Numeric(9, 6), nullable=False, default=0)
    tax_amount = db.Column(db.Numeric(18, 4), nullable=False, default=0)
    line_total = db.Column(db.Numeric(18, 4), nullable=False)

    lot_number = db.Column(db.String(128), nullable=True)
    serial_number = db.Column(db.String(128), nullable=True)

    product = db.relationship("Product")

    @property
    def quantity_outstanding(self):
        return self.quantity_ordered - self.quantity_received

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "purchase_order_id": self.purchase_order_id,
            "product_id": self.product_id,
            "product": self.product.snapshot() if self.product else None,
            "description": self.description,
            "quantity_ordered": decimal_str(self.quantity_ordered),
            "quantity_received": decimal_str(self.quantity_received),
            "quantity_outstanding": decimal_str(self.quantity_outstanding),
            "unit_cost": decimal_str(self.unit_cost),
            "tax_rate": decimal_str(self.tax_rate),
            "tax_amount": decimal_str(self.tax_amount),
            "line_total": decimal_str(self.line_total),
            "lot_number": self.lot_number,
            "serial_number": self.serial_number,
        }
