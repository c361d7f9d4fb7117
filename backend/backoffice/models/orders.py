from __future__ import annotations

from ..extensions import db
from backoffice.money import decimal_str
from backoffice.time_utils import to_utc_z


class Order(db.Model):
    """
    Sales order. This core creates POS orders only.

    - COMPLETED: stock deducted, SALE ledger rows written, payments taken
    - SUSPENDED: parked cart; stock allocated (reserved) but not deducted
    - RESUMING: transient claim marker while a recall is in flight

    Suspended orders are hard-deleted when recalled; items and payments
    cascade.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "order_number", name="uq_orders_tenant_number"),
        db.Index("ix_orders_tenant_location_status", "tenant_id", "location_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    order_number = db.Column(db.String(64), nullable=False)

    customer_id = db.Column(db.Integer, nullable=True, index=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False)
    pos_terminal_id = db.Column(db.String(64), nullable=True)
    pos_session_id = db.Column(db.Integer, db.ForeignKey("pos_sessions.id"), nullable=True, index=True)
    user_id = db.Column(db.Integer, nullable=False)

    order_type = db.Column(db.String(16), nullable=False, default="POS")
    status = db.Column(db.String(16), nullable=False, index=True)
    order_date = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    subtotal = db.Column(db.Numeric(18, 4), nullable=False, default=0)
    discount_amount = db.Column(db.Numeric(18, 4), nullable=False, default=0)
    tax_amount = db.Column(db.Numeric(18, 4), nullable=False, default=0)
    shipping_cost = db.Column(db.Numeric(18, 4), nullable=False, default=0)
    total_amount = db.Column(db.Numeric(18, 4), nullable=False, default=0)
    currency_code = db.Column(db.String(3), nullable=False, default="USD")

    discount_code = db.Column(db.String(64), nullable=True)
    shipping_address = db.Column(db.JSON, nullable=True)
    notes = db.Column(db.Text, nullable=True)
    is_backordered = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    items = db.relationship(
        "OrderItem",
        backref="order",
        lazy=True,
        order_by="OrderItem.id",
        cascade="all, delete-orphan",
    )
    payments = db.relationship(
        "Payment",
        backref="order",
        lazy=True,
        order_by="Payment.id",
        cascade="all, delete-orphan",
    )

    def to_dict(self, include_lines: bool = True) -> dict:
        data = {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "order_number": self.order_number,
            "customer_id": self.customer_id,
            "location_id": self.location_id,
            "pos_terminal_id": self.pos_terminal_id,
            "pos_session_id": self.pos_session_id,
            "user_id": self.user_id,
            "order_type": self.order_type,
            "status": self.status,
            "order_date": to_utc_z(self.order_date),
            "subtotal": decimal_str(self.subtotal),
            "discount_amount": decimal_str(self.discount_amount),
            "tax_amount": decimal_str(self.tax_amount),
            "shipping_cost": decimal_str(self.shipping_cost),
            "total_amount": decimal_str(self.total_amount),
            "currency_code": self.currency_code,
            "discount_code": self.discount_code,
            "shipping_address": self.shipping_address,
            "notes": self.notes,
            "is_backordered": self.is_backordered,
            "created_at": to_utc_z(self.created_at),
        }
        if include_lines:
            data["items"] = [item.to_dict() for item in self.items]
            data["payments"] = [payment.to_dict() for payment in self.payments]
        return data


class OrderItem(db.Model):
    __tablename__ = "order_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    # Catalog data at time of sale
    product_snapshot = db.Column(db.JSON, nullable=True)

    quantity = db.Column(db.Numeric(18, 4), nullable=False)
    original_unit_price = db.Column(db.Numeric(18, 4), nullable=False)
    discount_amount = db.Column(db.Numeric(18, 4), nullable=False, default=0)  # per unit
    unit_price = db.Column(db.Numeric(18, 4), nullable=False)  # after discount
    tax_amount = db.Column(db.Numeric(18, 4), nullable=False, default=0)
    line_total = db.Column(db.Numeric(18, 4), nullable=False)

    lot_number = db.Column(db.String(128), nullable=True)
    serial_number = db.Column(db.String(128), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "product_id": self.product_id,
            "product": self.product_snapshot,
            "quantity": decimal_str(self.quantity),
            "original_unit_price": decimal_str(self.original_unit_price),
            "discount_amount": decimal_str(self.discount_amount),
            "unit_price": decimal_str(self.unit_price),
            "tax_amount": decimal_str(self.tax_amount),
            "line_total": decimal_str(self.line_total),
            "lot_number": self.lot_number,
            "serial_number": self.serial_number,
            "notes": self.notes,
        }


class Payment(db.Model):
    __tablename__ = "payments"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False)

    payment_method = db.Column(db.String(32), nullable=False)  # CASH, CREDIT_CARD, ...
    amount = db.Column(db.Numeric(18, 4), nullable=False)
    currency_code = db.Column(db.String(3), nullable=False, default="USD")
    status = db.Column(db.String(16), nullable=False, default="COMPLETED")
    transaction_reference = db.Column(db.String(255), nullable=True)

    processed_by_user_id = db.Column(db.Integer, nullable=True)
    payment_date = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "payment_method": self.payment_method,
            "amount": decimal_str(self.amount),
            "currency_code": self.currency_code,
            "status": self.status,
            "transaction_reference": self.transaction_reference,
            "processed_by_user_id": self.processed_by_user_id,
            "payment_date": to_utc_z(self.payment_date),
        }
