"""Initial back-office schema: tenancy, catalog, stock ledger, purchasing, POS

Revision ID: 20261018_initial
Revises:
Create Date: 2026-10-18 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261018_initial"
down_revision = None
branch_labels = None
depends_on = None


def _timestamp(name, nullable=False):
    return sa.Column(name, sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=nullable)


def _money(name, nullable=False, default=True):
    if default:
        return sa.Column(name, sa.Numeric(precision=18, scale=4), server_default="0", nullable=nullable)
    return sa.Column(name, sa.Numeric(precision=18, scale=4), nullable=nullable)


def upgrade():
    op.create_table(
        "tenants",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("code", sa.String(length=64), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("code"),
        sqlite_autoincrement=True,
    )

    op.create_table(
        "locations",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("code", sa.String(length=64), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        _timestamp("created_at"),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("tenant_id", "code", name="uq_locations_tenant_code"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_locations_tenant_id", "locations", ["tenant_id"], unique=False)

    op.create_table(
        "suppliers",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("contact_email", sa.String(length=255), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        _timestamp("created_at"),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_suppliers_tenant_id", "suppliers", ["tenant_id"], unique=False)

    op.create_table(
        "products",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("sku", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        _money("base_price"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("is_stock_tracked", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("requires_serial_number", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("requires_lot_tracking", sa.Boolean(), nullable=False, server_default=sa.false()),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("tenant_id", "sku", name="uq_products_tenant_sku"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_products_tenant_id", "products", ["tenant_id"], unique=False)
    op.create_index("ix_products_is_active", "products", ["is_active"], unique=False)

    op.create_table(
        "inventory_items",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("location_id", sa.Integer(), nullable=False),
        _money("quantity_on_hand"),
        _money("quantity_allocated"),
        _money("quantity_incoming"),
        _money("reorder_point", nullable=True, default=False),
        _timestamp("updated_at"),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"]),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.ForeignKeyConstraint(["location_id"], ["locations.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("tenant_id", "product_id", "location_id", name="uq_inventory_items_key"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_inventory_items_tenant_id", "inventory_items", ["tenant_id"], unique=False)
    op.create_index("ix_inventory_items_product_id", "inventory_items", ["product_id"], unique=False)
    op.create_index("ix_inventory_items_location_id", "inventory_items", ["location_id"], unique=False)

    op.create_table(
        "purchase_orders",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("po_number", sa.String(length=64), nullable=False),
        sa.Column("supplier_id", sa.Integer(), nullable=False),
        sa.Column("location_id", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="DRAFT"),
        _timestamp("order_date"),
        sa.Column("expected_delivery_date", sa.Date(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        _money("subtotal"),
        _money("tax_amount"),
        _money("shipping_cost"),
        _money("total_amount"),
        sa.Column("created_by_user_id", sa.Integer(), nullable=False),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default="1"),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"]),
        sa.ForeignKeyConstraint(["supplier_id"], ["suppliers.id"]),
        sa.ForeignKeyConstraint(["location_id"], ["locations.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("tenant_id", "po_number", name="uq_purchase_orders_tenant_number"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_purchase_orders_tenant_id", "purchase_orders", ["tenant_id"], unique=False)
    op.create_index("ix_purchase_orders_supplier_id", "purchase_orders", ["supplier_id"], unique=False)
    op.create_index("ix_purchase_orders_location_id", "purchase_orders", ["location_id"], unique=False)
    op.create_index("ix_purchase_orders_status", "purchase_orders", ["status"], unique=False)
    op.create_index(
        "ix_purchase_orders_tenant_status_created",
        "purchase_orders",
        ["tenant_id", "status", "created_at"],
        unique=False,
    )

    op.create_table(
        "purchase_order_items",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("purchase_order_id", sa.Integer(), nullable=False),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("description", sa.String(length=255), nullable=True),
        _money("quantity_ordered", default=False),
        _money("quantity_received"),
        _money("unit_cost", default=False),
        sa.Column("tax_rate", sa.Numeric(precision=9, scale=6), server_default="0", nullable=False),
        _money("tax_amount"),
        _money("line_total", default=False),
        sa.Column("lot_number", sa.String(length=128), nullable=True),
        sa.Column("serial_number", sa.String(length=128), nullable=True),
        sa.CheckConstraint("quantity_ordered > 0", name="ck_po_items_qty_ordered_positive"),
        sa.CheckConstraint("quantity_received >= 0", name="ck_po_items_qty_received_nonneg"),
        sa.CheckConstraint("quantity_received <= quantity_ordered", name="ck_po_items_qty_received_bounded"),
        sa.ForeignKeyConstraint(["purchase_order_id"], ["purchase_orders.id"]),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"]),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_purchase_order_items_purchase_order_id", "purchase_order_items", ["purchase_order_id"], unique=False)
    op.create_index("ix_purchase_order_items_tenant_id", "purchase_order_items", ["tenant_id"], unique=False)
    op.create_index("ix_purchase_order_items_product_id", "purchase_order_items", ["product_id"], unique=False)

    op.create_table(
        "inventory_transactions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("location_id", sa.Integer(), nullable=False),
        sa.Column("transaction_type", sa.String(length=32), nullable=False),
        _money("quantity_change", default=False),
        _money("unit_cost", nullable=True, default=False),
        sa.Column("purchase_order_id", sa.Integer(), nullable=True),
        sa.Column("purchase_order_item_id", sa.Integer(), nullable=True),
        sa.Column("order_id", sa.Integer(), nullable=True),
        sa.Column("order_item_id", sa.Integer(), nullable=True),
        sa.Column("lot_number", sa.String(length=128), nullable=True),
        sa.Column("serial_number", sa.String(length=128), nullable=True),
        sa.Column("expiry_date", sa.Date(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("user_id", sa.Integer(), nullable=True),
        _timestamp("occurred_at"),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"]),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.ForeignKeyConstraint(["location_id"], ["locations.id"]),
        sa.ForeignKeyConstraint(["purchase_order_id"], ["purchase_orders.id"]),
        sa.ForeignKeyConstraint(["purchase_order_item_id"], ["purchase_order_items.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_inventory_transactions_tenant_id", "inventory_transactions", ["tenant_id"], unique=False)
    op.create_index("ix_inventory_transactions_transaction_type", "inventory_transactions", ["transaction_type"], unique=False)
    op.create_index("ix_inventory_transactions_purchase_order_id", "inventory_transactions", ["purchase_order_id"], unique=False)
    op.create_index("ix_inventory_transactions_order_id", "inventory_transactions", ["order_id"], unique=False)
    op.create_index("ix_inventory_transactions_occurred_at", "inventory_transactions", ["occurred_at"], unique=False)
    op.create_index(
        "ix_invtx_tenant_product_location",
        "inventory_transactions",
        ["tenant_id", "product_id", "location_id"],
        unique=False,
    )

    op.create_table(
        "pos_sessions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("location_id", sa.Integer(), nullable=False),
        sa.Column("pos_terminal_id", sa.String(length=64), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="OPEN"),
        _money("starting_cash"),
        _money("ending_cash", nullable=True, default=False),
        _money("calculated_cash", nullable=True, default=False),
        _money("difference", nullable=True, default=False),
        _timestamp("start_time"),
        sa.Column("end_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reconciled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reconciled_by_user_id", sa.Integer(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default="1"),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"]),
        sa.ForeignKeyConstraint(["location_id"], ["locations.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_pos_sessions_tenant_id", "pos_sessions", ["tenant_id"], unique=False)
    op.create_index("ix_pos_sessions_location_id", "pos_sessions", ["location_id"], unique=False)
    op.create_index("ix_pos_sessions_user_id", "pos_sessions", ["user_id"], unique=False)
    op.create_index("ix_pos_sessions_status", "pos_sessions", ["status"], unique=False)
    op.create_index("ix_pos_sessions_start_time", "pos_sessions", ["start_time"], unique=False)
    op.create_index(
        "uq_pos_sessions_one_open",
        "pos_sessions",
        ["tenant_id", "user_id", "pos_terminal_id", "location_id"],
        unique=True,
        sqlite_where=sa.text("status = 'OPEN'"),
        postgresql_where=sa.text("status = 'OPEN'"),
    )

    op.create_table(
        "pos_session_transactions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("pos_session_id", sa.Integer(), nullable=False),
        sa.Column("transaction_type", sa.String(length=32), nullable=False),
        _money("amount", default=False),
        sa.Column("is_starting_float", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("related_order_id", sa.Integer(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("user_id", sa.Integer(), nullable=True),
        _timestamp("created_at"),
        sa.CheckConstraint("amount > 0", name="ck_pos_session_tx_amount_positive"),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"]),
        sa.ForeignKeyConstraint(["pos_session_id"], ["pos_sessions.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_pos_session_transactions_tenant_id", "pos_session_transactions", ["tenant_id"], unique=False)
    op.create_index("ix_pos_session_transactions_pos_session_id", "pos_session_transactions", ["pos_session_id"], unique=False)
    op.create_index("ix_pos_session_transactions_transaction_type", "pos_session_transactions", ["transaction_type"], unique=False)
    op.create_index("ix_pos_session_transactions_related_order_id", "pos_session_transactions", ["related_order_id"], unique=False)

    op.create_table(
        "orders",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("order_number", sa.String(length=64), nullable=False),
        sa.Column("customer_id", sa.Integer(), nullable=True),
        sa.Column("location_id", sa.Integer(), nullable=False),
        sa.Column("pos_terminal_id", sa.String(length=64), nullable=True),
        sa.Column("pos_session_id", sa.Integer(), nullable=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("order_type", sa.String(length=16), nullable=False, server_default="POS"),
        sa.Column("status", sa.String(length=16), nullable=False),
        _timestamp("order_date"),
        _money("subtotal"),
        _money("discount_amount"),
        _money("tax_amount"),
        _money("shipping_cost"),
        _money("total_amount"),
        sa.Column("currency_code", sa.String(length=3), nullable=False, server_default="USD"),
        sa.Column("discount_code", sa.String(length=64), nullable=True),
        sa.Column("shipping_address", sa.JSON(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("is_backordered", sa.Boolean(), nullable=False, server_default=sa.false()),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"]),
        sa.ForeignKeyConstraint(["location_id"], ["locations.id"]),
        sa.ForeignKeyConstraint(["pos_session_id"], ["pos_sessions.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("tenant_id", "order_number", name="uq_orders_tenant_number"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_orders_tenant_id", "orders", ["tenant_id"], unique=False)
    op.create_index("ix_orders_customer_id", "orders", ["customer_id"], unique=False)
    op.create_index("ix_orders_pos_session_id", "orders", ["pos_session_id"], unique=False)
    op.create_index("ix_orders_status", "orders", ["status"], unique=False)
    op.create_index("ix_orders_tenant_location_status", "orders", ["tenant_id", "location_id", "status"], unique=False)

    op.create_table(
        "order_items",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("order_id", sa.Integer(), nullable=False),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("product_snapshot", sa.JSON(), nullable=True),
        _money("quantity", default=False),
        _money("original_unit_price", default=False),
        _money("discount_amount"),
        _money("unit_price", default=False),
        _money("tax_amount"),
        _money("line_total", default=False),
        sa.Column("lot_number", sa.String(length=128), nullable=True),
        sa.Column("serial_number", sa.String(length=128), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(["order_id"], ["orders.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"]),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_order_items_order_id", "order_items", ["order_id"], unique=False)
    op.create_index("ix_order_items_product_id", "order_items", ["product_id"], unique=False)

    op.create_table(
        "payments",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("order_id", sa.Integer(), nullable=False),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("payment_method", sa.String(length=32), nullable=False),
        _money("amount", default=False),
        sa.Column("currency_code", sa.String(length=3), nullable=False, server_default="USD"),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="COMPLETED"),
        sa.Column("transaction_reference", sa.String(length=255), nullable=True),
        sa.Column("processed_by_user_id", sa.Integer(), nullable=True),
        _timestamp("payment_date"),
        sa.ForeignKeyConstraint(["order_id"], ["orders.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_payments_order_id", "payments", ["order_id"], unique=False)

    op.create_table(
        "document_sequences",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("document_type", sa.String(length=32), nullable=False),
        sa.Column("next_number", sa.Integer(), nullable=False, server_default="1"),
        _timestamp("updated_at"),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("tenant_id", "document_type", name="uq_doc_sequences_tenant_type"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_document_sequences_tenant_id", "document_sequences", ["tenant_id"], unique=False)
    op.create_index("ix_document_sequences_document_type", "document_sequences", ["document_type"], unique=False)

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("action", sa.String(length=64), nullable=False),
        sa.Column("entity_type", sa.String(length=64), nullable=False),
        sa.Column("entity_id", sa.String(length=64), nullable=True),
        sa.Column("details", sa.JSON(), nullable=True),
        _timestamp("created_at"),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_audit_logs_tenant_id", "audit_logs", ["tenant_id"], unique=False)
    op.create_index("ix_audit_logs_action", "audit_logs", ["action"], unique=False)
    op.create_index("ix_audit_logs_created_at", "audit_logs", ["created_at"], unique=False)
    op.create_index("ix_audit_logs_tenant_entity", "audit_logs", ["tenant_id", "entity_type", "entity_id"], unique=False)


def downgrade():
    for table in (
        "audit_logs",
        "document_sequences",
        "payments",
        "order_items",
        "orders",
        "pos_session_transactions",
        "pos_sessions",
        "inventory_transactions",
        "purchase_order_items",
        "purchase_orders",
        "inventory_items",
        "products",
        "suppliers",
        "locations",
        "tenants",
    ):
        op.drop_table(table)
