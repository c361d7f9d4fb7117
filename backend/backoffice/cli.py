# Overview: Flask CLI command groups for bootstrap and inspection.

# backend/backoffice/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask system seed-demo [--tenant-code DEMO]
#   Create a demo tenant with one location, one supplier and a few products.
#
# Inventory inspection:
# - python -m flask inventory check [--tenant-id 1]
#   Compare every stock aggregate with the sum of its ledger rows.

from decimal import Decimal

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Location, Product, Supplier, Tenant
from .services import inventory_service


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("OK  Database reset complete")


DEMO_PRODUCTS = [
    # sku, name, base_price, stock tracked
    ("WIDGET-1", "Widget", "10.00", True),
    ("GADGET-1", "Gadget", "24.50", True),
    ("GIFTWRAP", "Gift wrap service", "2.00", False),
]


@system_group.command('seed-demo')
@click.option('--tenant-code', default='DEMO', show_default=True)
@with_appcontext
def seed_demo(tenant_code):
    """Create a demo tenant with a location, a supplier and products (idempotent)."""
    tenant = db.session.query(Tenant).filter_by(code=tenant_code).first()
    if tenant:
        click.echo(f"SKIP  Tenant {tenant_code} already exists (id={tenant.id})")
        return

    tenant = Tenant(name=f"{tenant_code.title()} Retail", code=tenant_code)
    db.session.add(tenant)
    db.session.flush()

    location = Location(tenant_id=tenant.id, name="Main Store", code="MAIN")
    supplier = Supplier(tenant_id=tenant.id, name="Acme Wholesale", contact_email="orders@acme.example")
    db.session.add_all([location, supplier])

    for sku, name, price, tracked in DEMO_PRODUCTS:
        db.session.add(Product(
            tenant_id=tenant.id,
            sku=sku,
            name=name,
            base_price=Decimal(price),
            is_stock_tracked=tracked,
        ))

    db.session.commit()
    click.echo(f"OK  Tenant {tenant_code} id={tenant.id}, location id={location.id}, supplier id={supplier.id}")


@click.group('inventory')
def inventory_group():
    """Inventory inspection commands."""


@inventory_group.command('check')
@click.option('--tenant-id', type=int, default=None, help='Limit to one tenant')
@with_appcontext
def check_inventory(tenant_id):
    """Report stock aggregates that disagree with their ledger."""
    mismatches = inventory_service.find_ledger_mismatches(tenant_id)
    if not mismatches:
        click.echo("OK  Every stock balance matches its ledger")
        return

    click.echo(f"WARN  {len(mismatches)} mismatched balance(s):")
    for m in mismatches:
        click.echo(
            f"  tenant={m['tenant_id']} product={m['product_id']} location={m['location_id']} "
            f"ledger={m['ledger_total']} on_hand={m['quantity_on_hand']}"
        )
    raise SystemExit(1)


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(inventory_group)
