"""
Pytest fixtures for back-office core tests.

Provides test database setup, tenant fixtures, a recording event channel
and the test client.
"""

from decimal import Decimal

import pytest

from backoffice import create_app
from backoffice.events import get_event_hub, logging_channels
from backoffice.extensions import db
from backoffice.models import InventoryItem, Location, Product, Supplier, Tenant


TEST_CONFIG = {
    'TESTING': True,
    'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
    'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    'ALLOW_NEGATIVE_STOCK': False,
    'ALLOW_BACKORDER': False,
    'LOW_STOCK_NOTIFICATIONS_ENABLED': True,
    'PO_NUMBER_PREFIX': 'PO',
    'ORDER_NUMBER_PREFIX': 'SO',
    'DOCUMENT_NUMBER_PAD': 6,
}

USER_ID = 7
OTHER_USER_ID = 8
TERMINAL_ID = "T-01"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TEST_CONFIG)

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def events(app):
    """Record every event-hub delivery; default logging channels restored afterwards."""
    recorded = {"notify": [], "invalidate": [], "broadcast": []}
    hub = get_event_hub()
    hub.register_notifier(lambda tenant_id, event_type, payload: recorded["notify"].append((tenant_id, event_type, payload)))
    hub.register_cache_invalidator(lambda tenant_id, product_id: recorded["invalidate"].append((tenant_id, product_id)))
    hub.register_broadcaster(
        lambda tenant_id, location_id, event_type, payload: recorded["broadcast"].append(
            (tenant_id, location_id, event_type, payload)
        )
    )

    yield recorded

    hub.clear()
    logging_channels(hub)


@pytest.fixture
def config_override(app):
    """Temporarily change app config values; restored after the test."""
    saved = {}

    def _set(**values):
        for key, value in values.items():
            saved.setdefault(key, app.config.get(key))
            app.config[key] = value

    yield _set

    app.config.update(saved)


@pytest.fixture(scope='function')
def tenant(db_session):
    """Create Tenant A."""
    tenant = Tenant(name="Tenant A - Acme Retail", code="ACME", is_active=True)
    db_session.add(tenant)
    db_session.commit()
    return tenant


@pytest.fixture(scope='function')
def other_tenant(db_session):
    """Create Tenant B."""
    tenant = Tenant(name="Tenant B - Beta Stores", code="BETA", is_active=True)
    db_session.add(tenant)
    db_session.commit()
    return tenant


@pytest.fixture(scope='function')
def location(db_session, tenant):
    location = Location(tenant_id=tenant.id, name="Main Store", code="MAIN")
    db_session.add(location)
    db_session.commit()
    return location


@pytest.fixture(scope='function')
def supplier(db_session, tenant):
    supplier = Supplier(tenant_id=tenant.id, name="Acme Wholesale")
    db_session.add(supplier)
    db_session.commit()
    return supplier


def make_product(db_session, tenant, sku, price="10.00", **kwargs):
    product = Product(tenant_id=tenant.id, sku=sku, name=sku.title(), base_price=Decimal(price), **kwargs)
    db_session.add(product)
    db_session.commit()
    return product


def set_stock(db_session, tenant, product, location, on_hand, allocated="0", reorder_point=None):
    """Seed an aggregate row directly (ledger untouched)."""
    item = InventoryItem(
        tenant_id=tenant.id,
        product_id=product.id,
        location_id=location.id,
        quantity_on_hand=Decimal(str(on_hand)),
        quantity_allocated=Decimal(str(allocated)),
        reorder_point=Decimal(str(reorder_point)) if reorder_point is not None else None,
    )
    db_session.add(item)
    db_session.commit()
    return item


@pytest.fixture(scope='function')
def product(db_session, tenant):
    """Stock-tracked product priced at 10.00."""
    return make_product(db_session, tenant, "WIDGET-1", "10.00")


@pytest.fixture(scope='function')
def service_product(db_session, tenant):
    """Non stock-tracked product (gift wrap)."""
    return make_product(db_session, tenant, "GIFTWRAP", "2.00", is_stock_tracked=False)


@pytest.fixture(scope='function')
def serial_product(db_session, tenant):
    return make_product(db_session, tenant, "PHONE-1", "300.00", requires_serial_number=True)


def pos_headers(tenant, location, user_id=USER_ID, terminal_id=TERMINAL_ID) -> dict:
    """Gateway headers for POS routes."""
    return {
        'X-Tenant-Id': str(tenant.id),
        'X-User-Id': str(user_id),
        'X-Location-Id': str(location.id),
        'X-Terminal-Id': terminal_id,
    }


def context_headers(tenant, user_id=USER_ID) -> dict:
    return {'X-Tenant-Id': str(tenant.id), 'X-User-Id': str(user_id)}
