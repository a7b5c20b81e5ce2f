"""
Pytest fixtures for the stock ledger tests.

Provides an application bound to an in-memory SQLite database, tenant and
catalog fixtures, and StockOperations built with explicit settings and a
private lock registry.
"""

import pytest

from stockledger import create_app
from stockledger.config import LedgerSettings, TestConfig
from stockledger.extensions import db
from stockledger.models import Location, Organization, Product
from stockledger.services.concurrency import KeyLockRegistry
from stockledger.services.ledger_store import LedgerStore
from stockledger.services.stock_service import StockOperations


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TestConfig)

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
def org(db_session):
    """Create Organization A (first tenant)."""
    org = Organization(name="Org A - Acme Corp", code="ACME", is_active=True)
    db_session.add(org)
    db_session.commit()
    return org


@pytest.fixture(scope='function')
def other_org(db_session):
    """Create Organization B (second tenant)."""
    org = Organization(name="Org B - Beta Inc", code="BETA", is_active=True)
    db_session.add(org)
    db_session.commit()
    return org


@pytest.fixture(scope='function')
def warehouse(db_session, org):
    location = Location(organization_id=org.id, name="Main Warehouse", type="warehouse")
    db_session.add(location)
    db_session.commit()
    return location


@pytest.fixture(scope='function')
def store_front(db_session, org):
    location = Location(organization_id=org.id, name="Downtown Store", type="store")
    db_session.add(location)
    db_session.commit()
    return location


@pytest.fixture(scope='function')
def product(db_session, org):
    product = Product(
        organization_id=org.id,
        sku="WIDGET-001",
        name="Widget",
        stock_unit="unit",
        min_stock_level=8,
        max_stock_level=100,
        avg_cost=0,
        last_purchase_cost=0,
    )
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def locks():
    return KeyLockRegistry()


@pytest.fixture(scope='function')
def make_ops(db_session, org, locks):
    """Factory: StockOperations for `org` with LedgerSettings overrides."""
    def _make(organization_id=None, **overrides):
        settings = LedgerSettings(lock_timeout=0.2, retry_backoff=0.0, **overrides)
        return StockOperations(
            LedgerStore(db_session),
            organization_id=organization_id or org.id,
            actor="tester",
            locks=locks,
            settings=settings,
        )
    return _make


@pytest.fixture(scope='function')
def ops(make_ops):
    return make_ops()


@pytest.fixture(scope='function')
def headers(org):
    """Tenant headers for org."""
    return {"X-Organization-Id": str(org.id), "X-User-Id": "tester"}
