"""
Pytest fixtures for branchstock backend tests.

Provides test database setup, two-tenant fixtures, a recording audit sink,
and a test client.
"""

import pytest
from branchstock import create_app
from branchstock.extensions import db
from branchstock.models import Branch, Product, Shop
from branchstock.services.audit_service import AUDIT_SINK_KEY


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'NEGATIVE_STOCK_POLICY': 'reject',
    })

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
        db.session.expunge_all()

        yield db.session

        # Cleanup after test
        db.session.rollback()


class RecordingAuditSink:
    """Audit sink that keeps records in memory."""

    def __init__(self):
        self.records = []

    def emit(self, record):
        self.records.append(record)

    def actions(self):
        return [r.action for r in self.records]


@pytest.fixture(scope='function')
def audit_sink(app):
    """Swap the configured audit sink for a recording one."""
    original = app.extensions.get(AUDIT_SINK_KEY)
    sink = RecordingAuditSink()
    app.extensions[AUDIT_SINK_KEY] = sink
    yield sink
    app.extensions[AUDIT_SINK_KEY] = original


@pytest.fixture(scope='function')
def allow_negative(app, monkeypatch):
    """Run a test under NEGATIVE_STOCK_POLICY=allow."""
    monkeypatch.setitem(app.config, 'NEGATIVE_STOCK_POLICY', 'allow')


@pytest.fixture(scope='function')
def shop_a(db_session):
    """Create Shop A (first tenant)."""
    shop = Shop(name="Shop A - Acme Corp", code="ACME", is_active=True)
    db_session.add(shop)
    db_session.commit()
    return shop


@pytest.fixture(scope='function')
def shop_b(db_session):
    """Create Shop B (second tenant)."""
    shop = Shop(name="Shop B - Beta Inc", code="BETA", is_active=True)
    db_session.add(shop)
    db_session.commit()
    return shop


@pytest.fixture(scope='function')
def branch_a1(db_session, shop_a):
    branch = Branch(shop_id=shop_a.id, name="Downtown", code="A1")
    db_session.add(branch)
    db_session.commit()
    return branch


@pytest.fixture(scope='function')
def branch_a2(db_session, shop_a):
    branch = Branch(shop_id=shop_a.id, name="Airport", code="A2")
    db_session.add(branch)
    db_session.commit()
    return branch


@pytest.fixture(scope='function')
def branch_b1(db_session, shop_b):
    branch = Branch(shop_id=shop_b.id, name="Beta Central", code="B1")
    db_session.add(branch)
    db_session.commit()
    return branch


@pytest.fixture(scope='function')
def product_a(db_session, shop_a):
    """Create Product in Shop A with 100 units in the default pool."""
    product = Product(
        shop_id=shop_a.id,
        sku="PROD-A-001",
        name="Product A",
        unit_cost_cents=600,
        unit_price_cents=1000,
        stock=100,
    )
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def product_a2(db_session, shop_a):
    """Second Shop A product with a small default pool."""
    product = Product(
        shop_id=shop_a.id,
        sku="PROD-A-002",
        name="Widget",
        unit_cost_cents=250,
        unit_price_cents=500,
        stock=5,
    )
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def product_b(db_session, shop_b):
    """Create Product in Shop B."""
    product = Product(
        shop_id=shop_b.id,
        sku="PROD-B-001",
        name="Product B",
        unit_cost_cents=1200,
        unit_price_cents=2000,
        stock=50,
    )
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def tenant_headers():
    """Headers the upstream gateway forwards for an authenticated request."""
    def _headers(shop, actor_id: int = 7) -> dict:
        return {'X-Shop-Id': str(shop.id), 'X-Actor-Id': str(actor_id)}
    return _headers
