"""
Pytest fixtures for KAVARA backend tests.

Provides the test app, a clean database per test, and catalog fixtures.
"""

import pytest

from kavara import create_app
from kavara.extensions import db
from kavara.models import Box, Product


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'STOCK_RESERVATION_POLICY': 'on_create',
        'TELEGRAM_BOT_TOKEN': None,
        'ADMIN_CHAT_ID': None,
        'ORDERS_CHANNEL_ID': None,
        'ERP_API_KEY': 'test-erp-key',
        'SETTLEMENT_RETRY_ATTEMPTS': 1,
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
        db.session.rollback()
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def tee(db_session):
    """Sized product with one size sold out."""
    product = Product(id="P1", name="Tee", price=2490, external_id="KAVARA-TEE", inventory={"M": 2, "L": 0})
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def leggings(db_session):
    product = Product(id="P2", name="Leggings", price=3990, inventory={"S": 5, "M": 5})
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def untracked(db_session):
    """Product whose stock was never configured."""
    product = Product(id="P9", name="Sample Cap", price=990, inventory=None)
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def starter_box(db_session):
    """Sizeless box."""
    box = Box(id="B1", name="Starter Box", price=5900, external_id="KAVARA-BOX-1", inventory={"default": 3})
    db_session.add(box)
    db_session.commit()
    return box


@pytest.fixture(scope='function')
def order_payload():
    """Factory for a minimal valid checkout body."""
    def _make(**overrides) -> dict:
        payload = {
            'customer_name': 'Anna Petrova',
            'customer_phone': '+79990001122',
            'delivery_method': 'courier',
            'payment_method': 'card',
            'total_price': 2490,
        }
        payload.update(overrides)
        return payload
    return _make


@pytest.fixture(scope='function')
def erp_headers():
    """1C integration headers."""
    return {'X-API-Key': 'test-erp-key'}
