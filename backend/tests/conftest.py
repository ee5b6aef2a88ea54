"""
Pytest fixtures for the wholesale backend tests.

Provides an in-memory database, a per-test table wipe, product/order/user
factories and bearer-token helpers.
"""

from decimal import Decimal

import pytest
from app import create_app
from app.extensions import db
from app.models import User, Product
from app.services.auth_service import hash_password
from app.services import order_service


TEST_PASSWORD = "Password123!"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SECRET_KEY': 'test',
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='session')
def password_hash():
    """bcrypt at cost 12 is slow; hash the shared test password once."""
    return hash_password(TEST_PASSWORD)


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    # Clear all data but keep schema
    meta = db.metadata
    for table in reversed(meta.sorted_tables):
        db.session.execute(table.delete())
    db.session.commit()

    yield db.session

    # Cleanup after test
    db.session.rollback()


@pytest.fixture(scope='function')
def make_product(db_session):
    """Factory: insert a product and return it."""
    def _make(title="Widget", stock_on_hand=0, price="10.00", sku=None):
        product = Product(
            title=title,
            price=Decimal(price),
            stock_on_hand=stock_on_hand,
            stock_allocated=0,
            sku=sku,
        )
        db_session.add(product)
        db_session.commit()
        return product
    return _make


@pytest.fixture(scope='function')
def make_order(db_session):
    """Factory: create an order through the service and return its view."""
    def _make(items, **overrides):
        snapshot = {
            "customer_name": "Harbour Gifts",
            "customer_email": "buyer@harbourgifts.example",
            "customer_phone": "0400 000 000",
            "shipping_address": "1 Market St, Sydney NSW 2000",
        }
        snapshot.update(overrides)
        return order_service.create_order(items=items, **snapshot)
    return _make


def _make_user(db_session, password_hash, email, label, admin_level=None):
    user = User(
        email=email,
        name=email.split("@")[0],
        password_hash=password_hash,
        label=label,
        admin_level=admin_level,
        session_version=0,
        is_active=True,
    )
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def admin_user(db_session, password_hash):
    """INTERNAL staff account with SUPER admin level."""
    return _make_user(db_session, password_hash, "admin@wholesale.test", "INTERNAL", "SUPER")


@pytest.fixture(scope='function')
def staff_user(db_session, password_hash):
    """INTERNAL staff account without an admin level."""
    return _make_user(db_session, password_hash, "staff@wholesale.test", "INTERNAL")


@pytest.fixture(scope='function')
def retailer_user(db_session, password_hash):
    """External RETAILER account."""
    return _make_user(db_session, password_hash, "retailer@shop.test", "RETAILER")


def get_auth_token(client, email: str, password: str = TEST_PASSWORD) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'email': email,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def admin_headers(client, admin_user):
    return auth_headers(get_auth_token(client, admin_user.email))


@pytest.fixture(scope='function')
def retailer_headers(client, retailer_user):
    return auth_headers(get_auth_token(client, retailer_user.email))
