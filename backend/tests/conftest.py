"""
Pytest fixtures for Stockroom backend tests.

Provides test database setup, users with principals, a stocked catalog,
and test client helpers.
"""

import pytest

from stockroom import create_app
from stockroom.extensions import db
from stockroom.models import User
from stockroom.services import catalog_service
from stockroom.services.auth_service import hash_password
from stockroom.services.permission_service import Principal


PASSWORD = "TestPass123!"

# bcrypt is slow on purpose; hash the shared test password once
PASSWORD_HASH = hash_password(PASSWORD)


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'CONFLICT_RETRY_BACKOFF': 0,
        'LOW_STOCK_THRESHOLD': 5,
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

        yield db.session

        # Cleanup after test
        db.session.rollback()


def make_user(db_session, *, email: str, name: str, role: str = "customer", **extra) -> User:
    user = User(
        name=name,
        email=email,
        role=role,
        password_hash=PASSWORD_HASH,
        is_active=True,
        **extra,
    )
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def admin_user(db_session):
    return make_user(db_session, email="admin@stockroom.test", name="Ada Admin", role="admin")


@pytest.fixture(scope='function')
def customer(db_session):
    return make_user(db_session, email="carol@stockroom.test", name="Carol Customer", address="1 High Street")


@pytest.fixture(scope='function')
def other_customer(db_session):
    return make_user(db_session, email="dave@stockroom.test", name="Dave Customer")


@pytest.fixture(scope='function')
def admin(admin_user):
    """Principal for the administrator."""
    return Principal.from_user(admin_user)


@pytest.fixture(scope='function')
def shopper(customer):
    """Principal for the customer."""
    return Principal.from_user(customer)


@pytest.fixture(scope='function')
def widget(db_session, admin):
    """10 on hand at 250 cents."""
    return catalog_service.create_product(admin, {"name": "Widget", "price_cents": 250, "stock": 10})


@pytest.fixture(scope='function')
def gadget(db_session, admin):
    """3 on hand at 1000 cents."""
    return catalog_service.create_product(admin, {"name": "Gadget", "price_cents": 1000, "stock": 3})


def get_auth_token(client, email: str, password: str = PASSWORD) -> str:
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
def customer_headers(client, customer):
    return auth_headers(get_auth_token(client, customer.email))
