"""
Pytest fixtures for posledger backend tests.

Provides test database setup, user/product/customer/supplier factories and
an authenticated test client helper.
"""

import pytest

from posledger import create_app
from posledger.config import TestConfig
from posledger.extensions import db
from posledger.models import Customer, Supplier, User
from posledger.models.auth import (
    ROLE_ADMIN,
    ROLE_CASHIER,
    ROLE_INVENTORY_MANAGER,
    ROLE_MANAGER,
    ROLE_REPORTS_VIEWER,
)
from posledger.services import products_service
from posledger.services.auth_service import hash_password

DEFAULT_PASSWORD = "Password123!"


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
        # Clear all data but keep schema (core deletes bypass ORM ledger guards)
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def make_user(db_session):
    """Factory: create a user with the given role and the default password."""
    def _make_user(username: str, role: str = ROLE_CASHIER, is_active: bool = True) -> User:
        user = User(
            username=username,
            email=f"{username}@posledger.test",
            full_name=username.title(),
            password_hash=hash_password(DEFAULT_PASSWORD),
            role=role,
            is_active=is_active,
        )
        db_session.add(user)
        db_session.commit()
        return user

    return _make_user


@pytest.fixture(scope='function')
def admin_user(make_user):
    return make_user("admin", ROLE_ADMIN)


@pytest.fixture(scope='function')
def manager_user(make_user):
    return make_user("manager", ROLE_MANAGER)


@pytest.fixture(scope='function')
def cashier_user(make_user):
    return make_user("cashier", ROLE_CASHIER)


@pytest.fixture(scope='function')
def inventory_user(make_user):
    return make_user("stocker", ROLE_INVENTORY_MANAGER)


@pytest.fixture(scope='function')
def viewer_user(make_user):
    return make_user("viewer", ROLE_REPORTS_VIEWER)


@pytest.fixture(scope='function')
def make_product(db_session, admin_user):
    """
    Factory: create a product whose opening stock is booked through the ledger.
    """
    counter = {"n": 0}

    def _make_product(
        name: str = None,
        *,
        stock: int = 0,
        price_cents: int = 1000,
        minimum_stock: int = 0,
        sku: str = None,
        is_active: bool = True,
    ):
        counter["n"] += 1
        payload = {
            "sku": sku or f"SKU-{counter['n']:04d}",
            "name": name or f"Product {counter['n']}",
            "selling_price_cents": price_cents,
            "cost_price_cents": price_cents // 2,
            "minimum_stock": minimum_stock,
            "is_active": is_active,
        }
        return products_service.create_product(
            payload=payload,
            user_id=admin_user.id,
            opening_stock=stock,
        )

    return _make_product


@pytest.fixture(scope='function')
def customer(db_session):
    c = Customer(full_name="Ada Lovelace", email="ada@example.com", phone="555-0100")
    db_session.add(c)
    db_session.commit()
    return c


@pytest.fixture(scope='function')
def supplier(db_session):
    s = Supplier(name="Acme Wholesale", contact_name="Wile E.", email="orders@acme.test")
    db_session.add(s)
    db_session.commit()
    return s


def get_auth_token(client, username: str, password: str = DEFAULT_PASSWORD) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'username': username,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def login(client):
    """Log a user in and return Authorization headers."""
    def _login(user: User) -> dict:
        token = get_auth_token(client, user.username)
        assert token, f"login failed for {user.username}"
        return auth_headers(token)

    return _login
