"""
Pytest fixtures for DigitalShop backend tests.

Provides an in-memory database, per-role users with bearer headers, and a
few master-data records (product, customer, supplier).
"""

from datetime import date, timedelta
from decimal import Decimal

import pytest

from digitalshop import create_app
from digitalshop.cache import clear_all
from digitalshop.config import TestConfig
from digitalshop.extensions import db
from digitalshop.models import Customer, InventoryBatch, Product, Supplier, User
from digitalshop.services import permission_service
from digitalshop.services.auth_service import hash_password
from digitalshop.services.inventory_service import sync_quantity_on_hand

DEFAULT_PASSWORD = "Password123"


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
    """Fresh database and empty caches for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()
        clear_all()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def seed_permissions(db_session):
    """Default role -> permission grants."""
    permission_service.seed_role_permissions()


def make_user(db_session, email: str, role: str, full_name: str = None, is_active: bool = True) -> User:
    user = User(
        email=email,
        password_hash=hash_password(DEFAULT_PASSWORD),
        full_name=full_name or role.title(),
        role=role,
        is_active=is_active,
    )
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def admin_user(db_session, seed_permissions):
    return make_user(db_session, "admin@test.local", "ADMIN")


@pytest.fixture(scope='function')
def manager_user(db_session, seed_permissions):
    return make_user(db_session, "manager@test.local", "MANAGER")


@pytest.fixture(scope='function')
def cashier_user(db_session, seed_permissions):
    return make_user(db_session, "cashier@test.local", "CASHIER")


@pytest.fixture(scope='function')
def staff_user(db_session, seed_permissions):
    return make_user(db_session, "staff@test.local", "STAFF")


def get_auth_token(client, email: str, password: str = DEFAULT_PASSWORD) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'email': email,
        'password': password
    })
    if response.status_code == 200:
        return response.get_json()['data']['token']
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def user_factory(db_session, seed_permissions):
    """make_user bound to the test session."""
    def _make(email: str, role: str, **kwargs) -> User:
        return make_user(db_session, email, role, **kwargs)
    return _make


@pytest.fixture(scope='function')
def headers_for(client):
    """Log a user in and return its Authorization headers."""
    def _headers(user: User) -> dict:
        return auth_headers(get_auth_token(client, user.email))
    return _headers


@pytest.fixture(scope='function')
def admin_headers(client, admin_user):
    return auth_headers(get_auth_token(client, admin_user.email))


@pytest.fixture(scope='function')
def manager_headers(client, manager_user):
    return auth_headers(get_auth_token(client, manager_user.email))


@pytest.fixture(scope='function')
def cashier_headers(client, cashier_user):
    return auth_headers(get_auth_token(client, cashier_user.email))


@pytest.fixture(scope='function')
def staff_headers(client, staff_user):
    return auth_headers(get_auth_token(client, staff_user.email))


@pytest.fixture(scope='function')
def product(db_session):
    """Taxable product with no stock."""
    product = Product(
        sku="SKU-001",
        barcode="4006381333931",
        name="Bottled Water 500ml",
        category="Beverages",
        cost_price=Decimal("4.00"),
        selling_price=Decimal("10.00"),
        average_cost=Decimal("4.00"),
        reorder_level=Decimal("5"),
        tax_rate=Decimal("0"),
    )
    db_session.add(product)
    db_session.commit()
    return product


def add_batch(db_session, product, qty, *, cost="4.00", batch_number=None, expiry_date=None,
              received_date=None) -> InventoryBatch:
    """Receive stock straight into a batch and re-sync the product."""
    batch = InventoryBatch(
        batch_number=batch_number or f"B-{product.id}-{qty}",
        product_id=product.id,
        quantity=Decimal(str(qty)),
        remaining_quantity=Decimal(str(qty)),
        cost_price=Decimal(cost),
        expiry_date=expiry_date,
        status="ACTIVE",
        source_type="OPENING",
    )
    if received_date is not None:
        batch.received_date = received_date
    db_session.add(batch)
    db_session.flush()
    sync_quantity_on_hand(product)
    db_session.commit()
    return batch


@pytest.fixture(scope='function')
def batch_factory(db_session):
    """add_batch bound to the test session."""
    def _add(product, qty, **kwargs) -> InventoryBatch:
        return add_batch(db_session, product, qty, **kwargs)
    return _add


@pytest.fixture(scope='function')
def stocked_product(db_session, product):
    """product with 20 units: 10 expiring soon, 10 expiring later."""
    add_batch(db_session, product, 10, batch_number="LOT-EARLY",
              expiry_date=date.today() + timedelta(days=30))
    add_batch(db_session, product, 10, batch_number="LOT-LATE",
              expiry_date=date.today() + timedelta(days=90))
    return product


@pytest.fixture(scope='function')
def customer(db_session):
    customer = Customer(
        name="Jane Buyer",
        email="jane@example.com",
        phone="0700000001",
        credit_limit=Decimal("1000.00"),
    )
    db_session.add(customer)
    db_session.commit()
    return customer


@pytest.fixture(scope='function')
def supplier(db_session):
    supplier = Supplier(
        name="Acme Wholesale",
        contact_person="Bob",
        email="orders@acme.example",
        phone="0700000002",
    )
    db_session.add(supplier)
    db_session.commit()
    return supplier
