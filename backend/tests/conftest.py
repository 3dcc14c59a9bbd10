"""
Pytest fixtures for OrderFlow backend tests.

Provides test database setup, tenant fixtures (two organizations), users with
the default roles, catalog and stock seed data, and auth helpers.
"""

import pytest
from orderflow import create_app
from orderflow.extensions import db
from orderflow.models import Organization, Store, User
from orderflow.services import (
    catalog_service,
    credit_service,
    permission_service,
    session_service,
    stock_service,
)


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'ORDERFLOW_STRICT_LEDGER': False,
        'ORDERFLOW_RETRY_ATTEMPTS': 2,
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

        db.session.rollback()


@pytest.fixture(scope='function')
def setup_permissions(db_session):
    permission_service.initialize_permissions()


def _make_org(db_session, name, code):
    org = Organization(name=name, code=code, is_active=True)
    db_session.add(org)
    db_session.commit()
    permission_service.create_default_roles(org.id)
    permission_service.assign_default_role_permissions(org.id)
    return org


def make_user(db_session, org, store, username, role_name=None):
    """Create a user in org, optionally with one of the default roles."""
    user = User(
        org_id=org.id,
        store_id=store.id if store else None,
        username=username,
        email=f"{username}@{org.code.lower()}.test",
    )
    db_session.add(user)
    db_session.commit()
    if role_name:
        permission_service.assign_role(user.id, role_name)
    return user


@pytest.fixture(scope='function')
def org_a(db_session, setup_permissions):
    """Organization A (first tenant) with default roles."""
    return _make_org(db_session, "Org A - Acme Trading", "ACME")


@pytest.fixture(scope='function')
def org_b(db_session, setup_permissions):
    """Organization B (second tenant) with default roles."""
    return _make_org(db_session, "Org B - Beta Supplies", "BETA")


@pytest.fixture(scope='function')
def store_a(db_session, org_a):
    store = Store(org_id=org_a.id, name="Main Warehouse", code="A1", store_type="main")
    db_session.add(store)
    db_session.commit()
    return store


@pytest.fixture(scope='function')
def store_a2(db_session, org_a):
    store = Store(org_id=org_a.id, name="Sub Store", code="A2", store_type="sub")
    db_session.add(store)
    db_session.commit()
    return store


@pytest.fixture(scope='function')
def store_b(db_session, org_b):
    store = Store(org_id=org_b.id, name="Beta Warehouse", code="B1")
    db_session.add(store)
    db_session.commit()
    return store


@pytest.fixture(scope='function')
def admin_a(db_session, org_a, store_a):
    return make_user(db_session, org_a, store_a, "admin_a", "admin")


@pytest.fixture(scope='function')
def sales_a(db_session, org_a, store_a):
    return make_user(db_session, org_a, store_a, "sales_a", "sales_rep")


@pytest.fixture(scope='function')
def packer_a(db_session, org_a, store_a):
    return make_user(db_session, org_a, store_a, "packer_a", "packer")


@pytest.fixture(scope='function')
def accountant_a(db_session, org_a, store_a):
    return make_user(db_session, org_a, store_a, "accountant_a", "accountant")


@pytest.fixture(scope='function')
def admin_b(db_session, org_b, store_b):
    return make_user(db_session, org_b, store_b, "admin_b", "admin")


@pytest.fixture(scope='function')
def product_a(db_session, org_a):
    """Product P: 15.00 per unit, min stock level 2."""
    product = catalog_service.create_product(
        org_id=org_a.id,
        sku="CEM-50",
        name="Cement 50kg",
        unit="bag",
        unit_price_cents=1500,
        min_stock_level=2,
    )
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def product_a2(db_session, org_a):
    product = catalog_service.create_product(
        org_id=org_a.id,
        sku="NAIL-1KG",
        name="Nails 1kg",
        unit_price_cents=250,
        min_stock_level=5,
    )
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def product_b(db_session, org_b):
    product = catalog_service.create_product(
        org_id=org_b.id,
        sku="BETA-001",
        name="Beta Product",
        unit_price_cents=2000,
    )
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def stock_a(db_session, org_a, store_a, product_a, product_a2):
    """current=10 / available=10 for product_a, 100 for product_a2, both at store_a."""
    item = stock_service.set_stock_count(
        org_id=org_a.id, product_id=product_a.id, store_id=store_a.id, current_stock=10
    )
    stock_service.set_stock_count(
        org_id=org_a.id, product_id=product_a2.id, store_id=store_a.id, current_stock=100
    )
    db_session.commit()
    return item


@pytest.fixture(scope='function')
def customer_a(db_session, org_a):
    """Credit customer with a limit of 100,000."""
    customer = credit_service.create_customer(
        org_id=org_a.id,
        first_name="Ama",
        last_name="Mensah",
        email="ama@example.com",
        phone="+233200000001",
        credit_limit_cents=100_000,
    )
    db_session.commit()
    return customer


@pytest.fixture(scope='function')
def cash_customer_a(db_session, org_a):
    customer = credit_service.create_customer(
        org_id=org_a.id,
        first_name="Kofi",
        last_name="Boateng",
        credit_limit_cents=0,
    )
    db_session.commit()
    return customer


ADDRESS = {
    "street": "12 Harbour Road",
    "city": "Tema",
    "state": "Greater Accra",
    "zip_code": "GA-100",
    "country": "Ghana",
}


def line(product, store, quantity):
    return {"product_id": product.id, "store_id": store.id, "quantity": quantity}


def issue_token(user) -> str:
    """Issue a real session token for a user."""
    _, token = session_service.create_session(user.id)
    return token


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}
