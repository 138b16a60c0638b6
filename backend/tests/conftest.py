"""
Pytest fixtures for storefront backend tests.

Provides test database setup, catalog fixtures, staff/customer users and
test client helpers.
"""

import pytest

from storefront import create_app
from storefront.extensions import db
from storefront.models import Product, ProductVariant, ShippingMethod, User
from storefront.services.auth_service import hash_password
from storefront.services import order_service, session_service


TEST_PASSWORD = "Password123"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'BCRYPT_ROUNDS': 4,
        'TAX_RATE_BPS': 2100,
        'BUSINESS_TIMEZONE': 'UTC',
        'ORDER_NUMBER_PREFIX': 'LV',
        'ORDER_RETRY_ATTEMPTS': 3,
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
        app.config['NOTIFIER'] = None

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def product(db_session):
    """Active product priced at 25.00 EUR."""
    product = Product(name="Camiseta personalizada", slug="camiseta", base_price_cents=2500, is_active=True)
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def variant(db_session, product):
    """SKU-001 with 3 units in stock, inheriting the product price."""
    variant = ProductVariant(product_id=product.id, sku="SKU-001", name="M / Blanco", stock=3, is_active=True)
    db_session.add(variant)
    db_session.commit()
    return variant


@pytest.fixture(scope='function')
def second_variant(db_session, product):
    """SKU-002 with its own price (30.00 EUR) and 10 units."""
    variant = ProductVariant(
        product_id=product.id,
        sku="SKU-002",
        name="L / Negro",
        price_cents=3000,
        stock=10,
        is_active=True,
    )
    db_session.add(variant)
    db_session.commit()
    return variant


@pytest.fixture(scope='function')
def shipping_methods(db_session):
    standard = ShippingMethod(name="Envío estándar", price_cents=450, is_active=True)
    express = ShippingMethod(name="Envío express", price_cents=650, is_active=False)
    db_session.add_all([standard, express])
    db_session.commit()
    return standard, express


def make_user(db_session, email: str, role: str) -> User:
    user = User(
        email=email,
        name=email.split("@")[0],
        role=role,
        password_hash=hash_password(TEST_PASSWORD),
        is_active=True,
    )
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def admin_user(db_session):
    return make_user(db_session, "admin@lovilike.es", "ADMIN")


@pytest.fixture(scope='function')
def staff_user(db_session):
    return make_user(db_session, "taller@lovilike.es", "STAFF")


@pytest.fixture(scope='function')
def customer_user(db_session):
    return make_user(db_session, "cliente@example.com", "CUSTOMER")


def token_for(user: User) -> str:
    """Open a session directly (skips the bcrypt round trip of /login)."""
    _, token = session_service.create_session(user.id)
    return token


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


def checkout_payload(*items, **overrides) -> dict:
    """Minimal valid checkout body; items are dicts like {"variant_id": 1, "quantity": 2}."""
    payload = {
        "customer_email": "ana@example.com",
        "customer_name": "Ana García",
        "items": list(items),
    }
    payload.update(overrides)
    return payload


@pytest.fixture(scope='function')
def admin_headers(admin_user):
    return auth_headers(token_for(admin_user))


@pytest.fixture(scope='function')
def staff_headers(staff_user):
    return auth_headers(token_for(staff_user))


@pytest.fixture(scope='function')
def customer_headers(customer_user):
    return auth_headers(token_for(customer_user))


@pytest.fixture(scope='function')
def placed_order(db_session, variant):
    """PENDING order for 2 x SKU-001 (leaves 1 unit in stock)."""
    result = order_service.create_order(checkout_payload({"variant_id": variant.id, "quantity": 2}))
    return result.order
