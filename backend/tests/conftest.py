"""
Pytest fixtures for Tyre POS backend tests.

Provides test database setup, staff users with tokens, catalog helpers
and the test client.
"""

import pytest
from tyrepos import create_app
from tyrepos.extensions import db
from tyrepos.models import User
from tyrepos.models.auth import ROLE_ADMIN, ROLE_CASHIER, ROLE_MANAGER
from tyrepos.services import category_service, item_service, sales_service, token_service
from tyrepos.services.auth_service import hash_password

TEST_PASSWORD = "secret123"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SECRET_KEY': 'test',
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'REPORT_SCHEDULER_ENABLED': False,
        'REPORT_SCHEDULER_THREADS': False,
        'MAIL_SUPPRESS_SEND': True,
        'MAIL_DEFAULT_SENDER': 'reports@test.local',
        'BUSINESS_TIMEZONE': 'Asia/Colombo',
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='session')
def password_hash():
    """bcrypt is slow; hash the shared test password once."""
    return hash_password(TEST_PASSWORD)


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        app.extensions["report_scheduler"].shutdown()

        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()
        app.extensions["report_scheduler"].shutdown()


def _make_user(session, password_hash, *, name, email, role, is_active=True):
    user = User(name=name, email=email, password_hash=password_hash, role=role, is_active=is_active)
    session.add(user)
    session.commit()
    return user


@pytest.fixture(scope='function')
def admin_user(db_session, password_hash):
    return _make_user(db_session, password_hash, name="Admin", email="admin@shop.test", role=ROLE_ADMIN)


@pytest.fixture(scope='function')
def manager_user(db_session, password_hash):
    return _make_user(db_session, password_hash, name="Manager", email="manager@shop.test", role=ROLE_MANAGER)


@pytest.fixture(scope='function')
def cashier_user(db_session, password_hash):
    return _make_user(db_session, password_hash, name="Cashier", email="cashier@shop.test", role=ROLE_CASHIER)


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def admin_headers(admin_user):
    return auth_headers(token_service.issue_token(admin_user))


@pytest.fixture(scope='function')
def manager_headers(manager_user):
    return auth_headers(token_service.issue_token(manager_user))


@pytest.fixture(scope='function')
def cashier_headers(cashier_user):
    return auth_headers(token_service.issue_token(cashier_user))


@pytest.fixture(scope='function')
def category(db_session):
    return category_service.create_category({"name": "Tyres", "description": "Passenger tyres"})


@pytest.fixture(scope='function')
def make_item(category, admin_user):
    """Factory: create an active item with stock."""
    counter = {"n": 0}

    def _make(name=None, *, quantity=10, purchase_price="100.00", retail_price="150.00", **extra):
        counter["n"] += 1
        payload = {
            "name": name or f"Tyre {counter['n']}",
            "category_id": category.id,
            "purchase_price": purchase_price,
            "retail_price": retail_price,
            "quantity_in_stock": quantity,
            **extra,
        }
        return item_service.create_item(payload=payload, user=admin_user)

    return _make


def sale_payload(lines, *, payment_method="cash", payment_status="completed", tax=0, **extra):
    """
    Build a POST /api/sales body from (item, quantity, price) tuples.

    Totals are computed from the lines so they add up.
    """
    items = []
    subtotal = 0
    for item, quantity, price in lines:
        total = quantity * price
        subtotal += total
        items.append({"item": item.id, "quantity": quantity, "price": price, "total": total})
    payload = {
        "items": items,
        "subtotal": subtotal,
        "tax": tax,
        "total": subtotal + tax,
        "payment_method": payment_method,
        "payment_status": payment_status,
    }
    payload.update(extra)
    return payload


@pytest.fixture(scope='function')
def make_sale(cashier_user):
    """Factory: record a sale through the service layer."""
    def _make(lines, **kwargs):
        return sales_service.record_sale(payload=sale_payload(lines, **kwargs), cashier=cashier_user)

    return _make
