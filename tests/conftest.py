"""
Pytest fixtures for the bizops test suite.

Provides:
- a fresh Flask app on in-memory SQLite per test (schema created/dropped)
- a test client with helpers to log in through the real auth endpoint
- factories for accounts, orders and bills built through the service layer
"""

import itertools

import pytest

from bizops import create_app
from bizops.extensions import db
from bizops.seed import create_admin_account
from bizops.services import accounts as account_service
from bizops.services import billing as billing_service
from bizops.services import orders as order_service

PASSWORD = "secret123"

_phones = itertools.count(9000000001)


@pytest.fixture
def app():
    app = create_app("config.TestConfig")
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def admin(app):
    return create_admin_account("Admin User", str(next(_phones)), "admin@example.com", PASSWORD)


@pytest.fixture
def make_account(app, admin):
    """Sign up an account through submit_account; optionally approve it."""

    def _make(role="client", *, approve=False, full_name=None, password=PASSWORD):
        phone = str(next(_phones))
        account = account_service.submit_account(
            {
                "full_name": full_name or f"User {phone[-4:]}",
                "phone": phone,
                "email": f"user{phone}@example.com",
                "password": password,
                "role": role,
            }
        )
        if approve and account.status == "pending":
            account = account_service.approve_account(account.id, admin.id)
        return account

    return _make


@pytest.fixture
def customer(make_account):
    return make_account("client", full_name="Client One")


@pytest.fixture
def make_order(app, admin):
    """Create an order; defaults to the Steel Rod example (10 x 50.00, 10 %)."""

    def _make(**overrides):
        draft = {
            "product_name": "Steel Rod",
            "quantity": "10",
            "unit": "pcs",
            "unit_price": "50.00",
            "discount": "10",
            "order_type": "sale",
        }
        draft.update(overrides)
        return order_service.create_order(draft, created_by_id=admin.id)

    return _make


@pytest.fixture
def make_bill(app, admin, customer, make_order):
    """Bill a fresh order (or the given one) to `customer`."""

    def _make(order=None, client=None, **kwargs):
        order = order or make_order()
        client = client or customer
        return billing_service.create_bill_from_order(order.id, client.id, admin.id, **kwargs)

    return _make


@pytest.fixture
def login(client):
    """Log in through POST /api/auth/login and return the response."""

    def _login(account, password=PASSWORD):
        return client.post("/api/auth/login", json={"phone": account.phone, "password": password})

    return _login
