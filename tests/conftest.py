from datetime import datetime

import pytest

from gupayment import create_app, db
from gupayment.config import Config
from gupayment.models import User

NOW = datetime(2024, 3, 1, 12, 0, 0)


class SuiteConfig(Config):
    TESTING = True
    SECRET_KEY = "test"
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    IUGU_API_TOKEN = "test_token"
    SENTRY_DSN = ""
    APP_ERROR_LOG = ""
    SESSION_PROTECTION = None


class FakeIugu:
    """Stands in for IuguClient; records every call and replays canned bodies."""

    def __init__(self):
        self.calls = []
        self.customer = {"id": "CUST-NEW", "email": "ana@example.com"}
        self.existing_customer = {"id": "CUST-OLD", "email": "old@example.com"}
        self.payment_method = {"id": "PM-1"}
        self.subscription = {"id": "SUB-1", "suspended": False}
        self.suspended = {"id": "SUB-1", "suspended": True}
        self.activated = {"id": "SUB-1", "suspended": False}

    def names(self):
        return [name for name, _ in self.calls]

    def payload_of(self, name):
        for call, payload in self.calls:
            if call == name:
                return payload
        raise AssertionError(f"{name} was not called")

    def create_customer(self, payload):
        self.calls.append(("create_customer", payload))
        return dict(self.customer)

    def get_customer(self, customer_id):
        self.calls.append(("get_customer", customer_id))
        return dict(self.existing_customer)

    def create_payment_method(self, customer_id, token, description="Card", set_as_default=True):
        self.calls.append(("create_payment_method", {"customer_id": customer_id, "token": token,
                                                     "set_as_default": set_as_default}))
        return dict(self.payment_method)

    def create_subscription(self, payload):
        self.calls.append(("create_subscription", payload))
        return dict(self.subscription)

    def suspend_subscription(self, subscription_id):
        self.calls.append(("suspend_subscription", subscription_id))
        return dict(self.suspended)

    def activate_subscription(self, subscription_id):
        self.calls.append(("activate_subscription", subscription_id))
        return dict(self.activated)


@pytest.fixture
def app():
    app = create_app(SuiteConfig)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def iugu(app):
    fake = FakeIugu()
    app.extensions["iugu"].client = fake
    return fake


@pytest.fixture
def new_user(app):
    user = User(name="Ana", email="ana@example.com")
    db.session.add(user)
    db.session.commit()
    return user


@pytest.fixture
def existing_user(app):
    user = User(name="Old", email="old@example.com", iugu_id="CUST-OLD")
    db.session.add(user)
    db.session.commit()
    return user


@pytest.fixture
def login(client):
    def _login(user):
        with client.session_transaction() as sess:
            sess["_user_id"] = str(user.id)
            sess["_fresh"] = True
    return _login
