import os

# configuration is read at import time, so it has to be in place first
os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ["JWT_SECRET"] = "test-jwt-secret-with-enough-length-for-hs256"
os.environ["STRIPE_SECRET_KEY"] = "sk_test_dummy"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test_dummy"
os.environ["AUTO_CREATE_TABLES"] = "false"
os.environ["APP_ENV"] = "production"

from types import SimpleNamespace

import pytest
import stripe
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from auth import create_access_token
from database import Base, get_db
from linguista import models  # noqa: F401
from linguista import sms_twilio
from linguista.main import app


@pytest.fixture()
def session_factory():
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    yield factory
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def client(session_factory):
    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


def auth_headers(user_id="user-1", email="user1@example.com"):
    return {"Authorization": f"Bearer {create_access_token(user_id, email)}"}


@pytest.fixture()
def headers():
    return auth_headers()


@pytest.fixture()
def make_headers():
    return auth_headers


class FakeStripe:
    """Records every Stripe call made by the billing router."""

    def __init__(self):
        self.customers = []
        self.checkouts = []
        self.portals = []
        self.subscriptions = {}
        self.on_customer_create = None
        self.checkout_error = None

    def create_customer(self, **kwargs):
        self.customers.append(kwargs)
        customer_id = f"cus_{len(self.customers)}"
        if self.on_customer_create:
            self.on_customer_create(customer_id)
        return SimpleNamespace(id=customer_id)

    def create_checkout(self, **kwargs):
        if self.checkout_error:
            raise self.checkout_error
        self.checkouts.append(kwargs)
        n = len(self.checkouts)
        return SimpleNamespace(id=f"cs_test_{n}", url=f"https://checkout.stripe.test/c/cs_test_{n}")

    def create_portal(self, **kwargs):
        self.portals.append(kwargs)
        return SimpleNamespace(id="bps_1", url="https://billing.stripe.test/p/session_1")

    def retrieve_subscription(self, **kwargs):
        return self.subscriptions[kwargs["id"]]


@pytest.fixture()
def fake_stripe(monkeypatch):
    fake = FakeStripe()
    monkeypatch.setattr(stripe.Customer, "create", lambda **kw: fake.create_customer(**kw))
    monkeypatch.setattr(stripe.checkout.Session, "create", lambda **kw: fake.create_checkout(**kw))
    monkeypatch.setattr(stripe.billing_portal.Session, "create", lambda **kw: fake.create_portal(**kw))
    monkeypatch.setattr(stripe.Subscription, "retrieve", lambda **kw: fake.retrieve_subscription(**kw))
    return fake


@pytest.fixture()
def sent_sms(monkeypatch):
    sent = []

    def _send(to, body, **kwargs):
        sent.append({"to": to, "body": body})
        return True, "accepted sid=SM_test"

    monkeypatch.setattr(sms_twilio, "send_sms", _send)
    return sent
