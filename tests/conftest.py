"""
Pytest configuration for ChannelLink tests.

Points the app at a throwaway SQLite database before anything from
``app`` is imported.
"""

import os
import tempfile

_test_data_dir = tempfile.mkdtemp(prefix="channellink_test_")
os.environ["DATABASE_URL"] = f"sqlite:///{_test_data_dir}/test.db"
os.environ["SERVICE_API_KEY"] = "test-service-key"
os.environ["SUPABASE_JWT_SECRET"] = "test-supabase-jwt-secret"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test"
os.environ["AUTOMATION_WEBHOOK_URL"] = ""
os.environ["DEBUG"] = "false"

import uuid
from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient
from jose import jwt

from app.database import Base, SessionLocal, engine
from app.models import (
    Account,
    Channel,
    Price,
    Product,
    Subscription,
    SubscriptionItem,
    TierFeatures,
)

Base.metadata.create_all(bind=engine)

SERVICE_HEADERS = {"X-Service-Key": "test-service-key"}


class FakeNotifier:
    """Records dispatched notifications instead of posting them."""

    def __init__(self):
        self.calls = []

    def dispatch(self, channel_id, chat_id):
        self.calls.append((channel_id, chat_id))

    def notify(self, channel_id, chat_id):
        self.calls.append((channel_id, chat_id))
        return True


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        for table in reversed(Base.metadata.sorted_tables):
            session.execute(table.delete())
        session.commit()
        session.close()


@pytest.fixture
def channels(db):
    rows = [
        Channel(id="telegram", is_active=True, link_method="username"),
        Channel(id="whatsapp", is_active=True, link_method="phone_number"),
        Channel(id="discord", is_active=True, link_method="id"),
        Channel(id="retired", is_active=False, link_method="id"),
    ]
    db.add_all(rows)
    db.commit()
    return {row.id: row for row in rows}


def make_account(db, email="alice@example.com", customer_id=None):
    account = Account(id=uuid.uuid4(), email=email, stripe_customer_id=customer_id)
    db.add(account)
    db.commit()
    return account


@pytest.fixture
def account(db):
    return make_account(db, "alice@example.com", customer_id="cus_alice")


@pytest.fixture
def other_account(db):
    return make_account(db, "bob@example.com", customer_id="cus_bob")


def make_subscription(
    db,
    customer_id,
    subscription_id="sub_1",
    status="active",
    period_start=None,
    period_end=None,
    created=None,
    product_id="prod_pro",
    tokens_limit=1000,
    requests_limit=100,
    history_limit=-1,
):
    """Mirror rows for one subscription on one priced product with tier features."""
    now = datetime.utcnow()

    if not db.query(Product).filter(Product.id == product_id).first():
        db.add(Product(id=product_id, name=product_id, active=True))
        db.add(TierFeatures(
            id=product_id,
            tokens_limit=tokens_limit,
            requests_limit=requests_limit,
            history_limit=history_limit,
        ))
        db.add(Price(id=f"price_{product_id}", product_id=product_id, active=True, unit_amount=1000))
        db.flush()

    subscription = Subscription(
        id=subscription_id,
        customer_id=customer_id,
        status=status,
        current_period_start=period_start or now - timedelta(days=10),
        current_period_end=period_end or now + timedelta(days=20),
        created=created or now - timedelta(days=10),
    )
    db.add(subscription)
    db.flush()
    db.add(SubscriptionItem(
        id=f"si_{subscription_id}",
        subscription_id=subscription_id,
        price_id=f"price_{product_id}",
        created=subscription.created,
    ))
    db.commit()
    return subscription


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def client(db, notifier):
    from app.main import app
    from app.api.deps import get_notifier, rate_limit_link_generate

    app.dependency_overrides[get_notifier] = lambda: notifier
    app.dependency_overrides[rate_limit_link_generate] = lambda: None
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def bearer_for(account, secret="test-supabase-jwt-secret"):
    token = jwt.encode(
        {
            "sub": str(account.id),
            "email": account.email,
            "aud": "authenticated",
            "exp": datetime.utcnow() + timedelta(hours=1),
        },
        secret,
        algorithm="HS256",
    )
    return {"Authorization": f"Bearer {token}"}
