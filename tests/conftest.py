import os
# Ensure the app factory picks the Testing config & SQLite memory DB
os.environ.setdefault("APP_ENV", "testing")
os.environ.setdefault("TEST_DATABASE_URL", "sqlite:///:memory:")
# Read by BaseConfig at import time
os.environ.setdefault("RAZORPAY_WEBHOOK_SECRET", "testsecret")

import hashlib
import hmac
import json

import pytest
from payhook import create_app
from payhook.extensions import db, limiter
from payhook.models import Subscription, Purchase


@pytest.fixture(scope="session")
def app():
    app = create_app()
    with app.app_context():
        db.create_all()
    yield app
    with app.app_context():
        db.drop_all()


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture(autouse=True)
def _db_clean(app):
    # Clean BEFORE each test; the limiter window is per-process and shared too
    with app.app_context():
        db.session.rollback()
        for tbl in reversed(db.metadata.sorted_tables):
            db.session.execute(tbl.delete())
        db.session.commit()
        limiter.reset()
    yield
    with app.app_context():
        db.session.rollback()


def sign(secret: str, body: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


@pytest.fixture()
def deliver(app, client):
    """POST a signed delivery; `body` may be a dict (serialized once) or raw bytes."""
    def _deliver(body, event_id=None, signature=None, headers=None):
        raw = body if isinstance(body, bytes) else json.dumps(body).encode("utf-8")
        hdrs = {"Content-Type": "application/json"}
        hdrs["X-Razorpay-Signature"] = signature if signature is not None else sign(
            app.config["RAZORPAY_WEBHOOK_SECRET"], raw
        )
        if event_id:
            hdrs["X-Razorpay-Event-Id"] = event_id
        hdrs.update(headers or {})
        return client.post("/webhooks/payment-events", data=raw, headers=hdrs)
    return _deliver


@pytest.fixture()
def make_subscription(app):
    def _make(order_id="order_1", payment_status="pending", status="pending", user_id="user_1", purchase=True):
        with app.app_context():
            sub = Subscription(
                user_id=user_id,
                order_id=order_id,
                payment_status=payment_status,
                status=status,
            )
            db.session.add(sub)
            if purchase:
                db.session.add(Purchase(user_id=user_id, order_id=order_id, status="pending"))
            db.session.commit()
            return sub.id
    return _make
