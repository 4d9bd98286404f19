"""
Shared fixtures for the estate_backend test suite.

Every test gets a fresh in-memory document store (mongomock) and a mailer
double that records outgoing messages instead of calling SendGrid. Both are
injected through app.dependency_overrides; the lifespan hook (real
MongoClient) never runs because TestClient is not used as a context manager.

Run:
    pytest estate_backend -v
"""

import os

os.environ.setdefault("ENV", "dev")

import mongomock
import pytest
from fastapi.testclient import TestClient

from estate_backend.accounts import new_user_doc
from estate_backend.auth_context import create_access_token, hash_password
from estate_backend.db import get_db, utcnow
from estate_backend.entitlements import build_subscription_doc
from estate_backend.mailer import Mailer, get_mailer
from estate_backend.main import app
from estate_backend.models import PlanType, Role, UserType


class RecordingMailer(Mailer):
    def __init__(self):
        self.sent = []

    def send(self, to, subject, html):
        self.sent.append({"to": to, "subject": subject, "html": html})
        return True


@pytest.fixture
def db():
    """Fresh in-memory database per test."""
    return mongomock.MongoClient()["estate_test"]


@pytest.fixture
def mailer():
    return RecordingMailer()


@pytest.fixture
def client(db, mailer):
    """FastAPI test client wired to the in-memory database and mailer."""
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_mailer] = lambda: mailer
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(db):
    """
    Factory: insert a verified user (optionally with a subscription) and
    return {"id", "token", "headers", "email"}.

    Usage:
        owner = make_user(Role.user, user_type=UserType.owner, plan=PlanType.basic, price=500)
    """
    counter = {"n": 0}

    def _make(
        role=Role.user,
        user_type=UserType.buyer,
        plan=PlanType.free,
        price=0,
        subscription=True,
        name=None,
        **extra,
    ):
        counter["n"] += 1
        now = utcnow()
        email = f"{role.value}{counter['n']}@example.com"
        doc = new_user_doc(name or f"Test {role.value} {counter['n']}", email, hash_password("password123"),
                           role, now, phone="+91 98765 43210")
        doc["isVerified"] = True
        doc.update(extra)
        user_id = db.users.insert_one(doc).inserted_id
        if subscription:
            db.subscriptions.insert_one(build_subscription_doc(user_id, user_type, plan, price, now))
        token = create_access_token(str(user_id), role.value, email)
        return {
            "id": str(user_id),
            "oid": user_id,
            "email": email,
            "token": token,
            "headers": {"Authorization": f"Bearer {token}"},
        }

    return _make
