"""Shared pytest configuration for unit tests."""
import os
import sys

import pytest

# Ensure repo root and this directory are on sys.path
REPO_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", ".."))
if REPO_ROOT not in sys.path:
    sys.path.insert(0, REPO_ROOT)
UNIT_DIR = os.path.dirname(os.path.abspath(__file__))
if UNIT_DIR not in sys.path:
    sys.path.insert(0, UNIT_DIR)

from fakes import ADMIN, BASE_TIME, MEMBER, FakeFirestore  # noqa: E402

from opsdash.app import create_app  # noqa: E402
from opsdash.config import collections  # noqa: E402
from opsdash.services import auth_service  # noqa: E402


@pytest.fixture
def fake_db():
    db = FakeFirestore()
    for person in (ADMIN, MEMBER):
        db.seed(collections.USERS, person["uid"], {
            "uid": person["uid"],
            "email": person["email"],
            "displayName": person["name"],
            "role": person["role"],
            "createdAt": BASE_TIME,
            "updatedAt": BASE_TIME,
        })
    return db


@pytest.fixture
def app(fake_db):
    app = create_app(db=fake_db, init_firebase_app=False)
    app.config["TESTING"] = True
    return app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def verified_tokens(monkeypatch):
    """Accept ``Bearer <uid>`` as a valid ID token for the seeded users"""
    people = {p["uid"]: p for p in (ADMIN, MEMBER)}

    def verify(token):
        person = people.get(token)
        if person is None:
            raise ValueError("Invalid token")
        return {"uid": person["uid"], "email": person["email"], "name": person["name"]}

    monkeypatch.setattr(auth_service.firebase_auth, "verify_id_token", verify)
    return people


@pytest.fixture
def admin_headers(verified_tokens):
    return {"Authorization": f"Bearer {ADMIN['uid']}"}


@pytest.fixture
def user_headers(verified_tokens):
    return {"Authorization": f"Bearer {MEMBER['uid']}"}
