"""Shared pytest configuration for integration tests.

These run against the Firestore emulator (``firebase emulators:start``) and
are skipped unless ``FIRESTORE_EMULATOR_HOST`` is set.
"""
import os
import sys

import pytest
from dotenv import load_dotenv

load_dotenv()

# Ensure repo root is on sys.path
REPO_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", ".."))
if REPO_ROOT not in sys.path:
    sys.path.insert(0, REPO_ROOT)

EMULATOR_HOST = os.environ.get("FIRESTORE_EMULATOR_HOST")

# The admin SDK needs a project id to talk to the emulators without credentials
os.environ.setdefault("GCLOUD_PROJECT", "demo-opsdash")

from opsdash.config import collections  # noqa: E402

COLLECTIONS = (
    collections.USERS,
    collections.BUILD_TASKS,
    collections.BILLING_ENTRIES,
    collections.TASK_SUBSCRIPTIONS,
    collections.NOTIFICATION_DEAD_LETTERS,
)


def pytest_collection_modifyitems(config, items):
    if EMULATOR_HOST:
        return
    skip = pytest.mark.skip(reason="FIRESTORE_EMULATOR_HOST not set; start the Firebase emulators")
    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip)


@pytest.fixture(scope="session")
def db():
    import firebase_admin
    from firebase_admin import firestore

    if not firebase_admin._apps:
        firebase_admin.initialize_app(options={"projectId": os.environ["GCLOUD_PROJECT"]})
    return firestore.client()


@pytest.fixture(autouse=True)
def clean_collections(request):
    yield
    if not EMULATOR_HOST or "integration" not in request.keywords:
        return
    client = request.getfixturevalue("db")
    for name in COLLECTIONS:
        for doc in client.collection(name).stream():
            doc.reference.delete()
