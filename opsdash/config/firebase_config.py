from firebase_admin import firestore
from flask import current_app, has_app_context


def get_db():
    """Return the Firestore client for the current request.

    An app created with an explicit client (tests, emulator scripts) keeps it
    in ``FIRESTORE_CLIENT``; otherwise the default firebase_admin app is used.
    """
    if has_app_context():
        client = current_app.config.get("FIRESTORE_CLIENT")
        if client is not None:
            return client
    return firestore.client()
