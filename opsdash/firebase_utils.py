"""Firebase credential loading and admin SDK initialisation."""
import json
import logging
import os
from typing import Any, Dict, Optional

import firebase_admin
from firebase_admin import credentials

from opsdash.config.settings import Settings

logger = logging.getLogger(__name__)


def _load_json_file(path: Optional[str]) -> Optional[Dict[str, Any]]:
    if path and os.path.exists(path):
        with open(path, 'r') as f:
            return json.load(f)
    return None


def get_firebase_credentials() -> Dict[str, Any]:
    """
    Load the service account used by the admin SDK.

    Looked up in order:
    1. FIREBASE_CREDENTIALS_JSON - JSON string or path to a JSON file
    2. FIREBASE_CREDENTIALS_PATH - path to a service account file
    3. GOOGLE_APPLICATION_CREDENTIALS - path to a service account file
    4. Individual FIREBASE_* variables

    Raises:
        ValueError: If no source yields credentials
    """
    creds_json = os.getenv('FIREBASE_CREDENTIALS_JSON')
    if creds_json:
        try:
            return json.loads(creds_json)
        except json.JSONDecodeError:
            loaded = _load_json_file(creds_json)
            if loaded is not None:
                return loaded

    for env_name in ('FIREBASE_CREDENTIALS_PATH', 'GOOGLE_APPLICATION_CREDENTIALS'):
        loaded = _load_json_file(os.getenv(env_name))
        if loaded is not None:
            return loaded

    if os.getenv('FIREBASE_PROJECT_ID') and os.getenv('FIREBASE_PRIVATE_KEY'):
        return {
            "type": "service_account",
            "project_id": os.getenv('FIREBASE_PROJECT_ID'),
            "private_key_id": os.getenv('FIREBASE_PRIVATE_KEY_ID'),
            "private_key": os.getenv('FIREBASE_PRIVATE_KEY', '').replace('\\n', '\n'),
            "client_email": os.getenv('FIREBASE_CLIENT_EMAIL'),
            "client_id": os.getenv('FIREBASE_CLIENT_ID'),
            "auth_uri": "https://accounts.google.com/o/oauth2/auth",
            "token_uri": "https://oauth2.googleapis.com/token",
            "auth_provider_x509_cert_url": "https://www.googleapis.com/oauth2/v1/certs",
            "client_x509_cert_url": os.getenv('FIREBASE_CLIENT_CERT_URL'),
        }

    raise ValueError(
        "Firebase credentials not found. Please set one of:\n"
        "1. FIREBASE_CREDENTIALS_JSON (JSON string or path to JSON file)\n"
        "2. FIREBASE_CREDENTIALS_PATH (path to service account JSON file)\n"
        "3. GOOGLE_APPLICATION_CREDENTIALS (path to service account JSON file)\n"
        "4. FIREBASE_PROJECT_ID + FIREBASE_PRIVATE_KEY (+ client email/id)"
    )


def init_firebase() -> bool:
    """Initialise the default firebase_admin app.

    Returns False when running in DEV_MODE or when credentials are missing,
    so the HTTP app can still start and report "not configured".
    """
    if Settings.DEV_MODE:
        logger.info("DEV_MODE enabled - Firebase disabled")
        return False

    if firebase_admin._apps:
        return True

    if Settings.emulator_mode():
        project_id = os.getenv("GCLOUD_PROJECT") or Settings.FIREBASE_PROJECT_ID or "demo-opsdash"
        os.environ.setdefault("GCLOUD_PROJECT", project_id)
        logger.info(
            "Firebase emulator mode (firestore=%s, auth=%s, project=%s)",
            Settings.FIRESTORE_EMULATOR_HOST,
            Settings.FIREBASE_AUTH_EMULATOR_HOST,
            project_id,
        )
        firebase_admin.initialize_app(options={'projectId': project_id})
        return True

    try:
        cred = credentials.Certificate(get_firebase_credentials())
    except ValueError as e:
        logger.warning("Firebase not configured: %s", e)
        return False

    firebase_admin.initialize_app(cred)
    logger.info("Firebase initialised (cloud mode)")
    return True
