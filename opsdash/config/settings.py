import os
from dotenv import load_dotenv

# Load environment variables
load_dotenv()


def _optional_float(name):
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return None
    return float(value)


class Settings:
    # Flask settings
    FLASK_ENV = os.getenv('FLASK_ENV', 'development')
    DEBUG = FLASK_ENV == 'development'
    PORT = int(os.getenv('PORT', 5000))
    DEV_MODE = os.getenv('DEV_MODE', 'false').lower() == 'true'

    # CORS settings
    CORS_ORIGINS = os.getenv('CORS_ORIGINS', '*').split(',')

    # Firebase settings
    FIREBASE_PROJECT_ID = os.getenv('FIREBASE_PROJECT_ID')
    FIREBASE_CREDENTIALS_PATH = os.getenv('FIREBASE_CREDENTIALS_PATH', './serviceAccountKey.json')
    # Web API key is needed for password re-authentication (Identity Toolkit REST)
    FIREBASE_WEB_API_KEY = os.getenv('FIREBASE_WEB_API_KEY')
    FIRESTORE_EMULATOR_HOST = os.getenv('FIRESTORE_EMULATOR_HOST')
    FIREBASE_AUTH_EMULATOR_HOST = os.getenv('FIREBASE_AUTH_EMULATOR_HOST')

    # Outbound email (single relay account)
    SMTP_HOST = os.getenv('SMTP_HOST')
    SMTP_PORT = int(os.getenv('SMTP_PORT', 587))
    SMTP_USER = os.getenv('SMTP_USER')
    SMTP_PASSWORD = os.getenv('SMTP_PASSWORD')
    EMAIL_FROM = os.getenv('EMAIL_FROM', '"Task Update" <noreply@yourdomain.com>')

    # ERP push for billing entries. Unset URL means the stub client is used.
    ERP_API_URL = os.getenv('ERP_API_URL')
    ERP_API_TOKEN = os.getenv('ERP_API_TOKEN')
    ERP_TIMEOUT_SECONDS = _optional_float('ERP_TIMEOUT_SECONDS')

    # Notification fan-out
    NOTIFY_MAX_WORKERS = int(os.getenv('NOTIFY_MAX_WORKERS', 4))

    @classmethod
    def emulator_mode(cls) -> bool:
        return bool(cls.FIRESTORE_EMULATOR_HOST or cls.FIREBASE_AUTH_EMULATOR_HOST)

    @classmethod
    def validate(cls):
        """Validate required settings"""
        missing_vars = []
        if not cls.DEV_MODE and not cls.emulator_mode():
            if not cls.FIREBASE_PROJECT_ID:
                missing_vars.append('FIREBASE_PROJECT_ID')
            if not cls.FIREBASE_WEB_API_KEY:
                missing_vars.append('FIREBASE_WEB_API_KEY')

        if missing_vars:
            raise ValueError(f"Missing required environment variables: {', '.join(missing_vars)}")

        if cls.NOTIFY_MAX_WORKERS < 1:
            raise ValueError("NOTIFY_MAX_WORKERS must be at least 1")

        return True
