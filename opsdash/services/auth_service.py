"""
Password flows against Firebase Auth.

The admin SDK cannot check a password, so re-authentication goes through
the Identity Toolkit ``signInWithPassword`` REST endpoint (or the Auth
emulator when ``FIREBASE_AUTH_EMULATOR_HOST`` is set).
"""
import logging
from typing import Any, Dict, Optional

import requests
from firebase_admin import auth as firebase_auth
from firebase_admin.exceptions import FirebaseError

from opsdash.config.settings import Settings
from opsdash.exceptions import AuthError
from opsdash.services.validation_service import ValidationService

logger = logging.getLogger(__name__)

# Identity Toolkit error messages -> provider codes
_REST_ERROR_CODES = {
    "INVALID_PASSWORD": AuthError.WRONG_PASSWORD,
    "INVALID_LOGIN_CREDENTIALS": AuthError.WRONG_PASSWORD,
    "EMAIL_NOT_FOUND": AuthError.WRONG_PASSWORD,
    "USER_DISABLED": AuthError.OPERATION_NOT_ALLOWED,
    "TOO_MANY_ATTEMPTS_TRY_LATER": AuthError.TOO_MANY_REQUESTS,
    "WEAK_PASSWORD": AuthError.WEAK_PASSWORD,
    "CREDENTIAL_TOO_OLD_LOGIN_AGAIN": AuthError.REQUIRES_RECENT_LOGIN,
    "TOKEN_EXPIRED": AuthError.REQUIRES_RECENT_LOGIN,
    "OPERATION_NOT_ALLOWED": AuthError.OPERATION_NOT_ALLOWED,
    "PASSWORD_LOGIN_DISABLED": AuthError.OPERATION_NOT_ALLOWED,
}

_USER_MESSAGES = {
    AuthError.WRONG_PASSWORD: "User entered the wrong current password",
    AuthError.WEAK_PASSWORD: "The new password is too weak. Please choose a stronger password.",
    AuthError.REQUIRES_RECENT_LOGIN: "For security reasons, please log out and log back in before changing your password.",
    AuthError.TOO_MANY_REQUESTS: "Too many attempts. Please try again later.",
    AuthError.NETWORK_FAILURE: "Network error. Please check your connection and try again.",
    AuthError.OPERATION_NOT_ALLOWED: "Password changes are currently disabled. Please contact support.",
}


def provider_code_for(message: str) -> str:
    """Map an Identity Toolkit error message (e.g. ``WEAK_PASSWORD : ...``) to a code"""
    key = (message or "").split(":")[0].strip()
    return _REST_ERROR_CODES.get(key, AuthError.UNKNOWN)


def auth_error(code: str, fallback: str = "Authentication failed") -> AuthError:
    return AuthError(_USER_MESSAGES.get(code, fallback), code)


class AuthService:
    """Authentication service using Firebase Auth"""

    def __init__(self, user_model, api_key: Optional[str] = None, session: Optional[requests.Session] = None):
        self.user_model = user_model
        self.api_key = api_key if api_key is not None else Settings.FIREBASE_WEB_API_KEY
        self.session = session or requests.Session()

    def _sign_in_url(self) -> str:
        if Settings.FIREBASE_AUTH_EMULATOR_HOST:
            base = f"http://{Settings.FIREBASE_AUTH_EMULATOR_HOST}/identitytoolkit.googleapis.com"
        else:
            base = "https://identitytoolkit.googleapis.com"
        return f"{base}/v1/accounts:signInWithPassword?key={self.api_key or 'emulator'}"

    def reauthenticate(self, email: str, password: str) -> Dict[str, Any]:
        """Verify ``email``/``password``; raises AuthError with a provider code"""
        if not self.api_key and not Settings.FIREBASE_AUTH_EMULATOR_HOST:
            raise AuthError("Password verification is not configured", AuthError.OPERATION_NOT_ALLOWED)

        try:
            response = self.session.post(self._sign_in_url(), json={
                "email": email,
                "password": password,
                "returnSecureToken": True,
            }, timeout=10)
        except requests.RequestException as e:
            logger.warning("Re-authentication request failed: %s", e)
            raise auth_error(AuthError.NETWORK_FAILURE) from e

        if not response.ok:
            try:
                message = response.json().get("error", {}).get("message", "")
            except ValueError:
                message = ""
            code = provider_code_for(message)
            logger.info("Re-authentication rejected for %s: %s", email, message or response.status_code)
            raise auth_error(code, "Failed to verify current password")

        return response.json()

    def change_password(self, uid: str, email: str, current_password: str, new_password: str) -> None:
        """Validate, re-authenticate, update the credential, then record the change.

        ``lastPasswordChange`` is only written after the credential update
        succeeded.
        """
        ValidationService.require(ValidationService.validate_password_change(current_password, new_password))

        self.reauthenticate(email, current_password)

        try:
            firebase_auth.update_user(uid, password=new_password)
        except ValueError as e:
            raise auth_error(AuthError.WEAK_PASSWORD) from e
        except firebase_auth.UserNotFoundError as e:
            raise auth_error(AuthError.REQUIRES_RECENT_LOGIN) from e
        except FirebaseError as e:
            logger.error("Password update failed for %s: %s", uid, e)
            raise AuthError(str(e) or "Failed to update password. Please try again.", AuthError.UNKNOWN) from e

        self.user_model.update_last_password_change(uid)
        logger.info("Password changed for %s", uid)

    @staticmethod
    def verify_id_token(id_token: str) -> Dict[str, Any]:
        try:
            return firebase_auth.verify_id_token(id_token)
        except firebase_auth.RevokedIdTokenError as e:
            raise AuthError("Token has been revoked", AuthError.REQUIRES_RECENT_LOGIN) from e
        except firebase_auth.CertificateFetchError as e:
            logger.error("Could not fetch token signing certificates: %s", e)
            raise auth_error(AuthError.NETWORK_FAILURE) from e
        except (firebase_auth.InvalidIdTokenError, firebase_auth.ExpiredIdTokenError) as e:
            raise AuthError("Invalid or expired token", AuthError.REQUIRES_RECENT_LOGIN) from e
        except ValueError as e:
            raise AuthError("Invalid token", AuthError.INVALID_ARGUMENT) from e
