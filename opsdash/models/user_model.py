"""
User profiles mirrored from Firebase Auth.

The profile document id is the Auth uid. Deleting a user cascades through
the profile, the user's task subscriptions and every task's subscriber
array before the Auth account itself is removed. There is no rollback: if
the Auth deletion fails the account keeps its credentials without a profile.
"""
import logging
from typing import Any, Dict, List, Optional

from firebase_admin import auth, firestore
from firebase_admin.exceptions import FirebaseError
from google.api_core.exceptions import NotFound
from google.cloud.firestore_v1.base_query import FieldFilter

from opsdash.config import collections
from opsdash.exceptions import AuthError, NotFoundError, StoreError, ValidationError
from opsdash.utils.validators import Helpers, Validators

logger = logging.getLogger(__name__)

DEFAULT_ROLE = "user"


def user_to_json(doc) -> Dict[str, Any]:
    data = doc.to_dict() or {}
    return {
        "uid": doc.id,
        "email": data.get("email"),
        "displayName": data.get("displayName"),
        "role": data.get("role", DEFAULT_ROLE),
        "lastLogin": Helpers.format_timestamp(data.get("lastLogin")),
        "lastPasswordChange": Helpers.format_timestamp(data.get("lastPasswordChange")),
        "createdAt": Helpers.format_timestamp(data.get("createdAt")),
        "updatedAt": Helpers.format_timestamp(data.get("updatedAt")),
    }


class UserModel:
    """User profile repository for Firestore + Firebase Auth operations"""

    def __init__(self, db):
        self.db = db
        self.collection = db.collection(collections.USERS)

    # ------------------------------------------------------------------
    # reads
    # ------------------------------------------------------------------
    def get_user(self, uid: str) -> Dict[str, Any]:
        try:
            doc = self.collection.document(uid).get()
        except Exception as e:
            logger.error("Error fetching user %s: %s", uid, e)
            raise StoreError("Failed to load user") from e
        if not doc.exists:
            raise NotFoundError("User not found")
        return user_to_json(doc)

    def confirmation_email(self, uid: str) -> Optional[str]:
        """Email an admin must type to delete ``uid``.

        Falls back to the Auth account when the profile is already gone, so a
        deletion whose Auth step failed can be retried.
        """
        try:
            return self.get_user(uid).get("email")
        except NotFoundError:
            pass
        try:
            return auth.get_user(uid).email
        except auth.UserNotFoundError as e:
            raise NotFoundError("User not found") from e
        except FirebaseError as e:
            logger.error("Error fetching auth account %s: %s", uid, e)
            raise AuthError("Failed to load user account", AuthError.UNKNOWN) from e

    def get_role(self, uid: str) -> Optional[str]:
        try:
            doc = self.collection.document(uid).get()
        except Exception as e:
            raise StoreError("Failed to load user role") from e
        if not doc.exists:
            return None
        return (doc.to_dict() or {}).get("role", DEFAULT_ROLE)

    def list_users(self) -> List[Dict[str, Any]]:
        try:
            return [user_to_json(d) for d in self.collection.stream()]
        except Exception as e:
            logger.error("Error fetching users: %s", e)
            raise StoreError("Failed to load users") from e

    # ------------------------------------------------------------------
    # lifecycle
    # ------------------------------------------------------------------
    def create_user(self, email: str, password: str, role: str, display_name: str) -> Dict[str, Any]:
        """Create the Auth account, then its mirrored profile document"""
        if not Validators.validate_role(role):
            raise ValidationError(f"Role must be one of: {', '.join(Validators.ROLES)}")

        try:
            record = auth.create_user(email=email, password=password, display_name=display_name)
        except auth.EmailAlreadyExistsError as e:
            raise AuthError("Email already registered", AuthError.EMAIL_IN_USE) from e
        except ValueError as e:
            # admin SDK validates password length/email format client-side
            raise AuthError(f"Invalid account details: {e}", AuthError.INVALID_ARGUMENT) from e
        except FirebaseError as e:
            logger.error("Error creating auth account for %s: %s", email, e)
            raise AuthError("Failed to create user", AuthError.UNKNOWN) from e

        now = Helpers.get_current_timestamp()
        profile = {
            "uid": record.uid,
            "email": record.email or email,
            "displayName": display_name,
            "role": role,
            "lastLogin": now,
            "lastPasswordChange": now,
            "createdAt": now,
            "updatedAt": now,
        }
        try:
            self.collection.document(record.uid).set(profile)
        except Exception as e:
            logger.error("Error creating profile for %s: %s", record.uid, e)
            raise StoreError("Failed to create user profile") from e

        logger.info("Created user %s (%s) with role %s", record.uid, email, role)
        return {**profile, **{k: Helpers.format_timestamp(now) for k in
                              ("lastLogin", "lastPasswordChange", "createdAt", "updatedAt")}}

    def ensure_profile(self, uid: str, email: Optional[str], display_name: Optional[str]) -> str:
        """Called on sign-in: create a default profile or bump lastLogin. Returns the role."""
        try:
            ref = self.collection.document(uid)
            doc = ref.get()
            now = Helpers.get_current_timestamp()
            if not doc.exists:
                ref.set({
                    "uid": uid,
                    "email": email,
                    "displayName": display_name,
                    "role": DEFAULT_ROLE,
                    "lastLogin": now,
                    "lastPasswordChange": now,
                    "createdAt": now,
                    "updatedAt": now,
                })
                logger.info("Created default profile for %s", uid)
                return DEFAULT_ROLE
            ref.update({"lastLogin": now, "updatedAt": now})
            return (doc.to_dict() or {}).get("role", DEFAULT_ROLE)
        except Exception as e:
            logger.error("Error ensuring profile for %s: %s", uid, e)
            raise StoreError("Failed to record sign-in") from e

    def update_role(self, uid: str, role: str) -> None:
        if not Validators.validate_role(role):
            raise ValidationError(f"Role must be one of: {', '.join(Validators.ROLES)}")
        self._update(uid, {"role": role}, "Failed to update user role")

    def update_profile(self, uid: str, display_name: str) -> None:
        self._update(uid, {"displayName": display_name}, "Failed to update user profile")

    def update_last_login(self, uid: str) -> None:
        self._update(uid, {"lastLogin": Helpers.get_current_timestamp()}, "Failed to update last login")

    def update_last_password_change(self, uid: str) -> None:
        self._update(uid, {"lastPasswordChange": Helpers.get_current_timestamp()},
                     "Failed to update last password change")

    def delete_user(self, uid: str) -> Dict[str, Any]:
        """Cascade-delete a user. Returns counts of what was removed."""
        result = {"uid": uid, "subscriptions_deleted": 0, "tasks_updated": 0, "auth_deleted": False}

        try:
            self.collection.document(uid).delete()

            subs = self.db.collection(collections.TASK_SUBSCRIPTIONS).where(
                filter=FieldFilter("userId", "==", uid)
            ).stream()
            for doc in subs:
                doc.reference.delete()
                result["subscriptions_deleted"] += 1

            tasks = self.db.collection(collections.BUILD_TASKS).where(
                filter=FieldFilter("subscribers", "array_contains", uid)
            ).stream()
            for doc in tasks:
                doc.reference.update({"subscribers": firestore.ArrayRemove([uid])})
                result["tasks_updated"] += 1
        except Exception as e:
            logger.error("Error deleting user data for %s: %s", uid, e)
            raise StoreError("Failed to delete user") from e

        try:
            auth.delete_user(uid)
            result["auth_deleted"] = True
        except auth.UserNotFoundError:
            logger.warning("Auth account %s already gone", uid)
        except FirebaseError as e:
            # Profile and subscriptions are already gone at this point
            logger.error("Auth deletion failed for %s after data removal: %s", uid, e)
            raise AuthError("Failed to delete user account", AuthError.UNKNOWN) from e

        logger.info("Deleted user %s (%d subscriptions, %d tasks)", uid,
                    result["subscriptions_deleted"], result["tasks_updated"])
        return result

    def _update(self, uid: str, fields: Dict[str, Any], failure: str) -> None:
        try:
            self.collection.document(uid).update({**fields, "updatedAt": Helpers.get_current_timestamp()})
        except NotFound as e:
            raise NotFoundError("User not found") from e
        except Exception as e:
            logger.error("%s (%s): %s", failure, uid, e)
            raise StoreError(failure) from e
