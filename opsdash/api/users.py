from flask import g, jsonify, request

from . import users_bp
from opsdash.config.firebase_config import get_db
from opsdash.exceptions import PermissionDeniedError
from opsdash.middleware.auth_middleware import admin_only, firebase_required
from opsdash.models.user_model import UserModel
from opsdash.services.auth_service import AuthService
from opsdash.services.validation_service import ValidationService


def _payload():
    return request.get_json(silent=True) or {}


def _model():
    return UserModel(get_db())


def _require_self_or_admin(uid):
    current = g.current_user
    if current.get("uid") != uid and current.get("role") != "admin":
        raise PermissionDeniedError("Insufficient permissions")


@users_bp.get("")
@admin_only
def list_users():
    return jsonify(_model().list_users()), 200


@users_bp.post("")
@admin_only
def create_user():
    data = ValidationService.require(ValidationService.validate_new_user(_payload()))
    user = _model().create_user(data["email"], data["password"], data["role"], data["displayName"])
    return jsonify({"user": user}), 201


@users_bp.get("/<uid>")
@firebase_required
def get_user(uid):
    _require_self_or_admin(uid)
    return jsonify(_model().get_user(uid)), 200


@users_bp.patch("/<uid>/role")
@admin_only
def update_role(uid):
    role = ValidationService.require(ValidationService.validate_role(_payload().get("role")))
    _model().update_role(uid, role)
    return jsonify({"ok": True, "uid": uid, "role": role}), 200


@users_bp.patch("/<uid>/profile")
@firebase_required
def update_profile(uid):
    _require_self_or_admin(uid)
    display_name = ValidationService.require(
        ValidationService.validate_display_name(_payload().get("displayName"))
    )
    _model().update_profile(uid, display_name)
    return jsonify({"ok": True, "uid": uid, "displayName": display_name}), 200


@users_bp.delete("/<uid>")
@admin_only
def delete_user(uid):
    """Cascade-delete a user. Body: ``{"confirm": "<the user's email>"}``"""
    model = _model()
    email = model.confirmation_email(uid)
    ValidationService.check_delete_confirmation(email, _payload().get("confirm"))
    result = model.delete_user(uid)
    return jsonify({"ok": True, **result}), 200


@users_bp.post("/me/session")
@firebase_required
def record_session():
    """Called by the client after sign-in: creates the profile or bumps lastLogin"""
    current = g.current_user
    role = _model().ensure_profile(current["uid"], current.get("email"), current.get("name"))
    return jsonify({"uid": current["uid"], "role": role}), 200


@users_bp.post("/me/password")
@firebase_required
def change_password():
    payload = _payload()
    current = g.current_user
    AuthService(_model()).change_password(
        current["uid"],
        current.get("email"),
        payload.get("current_password") or "",
        payload.get("new_password") or "",
    )
    return jsonify({
        "ok": True,
        "message": "Password updated successfully! Please use your new password for future logins.",
    }), 200


@users_bp.get("/password-policy")
def password_policy():
    return jsonify({"requirements": ValidationService.PASSWORD_REQUIREMENTS}), 200
