from functools import wraps

from flask import g, request

from opsdash.config.firebase_config import get_db
from opsdash.exceptions import AuthError, PermissionDeniedError
from opsdash.models.user_model import UserModel
from opsdash.services.auth_service import AuthService


def _bearer_token():
    header = request.headers.get('Authorization', '')
    scheme, _, token = header.partition(' ')
    if scheme.lower() != 'bearer' or not token.strip():
        return None
    return token.strip()


def firebase_required(f):
    """Verify the Firebase ID token and expose the caller on ``g.current_user``"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = _bearer_token()
        if not token:
            raise AuthError('Token is missing', AuthError.INVALID_ARGUMENT)

        decoded = AuthService.verify_id_token(token)
        uid = decoded.get('uid')
        role = UserModel(get_db()).get_role(uid)
        g.current_user = {
            'uid': uid,
            'email': decoded.get('email'),
            'name': decoded.get('name'),
            'role': role,
        }
        return f(*args, **kwargs)

    return decorated_function


def role_required(*roles):
    """Require one of ``roles`` on the caller's profile. Use under firebase_required."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            current = getattr(g, 'current_user', None)
            if not current:
                raise AuthError('Authentication required', AuthError.INVALID_ARGUMENT)
            if current.get('role') not in roles:
                raise PermissionDeniedError('Insufficient permissions')
            return f(*args, **kwargs)
        return decorated_function
    return decorator


def admin_only(f):
    return firebase_required(role_required('admin')(f))
