from flask import Blueprint

build_tasks_bp = Blueprint("build_tasks", __name__, url_prefix="/api/build-tasks")
billing_bp = Blueprint("billing", __name__, url_prefix="/api/billing")
users_bp = Blueprint("users", __name__, url_prefix="/api/users")
notifications_bp = Blueprint("notifications", __name__, url_prefix="/api/notifications")

# Import modules so routes attach
from . import build_tasks  # noqa
from . import billing  # noqa
from . import users  # noqa
from . import notifications  # noqa

__all__ = [
    "build_tasks_bp",
    "billing_bp",
    "users_bp",
    "notifications_bp",
]
