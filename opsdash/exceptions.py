"""
Error taxonomy shared by the models, services and API layer.

Models wrap every Firestore failure in a StoreError with a descriptive
message and re-raise; nothing is retried. The API layer turns these into
JSON error responses (see middleware.error_middleware).
"""


class DashboardError(Exception):
    """Base class for all errors raised by opsdash"""

    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(self, message: str, details=None):
        super().__init__(message)
        self.message = message
        self.details = details


class StoreError(DashboardError):
    """Any Firestore read or write failure"""

    code = "DATABASE_ERROR"


class AuthError(DashboardError):
    """Identity provider failure, sub-typed by provider code"""

    status_code = 401
    code = "AUTHENTICATION_ERROR"

    # Provider codes used by the password and account flows
    WRONG_PASSWORD = "wrong-password"
    WEAK_PASSWORD = "weak-password"
    REQUIRES_RECENT_LOGIN = "requires-recent-login"
    TOO_MANY_REQUESTS = "too-many-requests"
    NETWORK_FAILURE = "network-failure"
    OPERATION_NOT_ALLOWED = "operation-not-allowed"
    EMAIL_IN_USE = "email-already-in-use"
    INVALID_ARGUMENT = "invalid-argument"
    UNKNOWN = "unknown"

    def __init__(self, message: str, provider_code: str = UNKNOWN, details=None):
        super().__init__(message, details)
        self.provider_code = provider_code


class ValidationError(DashboardError):
    """Bad input: password policy, enum values, delete confirmation text"""

    status_code = 400
    code = "VALIDATION_ERROR"


class NotFoundError(DashboardError):
    """Task, sub-task, entry or user missing"""

    status_code = 404
    code = "NOT_FOUND"


class PermissionDeniedError(DashboardError):
    status_code = 403
    code = "AUTHORIZATION_ERROR"


class ErpSyncError(DashboardError):
    """The external ERP rejected or never answered a billing push"""

    status_code = 502
    code = "ERP_SYNC_ERROR"
