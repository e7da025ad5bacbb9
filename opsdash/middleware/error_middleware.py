"""
Error Handling Middleware
Maps the opsdash error taxonomy to JSON responses and logs them
"""
import logging

from flask import jsonify
from werkzeug.exceptions import HTTPException

from opsdash.exceptions import AuthError, DashboardError, ErpSyncError, StoreError
from opsdash.utils.validators import Helpers

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

logger = logging.getLogger(__name__)


def configure_logging(level=logging.INFO):
    logging.basicConfig(level=level, format=LOG_FORMAT)


class ErrorHandler:
    """Centralized error handling service"""

    @staticmethod
    def handle_dashboard_error(error: DashboardError) -> tuple:
        if isinstance(error, (StoreError, ErpSyncError)):
            logger.error("%s: %s", type(error).__name__, error.message)
        else:
            logger.warning("%s: %s", type(error).__name__, error.message)

        details = error.details
        if isinstance(error, AuthError):
            details = {**(details or {}), "provider_code": error.provider_code}

        return jsonify(Helpers.build_error_response(
            message=error.message,
            code=error.code,
            details=details,
        )), error.status_code

    @staticmethod
    def handle_http_error(error: HTTPException) -> tuple:
        logger.info("HTTP %s: %s", error.code, error.description)
        return jsonify(Helpers.build_error_response(
            message=error.description or error.name,
            code=error.name.upper().replace(" ", "_"),
        )), error.code

    @staticmethod
    def handle_generic_error(error: Exception) -> tuple:
        logger.exception("Unexpected error: %s", error)
        return jsonify(Helpers.build_error_response(
            message="An unexpected error occurred",
            code="INTERNAL_ERROR",
        )), 500


def register_error_handlers(app):
    """Register error handlers with Flask app"""

    @app.errorhandler(DashboardError)
    def handle_dashboard_error(error):
        return ErrorHandler.handle_dashboard_error(error)

    @app.errorhandler(HTTPException)
    def handle_http_error(error):
        return ErrorHandler.handle_http_error(error)

    @app.errorhandler(Exception)
    def handle_unhandled_exception(error):
        return ErrorHandler.handle_generic_error(error)
