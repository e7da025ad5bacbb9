import logging

from flask import Flask, jsonify
from flask_cors import CORS

from opsdash.api import billing_bp, build_tasks_bp, notifications_bp, users_bp
from opsdash.config.settings import Settings
from opsdash.firebase_utils import init_firebase
from opsdash.middleware.error_middleware import configure_logging, register_error_handlers

logger = logging.getLogger(__name__)


def create_app(db=None, init_firebase_app: bool = True):
    """Create and configure the Flask application.

    Args:
        db: Firestore client to use instead of the default firebase_admin
            client (tests pass an in-memory double here).
        init_firebase_app: Set False to skip firebase_admin initialisation.
    """
    app = Flask(__name__)
    app.config["FIRESTORE_CLIENT"] = db

    CORS(app,
         resources={r"/*": {"origins": Settings.CORS_ORIGINS}},
         allow_headers=["Content-Type", "Authorization"],
         methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
         supports_credentials=True)

    firebase_initialized = db is not None
    if init_firebase_app and db is None:
        firebase_initialized = init_firebase()

    @app.get("/")
    def health():
        return jsonify({
            "status": "ok",
            "service": "opsdash-api",
            "firebase": "connected" if firebase_initialized else "not configured",
        }), 200

    register_error_handlers(app)

    app.register_blueprint(build_tasks_bp)
    app.register_blueprint(billing_bp)
    app.register_blueprint(users_bp)
    app.register_blueprint(notifications_bp)

    return app


def main():
    """Run the development server."""
    configure_logging(logging.DEBUG if Settings.DEBUG else logging.INFO)
    Settings.validate()
    app = create_app()
    logger.info("Starting opsdash API on port %s", Settings.PORT)
    app.run(host="0.0.0.0", port=Settings.PORT, debug=Settings.DEBUG)


if __name__ == "__main__":  # pragma: no cover
    main()
