"""
API gateway: combines the events and users blueprints.
This is the entrypoint for local development and for WSGI servers.
"""

import logging
import os
from typing import Optional

from flask import Flask, jsonify
from flask_cors import CORS
from werkzeug.exceptions import HTTPException

from ticketing.auth_service.provider import AuthProvider, SupabaseAuthProvider
from ticketing.common.errors import ApiError, MethodNotAllowed, UpstreamError
from ticketing.config import Settings, load_settings
from ticketing.database.record_store import PostgresRecordStore, RecordStore
from ticketing.gateway import extensions

# Basic console logging during API requests
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format="[%(levelname)s] %(asctime)s - %(message)s",
)

CORS_METHODS = ["GET", "POST", "PUT", "DELETE", "OPTIONS"]
CORS_HEADERS = ["Content-Type", "Authorization"]


def register_error_handlers(app: Flask) -> None:
    """Render every failure as the standard error envelope."""

    @app.errorhandler(ApiError)
    def handle_api_error(error: ApiError):
        return jsonify(error.to_response()), error.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(error: HTTPException):
        # Routing failures; a wrong method never reaches the handler
        if error.code == 405:
            return handle_api_error(MethodNotAllowed())
        body = {"status": "error", "message": error.name}
        return jsonify(body), error.code

    @app.errorhandler(Exception)
    def handle_unexpected_error(error: Exception):
        logging.exception(f"Unhandled error: {error}")
        # The traceback stays in the log; the client only sees the envelope
        return handle_api_error(UpstreamError("An unexpected error occurred"))


def create_app(
    settings: Optional[Settings] = None,
    auth_provider: Optional[AuthProvider] = None,
    record_store: Optional[RecordStore] = None,
) -> Flask:
    """
    Application factory for creating the Flask app.

    Collaborators not passed in are built from settings, which are read
    from the environment when not given.

    Returns:
        Flask: The configured Flask application.
    """
    if settings is None:
        settings = Settings() if auth_provider and record_store else load_settings()
    if record_store is None:
        record_store = PostgresRecordStore(settings.database_url)
    if auth_provider is None:
        auth_provider = SupabaseAuthProvider.from_settings(settings)

    app = Flask(__name__)
    app.url_map.strict_slashes = False
    extensions.init_app(app, auth_provider, record_store)

    # One allow-list for every handler
    origins = settings.cors_allowed_origins
    wildcard = "*" in origins
    CORS(app, resources={
        r"/*": {
            "origins": "*" if wildcard else origins,
            "send_wildcard": wildcard,
            "methods": CORS_METHODS,
            "allow_headers": CORS_HEADERS,
        }
    })

    # --- REGISTER BLUEPRINTS ---
    from ticketing.events_service.routes import events_bp
    from ticketing.users_service.routes import users_bp

    app.register_blueprint(events_bp, url_prefix="/api/events")
    app.register_blueprint(users_bp, url_prefix="/api/users")
    register_error_handlers(app)

    logging.info("All blueprints registered successfully.")

    # --- BASIC HEALTH CHECKPOINTS ---
    @app.route("/")
    def ping():
        """
        Root URL for simple 'online' check.
        """
        return jsonify({"status": "gateway_ok"}), 200

    @app.route("/health")
    def health():
        """
        Health check endpoint.
        """
        return jsonify({"status": "ok"}), 200

    return app


def main() -> None:
    settings = load_settings()
    app = create_app(settings)
    app.run(host="0.0.0.0", port=settings.gateway_port, debug=os.getenv("FLASK_DEBUG") == "1")


if __name__ == "__main__":
    main()
