"""
API gateway: combines the auth, categories and events blueprints.
This is the entrypoint for the API server.
"""

import logging
import os
from typing import List, Union

from flask import Flask, jsonify
from flask_cors import CORS
from dotenv import load_dotenv

load_dotenv()

# Basic console logging during API requests
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="[%(levelname)s] %(asctime)s - %(message)s",
)

DEFAULT_PORT = 3000


def cors_origins() -> Union[str, List[str]]:
    """Allowed CORS origins: "*" unless CORS_ORIGINS lists them (comma-separated)."""
    raw = os.getenv("CORS_ORIGINS", "*").strip()
    if raw == "*":
        return "*"
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


def create_app() -> Flask:
    """
    Application factory for creating the Flask app.

    Returns:
        Flask: The configured Flask application.
    """
    from civic_events.auth_service.routes import auth_bp
    from civic_events.categories_service.routes import categories_bp
    from civic_events.common.errors import register_error_handlers
    from civic_events.events_service.routes import events_bp

    app = Flask(__name__)
    # The public site and the admin panel are served from other origins
    CORS(app, resources={
        r"/api/*": {
            "origins": cors_origins(),
            "methods": ["GET", "POST", "PUT", "DELETE", "OPTIONS"],
            "allow_headers": ["Content-Type", "Authorization"],
        },
        r"/health": {"origins": "*"},
    })

    # --- REGISTER BLUEPRINTS ---
    app.register_blueprint(auth_bp, url_prefix="/api/auth")
    app.register_blueprint(categories_bp, url_prefix="/api/categories")
    app.register_blueprint(events_bp, url_prefix="/api/events")
    logging.info("All blueprints registered successfully.")

    register_error_handlers(app)

    # --- BASIC HEALTH CHECKPOINT ---
    @app.route("/health")
    def health():
        """
        Health check endpoint.
        """
        return jsonify({"status": "healthy"}), 200

    return app


def main() -> None:
    app = create_app()
    port = int(os.getenv("PORT", DEFAULT_PORT))
    app.run(host="0.0.0.0", port=port)


if __name__ == "__main__":
    main()
