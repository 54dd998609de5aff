"""
API gateway: combines the users and events blueprints.
This is the local entrypoint for development.

The factory builds every collaborator explicitly (database pool, store,
lifecycle manager, registration engine, notifier) and attaches them to
`app.extensions`; nothing is held in module-level globals.
"""

import atexit
import logging
from typing import Any, Dict, Optional

from flask import Flask, jsonify
from flask_cors import CORS

from virtual_events.auth_service.routes import users_bp
from virtual_events.config import load_config
from virtual_events.database.db_connection import Database
from virtual_events.database.event_store import EventStore
from virtual_events.database.init_db import init_db
from virtual_events.errors import register_error_handlers
from virtual_events.events_service.lifecycle import EventLifecycleManager
from virtual_events.events_service.registration import RegistrationEngine
from virtual_events.events_service.routes import events_bp
from virtual_events.notifications.email_notifier import EmailNotifier

LOG_FORMAT = "[%(levelname)s] %(asctime)s - %(message)s"


def create_app(config: Optional[Dict[str, Any]] = None, store=None, notifier=None) -> Flask:
    """
    Application factory for creating the Flask app.

    Args:
        config: Overrides applied on top of the environment configuration.
        store: Persistence adapter to use instead of opening DATABASE_URL.
        notifier: Notifier to use instead of the Resend email notifier.

    Returns:
        Flask: The configured Flask application.
    """
    app = Flask(__name__)
    app.config.update(load_config())
    if config:
        app.config.update(config)

    # Basic console logging during API requests
    logging.basicConfig(level=app.config["LOG_LEVEL"], format=LOG_FORMAT)

    if not app.config.get("JWT_SECRET"):
        raise RuntimeError("JWT_SECRET is missing. Set it in .env")

    CORS(app, resources={
        r"/*": {
            "origins": app.config["CORS_ORIGINS"],
            "methods": ["GET", "POST", "PUT", "DELETE", "OPTIONS"],
            "allow_headers": ["Content-Type", "Authorization"],
        }
    })

    # --- PERSISTENCE ---
    if store is None:
        database = Database(
            app.config["DATABASE_URL"],
            app.config["DB_POOL_MIN"],
            app.config["DB_POOL_MAX"],
        )
        database.open()
        atexit.register(database.close)
        if app.config["INIT_DB"]:
            init_db(database)
        app.extensions["database"] = database
        store = EventStore(database)

    if notifier is None:
        notifier = EmailNotifier.from_config(app.config)
        atexit.register(notifier.shutdown)
        if not notifier.enabled:
            logging.info("Email notifier disabled: RESEND_API_KEY/RESEND_FROM_EMAIL not set")

    app.extensions["event_store"] = store
    app.extensions["notifier"] = notifier
    app.extensions["event_lifecycle"] = EventLifecycleManager(store)
    app.extensions["registration_engine"] = RegistrationEngine(
        store,
        notifier,
        use_transactions=app.config["USE_TRANSACTIONS"],
    )

    # --- REGISTER BLUEPRINTS ---
    app.register_blueprint(users_bp, url_prefix="/users")
    app.register_blueprint(events_bp, url_prefix="/events")
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


if __name__ == "__main__":
    app = create_app()
    app.run(host="0.0.0.0", port=app.config["GATEWAY_PORT"], debug=True)
