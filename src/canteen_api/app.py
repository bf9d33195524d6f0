"""
Factory for the canteen order API (REST).

Serves the order lifecycle under /api. Authentication is handled upstream;
the gateway forwards the caller's id and role as headers.
"""

from __future__ import annotations

from flask import Flask, jsonify
from flask_cors import CORS

from canteen_api.routes import api_bp
from canteen_shared.config import AppConfig, load_config, validate_required_env_vars
from canteen_shared.db import init_db, init_engine
from canteen_shared.error_handlers import register_error_handlers
from canteen_shared.logging_config import configure_logging
from canteen_shared.models import Base
from canteen_shared.policy import OrderPolicy, install_policy


def create_app(config: AppConfig | None = None, database_url: str | None = None) -> Flask:
    if config is None:
        # Fail fast on missing environment outside debug mode
        validate_required_env_vars(skip_in_debug=True)
        config = load_config("canteen-api")

    app = Flask(__name__)
    configure_logging(config.app_name, config.log_level)

    # Database
    init_engine(config, database_url)
    init_db(Base.metadata)

    install_policy(OrderPolicy.from_config(config))

    app.config["SECRET_KEY"] = config.secret_key
    app.config["APP_NAME"] = "Canteen API"
    app.config["DEBUG_MODE"] = config.debug_mode
    app.config["DEBUG"] = config.flask_debug

    app.register_blueprint(api_bp, url_prefix="/api")

    register_error_handlers(app)

    CORS(app, resources={r"/api/*": {"origins": config.cors_origins, "supports_credentials": True}})

    @app.route("/health")
    def health():
        return jsonify({"status": "ok", "service": config.app_name}), 200

    return app
