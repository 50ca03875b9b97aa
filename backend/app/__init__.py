"""Flask application factory."""

import json
import logging
import os
from flask import Flask
from flask_cors import CORS

DEFAULT_CONFIG = {
    "JIRA_HTTP_TIMEOUT": 30.0,
    "MAX_CONCURRENT_QUERIES": 4,
    "SAMPLING_TIMEOUT": 60.0,
    "MAX_PERIOD_COUNT": 366,
}

CONFIG_PATH = os.path.join(
    os.path.dirname(__file__), "..", "config", "service-config.json"
)


def _coerce(app, key, value):
    """Convert a config value to the type of its default, or keep the default."""
    default = DEFAULT_CONFIG[key]
    try:
        coerced = type(default)(value)
    except (TypeError, ValueError):
        app.logger.warning(f"Invalid value for {key}: {value!r}, using {default}")
        return default
    if coerced <= 0:
        app.logger.warning(f"{key} must be positive, using {default}")
        return default
    return coerced


def load_service_config(app, config_path=CONFIG_PATH):
    """Load service settings from defaults, config file and environment.

    Environment variables win over service-config.json, which wins over
    the built-in defaults.
    """
    settings = dict(DEFAULT_CONFIG)

    if os.path.exists(config_path):
        try:
            with open(config_path, "r") as f:
                file_settings = json.load(f)
            if not isinstance(file_settings, dict):
                raise ValueError("top-level value must be an object")
            for key in DEFAULT_CONFIG:
                if key in file_settings:
                    settings[key] = _coerce(app, key, file_settings[key])
            app.logger.info(f"Loaded service config from {config_path}")
        except (ValueError, IOError) as e:
            app.logger.warning(f"Failed to load service config: {e}")
    else:
        app.logger.info("No service-config.json found, using defaults")

    for key in DEFAULT_CONFIG:
        if key in os.environ:
            settings[key] = _coerce(app, key, os.environ[key])

    app.config.update(settings)


def create_app(config_overrides=None):
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.logger.setLevel(os.environ.get("LOG_LEVEL", "INFO").upper())
    logging.getLogger("services").setLevel(app.logger.level)

    # Any origin may call the stats endpoints
    CORS(app, resources={
        r"/*": {
            "origins": "*",
            "methods": ["GET", "POST", "PUT", "DELETE", "OPTIONS"],
            "allow_headers": ["Origin", "Content-Type", "X-Auth-Token"]
        }
    }, send_wildcard=True)

    load_service_config(app)
    if config_overrides:
        app.config.update(config_overrides)

    # Register blueprints
    from app.api import stats
    app.register_blueprint(stats.bp)

    # Health check endpoint
    @app.route("/health")
    def health():
        return {"status": "ok"}

    return app
