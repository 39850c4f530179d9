import logging
import os

from flask import Flask
from flask_jwt_extended import JWTManager

from .api import api
from .models import db

log = logging.getLogger(__name__)


def _env_flag(name, default="False"):
    return os.getenv(name, default).lower() in ("1", "true", "yes")


def engine_options(database_url, timeout):
    """Bound every store call: busy timeout for SQLite, pool/connect/statement timeouts otherwise."""
    if database_url.startswith("sqlite"):
        return {"connect_args": {"timeout": timeout}}
    options = {"pool_timeout": timeout, "pool_pre_ping": True}
    if database_url.startswith("postgresql"):
        options["connect_args"] = {
            "connect_timeout": int(timeout),
            "options": f"-c statement_timeout={int(timeout * 1000)}",
        }
    elif database_url.startswith("mysql"):
        options["connect_args"] = {"connect_timeout": int(timeout)}
    return options


def create_app(test_config=None):
    app = Flask(__name__)

    app.config.update(
        SQLALCHEMY_DATABASE_URI=os.getenv("DATABASE_URL", "sqlite:///almanac.db"),
        SQLALCHEMY_TRACK_MODIFICATIONS=False,
        STORE_TIMEOUT_SECONDS=float(os.getenv("STORE_TIMEOUT_SECONDS", "5")),
        MQTT_ENABLED=_env_flag("MQTT_ENABLED"),
        MQTT_BROKER_URL=os.getenv("MQTT_BROKER_URL", "localhost"),
        MQTT_BROKER_PORT=int(os.getenv("MQTT_BROKER_PORT", "1883")),
        JWT_SECRET_KEY=os.getenv("JWT_SECRET", "super-secret-key-please-change-me-now"),
    )
    if test_config:
        app.config.update(test_config)
    app.config.setdefault(
        "SQLALCHEMY_ENGINE_OPTIONS",
        engine_options(app.config["SQLALCHEMY_DATABASE_URI"], app.config["STORE_TIMEOUT_SECONDS"]),
    )

    db.init_app(app)
    JWTManager(app)
    app.register_blueprint(api)

    with app.app_context():
        db.create_all()

    if app.config["MQTT_ENABLED"]:
        from .telemetry import init_mqtt
        app.extensions["almanac_mqtt"] = init_mqtt(app)

    return app


if __name__ == "__main__":
    logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO"))
    app = create_app()
    app.run(host="0.0.0.0", port=8000, debug=_env_flag("FLASK_DEBUG"))
