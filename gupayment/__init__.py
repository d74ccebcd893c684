# gupayment/__init__.py
from __future__ import annotations

import logging
import os as _os
from logging.handlers import RotatingFileHandler

from flask import Flask

# Shared extensions (singletons) live in gupayment/extensions.py
from gupayment.extensions import db, migrate, login_manager

_LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def _mask_uri(uri: str) -> str:
    """Hide password in logs."""
    if "@" in uri and "://" in uri:
        head, tail = uri.split("://", 1)
        creds, rest = tail.split("@", 1)
        if ":" in creds:
            user, _pwd = creds.split(":", 1)
            return f"{head}://{user}:***@{rest}"
    return uri


def _configure_logging(app: Flask) -> None:
    """stderr always; rotating file when APP_ERROR_LOG is set."""
    stderr_handler = logging.StreamHandler()
    stderr_handler.setLevel(logging.INFO)
    stderr_handler.setFormatter(logging.Formatter(_LOG_FORMAT))

    app.logger.handlers.clear()
    app.logger.addHandler(stderr_handler)

    log_path = app.config.get("APP_ERROR_LOG")
    if log_path:
        _os.makedirs(_os.path.dirname(_os.path.abspath(log_path)), exist_ok=True)
        file_handler = RotatingFileHandler(log_path, maxBytes=1_000_000, backupCount=3, encoding="utf-8")
        file_handler.setLevel(logging.INFO)
        file_handler.setFormatter(logging.Formatter(_LOG_FORMAT))
        app.logger.addHandler(file_handler)

    app.logger.setLevel(logging.INFO)
    app.logger.propagate = False


def create_app(config_object=None, **overrides):
    from gupayment.config import Config

    app = Flask(__name__, instance_relative_config=False)

    # ---- Config -------------------------------------------------------------
    app.config.from_object(config_object or Config)
    app.config.update(overrides)

    cfg_env = _os.getenv("APP_CONFIG_FILE")
    if cfg_env:
        app.config.from_pyfile(_os.path.abspath(cfg_env))

    # ---- Logging ------------------------------------------------------------
    _configure_logging(app)
    if cfg_env:
        app.logger.info(f"Loaded config from APP_CONFIG_FILE={cfg_env}")

    # ---- Error tracking -----------------------------------------------------
    from gupayment.monitoring import init_sentry
    init_sentry(app)

    # ---- DB / Extensions init -----------------------------------------------
    db.init_app(app)
    migrate.init_app(app, db)

    login_manager.init_app(app)
    login_manager.session_protection = "strong"

    from gupayment import models  # noqa: F401

    @login_manager.user_loader
    def load_user(user_id: str):
        return db.session.get(models.User, int(user_id))

    # ---- Iugu -----------------------------------------------------------------
    from gupayment.iugu import init_iugu
    init_iugu(app)

    app.logger.info(f"Logger initialized. DB: {_mask_uri(app.config['SQLALCHEMY_DATABASE_URI'])}")

    # ---- Register blueprints -------------------------------------------------
    from gupayment.billing import billing_bp
    app.register_blueprint(billing_bp)
    app.logger.info("billing_bp registered")

    return app
