# gupayment/extensions.py
from __future__ import annotations
from flask_login import LoginManager
from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy

# --- SQLAlchemy --------------------------------------------------------------
db = SQLAlchemy()
# --- Flask-Migrate -----------------------------------------------------------
migrate = Migrate()
# --- Flask-Login -------------------------------------------------------------
login_manager = LoginManager()

__all__ = ["db", "migrate", "login_manager"]
