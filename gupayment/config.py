# gupayment/config.py
from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from types import MappingProxyType
from typing import Mapping, Tuple

from dotenv import load_dotenv
from flask import Config as FlaskConfig

load_dotenv()

ID_COLUMN_KEY = "IUGU_SUBSCRIPTION_MODEL_ID_COLUMN"
PLAN_COLUMN_KEY = "IUGU_SUBSCRIPTION_MODEL_PLAN_COLUMN"

DEFAULT_ID_COLUMN = "iugu_id"
DEFAULT_PLAN_COLUMN = "iugu_plan"


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "change-this")
    SQLALCHEMY_DATABASE_URI = os.environ.get("SQLALCHEMY_DATABASE_URI", "sqlite:///gupayment.db")
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Iugu API
    IUGU_API_TOKEN = os.environ.get("IUGU_API_TOKEN", "")
    IUGU_API_BASE = os.environ.get("IUGU_API_BASE", "https://api.iugu.com/v1")
    IUGU_TIMEOUT = float(os.environ.get("IUGU_TIMEOUT", "15"))

    # Subscription storage columns come from subscription_columns(): the
    # environment, then IUGU_SUBSCRIPTION_MODEL_ID_COLUMN /
    # IUGU_SUBSCRIPTION_MODEL_PLAN_COLUMN here or in APP_CONFIG_FILE, then the
    # defaults. They are fixed when gupayment.models is first imported.

    # Rotating error log (disabled when empty)
    APP_ERROR_LOG = os.environ.get("APP_ERROR_LOG", "")

    # Sentry error tracking
    SENTRY_DSN = os.environ.get("SENTRY_DSN", "")
    SENTRY_ENVIRONMENT = os.environ.get("SENTRY_ENVIRONMENT", os.environ.get("ENVIRONMENT", "production"))
    SENTRY_RELEASE = os.environ.get("SENTRY_RELEASE", os.environ.get("GIT_COMMIT", "unknown"))
    SENTRY_TRACES_SAMPLE_RATE = float(os.environ.get("SENTRY_TRACES_SAMPLE_RATE", "0.1"))
    SENTRY_SAMPLE_RATE = float(os.environ.get("SENTRY_SAMPLE_RATE", "1.0"))


def resolve_column(key: str, config: Mapping, default: str) -> str:
    """Column name from the environment, then the app config, then the default."""
    return os.getenv(key) or config.get(key) or default


def declared_config() -> FlaskConfig:
    """The config create_app() starts from: Config plus APP_CONFIG_FILE."""
    cfg = FlaskConfig(os.getcwd())
    cfg.from_object(Config)
    cfg_env = os.getenv("APP_CONFIG_FILE")
    if cfg_env:
        cfg.from_pyfile(os.path.abspath(cfg_env))
    return cfg


@lru_cache(maxsize=None)
def subscription_columns() -> Tuple[str, str]:
    """Storage names of the gateway id and plan columns, resolved once per process."""
    cfg = declared_config()
    return (
        resolve_column(ID_COLUMN_KEY, cfg, DEFAULT_ID_COLUMN),
        resolve_column(PLAN_COLUMN_KEY, cfg, DEFAULT_PLAN_COLUMN),
    )


@dataclass(frozen=True)
class IuguSettings:
    """
    Storage layout of the local subscription record.

    The gateway id and plan are written through ``id_attribute`` and
    ``plan_attribute``; ``id_column`` / ``plan_column`` are their storage
    names. ``record_columns`` maps every mapped column name of the
    subscription model to its attribute key; additional data is only copied
    onto the record for keys found here.
    """

    id_column: str
    plan_column: str
    record_columns: Mapping[str, str]
    id_attribute: str = "iugu_id"
    plan_attribute: str = "iugu_plan"


def load_iugu_settings(
    config: Mapping,
    record_columns: Mapping[str, str],
    id_attribute: str = "iugu_id",
    plan_attribute: str = "iugu_plan",
) -> IuguSettings:
    id_column = resolve_column(ID_COLUMN_KEY, config, DEFAULT_ID_COLUMN)
    plan_column = resolve_column(PLAN_COLUMN_KEY, config, DEFAULT_PLAN_COLUMN)

    for column, attribute in ((id_column, id_attribute), (plan_column, plan_attribute)):
        if record_columns.get(column) != attribute:
            raise ValueError(
                f"Column {column!r} is not the storage column of Subscription.{attribute}; "
                f"set it in the environment or APP_CONFIG_FILE so the model is declared with it"
            )

    return IuguSettings(
        id_column=id_column,
        plan_column=plan_column,
        record_columns=MappingProxyType(dict(record_columns)),
        id_attribute=id_attribute,
        plan_attribute=plan_attribute,
    )
