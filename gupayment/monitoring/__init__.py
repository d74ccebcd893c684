"""
Error tracking integration.

Provides:
- Sentry error tracking for unhandled faults (gateway transport errors,
  database errors) with Flask and SQLAlchemy integrations
- Release and environment tagging
"""

import os

import sentry_sdk
from flask import Flask
from sentry_sdk.integrations.flask import FlaskIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration


def init_sentry(app: Flask) -> bool:
    """
    Initialize Sentry error tracking.

    Args:
        app: Flask application instance

    Returns:
        True when Sentry was initialized, False when no DSN is configured
    """
    sentry_dsn = app.config.get("SENTRY_DSN") or os.getenv("SENTRY_DSN")

    if not sentry_dsn:
        app.logger.info("Sentry DSN not configured - error tracking disabled")
        return False

    sentry_sdk.init(
        dsn=sentry_dsn,
        integrations=[
            FlaskIntegration(transaction_style="url"),
            SqlalchemyIntegration(),
        ],
        traces_sample_rate=app.config.get("SENTRY_TRACES_SAMPLE_RATE", 0.1),
        environment=app.config.get("SENTRY_ENVIRONMENT", os.getenv("ENVIRONMENT", "production")),
        release=app.config.get("SENTRY_RELEASE", os.getenv("GIT_COMMIT", "unknown")),
        send_default_pii=False,  # card tokens and emails stay out of events
        attach_stacktrace=True,
        sample_rate=app.config.get("SENTRY_SAMPLE_RATE", 1.0),
        before_send=before_send_event,
    )

    app.logger.info(
        f"Sentry initialized (environment={app.config.get('SENTRY_ENVIRONMENT', 'production')})"
    )
    return True


def before_send_event(event, hint):
    """Group events by exception type and message prefix."""
    if "exception" in event:
        exc = event["exception"]["values"][0]
        event["fingerprint"] = [exc.get("type", "Unknown"), (exc.get("value") or "")[:100]]
    return event
