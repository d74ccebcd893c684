# gupayment/iugu.py
"""
Iugu gateway client and Flask extension state.

Provides:
- Customer creation and lookup
- Card (payment method) attachment from a tokenized card
- Subscription creation, suspension and activation

Every call returns the decoded JSON body. Iugu reports rejections as an
``errors`` field on the body; those come back to the caller as data.
Transport failures and 5xx responses raise ``requests`` exceptions.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, Optional

import requests
from flask import Flask, current_app

from gupayment.config import IuguSettings, load_iugu_settings

DEFAULT_API_BASE = "https://api.iugu.com/v1"


def _encode(value):
    """Make a payload JSON-safe; dates go out as YYYY-MM-DD."""
    if isinstance(value, date):
        return value.strftime("%Y-%m-%d")
    if isinstance(value, dict):
        return {k: _encode(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_encode(v) for v in value]
    return value


class IuguClient:
    """Minimal Iugu REST client (API token as Basic Auth user)."""

    def __init__(self, api_token: str, base_url: str = DEFAULT_API_BASE, timeout: float = 15.0):
        self.base = (base_url or DEFAULT_API_BASE).rstrip("/")
        self._timeout = timeout

        self._s = requests.Session()
        self._s.auth = (api_token, "")
        self._s.headers.update({"Accept": "application/json", "User-Agent": "gupayment"})

    # ---------- internals ----------

    def _url(self, path: str) -> str:
        return f"{self.base}/{path.lstrip('/')}"

    def _req(self, method: str, path: str, *, json_body: Optional[Dict] = None) -> Dict[str, Any]:
        resp = self._s.request(
            method,
            self._url(path),
            json=_encode(json_body) if json_body is not None else None,
            timeout=self._timeout,
        )
        if resp.status_code >= 500:
            resp.raise_for_status()

        try:
            body = resp.json()
        except ValueError:
            raise requests.HTTPError(
                f"Iugu returned a non-JSON body ({resp.status_code}) for {method} {path}",
                response=resp,
            )

        if not isinstance(body, dict):
            body = {"items": body}

        # Some 4xx bodies use "error" or nothing at all; normalise so callers
        # only ever have to look at "errors".
        if resp.status_code >= 400 and body.get("errors") is None:
            body["errors"] = body.get("error") or f"HTTP {resp.status_code}"
        return body

    # ---------- customers ----------

    def create_customer(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self._req("POST", "/customers", json_body=payload)

    def get_customer(self, customer_id: str) -> Dict[str, Any]:
        return self._req("GET", f"/customers/{customer_id}")

    def create_payment_method(
        self,
        customer_id: str,
        token: str,
        description: str = "Card",
        set_as_default: bool = True,
    ) -> Dict[str, Any]:
        return self._req(
            "POST",
            f"/customers/{customer_id}/payment_methods",
            json_body={"description": description, "token": token, "set_as_default": set_as_default},
        )

    # ---------- subscriptions ----------

    def create_subscription(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self._req("POST", "/subscriptions", json_body=payload)

    def suspend_subscription(self, subscription_id: str) -> Dict[str, Any]:
        return self._req("POST", f"/subscriptions/{subscription_id}/suspend")

    def activate_subscription(self, subscription_id: str) -> Dict[str, Any]:
        return self._req("POST", f"/subscriptions/{subscription_id}/activate")


@dataclass
class IuguState:
    settings: IuguSettings
    client: Optional[IuguClient] = None


def init_iugu(app: Flask) -> IuguState:
    """Resolve the subscription storage layout once and register the extension."""
    from gupayment.models import Subscription, column_attributes

    settings = load_iugu_settings(app.config, column_attributes(Subscription))
    state = IuguState(settings=settings)
    app.extensions["iugu"] = state

    app.logger.info(
        f"Iugu configured (id_column={settings.id_column}, plan_column={settings.plan_column})"
    )
    return state


def _state() -> IuguState:
    state = current_app.extensions.get("iugu")
    if state is None:
        raise RuntimeError("Iugu extension not initialised; call init_iugu(app)")
    return state


def get_iugu_settings() -> IuguSettings:
    return _state().settings


def get_iugu_client() -> IuguClient:
    """Get the configured Iugu client for the current app."""
    state = _state()
    if state.client is None:
        api_token = current_app.config.get("IUGU_API_TOKEN")
        if not api_token:
            raise ValueError("IUGU_API_TOKEN not configured")
        state.client = IuguClient(
            api_token,
            base_url=current_app.config.get("IUGU_API_BASE", DEFAULT_API_BASE),
            timeout=float(current_app.config.get("IUGU_TIMEOUT", 15)),
        )
    return state.client
