# gupayment/subscription_builder.py
"""
Fluent builder for new Iugu subscriptions.

``SubscriptionBuilder`` collects the options for one subscription and freezes
them into a ``SubscriptionOptions`` value; :func:`create_subscription` consumes
that value, talks to Iugu and stores the local ``Subscription`` record.

Gateway rejections are returned as data (``False`` plus ``last_error`` on the
builder), never raised. Anything else (network errors, database errors)
propagates to the caller.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from types import MappingProxyType
from typing import Any, Dict, Mapping, NamedTuple, Optional

from flask import current_app

from gupayment.config import IuguSettings
from gupayment.iugu import get_iugu_settings
from gupayment.models import Subscription


class TrialDates(NamedTuple):
    expires_at: Optional[datetime]      # sent to Iugu (first charge date)
    trial_ends_at: Optional[datetime]   # stored on the local record


def trial_dates(skip_trial: bool, trial_days: Optional[int], now: datetime) -> TrialDates:
    """
    Trial window for one creation attempt.

    Skipping the trial charges right away (``expires_at`` is now) and leaves
    the record without a trial. ``skip_trial`` wins over ``trial_days``.
    """
    if skip_trial:
        return TrialDates(expires_at=now, trial_ends_at=None)
    if trial_days:
        ends = now + timedelta(days=trial_days)
        return TrialDates(expires_at=ends, trial_ends_at=ends)
    return TrialDates(expires_at=None, trial_ends_at=None)


@dataclass(frozen=True)
class SubscriptionOptions:
    name: str
    plan: str
    additional_data: Mapping[str, Any] = field(default_factory=dict)
    trial_days: Optional[int] = None
    skip_trial: bool = False
    coupon: Optional[str] = None
    charge_on_success: bool = False
    payable_with: str = "all"

    def trial(self, now: datetime) -> TrialDates:
        return trial_dates(self.skip_trial, self.trial_days, now)

    def customer_options(self, options: Mapping[str, Any]) -> Dict[str, Any]:
        merged = dict(options)
        merged.update({k: v for k, v in {"coupon": self.coupon}.items() if v})
        return merged

    def payload(self, customer_id: str, now: datetime) -> Dict[str, Any]:
        """Body for Iugu's subscription creation; empty values are dropped."""
        custom_variables = [{"name": k, "value": v} for k, v in self.additional_data.items()]

        payload = {
            "plan_identifier": self.plan,
            "expires_at": self.trial(now).expires_at,
            "customer_id": customer_id,
            "only_on_charge_success": self.charge_on_success,
            "custom_variables": custom_variables,
            "payable_with": self.payable_with,
        }
        return {k: v for k, v in payload.items() if v}


class CreateResult(NamedTuple):
    subscription: Optional[Subscription]
    error: Any


def _resolve_customer(user, options: SubscriptionOptions, token: Optional[str], gateway_options: Mapping[str, Any]):
    if not user.get_iugu_user_id():
        return user.create_as_iugu_customer(token, options.customer_options(gateway_options))

    customer = user.as_iugu_customer()
    if token:
        user.update_card(token)
    return customer


def create_subscription(
    user,
    options: SubscriptionOptions,
    token: Optional[str] = None,
    gateway_options: Optional[Mapping[str, Any]] = None,
    settings: Optional[IuguSettings] = None,
    now: Optional[datetime] = None,
) -> CreateResult:
    """
    Create the Iugu subscription and its local record.

    Args:
        user: Billable user (see ``gupayment.models.User``)
        options: Frozen subscription options
        token: Tokenized card (optional)
        gateway_options: Extra fields for first-time customer creation
        settings: Storage layout; defaults to the app's IuguSettings
        now: Reference time for trial dates; defaults to utcnow

    Returns:
        CreateResult with either the saved Subscription or the gateway error
    """
    settings = settings or get_iugu_settings()
    now = now or datetime.utcnow()

    customer = _resolve_customer(user, options, token, gateway_options or {})
    if customer.get("errors") is not None:
        current_app.logger.warning(f"Iugu rejected customer for user {user.id}: {customer['errors']}")
        return CreateResult(None, customer["errors"])

    remote = user.create_iugu_subscription(options.payload(customer["id"], now))
    if remote.get("errors") is not None:
        # The customer may already exist at Iugu at this point; it is kept.
        current_app.logger.warning(
            f"Iugu rejected subscription {options.plan!r} for customer {customer['id']}: {remote['errors']}"
        )
        return CreateResult(None, remote["errors"])

    trial = options.trial(now)

    subscription = Subscription(name=options.name, trial_ends_at=trial.trial_ends_at, ends_at=None)
    setattr(subscription, settings.id_attribute, remote["id"])
    setattr(subscription, settings.plan_attribute, options.plan)

    for key, value in options.additional_data.items():
        attr = settings.record_columns.get(key)
        if attr is not None:
            setattr(subscription, attr, value)

    user.save_subscription(subscription)
    current_app.logger.info(
        f"Created subscription {remote['id']} (plan={options.plan}) for user {user.id}"
    )
    return CreateResult(subscription, None)


class SubscriptionBuilder:
    def __init__(self, user, name: str, plan: str, additional_data: Mapping[str, Any], settings: Optional[IuguSettings] = None):
        self.user = user
        self.name = name
        self.plan = plan
        self.additional_data = additional_data

        self._settings = settings
        self._trial_days: Optional[int] = None
        self._skip_trial = False
        self._coupon: Optional[str] = None
        self._charge_on_success = False
        self._payable_with = "all"
        self._last_error = None

    # ---- Configuration ----------------------------------------------------

    def trial_days(self, trial_days: int) -> "SubscriptionBuilder":
        self._trial_days = trial_days
        return self

    def skip_trial(self) -> "SubscriptionBuilder":
        """Force the trial to end immediately."""
        self._skip_trial = True
        return self

    def with_coupon(self, coupon: str) -> "SubscriptionBuilder":
        """Coupon for the customer; only used when the customer is created."""
        self._coupon = coupon
        return self

    def charge_on_success(self) -> "SubscriptionBuilder":
        self._charge_on_success = True
        return self

    def pay_with(self, method: str = "all") -> "SubscriptionBuilder":
        self._payable_with = method
        return self

    def build(self) -> SubscriptionOptions:
        return SubscriptionOptions(
            name=self.name,
            plan=self.plan,
            additional_data=MappingProxyType(dict(self.additional_data)),
            trial_days=self._trial_days,
            skip_trial=self._skip_trial,
            coupon=self._coupon,
            charge_on_success=self._charge_on_success,
            payable_with=self._payable_with,
        )

    # ---- Terminal operations ----------------------------------------------

    def add(self, options: Optional[Mapping[str, Any]] = None, now: Optional[datetime] = None):
        """Subscribe without a new card."""
        return self.create(None, options, now=now)

    def create(self, token: Optional[str] = None, options: Optional[Mapping[str, Any]] = None, now: Optional[datetime] = None):
        """
        Create the subscription.

        Returns:
            The saved Subscription, or False when Iugu rejected the customer
            or the subscription (details in ``last_error``)
        """
        result = create_subscription(
            self.user,
            self.build(),
            token=token,
            gateway_options=options,
            settings=self._settings,
            now=now,
        )
        self._last_error = result.error
        if result.error is not None:
            return False
        return result.subscription

    def build_payload(self, customer_id: str, now: Optional[datetime] = None) -> Dict[str, Any]:
        return self.build().payload(customer_id, now or datetime.utcnow())

    @property
    def last_error(self):
        return self._last_error

    def get_last_error(self):
        return self._last_error
