# gupayment/models.py
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from flask import current_app
from flask_login import UserMixin
from sqlalchemy import DateTime, ForeignKey, Integer, String
from sqlalchemy import inspect as sa_inspect

from gupayment import db
from gupayment.config import subscription_columns
from gupayment.iugu import get_iugu_client

# Storage names of Subscription.iugu_id / Subscription.iugu_plan
ID_COLUMN, PLAN_COLUMN = subscription_columns()


def column_attributes(model) -> Dict[str, str]:
    """Mapped storage columns of ``model`` as {column_name: attribute_key}."""
    return {prop.columns[0].name: prop.key for prop in sa_inspect(model).column_attrs}


# -------------------------
# User
# -------------------------
class User(UserMixin, db.Model):
    __tablename__ = "users"

    id = db.Column(Integer, primary_key=True)
    name = db.Column(String(120), nullable=False)
    email = db.Column(String(255), unique=True, index=True, nullable=False)

    # Iugu customer id, set on first subscription
    iugu_id = db.Column(String(64), unique=True, index=True, nullable=True)

    created_at = db.Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    subscriptions = db.relationship(
        "Subscription", back_populates="user", lazy="dynamic", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<User id={self.id} email={self.email!r} iugu_id={self.iugu_id!r}>"

    # ---- Iugu customer ----------------------------------------------------

    def get_iugu_user_id(self) -> Optional[str]:
        return self.iugu_id

    def create_as_iugu_customer(self, token: Optional[str] = None, options: Optional[Dict[str, Any]] = None):
        """
        Create the Iugu customer for this user.

        Args:
            token: Tokenized card to attach as default payment method (optional)
            options: Extra customer fields sent to Iugu (coupon, cpf_cnpj, ...)

        Returns:
            Iugu customer dict, carrying ``errors`` when Iugu rejected it
        """
        payload = {"email": self.email, "name": self.name}
        payload.update(options or {})

        customer = get_iugu_client().create_customer(payload)
        if customer.get("errors") is not None:
            return customer

        self.iugu_id = customer["id"]
        db.session.commit()
        current_app.logger.info(f"Created Iugu customer {self.iugu_id} for user {self.id}")

        if token:
            self.update_card(token)

        return customer

    def as_iugu_customer(self):
        return get_iugu_client().get_customer(self.iugu_id)

    def update_card(self, token: str):
        """Attach a tokenized card and make it the default payment method."""
        result = get_iugu_client().create_payment_method(self.iugu_id, token, set_as_default=True)
        if result.get("errors") is not None:
            current_app.logger.warning(f"Iugu rejected card for customer {self.iugu_id}: {result['errors']}")
        else:
            current_app.logger.info(f"Updated default card for customer {self.iugu_id}")
        return result

    # ---- Subscriptions ----------------------------------------------------

    def create_iugu_subscription(self, payload: Dict[str, Any]):
        return get_iugu_client().create_subscription(payload)

    def save_subscription(self, subscription: "Subscription") -> "Subscription":
        self.subscriptions.append(subscription)
        db.session.add(subscription)
        db.session.commit()
        return subscription

    def new_subscription(self, name: str, plan: str, additional_data: Optional[Dict[str, Any]] = None):
        from gupayment.subscription_builder import SubscriptionBuilder

        return SubscriptionBuilder(self, name, plan, additional_data or {})

    def subscription(self, name: str = "default") -> Optional["Subscription"]:
        """Newest subscription with the given name."""
        return (
            self.subscriptions.filter_by(name=name)
            .order_by(Subscription.created_at.desc(), Subscription.id.desc())
            .first()
        )

    def subscribed(self, name: str = "default", plan: Optional[str] = None) -> bool:
        sub = self.subscription(name)
        if sub is None or not sub.valid():
            return False
        return plan is None or sub.plan == plan


# -------------------------
# Subscription
# -------------------------
class Subscription(db.Model):
    __tablename__ = "subscriptions"

    id = db.Column(Integer, primary_key=True)
    user_id = db.Column(Integer, ForeignKey("users.id"), index=True, nullable=False)

    name = db.Column(String(120), nullable=False)
    iugu_id = db.Column(ID_COLUMN, String(64), index=True, nullable=False)
    iugu_plan = db.Column(PLAN_COLUMN, String(64), nullable=False)

    trial_ends_at = db.Column(DateTime, nullable=True)
    ends_at = db.Column(DateTime, nullable=True)

    # Signup channel (web, app, admin); only ever filled from additional data
    source = db.Column(String(64), nullable=True)

    created_at = db.Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    user = db.relationship("User", back_populates="subscriptions")

    # Gateway error from the last cancel()/resume(); not persisted
    last_error = None

    def __repr__(self) -> str:
        return f"<Subscription id={self.id} name={self.name!r} iugu_id={self.iugu_id!r}>"

    @property
    def gateway_id(self) -> Optional[str]:
        return self.iugu_id

    @property
    def plan(self) -> Optional[str]:
        return self.iugu_plan

    # ---- Status -----------------------------------------------------------

    def on_trial(self) -> bool:
        return self.trial_ends_at is not None and datetime.utcnow() < self.trial_ends_at

    def cancelled(self) -> bool:
        return self.ends_at is not None

    def on_grace_period(self) -> bool:
        return self.ends_at is not None and datetime.utcnow() < self.ends_at

    def active(self) -> bool:
        return self.ends_at is None or self.on_grace_period()

    def valid(self) -> bool:
        return self.active() or self.on_trial()

    # ---- Lifecycle --------------------------------------------------------

    def cancel(self):
        """
        Suspend the subscription at Iugu.

        A subscription still on trial stays usable until the trial ends;
        anything else ends now.

        Returns:
            self, or False when Iugu rejected the suspension (see last_error)
        """
        result = get_iugu_client().suspend_subscription(self.gateway_id)
        if result.get("errors") is not None:
            self.last_error = result["errors"]
            current_app.logger.warning(f"Iugu rejected suspension of {self.gateway_id}: {self.last_error}")
            return False

        self.ends_at = self.trial_ends_at if self.on_trial() else datetime.utcnow()
        db.session.commit()

        current_app.logger.info(f"Subscription {self.gateway_id} cancelled, ends_at={self.ends_at}")
        return self

    def resume(self):
        result = get_iugu_client().activate_subscription(self.gateway_id)
        if result.get("errors") is not None:
            self.last_error = result["errors"]
            current_app.logger.warning(f"Iugu rejected activation of {self.gateway_id}: {self.last_error}")
            return False

        self.ends_at = None
        db.session.commit()

        current_app.logger.info(f"Subscription {self.gateway_id} resumed")
        return self

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "gateway_id": self.gateway_id,
            "plan": self.plan,
            "trial_ends_at": self.trial_ends_at.isoformat() if self.trial_ends_at else None,
            "ends_at": self.ends_at.isoformat() if self.ends_at else None,
            "source": self.source,
            "on_trial": self.on_trial(),
            "valid": self.valid(),
        }
