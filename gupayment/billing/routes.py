# gupayment/billing/routes.py
"""
Subscription endpoints for the logged-in user.

Features:
- Create a subscription (new or existing Iugu customer)
- List subscriptions
- Cancel / resume a subscription
"""

from flask import current_app, jsonify, request
from flask_login import current_user, login_required

from gupayment.billing import billing_bp
from gupayment.models import Subscription


def _int_or_none(value):
    if value in (None, ""):
        return None
    return int(value)


@billing_bp.route("/subscriptions", methods=["GET"])
@login_required
def list_subscriptions():
    subs = current_user.subscriptions.order_by(Subscription.created_at.desc(), Subscription.id.desc()).all()
    return jsonify(ok=True, subscriptions=[s.to_dict() for s in subs]), 200


@billing_bp.route("/subscriptions", methods=["POST"])
@login_required
def create_subscription():
    """Subscribe the current user to a plan."""
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        return jsonify(ok=False, error="request body must be a JSON object"), 400

    plan = data.get("plan") or ""
    if not isinstance(plan, str):
        return jsonify(ok=False, error="plan must be a string"), 400
    plan = plan.strip()
    if not plan:
        return jsonify(ok=False, error="plan is required"), 400

    additional_data = data.get("additional_data") or {}
    options = data.get("options") or {}
    if not isinstance(additional_data, dict) or not isinstance(options, dict):
        return jsonify(ok=False, error="additional_data and options must be objects"), 400

    try:
        trial_days = _int_or_none(data.get("trial_days"))
    except (TypeError, ValueError):
        return jsonify(ok=False, error="trial_days must be an integer"), 400

    name = data.get("name") or "default"
    token = data.get("token") or None
    if not isinstance(name, str) or not isinstance(token, (str, type(None))):
        return jsonify(ok=False, error="name and token must be strings"), 400

    builder = current_user.new_subscription(name, plan, additional_data)
    if trial_days:
        builder.trial_days(trial_days)
    if data.get("skip_trial"):
        builder.skip_trial()
    if data.get("coupon"):
        builder.with_coupon(data["coupon"])
    if data.get("charge_on_success"):
        builder.charge_on_success()
    if data.get("payable_with"):
        builder.pay_with(data["payable_with"])

    subscription = builder.create(token, options)
    if subscription is False:
        return jsonify(ok=False, errors=builder.get_last_error()), 422

    current_app.logger.info(f"User {current_user.id} subscribed to {plan}")
    return jsonify(ok=True, subscription=subscription.to_dict()), 201


def _own_subscription(subscription_id: int):
    return current_user.subscriptions.filter_by(id=subscription_id).first()


@billing_bp.route("/subscriptions/<int:subscription_id>/cancel", methods=["POST"])
@login_required
def cancel_subscription(subscription_id):
    sub = _own_subscription(subscription_id)
    if sub is None:
        return jsonify(ok=False, error="Subscription not found"), 404

    if sub.cancel() is False:
        return jsonify(ok=False, errors=sub.last_error), 422
    return jsonify(ok=True, subscription=sub.to_dict()), 200


@billing_bp.route("/subscriptions/<int:subscription_id>/resume", methods=["POST"])
@login_required
def resume_subscription(subscription_id):
    sub = _own_subscription(subscription_id)
    if sub is None:
        return jsonify(ok=False, error="Subscription not found"), 404

    if sub.resume() is False:
        return jsonify(ok=False, errors=sub.last_error), 422
    return jsonify(ok=True, subscription=sub.to_dict()), 200
