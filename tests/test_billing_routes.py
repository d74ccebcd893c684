from gupayment import db
from gupayment.models import Subscription


def test_requires_login(client):
    r = client.post("/billing/subscriptions", json={"plan": "gold"})
    assert r.status_code == 401


def test_plan_is_required(client, login, new_user, iugu):
    login(new_user)
    r = client.post("/billing/subscriptions", json={})
    assert r.status_code == 400
    assert iugu.calls == []


def test_trial_days_must_be_integer(client, login, new_user, iugu):
    login(new_user)
    r = client.post("/billing/subscriptions", json={"plan": "gold", "trial_days": "soon"})
    assert r.status_code == 400


def test_create_subscription(client, login, new_user, iugu):
    login(new_user)
    r = client.post(
        "/billing/subscriptions",
        json={
            "plan": "gold",
            "trial_days": 7,
            "coupon": "SAVE10",
            "payable_with": "credit_card",
            "additional_data": {"source": "web"},
            "token": "tok_1",
        },
    )

    assert r.status_code == 201
    data = r.get_json()
    assert data["ok"] is True
    assert data["subscription"]["gateway_id"] == "SUB-1"
    assert data["subscription"]["plan"] == "gold"
    assert data["subscription"]["source"] == "web"
    assert data["subscription"]["on_trial"] is True

    assert iugu.payload_of("create_customer")["coupon"] == "SAVE10"
    assert iugu.payload_of("create_subscription")["payable_with"] == "credit_card"
    assert Subscription.query.count() == 1


def test_gateway_rejection_returns_422(client, login, new_user, iugu):
    iugu.subscription = {"errors": {"plan_identifier": ["not found"]}}
    login(new_user)
    r = client.post("/billing/subscriptions", json={"plan": "nope"})

    assert r.status_code == 422
    assert r.get_json() == {"ok": False, "errors": {"plan_identifier": ["not found"]}}
    assert Subscription.query.count() == 0


def test_list_subscriptions(client, login, existing_user, iugu):
    existing_user.new_subscription("default", "gold").add()
    login(existing_user)

    r = client.get("/billing/subscriptions")
    assert r.status_code == 200
    subs = r.get_json()["subscriptions"]
    assert [s["plan"] for s in subs] == ["gold"]


def test_cancel_and_resume(client, login, existing_user, iugu):
    sub = existing_user.new_subscription("default", "gold").add()
    sub_id = sub.id
    login(existing_user)

    r = client.post(f"/billing/subscriptions/{sub_id}/cancel")
    assert r.status_code == 200
    assert r.get_json()["subscription"]["ends_at"] is not None

    r = client.post(f"/billing/subscriptions/{sub_id}/resume")
    assert r.status_code == 200
    assert r.get_json()["subscription"]["ends_at"] is None

    assert iugu.names()[-2:] == ["suspend_subscription", "activate_subscription"]


def test_cancel_rejection(client, login, existing_user, iugu):
    sub = existing_user.new_subscription("default", "gold").add()
    iugu.suspended = {"errors": "already suspended"}
    login(existing_user)

    r = client.post(f"/billing/subscriptions/{sub.id}/cancel")
    assert r.status_code == 422
    assert r.get_json()["errors"] == "already suspended"


def test_cannot_touch_someone_elses_subscription(client, login, new_user, existing_user, iugu):
    sub = existing_user.new_subscription("default", "gold").add()
    login(new_user)

    r = client.post(f"/billing/subscriptions/{sub.id}/cancel")
    assert r.status_code == 404
    db.session.refresh(sub)
    assert sub.ends_at is None


def test_plan_must_be_a_string(client, login, new_user, iugu):
    login(new_user)
    r = client.post("/billing/subscriptions", json={"plan": 123})
    assert r.status_code == 400
    assert r.get_json() == {"ok": False, "error": "plan must be a string"}
    assert iugu.calls == []


def test_body_must_be_an_object(client, login, new_user, iugu):
    login(new_user)
    r = client.post("/billing/subscriptions", json=["gold"])
    assert r.status_code == 400
    assert r.get_json()["ok"] is False
    assert iugu.calls == []


def test_token_must_be_a_string(client, login, new_user, iugu):
    login(new_user)
    r = client.post("/billing/subscriptions", json={"plan": "gold", "token": {"card": "4111"}})
    assert r.status_code == 400
    assert iugu.calls == []
