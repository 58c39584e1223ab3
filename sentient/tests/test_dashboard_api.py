"""Dashboard read model, including the submit -> approve -> access flow."""
from sqlalchemy import select

from sentient.core.database import get_db_session, get_engine, payments, profiles
from sentient.core.errors import BackendError, BackendErrorKind
from sentient.features.profiles import service as profile_service


def test_first_visit_creates_profile(client, auth_headers):
    resp = client.get("/v1/dashboard", headers=auth_headers)

    assert resp.status_code == 200
    body = resp.json()
    assert body["display_name"] == "Jane Doe"
    assert body["profile"]["persisted"] is True
    assert body["has_active_subscription"] is False
    assert body["subscription_label"] == "Inactive"
    assert body["discord_invite_url"] is None
    assert body["payments"] == []
    assert body["payments_error"] is None

    with get_db_session() as session:
        row = session.execute(select(profiles).where(profiles.c.id == "user-trader-1")).first()
    assert row.email == "jane.doe@example.com"
    assert row.full_name == "Jane Doe"


def test_existing_profile_is_reused(client, make_headers):
    headers = make_headers("user-2", email="someone@example.com", full_name="First Name")
    client.get("/v1/dashboard", headers=headers)

    renamed = make_headers("user-2", email="someone@example.com", full_name="Changed Later")
    body = client.get("/v1/dashboard", headers=renamed).json()
    assert body["display_name"] == "First Name"


def test_display_name_falls_back_to_email_local_part(client, make_headers):
    body = client.get("/v1/dashboard", headers=make_headers("user-3", email="trader42@example.com")).json()
    assert body["display_name"] == "trader42"


def test_display_name_falls_back_to_trader(client, make_headers):
    body = client.get("/v1/dashboard", headers=make_headers("user-4", email=None)).json()
    assert body["display_name"] == "Trader"


def test_profile_store_failure_falls_back_to_unsaved_profile(client, auth_headers, monkeypatch):
    def broken(session, user_id):
        raise BackendError("load profile failed", kind=BackendErrorKind.PERMISSION, operation="load profile")

    monkeypatch.setattr(profile_service, "get_profile", broken)

    resp = client.get("/v1/dashboard", headers=auth_headers)

    assert resp.status_code == 200
    body = resp.json()
    assert body["profile"]["persisted"] is False
    assert body["display_name"] == "Jane Doe"


def test_history_failure_still_renders_dashboard(client, auth_headers):
    client.get("/v1/dashboard", headers=auth_headers)
    payments.drop(get_engine())

    resp = client.get("/v1/dashboard", headers=auth_headers)

    assert resp.status_code == 200
    body = resp.json()
    assert body["payments"] == []
    assert body["has_active_subscription"] is False
    assert body["payments_error"] == {
        "kind": "schema",
        "message": "Database configuration issue - please contact support",
        "retryable": False,
    }


def test_usdt_submission_approved_by_admin_unlocks_discord(client, auth_headers, admin_headers, object_store):
    submitted = client.post(
        "/v1/payments/usdt",
        headers=auth_headers,
        data={"transaction_hash": "abc123"},
        files={"proof": ("transfer.png", b"\x89PNG fake", "image/png")},
    )
    assert submitted.status_code == 201
    payment_id = submitted.json()["payment"]["id"]

    pending = client.get("/v1/dashboard", headers=auth_headers).json()
    assert pending["subscription_label"] == "Pending Verification"
    assert pending["payments"][0]["label"] == "Pending Verification"
    assert pending["discord_invite_url"] is None

    approved = client.post(
        f"/v1/admin/payments/{payment_id}/verification",
        headers=admin_headers,
        json={"verified": True},
    )
    assert approved.status_code == 200

    active = client.get("/v1/dashboard", headers=auth_headers).json()
    assert active["has_active_subscription"] is True
    assert active["subscription_label"] == "Premium Active"
    assert active["payments"][0]["label"] == "Active"
    assert active["discord_invite_url"] == "https://discord.gg/sentientmarkets"


def test_rejected_payment_shows_failed(client, auth_headers, admin_headers, object_store):
    payment_id = client.post(
        "/v1/payments/usdt", headers=auth_headers, data={"transaction_hash": "abc123"}
    ).json()["payment"]["id"]

    client.post(f"/v1/admin/payments/{payment_id}/verification", headers=admin_headers, json={"verified": False})

    body = client.get("/v1/dashboard", headers=auth_headers).json()
    assert body["subscription_label"] == "Inactive"
    assert body["payments"][0]["label"] == "Failed"
