"""Supabase Auth client and /v1/auth routes over httpx.MockTransport."""
import json

import httpx
import pytest

from sentient.core.config import settings
from sentient.core.errors import BackendError, BackendErrorKind
from sentient.features.identity.provider import (
    AuthEvent,
    AuthEventBus,
    IdentityRejected,
    SupabaseAuthClient,
    get_identity_provider,
)

BASE_URL = "https://proj.supabase.test"

SESSION_PAYLOAD = {
    "access_token": "access-abc",
    "refresh_token": "refresh-abc",
    "expires_in": 3600,
    "user": {"id": "user-1", "email": "jane@example.com", "user_metadata": {"full_name": "Jane"}},
}


class FakeGoTrue:
    """Records requests and answers like the hosted auth API."""

    def __init__(self):
        self.requests = []
        self.confirm_email = False

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        body = json.loads(request.content) if request.content else {}

        if path == "/auth/v1/signup":
            if body["email"] == "taken@example.com":
                return httpx.Response(422, json={"msg": "User already registered"})
            if self.confirm_email:
                return httpx.Response(200, json={"id": "user-new", "email": body["email"]})
            return httpx.Response(200, json=SESSION_PAYLOAD)
        if path == "/auth/v1/token":
            if body["password"] != "correct-horse":
                return httpx.Response(400, json={"error_description": "Invalid login credentials"})
            return httpx.Response(200, json=SESSION_PAYLOAD)
        if path == "/auth/v1/logout":
            return httpx.Response(204)
        if path == "/auth/v1/recover":
            return httpx.Response(200, json={})
        if path == "/auth/v1/user":
            return httpx.Response(200, json=SESSION_PAYLOAD["user"])
        return httpx.Response(404, json={"msg": "not found"})


@pytest.fixture
def gotrue():
    return FakeGoTrue()


@pytest.fixture
def events():
    bus = AuthEventBus()
    received = []
    bus.subscribe(lambda event, session: received.append((event, session.user_id if session else None)))
    bus.received = received
    return bus


@pytest.fixture
def identity(gotrue, events):
    return SupabaseAuthClient(
        BASE_URL,
        "anon-key",
        http_client=httpx.Client(transport=httpx.MockTransport(gotrue)),
        events=events,
    )


def test_sign_in_publishes_signed_in(identity, gotrue, events):
    session = identity.sign_in("jane@example.com", "correct-horse")

    assert session.access_token == "access-abc"
    assert session.user_id == "user-1"
    assert events.received == [(AuthEvent.SIGNED_IN, "user-1")]

    request = gotrue.requests[0]
    assert request.url.params["grant_type"] == "password"
    assert request.headers["apikey"] == "anon-key"


def test_bad_credentials_are_rejected(identity, events):
    with pytest.raises(IdentityRejected) as exc:
        identity.sign_in("jane@example.com", "wrong")
    assert exc.value.message == "Invalid login credentials"
    assert exc.value.status_code == 400
    assert events.received == []


def test_sign_up_sends_full_name(identity, gotrue):
    result = identity.sign_up("jane@example.com", "correct-horse", "Jane")
    assert result.session is not None
    assert json.loads(gotrue.requests[0].content)["data"] == {"full_name": "Jane"}


def test_sign_up_pending_confirmation_has_no_session(identity, gotrue, events):
    gotrue.confirm_email = True
    result = identity.sign_up("new@example.com", "correct-horse")
    assert result.session is None
    assert result.user_id == "user-new"
    assert events.received == []


def test_sign_out_publishes_signed_out(identity, gotrue, events):
    identity.sign_out("access-abc")
    assert gotrue.requests[0].headers["authorization"] == "Bearer access-abc"
    assert events.received == [(AuthEvent.SIGNED_OUT, None)]


def test_password_reset_redirect(identity, gotrue):
    identity.request_password_reset("jane@example.com", "http://localhost:3000/reset-password")
    assert gotrue.requests[0].url.params["redirect_to"] == "http://localhost:3000/reset-password"


def test_provider_outage_is_network_error(events):
    def refuse(request):
        raise httpx.ConnectError("connection refused", request=request)

    client = SupabaseAuthClient(
        BASE_URL, "anon-key", http_client=httpx.Client(transport=httpx.MockTransport(refuse)), events=events
    )
    with pytest.raises(BackendError) as exc:
        client.sign_in("jane@example.com", "correct-horse")
    assert exc.value.kind == BackendErrorKind.NETWORK


def test_provider_5xx_is_network_error(events):
    client = SupabaseAuthClient(
        BASE_URL,
        "anon-key",
        http_client=httpx.Client(transport=httpx.MockTransport(lambda r: httpx.Response(503, text="down"))),
        events=events,
    )
    with pytest.raises(BackendError) as exc:
        client.get_user("token")
    assert exc.value.kind == BackendErrorKind.NETWORK


def test_failing_listener_does_not_break_publish(events):
    def explode(event, session):
        raise RuntimeError("listener bug")

    events.subscribe(explode)
    events.publish(AuthEvent.SIGNED_OUT, None)
    assert events.received == [(AuthEvent.SIGNED_OUT, None)]


def test_unsubscribe(events):
    calls = []
    unsubscribe = events.subscribe(lambda e, s: calls.append(e))
    unsubscribe()
    events.publish(AuthEvent.SIGNED_OUT, None)
    assert calls == []


# ---------------------------------------------------------------------------
# /v1/auth routes
# ---------------------------------------------------------------------------

@pytest.fixture
def auth_client(app, client, identity):
    app.dependency_overrides[get_identity_provider] = lambda: identity
    return client


def test_login_route(auth_client):
    resp = auth_client.post("/v1/auth/login", json={"email": "jane@example.com", "password": "correct-horse"})
    assert resp.status_code == 200
    assert resp.json()["access_token"] == "access-abc"


def test_login_route_rejected(auth_client):
    resp = auth_client.post("/v1/auth/login", json={"email": "jane@example.com", "password": "nope"})
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "auth_rejected"


def test_signup_route_duplicate(auth_client):
    resp = auth_client.post(
        "/v1/auth/signup", json={"email": "taken@example.com", "password": "secret1", "full_name": "T"}
    )
    assert resp.status_code == 400
    assert resp.json()["error"]["message"] == "User already registered"


def test_signup_route_confirmation_required(auth_client, gotrue):
    gotrue.confirm_email = True
    resp = auth_client.post("/v1/auth/signup", json={"email": "new@example.com", "password": "secret1"})
    assert resp.status_code == 200
    assert resp.json()["confirmation_required"] is True
    assert resp.json()["session"] is None


def test_signup_route_invalid_email(auth_client, gotrue):
    resp = auth_client.post("/v1/auth/signup", json={"email": "not-an-email", "password": "secret1"})
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "invalid_email"
    assert gotrue.requests == []


def test_forgot_password_route_uses_site_url(auth_client, gotrue, monkeypatch):
    monkeypatch.setattr(settings, "SITE_URL", "https://app.sentientmarkets.io/")
    resp = auth_client.post("/v1/auth/forgot-password", json={"email": "jane@example.com"})
    assert resp.status_code == 200
    assert gotrue.requests[0].url.params["redirect_to"] == "https://app.sentientmarkets.io/reset-password"


def test_logout_route_requires_session(auth_client):
    assert auth_client.post("/v1/auth/logout").status_code == 401


def test_logout_route(auth_client, auth_headers, events):
    resp = auth_client.post("/v1/auth/logout", headers=auth_headers)
    assert resp.status_code == 200
    assert events.received == [(AuthEvent.SIGNED_OUT, None)]


def test_session_route(client, auth_headers):
    assert client.get("/v1/auth/session").json() == {"user": None}
    body = client.get("/v1/auth/session", headers=auth_headers).json()
    assert body["user"] == {"id": "user-trader-1", "email": "jane.doe@example.com", "full_name": "Jane Doe"}


def test_identity_unconfigured(client, monkeypatch):
    monkeypatch.setattr(settings, "SUPABASE_URL", None)
    resp = client.post("/v1/auth/login", json={"email": "jane@example.com", "password": "x"})
    assert resp.status_code == 503
    assert resp.json()["error"]["code"] == "auth_unconfigured"
