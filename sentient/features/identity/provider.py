"""
Identity provider protocol and the Supabase Auth (GoTrue) implementation.

Sign-up, sign-in, sign-out and password reset are delegated to the hosted
provider. Session changes are published on an AuthEventBus so the rest of
the app can react (the app logs them).
"""
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Generator, List, Optional, Protocol

import httpx

from sentient.core.backend_http import DEFAULT_TIMEOUT, backend_call, ensure_ok, error_text
from sentient.core.config import settings
from sentient.core.errors import AppError, ValidationError

logger = logging.getLogger("sentient.identity")


class AuthEvent(str, Enum):
    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"


@dataclass
class AuthSession:
    access_token: str
    refresh_token: Optional[str]
    expires_in: Optional[int]
    user_id: str
    email: Optional[str] = None
    user_metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class SignUpResult:
    user_id: str
    email: Optional[str]
    session: Optional[AuthSession]  # None until the email address is confirmed


AuthListener = Callable[[AuthEvent, Optional[AuthSession]], None]


class AuthEventBus:
    """In-process fan-out of session change notifications."""

    def __init__(self):
        self._listeners: List[AuthListener] = []

    def subscribe(self, listener: AuthListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def publish(self, event: AuthEvent, session: Optional[AuthSession]) -> None:
        for listener in list(self._listeners):
            try:
                listener(event, session)
            except Exception:
                logger.warning(f"[identity] auth listener failed for {event.value}", exc_info=True)


auth_events = AuthEventBus()


class IdentityRejected(ValidationError):
    """The provider refused the request (bad credentials, duplicate user, weak password)."""
    code = "auth_rejected"


class IdentityUnavailable(AppError):
    code = "auth_unconfigured"
    status_code = 503


class IdentityProvider(Protocol):
    """
    Protocol for hosted identity providers.

    Implementations raise IdentityRejected for user-correctable refusals and
    BackendError for transport/provider failures.
    """

    def sign_up(self, email: str, password: str, full_name: Optional[str] = None) -> SignUpResult:
        ...

    def sign_in(self, email: str, password: str) -> AuthSession:
        ...

    def sign_out(self, access_token: str) -> None:
        ...

    def request_password_reset(self, email: str, redirect_to: str) -> None:
        ...

    def get_user(self, access_token: str) -> Dict[str, Any]:
        ...


def _session_from_payload(payload: Dict[str, Any]) -> AuthSession:
    user = payload.get("user") or {}
    return AuthSession(
        access_token=payload["access_token"],
        refresh_token=payload.get("refresh_token"),
        expires_in=payload.get("expires_in"),
        user_id=user.get("id", ""),
        email=user.get("email"),
        user_metadata=user.get("user_metadata") or {},
    )


class SupabaseAuthClient:
    """Supabase Auth REST client (anon key)."""

    def __init__(
        self,
        base_url: str,
        anon_key: str,
        http_client: Optional[httpx.Client] = None,
        events: Optional[AuthEventBus] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._headers = {"apikey": anon_key, "Content-Type": "application/json"}
        self._client = http_client or httpx.Client(timeout=DEFAULT_TIMEOUT)
        self._events = events or auth_events

    def _url(self, path: str) -> str:
        return f"{self.base_url}/auth/v1{path}"

    def _check(self, response: httpx.Response, operation: str) -> httpx.Response:
        if response.status_code in (400, 422):
            raise IdentityRejected(error_text(response))
        return ensure_ok(response, operation)

    def _bearer(self, access_token: str) -> Dict[str, str]:
        headers = dict(self._headers)
        headers["Authorization"] = f"Bearer {access_token}"
        return headers

    def sign_up(self, email: str, password: str, full_name: Optional[str] = None) -> SignUpResult:
        body = {"email": email, "password": password, "data": {"full_name": full_name}}
        with backend_call("sign up"):
            response = self._client.post(self._url("/signup"), json=body, headers=self._headers)
        payload = self._check(response, "sign up").json()

        session = _session_from_payload(payload) if payload.get("access_token") else None
        user = payload.get("user") or payload
        if session:
            self._events.publish(AuthEvent.SIGNED_IN, session)
        return SignUpResult(user_id=user.get("id", ""), email=user.get("email"), session=session)

    def sign_in(self, email: str, password: str) -> AuthSession:
        with backend_call("sign in"):
            response = self._client.post(
                self._url("/token"),
                params={"grant_type": "password"},
                json={"email": email, "password": password},
                headers=self._headers,
            )
        session = _session_from_payload(self._check(response, "sign in").json())
        self._events.publish(AuthEvent.SIGNED_IN, session)
        return session

    def sign_out(self, access_token: str) -> None:
        with backend_call("sign out"):
            response = self._client.post(self._url("/logout"), headers=self._bearer(access_token))
        self._check(response, "sign out")
        self._events.publish(AuthEvent.SIGNED_OUT, None)

    def request_password_reset(self, email: str, redirect_to: str) -> None:
        with backend_call("password reset"):
            response = self._client.post(
                self._url("/recover"),
                params={"redirect_to": redirect_to},
                json={"email": email},
                headers=self._headers,
            )
        self._check(response, "password reset")

    def get_user(self, access_token: str) -> Dict[str, Any]:
        with backend_call("get user"):
            response = self._client.get(self._url("/user"), headers=self._bearer(access_token))
        return self._check(response, "get user").json()

    def close(self) -> None:
        self._client.close()


def identity_enabled() -> bool:
    return bool(settings.SUPABASE_URL and settings.SUPABASE_ANON_KEY)


def get_identity_provider() -> Generator[IdentityProvider, None, None]:
    """FastAPI dependency: hosted identity provider."""
    if not identity_enabled():
        raise IdentityUnavailable("Identity provider is not configured. Set SUPABASE_URL and SUPABASE_ANON_KEY.")
    client = SupabaseAuthClient(settings.SUPABASE_URL, settings.SUPABASE_ANON_KEY)
    try:
        yield client
    finally:
        client.close()
