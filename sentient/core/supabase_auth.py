"""
Supabase access-token verification.

Handles:
- HS256 verification with the project JWT secret
- Asymmetric (RS256/ES256) verification against the project JWKS
- Test helpers for deterministic testing (no network)

Testing:
- Use create_test_jwt() to create test tokens
- Override JWKS fetch with set_jwks_provider_for_tests()
"""
import json
import time
from typing import Dict, Any, Optional, Callable

import httpx
import jwt

from sentient.core.backend_http import backend_call, ensure_ok
from sentient.core.config import settings


# HS256 secret used when nothing is configured (tests)
TEST_JWT_SECRET = "test-jwt-secret-for-sentient-markets-0001"

# JWKS override (tests) and cache keyed by jwks_url
_jwks_provider_override: Optional[Callable[[str], Dict[str, Any]]] = None
_jwks_cache: Dict[str, Dict[str, Any]] = {}


def set_jwks_provider_for_tests(provider: Optional[Callable[[str], Dict[str, Any]]]) -> None:
    """Set or clear JWKS provider override for deterministic testing (no network)."""
    global _jwks_provider_override
    _jwks_provider_override = provider
    _jwks_cache.clear()


def _default_fetch_jwks(jwks_url: str) -> Dict[str, Any]:
    response = ensure_ok(httpx.get(jwks_url, timeout=5.0), "fetch jwks")
    return response.json()


def resolve_jwks_url() -> Optional[str]:
    if settings.SUPABASE_JWKS_URL:
        return settings.SUPABASE_JWKS_URL
    if settings.SUPABASE_URL:
        return f"{settings.SUPABASE_URL.rstrip('/')}/auth/v1/.well-known/jwks.json"
    return None


def get_jwks(jwks_url: str, refresh: bool = False) -> Dict[str, Any]:
    """
    Fetch JWKS using override (tests) or default fetcher. Cached per url.

    Raises:
        BackendError: the key set could not be fetched (kind from the transport or status)
    """
    if refresh:
        _jwks_cache.pop(jwks_url, None)
    if jwks_url in _jwks_cache:
        return _jwks_cache[jwks_url]

    fetch = _jwks_provider_override or _default_fetch_jwks
    with backend_call("fetch jwks"):
        jwks = fetch(jwks_url)

    _jwks_cache[jwks_url] = jwks
    return jwks


def _find_key(jwks: Dict[str, Any], kid: str) -> Optional[Dict[str, Any]]:
    return next((key for key in jwks.get("keys", []) if key.get("kid") == kid), None)


def verify_access_token(token: str) -> Dict[str, Any]:
    """
    Verify a Supabase access token and return its claims.

    Raises jwt.PyJWTError on invalid token, and BackendError when the JWKS
    cannot be fetched.

    Args:
        token: Raw JWT string (without "Bearer " prefix)

    Returns:
        Decoded claims dict with keys: sub, email, role, user_metadata, etc.
    """
    audience = settings.SUPABASE_JWT_AUDIENCE

    secret = settings.SUPABASE_JWT_SECRET
    if secret:
        return jwt.decode(
            token,
            secret,
            algorithms=["HS256"],
            audience=audience,
            options={"verify_signature": True, "verify_exp": True},
        )

    jwks_url = resolve_jwks_url()
    if not jwks_url:
        raise jwt.PyJWTError("SUPABASE_JWT_SECRET or SUPABASE_JWKS_URL must be configured")

    kid = jwt.get_unverified_header(token).get("kid")
    if not kid:
        raise jwt.PyJWTError("Token missing 'kid' in header")

    matching_key = _find_key(get_jwks(jwks_url), kid)
    if not matching_key:
        # Signing keys were rotated since the last fetch
        matching_key = _find_key(get_jwks(jwks_url, refresh=True), kid)
    if not matching_key:
        raise jwt.PyJWTError(f"Key ID '{kid}' not found in JWKS")

    signing_key = jwt.PyJWK.from_json(json.dumps(matching_key))
    return jwt.decode(
        token,
        signing_key.key,
        algorithms=["RS256", "ES256"],
        audience=audience,
        options={"verify_signature": True, "verify_exp": True},
    )


# ============================================================================
# Test Helpers (deterministic, no network)
# ============================================================================

def create_test_jwt(
    sub: str = "test-user-123",
    email: Optional[str] = "test@example.com",
    full_name: Optional[str] = None,
    exp_minutes: int = 60,
    secret: Optional[str] = None,
    algorithm: str = "HS256",
    private_key: Optional[str] = None,
    kid: Optional[str] = None,
    audience: Optional[str] = None,
) -> str:
    """
    Create a Supabase-shaped access token for unit testing.
    Supports HS256 (default) and RS256 (for JWKS-based tests).
    """
    now = int(time.time())
    payload = {
        "sub": sub,
        "email": email,
        "role": "authenticated",
        "aud": audience or settings.SUPABASE_JWT_AUDIENCE,
        "iat": now,
        "exp": now + (exp_minutes * 60),
        "user_metadata": {},
    }
    if full_name:
        payload["user_metadata"]["full_name"] = full_name

    headers = {"kid": kid} if kid else None
    if algorithm == "RS256" and private_key:
        key = private_key
    else:
        key = secret or settings.SUPABASE_JWT_SECRET or TEST_JWT_SECRET
    return jwt.encode(payload, key, algorithm=algorithm, headers=headers)
