"""
Request authentication.

Validates the Supabase access token on each request and exposes the caller
as a CurrentUser dependency. Handlers receive identity explicitly; nothing
about the session is kept in module state.
"""
from dataclasses import dataclass
from typing import Any, Dict, Optional
import logging

import jwt
from fastapi import Request

from sentient.core.errors import AuthenticationError
from sentient.core.supabase_auth import verify_access_token

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CurrentUser:
    """Identity of the authenticated caller, taken from verified token claims."""
    id: str
    email: Optional[str]
    full_name: Optional[str]
    access_token: str


def user_from_claims(claims: Dict[str, Any], token: str) -> CurrentUser:
    user_id = claims.get("sub")
    if not user_id:
        raise AuthenticationError("Token has no subject")
    metadata = claims.get("user_metadata") or {}
    full_name = metadata.get("full_name") if isinstance(metadata, dict) else None
    return CurrentUser(
        id=user_id,
        email=claims.get("email"),
        full_name=full_name,
        access_token=token,
    )


def bearer_token(request: Request) -> Optional[str]:
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        return None
    token = auth_header[7:].strip()
    return token or None


def authenticate_token(token: str) -> CurrentUser:
    """
    Verify an access token and build the caller identity.

    Raises:
        AuthenticationError: expired or invalid token
    """
    try:
        claims = verify_access_token(token)
    except jwt.ExpiredSignatureError:
        raise AuthenticationError("Token expired", code="token_expired")
    except jwt.PyJWTError as e:
        logger.debug(f"Invalid token: {e}")
        raise AuthenticationError("Invalid token", code="invalid_token")
    return user_from_claims(claims, token)


def get_optional_user(request: Request) -> Optional[CurrentUser]:
    """Current caller, or None when no bearer token was sent."""
    token = bearer_token(request)
    if token is None:
        return None
    user = authenticate_token(token)
    request.state.user_id = user.id
    return user


def get_current_user(request: Request) -> CurrentUser:
    """
    FastAPI dependency: require an authenticated caller.

    Raises:
        AuthenticationError 401: Missing or invalid bearer token
    """
    user = get_optional_user(request)
    if user is None:
        raise AuthenticationError("Missing Authorization (Bearer JWT) header")
    return user
