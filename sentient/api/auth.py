"""
Auth API routes.

Thin proxy over the hosted identity provider:
- POST /v1/auth/signup
- POST /v1/auth/login
- POST /v1/auth/logout
- POST /v1/auth/forgot-password
- GET  /v1/auth/session
"""
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from sentient.core.auth import CurrentUser, get_current_user, get_optional_user
from sentient.core.config import settings
from sentient.core.errors import ValidationError
from sentient.features.identity.provider import AuthSession, IdentityProvider, get_identity_provider

router = APIRouter(prefix="/v1/auth", tags=["auth"])


class SignUpRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=320)
    password: str = Field(..., min_length=6)
    full_name: Optional[str] = Field(None, max_length=200)


class LoginRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=320)
    password: str = Field(..., min_length=1)


class ForgotPasswordRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=320)


class SessionResponse(BaseModel):
    access_token: str
    refresh_token: Optional[str] = None
    expires_in: Optional[int] = None
    user_id: str
    email: Optional[str] = None


class SignUpResponse(BaseModel):
    user_id: str
    email: Optional[str] = None
    confirmation_required: bool
    session: Optional[SessionResponse] = None


class SessionUser(BaseModel):
    id: str
    email: Optional[str] = None
    full_name: Optional[str] = None


class CurrentSessionResponse(BaseModel):
    user: Optional[SessionUser] = None


def _require_email(email: str) -> str:
    email = email.strip()
    if "@" not in email:
        raise ValidationError("Please enter a valid email address.", code="invalid_email")
    return email


def _session_response(session: AuthSession) -> SessionResponse:
    return SessionResponse(
        access_token=session.access_token,
        refresh_token=session.refresh_token,
        expires_in=session.expires_in,
        user_id=session.user_id,
        email=session.email,
    )


@router.post("/signup", response_model=SignUpResponse)
def signup(body: SignUpRequest, identity: IdentityProvider = Depends(get_identity_provider)):
    """Create an account. Until the email is confirmed no session is returned."""
    result = identity.sign_up(_require_email(body.email), body.password, (body.full_name or "").strip() or None)
    return SignUpResponse(
        user_id=result.user_id,
        email=result.email,
        confirmation_required=result.session is None,
        session=_session_response(result.session) if result.session else None,
    )


@router.post("/login", response_model=SessionResponse)
def login(body: LoginRequest, identity: IdentityProvider = Depends(get_identity_provider)):
    return _session_response(identity.sign_in(_require_email(body.email), body.password))


@router.post("/logout")
def logout(
    user: CurrentUser = Depends(get_current_user),
    identity: IdentityProvider = Depends(get_identity_provider),
):
    identity.sign_out(user.access_token)
    return {"ok": True}


@router.post("/forgot-password")
def forgot_password(body: ForgotPasswordRequest, identity: IdentityProvider = Depends(get_identity_provider)):
    identity.request_password_reset(_require_email(body.email), settings.password_reset_url)
    return {"ok": True, "message": "Check your email for the password reset link."}


@router.get("/session", response_model=CurrentSessionResponse)
def current_session(user: Optional[CurrentUser] = Depends(get_optional_user)):
    """The verified caller, or user=null when no bearer token was sent."""
    if user is None:
        return CurrentSessionResponse(user=None)
    return CurrentSessionResponse(user=SessionUser(id=user.id, email=user.email, full_name=user.full_name))
