"""
Admin authorization for payment review.

The caller must hold a valid access token AND have a row in admin_users.
Authenticated non-admins are redirected away from admin routes instead of
receiving an error body; unauthenticated callers still get 401.
"""
from dataclasses import dataclass
from typing import Optional, Literal

from fastapi import Depends
from sqlalchemy import select
from sqlalchemy.orm import Session

from sentient.core.auth import CurrentUser, get_current_user
from sentient.core.database import admin_users, get_db, store_call
from sentient.core.errors import AdminRedirect
from sentient.models.user import AdminRole

ADMIN_ROLES = ("admin", "super_admin")


@dataclass
class AdminActor:
    """Represents an authenticated admin actor."""
    actor_id: str
    role: Literal["admin", "super_admin"]
    actor_email: Optional[str] = None
    actor_display: Optional[str] = None


def get_admin_role(session: Session, user_id: str) -> Optional[AdminRole]:
    """Look up the caller's admin role; None when the caller is not an admin."""
    with store_call(session, "check admin status"):
        row = session.execute(
            select(admin_users).where(admin_users.c.id == user_id)
        ).first()
    if not row or row.role not in ADMIN_ROLES:
        return None
    return AdminRole(id=row.id, role=row.role, created_at=row.created_at)


def require_admin(
    user: CurrentUser = Depends(get_current_user),
    session: Session = Depends(get_db),
) -> AdminActor:
    """
    FastAPI dependency: require an admin caller.

    Usage:
        @router.get("/v1/admin/endpoint")
        def admin_endpoint(actor: AdminActor = Depends(require_admin)):
            ...
    """
    role = get_admin_role(session, user.id)
    if role is None:
        raise AdminRedirect("/dashboard")

    return AdminActor(
        actor_id=user.id,
        role=role.role,
        actor_email=user.email,
        actor_display=user.full_name or user.email,
    )
