"""
Profile service.
- get_profile(session, user_id)
- get_or_create_profile(session, user): upsert-on-read from identity claims
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import insert, select
from sqlalchemy.orm import Session

from sentient.core.auth import CurrentUser
from sentient.core.database import profiles, store_call
from sentient.core.errors import BackendError
from sentient.core.logging import log_event
from sentient.models.user import UserProfile


def _fallback_profile(user: CurrentUser, now: datetime) -> UserProfile:
    return UserProfile(
        id=user.id,
        email=user.email,
        full_name=user.full_name,
        created_at=now,
        updated_at=now,
        persisted=False,
    )


def get_profile(session: Session, user_id: str) -> Optional[UserProfile]:
    with store_call(session, "load profile"):
        row = session.execute(select(profiles).where(profiles.c.id == user_id)).first()
    if not row:
        return None
    return UserProfile(
        id=row.id,
        email=row.email,
        full_name=row.full_name,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def get_or_create_profile(session: Session, user: CurrentUser) -> UserProfile:
    """
    Load the caller's profile, creating it from identity claims on first visit.

    Never raises for store failures: the dashboard renders from an unsaved
    profile (persisted=False) built from the claims instead.
    """
    now = datetime.now(timezone.utc)
    try:
        existing = get_profile(session, user.id)
        if existing:
            return existing

        with store_call(session, "create profile"):
            session.execute(
                insert(profiles).values(
                    id=user.id,
                    email=user.email,
                    full_name=user.full_name,
                    created_at=now,
                    updated_at=now,
                )
            )
            session.commit()
    except BackendError as exc:
        log_event(
            "warning",
            "profile.fallback",
            user_id=user.id,
            error_code=exc.code,
            extra={"operation": exc.operation},
        )
        return _fallback_profile(user, now)

    log_event("info", "profile.created", user_id=user.id)
    return UserProfile(
        id=user.id,
        email=user.email,
        full_name=user.full_name,
        created_at=now,
        updated_at=now,
    )
