"""Dashboard read model: profile, payment history and subscription state."""

from typing import List, Optional

from pydantic import BaseModel
from sqlalchemy.orm import Session

from sentient.core.auth import CurrentUser
from sentient.core.config import settings
from sentient.core.errors import BackendError
from sentient.core.logging import log_event
from sentient.features.payments.service import compute_access_state, list_user_payments
from sentient.features.profiles.service import get_or_create_profile
from sentient.models.payment import PaymentRecord, PaymentStatus, PaymentView
from sentient.models.user import UserProfile


class PaymentsError(BaseModel):
    kind: str
    message: str
    retryable: bool


class Dashboard(BaseModel):
    profile: UserProfile
    display_name: str
    has_active_subscription: bool
    subscription_label: str
    discord_invite_url: Optional[str] = None
    payments: List[PaymentView]
    payments_error: Optional[PaymentsError] = None


def subscription_label(records: List[PaymentRecord]) -> str:
    if compute_access_state(records):
        return "Premium Active"
    if any(r.status in (PaymentStatus.PENDING, PaymentStatus.COMPLETED) for r in records):
        return "Pending Verification"
    return "Inactive"


def build_dashboard(session: Session, user: CurrentUser) -> Dashboard:
    """
    Assemble the dashboard for the caller.

    A failed history read does not fail the dashboard: it renders with an
    empty history and a payments_error describing the failure.
    """
    profile = get_or_create_profile(session, user)

    records: List[PaymentRecord] = []
    payments_error = None
    try:
        records = list_user_payments(session, user.id)
    except BackendError as exc:
        log_event("warning", "dashboard.payments_unavailable", user_id=user.id, error_code=exc.code)
        payments_error = PaymentsError(kind=exc.kind.value, message=exc.user_message, retryable=exc.retryable)

    active = compute_access_state(records)
    return Dashboard(
        profile=profile,
        display_name=profile.display_name,
        has_active_subscription=active,
        subscription_label=subscription_label(records),
        discord_invite_url=settings.DISCORD_INVITE_URL if active else None,
        payments=[PaymentView.for_dashboard(r) for r in records],
        payments_error=payments_error,
    )
