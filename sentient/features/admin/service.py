"""
Admin review of submitted payments.

Admins list every payment with the owner's profile, inspect one, and approve
or reject it. Each decision is a single UPDATE plus an admin_audit row in the
same transaction. Only pending (or unverified) payments can be decided:
completed/verified and failed/unverified are final.
"""
import json
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel
from sqlalchemy import and_, delete, insert, not_, select, update
from sqlalchemy.orm import Session

from sentient.core.admin_auth import ADMIN_ROLES, AdminActor
from sentient.core.database import admin_audit, admin_users, payments, profiles, store_call
from sentient.core.errors import AppError, NotFoundError, ValidationError
from sentient.core.logging import log_event
from sentient.features.storage.provider import ObjectStore, StoredObject
from sentient.models.payment import AdminPaymentView, PaymentRecord, PaymentStatus

logger = logging.getLogger("sentient.admin")

# completed/true and failed/false are terminal
_UNDECIDED = and_(
    not_(and_(payments.c.status == PaymentStatus.COMPLETED.value, payments.c.admin_verified.is_(True))),
    not_(and_(payments.c.status == PaymentStatus.FAILED.value, payments.c.admin_verified.is_(False))),
)


class PaymentAlreadyReviewed(AppError):
    code = "payment_already_reviewed"
    status_code = 409


class PaymentStats(BaseModel):
    total_payments: int
    pending_payments: int
    active_subscribers: int
    total_revenue: Decimal


def _admin_select():
    return select(
        payments,
        profiles.c.email.label("user_email"),
        profiles.c.full_name.label("user_full_name"),
    ).select_from(payments.outerjoin(profiles, payments.c.user_id == profiles.c.id))


def _to_view(row) -> AdminPaymentView:
    record = PaymentRecord.model_validate(dict(row._mapping))
    return AdminPaymentView(
        **record.model_dump(),
        user_email=row.user_email,
        user_full_name=row.user_full_name,
        label=record.admin_label,
    )


def list_all_payments(session: Session) -> List[AdminPaymentView]:
    """Every payment, newest first; profile fields are null when the profile is missing."""
    with store_call(session, "list all payments"):
        rows = session.execute(
            _admin_select().order_by(payments.c.created_at.desc())
        ).all()
    return [_to_view(row) for row in rows]


def payment_stats(views: List[AdminPaymentView]) -> PaymentStats:
    verified = [v for v in views if v.admin_verified]
    return PaymentStats(
        total_payments=len(views),
        pending_payments=sum(
            1 for v in views if not v.admin_verified and v.status != PaymentStatus.FAILED
        ),
        active_subscribers=len(verified),
        total_revenue=sum((v.amount for v in verified), Decimal("0")),
    )


def get_payment_detail(session: Session, payment_id: str) -> AdminPaymentView:
    with store_call(session, "load payment"):
        row = session.execute(
            _admin_select().where(payments.c.id == payment_id)
        ).first()
    if row is None:
        raise NotFoundError(f"Payment {payment_id} not found")
    return _to_view(row)


def _audit_values(
    actor: AdminActor,
    action: str,
    payment_id: str,
    user_id: Optional[str],
    payload: Dict[str, Any],
    now: datetime,
) -> Dict[str, Any]:
    return {
        "actor_id": actor.actor_id,
        "actor_email": actor.actor_email,
        "action": action,
        "target_payment_id": payment_id,
        "target_user_id": user_id,
        "payload_json": json.dumps(payload),
        "created_at": now,
    }


def set_verification(
    session: Session,
    payment_id: str,
    verified: bool,
    actor: AdminActor,
    *,
    now: Optional[datetime] = None,
) -> AdminPaymentView:
    """
    Approve or reject a payment.

    Approval sets admin_verified, discord_invite_sent and status=completed;
    rejection clears both flags and sets status=failed. The UPDATE only
    matches undecided rows, so concurrent decisions cannot both win. Store
    errors are surfaced to the admin without retry.

    Raises:
        NotFoundError: no payment with that id
        PaymentAlreadyReviewed: the payment is already completed/verified or failed/unverified
        BackendError: record store failure (nothing is written)
    """
    now = now or datetime.now(timezone.utc)
    status = PaymentStatus.COMPLETED if verified else PaymentStatus.FAILED
    action = "payment_approved" if verified else "payment_rejected"

    with store_call(session, "update payment verification"):
        result = session.execute(
            update(payments)
            .where(payments.c.id == payment_id)
            .where(_UNDECIDED)
            .values(
                admin_verified=verified,
                discord_invite_sent=verified,
                status=status.value,
                updated_at=now,
            )
        )
        if result.rowcount == 0:
            session.rollback()
            exists = session.execute(
                select(payments.c.id).where(payments.c.id == payment_id)
            ).first()
            if exists is None:
                raise NotFoundError(f"Payment {payment_id} not found")
            raise PaymentAlreadyReviewed(f"Payment {payment_id} has already been reviewed")

        user_id = session.execute(
            select(payments.c.user_id).where(payments.c.id == payment_id)
        ).scalar()
        session.execute(
            insert(admin_audit).values(
                **_audit_values(
                    actor,
                    action,
                    payment_id,
                    user_id,
                    {"admin_verified": verified, "status": status.value, "role": actor.role},
                    now,
                )
            )
        )
        session.commit()

    log_event(
        "info",
        "admin.payment_verification",
        user_id=user_id,
        payment_id=payment_id,
        event_type=action,
        extra={"actor_id": actor.actor_id},
    )
    return get_payment_detail(session, payment_id)


def list_audit_entries(session: Session, payment_id: str) -> List[Dict[str, Any]]:
    with store_call(session, "list audit entries"):
        rows = session.execute(
            select(admin_audit)
            .where(admin_audit.c.target_payment_id == payment_id)
            .order_by(admin_audit.c.id)
        ).all()
    return [dict(row._mapping) for row in rows]


def list_user_proofs(store: ObjectStore, user_id: str) -> List[StoredObject]:
    """Proof files uploaded by a user (object keys are prefixed with the user id)."""
    return store.list(prefix=f"{user_id}_")


def grant_admin(session: Session, user_id: str, role: str = "admin") -> None:
    """Insert or update the admin_users row for a user."""
    if role not in ADMIN_ROLES:
        raise ValidationError(f"Unknown admin role: {role}", code="invalid_role")
    with store_call(session, "grant admin"):
        exists = session.execute(
            select(admin_users.c.id).where(admin_users.c.id == user_id)
        ).first()
        if exists:
            session.execute(
                update(admin_users).where(admin_users.c.id == user_id).values(role=role)
            )
        else:
            session.execute(
                insert(admin_users).values(id=user_id, role=role, created_at=datetime.now(timezone.utc))
            )
        session.commit()
    logger.info(f"[admin] granted {role} to {user_id}")


def revoke_admin(session: Session, user_id: str) -> bool:
    with store_call(session, "revoke admin"):
        result = session.execute(delete(admin_users).where(admin_users.c.id == user_id))
        session.commit()
    logger.info(f"[admin] revoked admin from {user_id}")
    return result.rowcount > 0
