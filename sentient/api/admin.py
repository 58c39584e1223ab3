"""
Admin review API routes.

All routes except /status require an admin caller. Authenticated non-admins
are redirected (303) to /dashboard; unauthenticated callers get 401.

- GET  /v1/admin/status
- GET  /v1/admin/payments
- GET  /v1/admin/payments/{payment_id}
- POST /v1/admin/payments/{payment_id}/verification
- GET  /v1/admin/users/{user_id}/proofs
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from sentient.core.admin_auth import AdminActor, get_admin_role, require_admin
from sentient.core.auth import CurrentUser, get_current_user
from sentient.core.database import get_db
from sentient.core.errors import AppError
from sentient.features.admin.service import (
    PaymentStats,
    get_payment_detail,
    list_all_payments,
    list_audit_entries,
    list_user_proofs,
    payment_stats,
    set_verification,
)
from sentient.features.storage.provider import ObjectStore, get_object_store
from sentient.models.payment import AdminPaymentView

router = APIRouter(prefix="/v1/admin", tags=["admin"])


class AdminStatusResponse(BaseModel):
    is_admin: bool
    role: Optional[str] = None


class AdminPaymentsResponse(BaseModel):
    payments: List[AdminPaymentView]
    stats: PaymentStats


class AdminPaymentDetailResponse(BaseModel):
    payment: AdminPaymentView
    audit: List[Dict[str, Any]]


class VerificationRequest(BaseModel):
    verified: bool


class ProofEntry(BaseModel):
    name: str
    size: Optional[int] = None
    content_type: Optional[str] = None
    created_at: Optional[datetime] = None
    url: str


class ProofListResponse(BaseModel):
    user_id: str
    proofs: List[ProofEntry]


class StorageUnavailable(AppError):
    code = "storage_unconfigured"
    status_code = 503


@router.get("/status", response_model=AdminStatusResponse)
def admin_status(
    user: CurrentUser = Depends(get_current_user),
    session: Session = Depends(get_db),
):
    role = get_admin_role(session, user.id)
    return AdminStatusResponse(is_admin=role is not None, role=role.role if role else None)


@router.get("/payments", response_model=AdminPaymentsResponse)
def admin_list_payments(
    actor: AdminActor = Depends(require_admin),
    session: Session = Depends(get_db),
):
    views = list_all_payments(session)
    return AdminPaymentsResponse(payments=views, stats=payment_stats(views))


@router.get("/payments/{payment_id}", response_model=AdminPaymentDetailResponse)
def admin_get_payment(
    payment_id: str,
    actor: AdminActor = Depends(require_admin),
    session: Session = Depends(get_db),
):
    return AdminPaymentDetailResponse(
        payment=get_payment_detail(session, payment_id),
        audit=list_audit_entries(session, payment_id),
    )


@router.post("/payments/{payment_id}/verification", response_model=AdminPaymentView)
def admin_set_verification(
    payment_id: str,
    body: VerificationRequest,
    actor: AdminActor = Depends(require_admin),
    session: Session = Depends(get_db),
):
    return set_verification(session, payment_id, body.verified, actor)


@router.get("/users/{user_id}/proofs", response_model=ProofListResponse)
def admin_list_user_proofs(
    user_id: str,
    actor: AdminActor = Depends(require_admin),
    store: Optional[ObjectStore] = Depends(get_object_store),
):
    if store is None:
        raise StorageUnavailable("Proof storage is not configured.")
    entries = list_user_proofs(store, user_id)
    return ProofListResponse(
        user_id=user_id,
        proofs=[
            ProofEntry(
                name=e.name,
                size=e.size,
                content_type=e.content_type,
                created_at=e.created_at,
                url=store.get_public_url(e.name),
            )
            for e in entries
        ],
    )
