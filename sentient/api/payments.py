"""
Payment API routes.

- GET  /v1/payments: caller's payment history (newest first)
- GET  /v1/payments/plan: price, wallet and transfer instructions
- POST /v1/payments/paypal: demo PayPal checkout
- POST /v1/payments/usdt: USDT transfer with optional proof file (multipart)
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile
from pydantic import BaseModel
from sqlalchemy.orm import Session

from sentient.core.auth import CurrentUser, get_current_user
from sentient.core.database import get_db
from sentient.features.payments.paypal import PayPalProvider, get_paypal_provider
from sentient.features.payments.service import (
    SubscriptionPlan,
    compute_access_state,
    list_user_payments,
    submit_paypal_payment,
    submit_usdt_payment,
    subscription_plan,
)
from sentient.features.payments.validators import read_proof_bytes, validate_proof_file
from sentient.features.storage.provider import ObjectStore, get_object_store
from sentient.models.payment import PaymentView, ProofUpload

router = APIRouter(prefix="/v1/payments", tags=["payments"])


class PaymentHistoryResponse(BaseModel):
    payments: List[PaymentView]
    has_active_subscription: bool


class PaymentSubmitResponse(BaseModel):
    payment: PaymentView
    warnings: List[str] = []


@router.get("", response_model=PaymentHistoryResponse)
def payment_history(
    user: CurrentUser = Depends(get_current_user),
    session: Session = Depends(get_db),
):
    records = list_user_payments(session, user.id)
    return PaymentHistoryResponse(
        payments=[PaymentView.for_dashboard(r) for r in records],
        has_active_subscription=compute_access_state(records),
    )


@router.get("/plan", response_model=SubscriptionPlan)
def payment_plan():
    return subscription_plan()


@router.post("/paypal", response_model=PaymentSubmitResponse, status_code=201)
def pay_with_paypal(
    user: CurrentUser = Depends(get_current_user),
    session: Session = Depends(get_db),
    provider: PayPalProvider = Depends(get_paypal_provider),
):
    record = submit_paypal_payment(session, user, provider)
    return PaymentSubmitResponse(payment=PaymentView.for_dashboard(record))


@router.post("/usdt", response_model=PaymentSubmitResponse, status_code=201)
def pay_with_usdt(
    transaction_hash: str = Form(""),
    notes: Optional[str] = Form(None),
    proof: Optional[UploadFile] = File(None),
    user: CurrentUser = Depends(get_current_user),
    session: Session = Depends(get_db),
    store: Optional[ObjectStore] = Depends(get_object_store),
):
    """
    Submit a USDT transfer for admin verification.

    The proof file is checked (size, type) before anything is written.
    """
    upload = None
    if proof is not None and proof.filename:
        upload = ProofUpload(
            filename=proof.filename,
            content_type=proof.content_type,
            data=read_proof_bytes(proof.file),
        )
        content_type = validate_proof_file(upload)
        upload = upload.model_copy(update={"content_type": content_type})

    result = submit_usdt_payment(
        session,
        user,
        transaction_hash,
        proof=upload,
        notes=notes,
        store=store,
    )
    return PaymentSubmitResponse(
        payment=PaymentView.for_dashboard(result.payment),
        warnings=result.warnings,
    )
