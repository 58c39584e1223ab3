"""
Payment workflow: submit PayPal and USDT payments, list history, compute access.

PayPal payments are written in two steps (insert pending, then update to
completed once the capture returns). The two writes are separate commits;
a failure between them leaves a pending record behind.

USDT payments are a single insert. A proof file upload that fails does not
block the submission: the record is created without a proof URL and a
warning is returned to the caller.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterable, List, Optional
from uuid import uuid4

from pydantic import BaseModel
from sqlalchemy import insert, select, update
from sqlalchemy.orm import Session

from sentient.core.auth import CurrentUser
from sentient.core.config import settings
from sentient.core.database import payments, store_call
from sentient.core.errors import AppError, BackendError, NotFoundError, ValidationError
from sentient.core.logging import log_event
from sentient.features.payments.paypal import PayPalError, PayPalProvider
from sentient.features.payments.validators import ALLOWED_PROOF_TYPES
from sentient.features.storage.provider import ObjectStore
from sentient.models.payment import PaymentMethod, PaymentRecord, PaymentStatus, ProofUpload

logger = logging.getLogger("sentient.payments")

PROOF_UPLOAD_WARNING = "Payment proof could not be uploaded. Your payment was submitted without it."
PROOF_STORAGE_DISABLED_WARNING = "Proof storage is not configured. Your payment was submitted without the proof file."


class PaymentProcessingError(AppError):
    code = "payment_failed"
    status_code = 502


class SubscriptionPlan(BaseModel):
    name: str
    price: Decimal
    paypal_currency: str
    usdt_currency: str
    usdt_wallet_address: str
    usdt_network: str
    instructions: List[str]
    accepted_proof_types: List[str]
    max_proof_bytes: int


@dataclass
class UsdtSubmission:
    payment: PaymentRecord
    warnings: List[str] = field(default_factory=list)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _to_record(row) -> PaymentRecord:
    return PaymentRecord.model_validate(dict(row._mapping))


def subscription_plan() -> SubscriptionPlan:
    """Price, wallet address and manual transfer instructions shown on the payment page."""
    return SubscriptionPlan(
        name="Sentient Markets Premium",
        price=settings.SUBSCRIPTION_PRICE,
        paypal_currency=settings.PAYPAL_CURRENCY,
        usdt_currency=settings.USDT_CURRENCY,
        usdt_wallet_address=settings.USDT_WALLET_ADDRESS,
        usdt_network=settings.USDT_NETWORK,
        instructions=[
            f"Send exactly {settings.SUBSCRIPTION_PRICE} {settings.USDT_CURRENCY} to the wallet address above.",
            f"Use the {settings.USDT_NETWORK} network only.",
            "Copy the transaction hash once the transfer is confirmed.",
            "Upload a screenshot of the transfer as proof (optional).",
            "An admin verifies the transfer, usually within 24 hours.",
        ],
        accepted_proof_types=sorted(ALLOWED_PROOF_TYPES),
        max_proof_bytes=settings.MAX_PROOF_BYTES,
    )


def compute_access_state(records: Iterable[PaymentRecord]) -> bool:
    """True when at least one payment is completed AND admin-verified."""
    return any(record.grants_access for record in records)


def get_payment(session: Session, payment_id: str) -> PaymentRecord:
    with store_call(session, "load payment"):
        row = session.execute(
            select(payments).where(payments.c.id == payment_id)
        ).first()
    if row is None:
        raise NotFoundError(f"Payment {payment_id} not found")
    return _to_record(row)


def list_user_payments(session: Session, user_id: str) -> List[PaymentRecord]:
    """The user's payments, newest first."""
    with store_call(session, "list payments"):
        rows = session.execute(
            select(payments)
            .where(payments.c.user_id == user_id)
            .order_by(payments.c.created_at.desc())
        ).all()
    return [_to_record(row) for row in rows]


def submit_paypal_payment(
    session: Session,
    user: CurrentUser,
    provider: PayPalProvider,
    *,
    now: Optional[datetime] = None,
) -> PaymentRecord:
    """
    Record a PayPal subscription payment.

    Inserts a pending record, captures through the provider, then marks the
    record completed, admin-verified and invite-sent.

    Raises:
        BackendError: record store failure on either write
        PaymentProcessingError: the capture failed (record stays pending)
    """
    created_at = now or _utcnow()
    payment_id = str(uuid4())
    amount = settings.SUBSCRIPTION_PRICE
    currency = settings.PAYPAL_CURRENCY

    with store_call(session, "create payment"):
        session.execute(
            insert(payments).values(
                id=payment_id,
                user_id=user.id,
                payment_method=PaymentMethod.PAYPAL.value,
                amount=amount,
                currency=currency,
                status=PaymentStatus.PENDING.value,
                discord_invite_sent=False,
                admin_verified=False,
                created_at=created_at,
                updated_at=created_at,
            )
        )
        session.commit()

    log_event("info", "payment.created", user_id=user.id, payment_id=payment_id, event_type="paypal")

    try:
        paypal_payment_id = provider.capture(payment_id, amount, currency)
    except PayPalError as exc:
        log_event(
            "warning",
            "payment.paypal_capture_failed",
            user_id=user.id,
            payment_id=payment_id,
            error_code="payment_failed",
            extra={"error": str(exc)},
        )
        raise PaymentProcessingError("PayPal payment could not be completed. Please try again.") from exc

    with store_call(session, "complete payment"):
        session.execute(
            update(payments)
            .where(payments.c.id == payment_id)
            .values(
                status=PaymentStatus.COMPLETED.value,
                paypal_payment_id=paypal_payment_id,
                admin_verified=True,
                discord_invite_sent=True,
                updated_at=now or _utcnow(),
            )
        )
        session.commit()

    log_event(
        "info",
        "payment.completed",
        user_id=user.id,
        payment_id=payment_id,
        event_type="paypal",
        extra={"paypal_payment_id": paypal_payment_id},
    )
    return get_payment(session, payment_id)


def proof_object_key(user_id: str, filename: str, now: datetime) -> str:
    """<user_id>_<epoch-ms>.<ext>, so a user's proofs share a listable prefix."""
    ext = filename.rsplit(".", 1)[-1].lower() if "." in filename else "bin"
    return f"{user_id}_{int(now.timestamp() * 1000)}.{ext}"


def _upload_proof(
    store: ObjectStore,
    user_id: str,
    proof: ProofUpload,
    now: datetime,
) -> Optional[tuple]:
    """Upload the proof and return (key, public_url), or None when the upload failed."""
    key = proof_object_key(user_id, proof.filename, now)
    try:
        store.upload(key, proof.data, proof.content_type)
    except BackendError as exc:
        log_event(
            "warning",
            "payment.proof_upload_failed",
            user_id=user_id,
            error_code=exc.code,
            extra={"object_key": key, "error_kind": exc.kind.value},
        )
        return None
    return key, store.get_public_url(key)


def _discard_proof(store: ObjectStore, key: str, user_id: str) -> None:
    try:
        store.remove([key])
    except BackendError as exc:
        log_event(
            "error",
            "payment.orphaned_proof",
            user_id=user_id,
            error_code=exc.code,
            extra={"object_key": key},
        )


def submit_usdt_payment(
    session: Session,
    user: CurrentUser,
    transaction_hash: Optional[str],
    *,
    proof: Optional[ProofUpload] = None,
    notes: Optional[str] = None,
    store: Optional[ObjectStore] = None,
    now: Optional[datetime] = None,
) -> UsdtSubmission:
    """
    Record a USDT transfer awaiting admin verification.

    The proof file is expected to be validated already. An upload failure
    degrades to a record without proof URL plus a warning. If the insert
    fails after a successful upload the uploaded object is removed again.

    Raises:
        ValidationError: missing transaction hash (nothing is written)
        BackendError: record store failure
    """
    tx_hash = (transaction_hash or "").strip()
    if not tx_hash:
        raise ValidationError("Please provide the transaction hash.", code="missing_transaction_hash")

    created_at = now or _utcnow()
    warnings: List[str] = []
    proof_key = None
    proof_url = None

    if proof is not None:
        if store is None:
            warnings.append(PROOF_STORAGE_DISABLED_WARNING)
        else:
            uploaded = _upload_proof(store, user.id, proof, created_at)
            if uploaded is None:
                warnings.append(PROOF_UPLOAD_WARNING)
            else:
                proof_key, proof_url = uploaded

    payment_id = str(uuid4())
    try:
        with store_call(session, "create payment"):
            session.execute(
                insert(payments).values(
                    id=payment_id,
                    user_id=user.id,
                    payment_method=PaymentMethod.USDT.value,
                    amount=settings.SUBSCRIPTION_PRICE,
                    currency=settings.USDT_CURRENCY,
                    status=PaymentStatus.PENDING.value,
                    payment_proof_url=proof_url,
                    transaction_hash=tx_hash,
                    notes=(notes or "").strip() or None,
                    discord_invite_sent=False,
                    admin_verified=False,
                    created_at=created_at,
                    updated_at=created_at,
                )
            )
            session.commit()
    except BackendError:
        if proof_key is not None:
            _discard_proof(store, proof_key, user.id)
        raise

    log_event(
        "info",
        "payment.created",
        user_id=user.id,
        payment_id=payment_id,
        event_type="usdt",
        extra={"has_proof": proof_url is not None},
    )
    return UsdtSubmission(payment=get_payment(session, payment_id), warnings=warnings)
