"""Admin review service: listing, stats, verification decisions and audit rows."""
import json
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy import insert, select

from sentient.core.admin_auth import AdminActor, get_admin_role
from sentient.core.auth import CurrentUser
from sentient.core.database import admin_audit, admin_users, get_engine, payments, profiles
from sentient.core.errors import BackendError, BackendErrorKind, NotFoundError, ValidationError
from sentient.features.admin.service import (
    PaymentAlreadyReviewed,
    get_payment_detail,
    grant_admin,
    list_all_payments,
    list_audit_entries,
    list_user_proofs,
    payment_stats,
    revoke_admin,
    set_verification,
)
from sentient.features.payments.service import submit_paypal_payment, submit_usdt_payment
from sentient.models.payment import PaymentStatus, ProofUpload
from sentient.tests.mocks import FakeObjectStore, FixedPayPalProvider

NOW = datetime(2024, 6, 1, 8, 0, tzinfo=timezone.utc)
ACTOR = AdminActor(actor_id="admin-1", role="admin", actor_email="ops@sentientmarkets.io")


def user(user_id: str) -> CurrentUser:
    return CurrentUser(id=user_id, email=f"{user_id}@example.com", full_name=None, access_token="x")


def add_profile(session, user_id: str, email: str, full_name: str = None):
    session.execute(
        insert(profiles).values(id=user_id, email=email, full_name=full_name, created_at=NOW, updated_at=NOW)
    )
    session.commit()


def test_list_joins_profiles_and_tolerates_missing_profile(db_session):
    add_profile(db_session, "alice", "alice@example.com", "Alice A")
    submit_usdt_payment(db_session, user("alice"), "tx-alice", now=NOW)
    submit_usdt_payment(db_session, user("ghost"), "tx-ghost", now=NOW + timedelta(minutes=5))

    views = list_all_payments(db_session)

    assert [v.transaction_hash for v in views] == ["tx-ghost", "tx-alice"]
    ghost, alice = views
    assert ghost.user_email is None
    assert ghost.user_full_name is None
    assert alice.user_email == "alice@example.com"
    assert alice.user_full_name == "Alice A"
    assert alice.label == "Pending"


def test_stats(db_session):
    submit_paypal_payment(db_session, user("a"), FixedPayPalProvider(), now=NOW)
    submit_usdt_payment(db_session, user("b"), "tx-b", now=NOW)
    rejected = submit_usdt_payment(db_session, user("c"), "tx-c", now=NOW).payment
    set_verification(db_session, rejected.id, False, ACTOR, now=NOW)

    stats = payment_stats(list_all_payments(db_session))

    assert stats.total_payments == 3
    assert stats.pending_payments == 1
    assert stats.active_subscribers == 1
    assert stats.total_revenue == Decimal("49.00")


def test_approve_sets_all_three_fields_and_writes_audit(db_session):
    payment = submit_usdt_payment(db_session, user("bob"), "tx", now=NOW).payment

    view = set_verification(db_session, payment.id, True, ACTOR, now=NOW + timedelta(hours=1))

    assert view.status == PaymentStatus.COMPLETED
    assert view.admin_verified is True
    assert view.discord_invite_sent is True
    assert view.label == "Verified"

    entries = list_audit_entries(db_session, payment.id)
    assert len(entries) == 1
    assert entries[0]["action"] == "payment_approved"
    assert entries[0]["actor_id"] == "admin-1"
    assert entries[0]["target_user_id"] == "bob"
    assert json.loads(entries[0]["payload_json"])["admin_verified"] is True


def test_rejected_payment_cannot_be_approved_later(db_session):
    payment = submit_usdt_payment(db_session, user("bob"), "tx", now=NOW).payment

    rejected = set_verification(db_session, payment.id, False, ACTOR, now=NOW)
    assert rejected.status == PaymentStatus.FAILED
    assert rejected.admin_verified is False
    assert rejected.discord_invite_sent is False
    assert rejected.label == "Rejected"

    with pytest.raises(PaymentAlreadyReviewed) as exc:
        set_verification(db_session, payment.id, True, ACTOR, now=NOW + timedelta(minutes=1))
    assert exc.value.status_code == 409

    row = db_session.execute(select(payments).where(payments.c.id == payment.id)).first()
    assert row.status == "failed"
    assert row.admin_verified is False
    actions = [e["action"] for e in list_audit_entries(db_session, payment.id)]
    assert actions == ["payment_rejected"]


def test_verified_paypal_payment_cannot_be_revoked(db_session):
    payment = submit_paypal_payment(db_session, user("carol"), FixedPayPalProvider(), now=NOW)

    with pytest.raises(PaymentAlreadyReviewed):
        set_verification(db_session, payment.id, False, ACTOR, now=NOW)

    view = get_payment_detail(db_session, payment.id)
    assert view.status == PaymentStatus.COMPLETED
    assert view.admin_verified is True
    assert view.discord_invite_sent is True
    assert list_audit_entries(db_session, payment.id) == []


def test_approved_payment_cannot_be_approved_twice(db_session):
    payment = submit_usdt_payment(db_session, user("bob"), "tx", now=NOW).payment
    set_verification(db_session, payment.id, True, ACTOR, now=NOW)

    with pytest.raises(PaymentAlreadyReviewed):
        set_verification(db_session, payment.id, True, ACTOR, now=NOW + timedelta(minutes=1))
    assert len(list_audit_entries(db_session, payment.id)) == 1


def test_unknown_payment_is_not_found_and_not_audited(db_session):
    with pytest.raises(NotFoundError):
        set_verification(db_session, "missing", True, ACTOR)
    assert db_session.execute(select(admin_audit)).all() == []


def test_get_payment_detail_unknown_id(db_session):
    with pytest.raises(NotFoundError):
        get_payment_detail(db_session, "missing")


def test_store_failure_surfaces_backend_error(db_session):
    payment = submit_usdt_payment(db_session, user("bob"), "tx", now=NOW).payment
    admin_audit.drop(get_engine())

    with pytest.raises(BackendError) as exc:
        set_verification(db_session, payment.id, True, ACTOR)
    assert exc.value.kind == BackendErrorKind.SCHEMA

    # Update and audit share one transaction
    row = db_session.execute(select(payments).where(payments.c.id == payment.id)).first()
    assert row.admin_verified is False
    assert row.status == "pending"


def test_list_user_proofs_uses_user_prefix():
    store = FakeObjectStore()
    store.upload("alice_1.png", b"a", "image/png")
    store.upload("alice_2.pdf", b"bb", "application/pdf")
    store.upload("alicent_3.png", b"c", "image/png")

    names = [o.name for o in list_user_proofs(store, "alice")]
    assert names == ["alice_1.png", "alice_2.pdf"]


def test_grant_and_revoke_admin(db_session):
    grant_admin(db_session, "new-admin")
    assert get_admin_role(db_session, "new-admin").role == "admin"

    grant_admin(db_session, "new-admin", "super_admin")
    assert get_admin_role(db_session, "new-admin").role == "super_admin"
    assert len(db_session.execute(select(admin_users)).all()) == 1

    assert revoke_admin(db_session, "new-admin") is True
    assert get_admin_role(db_session, "new-admin") is None
    assert revoke_admin(db_session, "new-admin") is False


def test_grant_admin_rejects_unknown_role(db_session):
    with pytest.raises(ValidationError):
        grant_admin(db_session, "someone", "owner")
