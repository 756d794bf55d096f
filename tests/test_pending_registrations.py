"""Pending-registration store keyed by contact within a flow."""
from datetime import timedelta

import pytest

from marketplace.models.account import AccountRole
from marketplace.models.pending_registration import PendingRegistration
from marketplace.services import pending_registrations as pending_store
from marketplace.services.errors import ContactMismatch
from marketplace.services.security import utcnow


def _upsert(db, email=None, phone=None, flow=AccountRole.user, **patch):
    row, created, prior = pending_store.upsert_by_contact(db, flow, email, phone, patch)
    db.commit()
    return row, created, prior


def test_upsert_inserts_then_updates_in_place(db):
    row, created, prior = _upsert(db, email="A@B.c", full_name="A B")
    assert created and prior is None
    assert row.email == "a@b.c"

    again, created, prior = _upsert(db, email="a@b.c", phone="+1 555 0100", occupation="Plumber")
    assert not created
    assert again.id == row.id
    assert again.phone == "+1 555 0100"
    assert again.full_name == "A B"
    assert prior["phone"] is None
    assert db.query(PendingRegistration).count() == 1


def test_email_is_case_insensitive_phone_is_exact(db):
    _upsert(db, email="a@b.c", phone="+15550100")
    assert pending_store.find_by_contact(db, AccountRole.user, "A@B.C", None) is not None
    assert pending_store.find_by_contact(db, AccountRole.user, None, "+1 555 0100") is None
    assert pending_store.find_by_contact(db, AccountRole.user, None, " +15550100 ") is not None


def test_mismatched_contact_on_existing_row(db):
    _upsert(db, email="a@b.c", phone="+15550100")
    with pytest.raises(ContactMismatch):
        pending_store.upsert_by_contact(db, AccountRole.user, "a@b.c", "+15550199", {})


def test_contacts_owned_by_two_rows(db):
    _upsert(db, email="a@b.c")
    _upsert(db, phone="+15550100")
    with pytest.raises(ContactMismatch):
        pending_store.find_by_contact(db, AccountRole.user, "a@b.c", "+15550100")


def test_flows_do_not_share_rows(db):
    _upsert(db, email="a@b.c")
    assert pending_store.find_by_contact(db, AccountRole.provider, "a@b.c", None) is None
    _, created, _ = _upsert(db, email="a@b.c", flow=AccountRole.provider)
    assert created


def test_unknown_patch_field_rejected(db):
    with pytest.raises(ValueError):
        pending_store.upsert_by_contact(db, AccountRole.user, "a@b.c", None, {"role": "admin"})


def test_snapshot_and_restore(db):
    row, _, _ = _upsert(db, email="a@b.c", full_name="Before")
    state = pending_store.snapshot(row)
    row.full_name = "After"
    pending_store.restore(row, state)
    assert row.full_name == "Before"


def test_verification_token_lookup_honours_expiry(db):
    row, _, _ = _upsert(db, email="a@b.c")
    pending_store.mark_verified(row, "live-hash", utcnow() + timedelta(minutes=30))
    db.commit()
    assert pending_store.find_by_verification_token(db, "live-hash").id == row.id

    row.verification_token_expires_at = utcnow() - timedelta(seconds=1)
    db.commit()
    assert pending_store.find_by_verification_token(db, "live-hash") is None


def test_clear_destroys_row(db):
    row, _, _ = _upsert(db, email="a@b.c")
    assert pending_store.clear(db, row) is True
    db.commit()
    assert db.query(PendingRegistration).count() == 0


def test_clear_reports_row_already_consumed(db):
    row, _, _ = _upsert(db, email="a@b.c")
    row_id = row.id
    assert pending_store.clear_by_id(db, row_id) is True
    assert pending_store.clear(db, row) is False
    assert pending_store.clear_by_id(db, row_id) is False
    db.commit()
    assert db.query(PendingRegistration).count() == 0


def test_find_expired(db):
    now = utcnow()
    _upsert(db, email="live@b.c", otp_expires_at=now + timedelta(minutes=5))
    _upsert(db, email="stale@b.c", otp_expires_at=now - timedelta(minutes=1))
    _upsert(
        db,
        email="verified@b.c",
        otp_expires_at=None,
        verification_token_expires_at=now + timedelta(minutes=20),
    )
    expired = pending_store.find_expired(db)
    assert [r.email for r in expired] == ["stale@b.c"]
