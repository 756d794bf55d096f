"""Pending-registration store, keyed by contact within a registration flow.

Email is compared lower-cased, phone exactly as received (after trimming). Functions flush
but leave the commit to the orchestrator.
"""
from datetime import datetime

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from marketplace.models.account import AccountRole
from marketplace.models.pending_registration import PendingRegistration
from marketplace.services.errors import Conflict, ContactMismatch
from marketplace.services.security import utcnow

# Columns a caller may patch; contacts are handled separately
PATCHABLE_FIELDS = (
    "full_name",
    "password_hash",
    "terms_accepted",
    "occupation",
    "reference_id",
    "id_card_front_ref",
    "id_card_back_ref",
    "otp_hash",
    "otp_expires_at",
    "verified",
    "verification_token_hash",
    "verification_token_expires_at",
)
_SNAPSHOT_FIELDS = ("email", "phone") + PATCHABLE_FIELDS


def normalize_email(email: str | None) -> str | None:
    email = (email or "").strip().lower()
    return email or None


def normalize_phone(phone: str | None) -> str | None:
    phone = (phone or "").strip()
    return phone or None


def find_by_contact(
    db: Session, flow: AccountRole, email: str | None, phone: str | None
) -> PendingRegistration | None:
    """Row matching either contact. Two different rows owning the two contacts is a mismatch."""
    email, phone = normalize_email(email), normalize_phone(phone)
    clauses = []
    if email:
        clauses.append(PendingRegistration.email == email)
    if phone:
        clauses.append(PendingRegistration.phone == phone)
    if not clauses:
        return None
    rows = db.query(PendingRegistration).filter(PendingRegistration.flow == flow, or_(*clauses)).all()
    if len(rows) > 1:
        raise ContactMismatch("Email and phone number belong to different pending registrations.")
    return rows[0] if rows else None


def find_by_present_contact(
    db: Session, flow: AccountRole, email: str | None, phone: str | None
) -> PendingRegistration | None:
    """Lookup for OTP verification: by email when given, otherwise by phone."""
    email, phone = normalize_email(email), normalize_phone(phone)
    query = db.query(PendingRegistration).filter(PendingRegistration.flow == flow)
    if email:
        return query.filter(PendingRegistration.email == email).first()
    if phone:
        return query.filter(PendingRegistration.phone == phone).first()
    return None


def check_contacts(row: PendingRegistration, email: str | None, phone: str | None) -> None:
    """Inbound contacts must equal the row's stored ones wherever both are present."""
    email, phone = normalize_email(email), normalize_phone(phone)
    if email and row.email and email != row.email:
        raise ContactMismatch("Email does not match existing pending registration.")
    if phone and row.phone and phone != row.phone:
        raise ContactMismatch("Phone number does not match existing pending registration.")


def snapshot(row: PendingRegistration) -> dict:
    return {field: getattr(row, field) for field in _SNAPSHOT_FIELDS}


def restore(row: PendingRegistration, state: dict) -> None:
    for field, value in state.items():
        setattr(row, field, value)


def upsert_by_contact(
    db: Session,
    flow: AccountRole,
    email: str | None,
    phone: str | None,
    patch: dict,
) -> tuple[PendingRegistration, bool, dict | None]:
    """Find by either contact and apply ``patch``; insert when absent.

    Returns ``(row, created, prior_state)`` so the caller can roll back a failed delivery.
    """
    row = find_by_contact(db, flow, email, phone)
    prior = None
    created = row is None
    if row is None:
        row = PendingRegistration(flow=flow)
        db.add(row)
    else:
        check_contacts(row, email, phone)
        prior = snapshot(row)
    if email and not row.email:
        row.email = email
    if phone and not row.phone:
        row.phone = phone
    for field, value in patch.items():
        if field not in PATCHABLE_FIELDS:
            raise ValueError(f"field not patchable: {field}")
        setattr(row, field, value)
    try:
        db.flush()
    except IntegrityError as e:
        # A parallel request claimed one of the contacts between our read and write
        db.rollback()
        raise Conflict("A registration for this contact is already in progress. Please retry.") from e
    return row, created, prior


def mark_verified(row: PendingRegistration, token_hash: str | None, token_expires_at: datetime | None) -> None:
    row.verified = True
    row.verification_token_hash = token_hash
    row.verification_token_expires_at = token_expires_at


def find_by_verification_token(db: Session, token_hash: str) -> PendingRegistration | None:
    return (
        db.query(PendingRegistration)
        .filter(
            PendingRegistration.verification_token_hash == token_hash,
            PendingRegistration.verified.is_(True),
            PendingRegistration.verification_token_expires_at > utcnow(),
        )
        .first()
    )


def clear(db: Session, row: PendingRegistration) -> bool:
    """Delete the row by id. False when another transaction already consumed it."""
    row_id = row.id
    if row in db:
        db.expunge(row)
    return clear_by_id(db, row_id)


def clear_by_id(db: Session, row_id: int) -> bool:
    deleted = db.query(PendingRegistration).filter(PendingRegistration.id == row_id).delete(synchronize_session=False)
    db.flush()
    return deleted == 1


def find_expired(db: Session) -> list[PendingRegistration]:
    """Rows whose OTP window closed and which hold no live verification token."""
    now = utcnow()
    return (
        db.query(PendingRegistration)
        .filter(
            or_(PendingRegistration.otp_expires_at.is_(None), PendingRegistration.otp_expires_at <= now),
            or_(
                PendingRegistration.verification_token_expires_at.is_(None),
                PendingRegistration.verification_token_expires_at <= now,
            ),
        )
        .all()
    )
