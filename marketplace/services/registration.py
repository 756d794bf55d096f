"""OTP-gated registration for end-users and providers.

A pending row moves AwaitingOtp -> Verified -> Finalized, or to Expired; both terminal states
destroy the row. Finalization creates the account (and provider profile) and deletes the
pending row in one commit, then issues a session.
"""
import logging
from datetime import timedelta

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from marketplace.config import get_settings
from marketplace.models.account import Account, AccountRole, AuthProvider
from marketplace.models.pending_registration import PendingRegistration
from marketplace.models.provider import ProviderProfile, VerificationStatus
from marketplace.services import pending_registrations as pending_store
from marketplace.services.auth import issue_session
from marketplace.services.errors import (
    AlreadyRegistered,
    DeliveryFailed,
    IncompletePayload,
    InvalidInput,
    InvalidToken,
    NotFound,
    OtpExpired,
    OtpInvalid,
)
from marketplace.services.notifications import (
    CHANNEL_EMAIL,
    CHANNEL_SMS,
    PURPOSE_REGISTRATION,
    OtpDelivery,
)
from marketplace.services.object_store import LocalObjectStore
from marketplace.services.security import (
    as_utc,
    constant_time_equals,
    fingerprint,
    generate_otp,
    generate_secret_token,
    hash_password,
    is_valid_otp_shape,
    utcnow,
)
from marketplace.services.tokens import PRINCIPAL_ACCOUNT

logger = logging.getLogger(__name__)

ACCOUNT_PASSWORD_MIN_LENGTH = 6
FILE_FIELDS = ("id_card_front_ref", "id_card_back_ref")


def check_account_password(password: str) -> None:
    if password is None or len(password) < ACCOUNT_PASSWORD_MIN_LENGTH:
        raise InvalidInput(f"Password must be at least {ACCOUNT_PASSWORD_MIN_LENGTH} characters long.")


def contact_taken(db: Session, email: str | None, phone: str | None) -> bool:
    clauses = []
    if email:
        clauses.append(Account.email == email)
    if phone:
        clauses.append(Account.phone == phone)
    if not clauses:
        return False
    return db.query(Account.id).filter(or_(*clauses)).first() is not None


def _otp_window() -> timedelta:
    return timedelta(minutes=get_settings().otp_expire_minutes)


def request_otp(
    db: Session,
    delivery: OtpDelivery,
    object_store: LocalObjectStore,
    flow: AccountRole,
    email: str | None = None,
    phone: str | None = None,
    full_name: str | None = None,
    password: str | None = None,
    terms_accepted: bool | None = None,
    occupation: str | None = None,
    reference_id: str | None = None,
    uploads: dict | None = None,
) -> dict:
    """Create or refresh the pending row for a contact and send it a fresh OTP.

    ``uploads`` maps ``id_card_front_ref``/``id_card_back_ref`` to handles the caller just wrote
    to the object store; they are released again if the request fails.
    """
    email = pending_store.normalize_email(email)
    phone = pending_store.normalize_phone(phone)
    fresh_handles = [h for h in (uploads or {}).values() if h]
    try:
        if not email and not phone:
            raise InvalidInput("Email or phone number is required.")
        if password is not None:
            check_account_password(password)
        if contact_taken(db, email, phone):
            raise AlreadyRegistered()

        existing = pending_store.find_by_contact(db, flow, email, phone)
        if existing is not None:
            pending_store.check_contacts(existing, email, phone)

        otp = generate_otp()
        patch = {
            "otp_hash": fingerprint(otp),
            "otp_expires_at": utcnow() + _otp_window(),
            "verified": False,
            "verification_token_hash": None,
            "verification_token_expires_at": None,
        }
        if full_name:
            patch["full_name"] = full_name.strip()
        if password and not (existing is not None and existing.password_hash):
            patch["password_hash"] = hash_password(password)
        if terms_accepted is not None:
            patch["terms_accepted"] = terms_accepted
        if occupation:
            patch["occupation"] = occupation.strip()
        if reference_id:
            patch["reference_id"] = reference_id.strip()
        replaced_handles = []
        for field, handle in (uploads or {}).items():
            if field not in FILE_FIELDS:
                raise ValueError(f"unknown upload field: {field}")
            if not handle:
                continue
            if existing is not None and getattr(existing, field) and getattr(existing, field) != handle:
                replaced_handles.append(getattr(existing, field))
            patch[field] = handle

        row, created, prior = pending_store.upsert_by_contact(db, flow, email, phone, patch)
        db.commit()
    except Exception:
        object_store.release(fresh_handles)
        raise

    # Email wins when both contacts were supplied
    channel, recipient = (CHANNEL_EMAIL, email) if email else (CHANNEL_SMS, phone)
    try:
        delivery.deliver(channel, recipient, otp, row.full_name, PURPOSE_REGISTRATION)
    except Exception as e:
        if created:
            db.query(PendingRegistration).filter(PendingRegistration.id == row.id).delete(synchronize_session=False)
        else:
            pending_store.restore(row, prior)
        db.commit()
        object_store.release(fresh_handles)
        if isinstance(e, DeliveryFailed):
            raise
        logger.exception("OTP delivery raised unexpectedly: channel=%s", channel)
        raise DeliveryFailed() from e

    object_store.release(replaced_handles)
    logger.info("Registration OTP issued: flow=%s channel=%s created=%s", flow.value, channel, created)
    return {
        "channel": channel,
        "email": row.email,
        "phone": row.phone,
        "expiresInSeconds": int(_otp_window().total_seconds()),
    }


def _destroy(db: Session, object_store: LocalObjectStore, row: PendingRegistration) -> None:
    """Delete the pending row and release the files it owns.

    When the row is already gone a parallel finalization consumed it, and its files now
    belong to that account.
    """
    handles = list(row.file_handles)
    deleted = pending_store.clear(db, row)
    db.commit()
    if deleted:
        object_store.release(handles)


def _is_complete(row: PendingRegistration) -> bool:
    return bool(row.full_name) and bool(row.password_hash) and row.terms_accepted is True


def verify_otp(
    db: Session,
    object_store: LocalObjectStore,
    flow: AccountRole,
    otp: str,
    email: str | None = None,
    phone: str | None = None,
    full_name: str | None = None,
    password: str | None = None,
    terms_accepted: bool | None = None,
    device_info: dict | None = None,
) -> dict:
    """Check the OTP; finalize when the row holds everything, otherwise hand out a verification token.

    Returns ``{"finalized": True, "account", "tokens"}`` or ``{"finalized": False, "verificationToken", ...}``.
    """
    if not is_valid_otp_shape(otp):
        raise InvalidInput("OTP must be exactly 6 digits.")
    if not (email or "").strip() and not (phone or "").strip():
        raise InvalidInput("Email or phone number is required.")
    row = pending_store.find_by_present_contact(db, flow, email, phone)
    if row is None:
        raise NotFound("No pending registration found. Please request a new OTP.")
    if not row.otp_hash:
        raise OtpExpired("OTP already used. Please request a new one.")
    if row.otp_expires_at is None or as_utc(row.otp_expires_at) <= utcnow():
        _destroy(db, object_store, row)
        raise OtpExpired()
    if not constant_time_equals(fingerprint(otp), row.otp_hash):
        raise OtpInvalid()

    if full_name and not row.full_name:
        row.full_name = full_name.strip()
    if password and not row.password_hash:
        check_account_password(password)
        row.password_hash = hash_password(password)
    if terms_accepted is not None and row.terms_accepted is not True:
        row.terms_accepted = terms_accepted

    if _is_complete(row):
        account, tokens = _finalize(db, object_store, row, device_info)
        return {"finalized": True, "account": account, "tokens": tokens}

    settings = get_settings()
    token = generate_secret_token()
    window = timedelta(minutes=settings.verification_token_expire_minutes)
    row.otp_hash = None
    row.otp_expires_at = None
    pending_store.mark_verified(row, fingerprint(token), utcnow() + window)
    db.commit()
    return {
        "finalized": False,
        "verificationToken": token,
        "email": row.email,
        "phone": row.phone,
        "expiresInSeconds": int(window.total_seconds()),
    }


def complete_registration(
    db: Session,
    object_store: LocalObjectStore,
    verification_token: str,
    email: str | None = None,
    phone: str | None = None,
    full_name: str | None = None,
    password: str | None = None,
    terms_accepted: bool | None = None,
    device_info: dict | None = None,
) -> tuple[Account, dict]:
    """Finish a verified registration whose row was missing name, password or terms."""
    if not verification_token:
        raise InvalidToken("Invalid or expired verification token.")
    row = pending_store.find_by_verification_token(db, fingerprint(verification_token.strip()))
    if row is None:
        raise InvalidToken("Invalid or expired verification token.")
    pending_store.check_contacts(row, email, phone)

    if full_name:
        row.full_name = full_name.strip()
    if password:
        check_account_password(password)
        row.password_hash = hash_password(password)
    if terms_accepted is not None:
        row.terms_accepted = terms_accepted
    if not _is_complete(row):
        db.rollback()
        raise IncompletePayload()
    return _finalize(db, object_store, row, device_info)


def _finalize(
    db: Session, object_store: LocalObjectStore, row: PendingRegistration, device_info: dict | None
) -> tuple[Account, dict]:
    if contact_taken(db, row.email, row.phone):
        _destroy(db, object_store, row)
        raise AlreadyRegistered()

    flow = AccountRole(row.flow)
    pending_id = row.id
    handles = list(row.file_handles)
    account = Account(
        full_name=row.full_name,
        email=row.email,
        phone=row.phone,
        password_hash=row.password_hash,
        role=flow,
        auth_provider=AuthProvider.local,
        terms_accepted=True,
        active=True,
    )
    try:
        db.add(account)
        db.flush()
        if flow == AccountRole.provider:
            db.add(ProviderProfile(
                account_id=account.id,
                id_card_front_ref=row.id_card_front_ref,
                id_card_back_ref=row.id_card_back_ref,
                occupation=row.occupation,
                reference_id=row.reference_id,
                verification_status=VerificationStatus.pending,
            ))
        db.delete(row)
        tokens = issue_session(db, account, PRINCIPAL_ACCOUNT, device_info)
        db.commit()
    except IntegrityError as e:
        # Lost the contact to a parallel finalization
        db.rollback()
        deleted = pending_store.clear_by_id(db, pending_id)
        db.commit()
        if deleted:
            object_store.release(handles)
        raise AlreadyRegistered() from e

    db.refresh(account)
    logger.info("Registration finalized: role=%s account=%s", flow.value, account.id)
    return account, tokens
