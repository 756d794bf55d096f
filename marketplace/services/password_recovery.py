"""Password reset (OTP, then a one-shot reset token) and authenticated password change."""
import logging
from datetime import timedelta

from sqlalchemy.orm import Session

from marketplace.config import get_settings
from marketplace.models.account import Account, AccountRole
from marketplace.models.refresh_token import OwnerKind
from marketplace.services import refresh_tokens
from marketplace.services.auth import find_account_by_contact
from marketplace.services.errors import (
    AccountDeactivated,
    DeliveryFailed,
    InvalidInput,
    InvalidToken,
    OtpExpired,
    OtpInvalid,
)
from marketplace.services.notifications import CHANNEL_EMAIL, CHANNEL_SMS, PURPOSE_PASSWORD_RESET, OtpDelivery
from marketplace.services.registration import check_account_password
from marketplace.services.security import (
    as_utc,
    constant_time_equals,
    fingerprint,
    generate_otp,
    generate_secret_token,
    hash_password,
    is_valid_otp_shape,
    utcnow,
    verify_password,
)

logger = logging.getLogger(__name__)


def _clear_reset_otp(account: Account) -> None:
    account.reset_otp_hash = None
    account.reset_otp_expires_at = None


def _after_password_change(db: Session, account: Account) -> None:
    if get_settings().revoke_sessions_on_password_change:
        revoked = refresh_tokens.revoke_all_for(db, OwnerKind.account, account.id)
        logger.info("Password changed: revoked %d session(s) for account %s", revoked, account.id)


def request_reset(
    db: Session,
    delivery: OtpDelivery,
    role: AccountRole,
    email: str | None = None,
    phone: str | None = None,
) -> None:
    """Send a reset OTP. Unknown contacts return silently so the response never reveals existence."""
    if not (email or "").strip() and not (phone or "").strip():
        raise InvalidInput("Email or phone number is required.")
    account = find_account_by_contact(db, email, phone, role=role)
    if account is None or account.is_federated:
        return
    if not account.active:
        raise AccountDeactivated()

    otp = generate_otp()
    account.reset_otp_hash = fingerprint(otp)
    account.reset_otp_expires_at = utcnow() + timedelta(minutes=get_settings().otp_expire_minutes)
    db.commit()

    if (email or "").strip():
        channel, recipient = CHANNEL_EMAIL, account.email
    else:
        channel, recipient = CHANNEL_SMS, account.phone
    try:
        delivery.deliver(channel, recipient, otp, account.full_name, PURPOSE_PASSWORD_RESET)
    except Exception as e:
        _clear_reset_otp(account)
        db.commit()
        if isinstance(e, DeliveryFailed):
            raise
        logger.exception("Reset OTP delivery raised unexpectedly: channel=%s", channel)
        raise DeliveryFailed() from e


def verify_reset(
    db: Session,
    role: AccountRole,
    otp: str,
    email: str | None = None,
    phone: str | None = None,
) -> str:
    """Exchange a valid reset OTP for a raw reset token."""
    if not is_valid_otp_shape(otp):
        raise InvalidInput("OTP must be exactly 6 digits.")
    account = find_account_by_contact(db, email, phone, role=role)
    if account is None or not account.reset_otp_hash:
        raise OtpInvalid()
    if account.reset_otp_expires_at is None or as_utc(account.reset_otp_expires_at) <= utcnow():
        _clear_reset_otp(account)
        db.commit()
        raise OtpExpired()
    if not constant_time_equals(fingerprint(otp), account.reset_otp_hash):
        raise OtpInvalid()

    token = generate_secret_token()
    account.reset_token_hash = fingerprint(token)
    account.reset_token_expires_at = utcnow() + timedelta(minutes=get_settings().reset_token_expire_minutes)
    _clear_reset_otp(account)
    db.commit()
    return token


def apply_reset(db: Session, role: AccountRole, reset_token: str, new_password: str) -> Account:
    check_account_password(new_password)
    if not reset_token:
        raise InvalidToken("Invalid or expired reset token.")
    account = (
        db.query(Account)
        .filter(
            Account.reset_token_hash == fingerprint(reset_token.strip()),
            Account.reset_token_expires_at > utcnow(),
            Account.role == role,
        )
        .first()
    )
    if account is None:
        raise InvalidToken("Invalid or expired reset token.")
    account.password_hash = hash_password(new_password)
    account.clear_reset_state()
    _after_password_change(db, account)
    db.commit()
    return account


def change_password(db: Session, account: Account, current_password: str, new_password: str) -> None:
    if account.is_federated or not account.password_hash:
        raise InvalidInput("Password change is not available for social login accounts.")
    check_account_password(new_password)
    if not verify_password(current_password, account.password_hash):
        raise InvalidInput("Current password is incorrect.")
    if verify_password(new_password, account.password_hash):
        raise InvalidInput("New password must be different from the current password.")
    account.password_hash = hash_password(new_password)
    _after_password_change(db, account)
    db.commit()
