"""Authentication gateways: login, refresh, logout for accounts and administrators.

Every session is an access/refresh pair; only the refresh token's fingerprint is persisted.
Gateways commit their own transaction.
"""
import logging
from datetime import timedelta

from sqlalchemy.orm import Session

from marketplace.models.account import Account, AccountRole
from marketplace.models.administrator import Administrator
from marketplace.models.provider import VerificationStatus
from marketplace.models.refresh_token import OwnerKind
from marketplace.services import refresh_tokens
from marketplace.services.audit_log import (
    CATEGORY_FAILED_ATTEMPT,
    CATEGORY_TOKEN_REUSE,
    create_log,
)
from marketplace.services.errors import (
    AccountDeactivated,
    InvalidCredentials,
    InvalidInput,
    InvalidToken,
    Unauthorized,
    VerificationRejected,
)
from marketplace.services.security import burn_password_check, utcnow, verify_password
from marketplace.services.tokens import (
    PRINCIPAL_ACCOUNT,
    PRINCIPAL_ADMINISTRATOR,
    TOKEN_ACCESS,
    TOKEN_REFRESH,
    create_access_token,
    create_refresh_token,
    decode_refresh_token,
    get_token_expires_in,
)

logger = logging.getLogger(__name__)

TOKEN_TYPE = "Bearer"


def _role_value(principal) -> str:
    role = principal.role
    return getattr(role, "value", role)


def issue_session(db: Session, principal, principal_kind: str, device_info: dict | None = None) -> dict:
    """Mint an access/refresh pair and persist the refresh fingerprint. Caller commits."""
    access_token = create_access_token(principal.id, principal_kind, role=_role_value(principal))
    refresh_token = create_refresh_token(principal.id, principal_kind)
    expires_at = utcnow() + timedelta(seconds=get_token_expires_in(TOKEN_REFRESH))
    refresh_tokens.persist(db, OwnerKind(principal_kind), principal.id, refresh_token, device_info, expires_at)
    return {
        "accessToken": access_token,
        "refreshToken": refresh_token,
        "expiresIn": get_token_expires_in(TOKEN_ACCESS),
        "tokenType": TOKEN_TYPE,
    }


def _log_failed_login(db: Session, identifier: str, principal_kind: str, reason: str, device_info: dict | None) -> None:
    device_info = device_info or {}
    create_log(
        db,
        CATEGORY_FAILED_ATTEMPT,
        "Login failed",
        f"Failed {principal_kind} login attempt for {identifier}.",
        actor_kind=principal_kind,
        actor_email=identifier if "@" in (identifier or "") else None,
        ip_address=device_info.get("ip"),
        user_agent=device_info.get("user_agent"),
        meta={"reason": reason},
    )
    db.commit()


def find_account_by_contact(
    db: Session, email: str | None, phone: str | None, role: AccountRole | None = None
) -> Account | None:
    """Email wins when both contacts are given."""
    email = (email or "").strip().lower()
    phone = (phone or "").strip()
    query = db.query(Account)
    if role is not None:
        query = query.filter(Account.role == role)
    if email:
        return query.filter(Account.email == email).first()
    if phone:
        return query.filter(Account.phone == phone).first()
    return None


def login_account(
    db: Session,
    email: str | None,
    phone: str | None,
    password: str,
    expected_role: AccountRole,
    device_info: dict | None = None,
) -> tuple[Account, dict]:
    """Password login for an end-user principal of ``expected_role``.

    Unknown contact, wrong role, federated account and wrong password all produce the same
    InvalidCredentials, and all cost one bcrypt comparison.
    """
    if not (email or "").strip() and not (phone or "").strip():
        raise InvalidInput("Email or phone number is required.")
    identifier = (email or phone or "").strip().lower()
    account = find_account_by_contact(db, email, phone, role=expected_role)
    if account is None or account.is_federated or not account.password_hash:
        burn_password_check(password)
        _log_failed_login(db, identifier, PRINCIPAL_ACCOUNT, "unknown_account", device_info)
        raise InvalidCredentials()
    if not verify_password(password, account.password_hash):
        _log_failed_login(db, identifier, PRINCIPAL_ACCOUNT, "invalid_password", device_info)
        raise InvalidCredentials()
    if not account.active:
        raise AccountDeactivated()
    if account.role == AccountRole.provider:
        profile = account.provider_profile
        if profile is not None and profile.verification_status == VerificationStatus.rejected:
            raise VerificationRejected(data={"reason": profile.verification_notes})

    account.last_login = utcnow()
    tokens = issue_session(db, account, PRINCIPAL_ACCOUNT, device_info)
    db.commit()
    db.refresh(account)
    return account, tokens


def login_administrator(
    db: Session, email: str, password: str, device_info: dict | None = None
) -> tuple[Administrator, dict]:
    identifier = (email or "").strip().lower()
    admin = db.query(Administrator).filter(Administrator.email == identifier).first()
    if admin is None:
        burn_password_check(password)
        _log_failed_login(db, identifier, PRINCIPAL_ADMINISTRATOR, "unknown_account", device_info)
        raise InvalidCredentials()
    if not verify_password(password, admin.password_hash):
        _log_failed_login(db, identifier, PRINCIPAL_ADMINISTRATOR, "invalid_password", device_info)
        raise InvalidCredentials()
    if not admin.active:
        raise AccountDeactivated()

    admin.last_login = utcnow()
    tokens = issue_session(db, admin, PRINCIPAL_ADMINISTRATOR, device_info)
    db.commit()
    db.refresh(admin)
    return admin, tokens


def load_principal(db: Session, principal_kind: str, principal_id: str):
    model = Account if principal_kind == PRINCIPAL_ACCOUNT else Administrator
    return db.query(model).filter(model.id == principal_id).first()


def refresh_session(db: Session, raw_token: str, principal_kind: str, device_info: dict | None = None) -> dict:
    """Exchange a refresh token for a new pair. The presented token is revoked in the same transaction."""
    claims = decode_refresh_token(raw_token)
    if claims.principal_kind != principal_kind:
        raise Unauthorized("Invalid refresh token.")
    owner_kind = OwnerKind(principal_kind)
    record = refresh_tokens.lookup(db, owner_kind, claims.principal_id, raw_token)
    if record is None:
        raise Unauthorized("Invalid refresh token.")
    if record.revoked:
        device_info = device_info or {}
        logger.warning("Revoked refresh token presented: kind=%s owner=%s", principal_kind, claims.principal_id)
        create_log(
            db,
            CATEGORY_TOKEN_REUSE,
            "Refresh token reuse",
            f"A revoked refresh token was presented for {principal_kind} {claims.principal_id}.",
            actor_kind=principal_kind,
            actor_id=claims.principal_id,
            ip_address=device_info.get("ip"),
            user_agent=device_info.get("user_agent"),
            meta={"token_id": record.id},
        )
        db.commit()
        raise Unauthorized("Invalid or expired refresh token.")
    if not record.is_valid():
        raise Unauthorized("Invalid or expired refresh token.")

    principal = load_principal(db, principal_kind, claims.principal_id)
    if principal is None:
        raise Unauthorized("Principal not found.")
    if not principal.active:
        raise AccountDeactivated()

    access_token = create_access_token(principal.id, principal_kind, role=_role_value(principal))
    new_refresh = create_refresh_token(principal.id, principal_kind)
    expires_at = utcnow() + timedelta(seconds=get_token_expires_in(TOKEN_REFRESH))
    try:
        refresh_tokens.rotate(db, record, new_refresh, expires_at, device_info)
    except InvalidToken as e:
        # Lost a race with a concurrent rotation of the same token
        db.rollback()
        raise Unauthorized("Invalid or expired refresh token.") from e
    db.commit()
    return {
        "accessToken": access_token,
        "refreshToken": new_refresh,
        "expiresIn": get_token_expires_in(TOKEN_ACCESS),
        "tokenType": TOKEN_TYPE,
    }


def logout(db: Session, raw_token: str | None, principal_kind: str) -> None:
    """Revoke one refresh token. Unknown or already-revoked tokens are accepted silently."""
    if raw_token:
        refresh_tokens.revoke(db, OwnerKind(principal_kind), raw_token)
        db.commit()


def logout_all(db: Session, principal, principal_kind: str) -> int:
    revoked = refresh_tokens.revoke_all_for(db, OwnerKind(principal_kind), principal.id)
    db.commit()
    return revoked
