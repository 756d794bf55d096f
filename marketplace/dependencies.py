"""Shared dependencies: DB session, current principal, capability gates."""
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from marketplace.database import get_db
from marketplace.models.account import Account, AccountRole
from marketplace.models.administrator import Administrator
from marketplace.services.audit_log import request_context
from marketplace.services.errors import Forbidden, InvalidToken, Unauthorized
from marketplace.services.tokens import PRINCIPAL_ACCOUNT, PRINCIPAL_ADMINISTRATOR, TokenClaims, decode_access_token

security = HTTPBearer(auto_error=False)


def get_device_info(request: Request) -> dict:
    return request_context(request)


def _access_claims(credentials: HTTPAuthorizationCredentials | None, principal_kind: str) -> TokenClaims:
    if not credentials or not (credentials.credentials or "").strip():
        raise Unauthorized("Not authenticated.")
    try:
        claims = decode_access_token(credentials.credentials)
    except InvalidToken as e:
        raise Unauthorized(e.message) from e
    # Administrator tokens never authenticate account routes and vice versa
    if claims.principal_kind != principal_kind:
        raise Unauthorized("Invalid token for this resource.")
    return claims


def get_current_account(
    db: Session = Depends(get_db),
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> Account:
    claims = _access_claims(credentials, PRINCIPAL_ACCOUNT)
    account = db.query(Account).filter(Account.id == claims.principal_id).first()
    if not account:
        raise Unauthorized("User not found.")
    if not account.active:
        raise Forbidden("Your account has been deactivated.")
    return account


def require_user(current: Account = Depends(get_current_account)) -> Account:
    if current.role != AccountRole.user:
        raise Forbidden("User role required.")
    return current


def require_provider(current: Account = Depends(get_current_account)) -> Account:
    if current.role != AccountRole.provider:
        raise Forbidden("Provider role required.")
    return current


def get_current_administrator(
    db: Session = Depends(get_db),
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> Administrator:
    claims = _access_claims(credentials, PRINCIPAL_ADMINISTRATOR)
    admin = db.query(Administrator).filter(Administrator.id == claims.principal_id).first()
    if not admin:
        raise Unauthorized("Admin not found.")
    if not admin.active:
        raise Forbidden("Your admin account has been deactivated.")
    return admin


def require_permission(name: str):
    """Dependency factory: the administrator must hold ``name`` or be a super-admin."""

    def _check(admin: Administrator = Depends(get_current_administrator)) -> Administrator:
        if not admin.has_permission(name):
            raise Forbidden(f"Permission '{name}' required.")
        return admin

    return _check


def require_super_admin(admin: Administrator = Depends(get_current_administrator)) -> Administrator:
    if not admin.is_super_admin:
        raise Forbidden("Super-admin access required.")
    return admin
