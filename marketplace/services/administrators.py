"""Administrator management (super-admin only) and account status moderation."""
import logging
import math

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from marketplace.models.account import Account, AccountRole
from marketplace.models.administrator import Administrator, AdminRole
from marketplace.models.refresh_token import OwnerKind
from marketplace.services import refresh_tokens
from marketplace.services.audit_log import CATEGORY_STATUS_CHANGE, create_log
from marketplace.services.errors import Conflict, Forbidden, InvalidInput, NotFound
from marketplace.services.security import hash_password
from marketplace.services.tokens import PRINCIPAL_ADMINISTRATOR

logger = logging.getLogger(__name__)

ADMIN_PASSWORD_MIN_LENGTH = 8


def check_admin_password(password: str) -> None:
    if password is None or len(password) < ADMIN_PASSWORD_MIN_LENGTH:
        raise InvalidInput(f"Password must be at least {ADMIN_PASSWORD_MIN_LENGTH} characters long.")


def parse_admin_role(role: str | None) -> AdminRole | None:
    if role is None:
        return None
    try:
        return AdminRole(role)
    except ValueError as e:
        valid = ", ".join(r.value for r in AdminRole)
        raise InvalidInput(f"Invalid role. Must be one of: {valid}") from e


def _email_in_use(db: Session, email: str, exclude_id: str | None = None) -> bool:
    query = db.query(Administrator.id).filter(Administrator.email == email)
    if exclude_id:
        query = query.filter(Administrator.id != exclude_id)
    return query.first() is not None


def _audit(db: Session, actor: Administrator, title: str, message: str, meta: dict) -> None:
    create_log(
        db,
        CATEGORY_STATUS_CHANGE,
        title,
        message,
        actor_kind=PRINCIPAL_ADMINISTRATOR,
        actor_id=actor.id,
        actor_email=actor.email,
        meta=meta,
    )


def _commit_unique(db: Session) -> None:
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise Conflict("Admin with this email already exists.") from e


def get_admin(db: Session, admin_id: str) -> Administrator:
    admin = db.query(Administrator).filter(Administrator.id == admin_id).first()
    if admin is None:
        raise NotFound("Admin not found.")
    return admin


def list_admins(db: Session, page: int = 1, limit: int = 20) -> dict:
    """Newest first."""
    page = max(page, 1)
    limit = min(max(limit, 1), 100)
    total = db.query(Administrator).count()
    admins = (
        db.query(Administrator)
        .order_by(Administrator.created_at.desc(), Administrator.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return {
        "admins": admins,
        "totalPages": math.ceil(total / limit) if total else 0,
        "currentPage": page,
        "total": total,
    }


def create_admin(
    db: Session,
    actor: Administrator,
    full_name: str,
    email: str,
    password: str,
    role: str | None = None,
) -> Administrator:
    if not (full_name or "").strip() or not (email or "").strip() or not password:
        raise InvalidInput("Full name, email, and password are required.")
    check_admin_password(password)
    admin_role = parse_admin_role(role) or AdminRole.admin
    email = email.strip().lower()
    if _email_in_use(db, email):
        raise Conflict("Admin with this email already exists.")

    admin = Administrator(
        full_name=full_name.strip(),
        email=email,
        password_hash=hash_password(password),
        role=admin_role,
        active=True,
        created_by=actor.id,
    )
    db.add(admin)
    _audit(db, actor, "Admin created", f"Admin {email} created with role {admin_role.value}.", {"role": admin_role})
    _commit_unique(db)
    db.refresh(admin)
    logger.info("Admin created: id=%s role=%s by=%s", admin.id, admin_role.value, actor.id)
    return admin


def update_admin(
    db: Session,
    actor: Administrator,
    admin_id: str,
    full_name: str | None = None,
    email: str | None = None,
    password: str | None = None,
    role: str | None = None,
    active: bool | None = None,
) -> Administrator:
    admin = get_admin(db, admin_id)
    admin_role = parse_admin_role(role)
    is_self = admin.id == actor.id
    if is_self and admin_role is not None and admin_role != AdminRole.super_admin and admin.is_super_admin:
        raise Forbidden("You cannot change your own role.")
    if is_self and active is False:
        raise Forbidden("You cannot deactivate your own account.")
    if email:
        email = email.strip().lower()
        if email != admin.email and _email_in_use(db, email, exclude_id=admin.id):
            raise Conflict("Email already in use by another admin.")
    if password:
        check_admin_password(password)

    changes = {}
    if full_name:
        admin.full_name = full_name.strip()
    if email:
        admin.email = email
    if admin_role is not None and admin_role != admin.role:
        changes["role"] = admin_role
        admin.role = admin_role
    if active is not None and active != admin.active:
        changes["active"] = active
        admin.active = active
        if not active:
            refresh_tokens.revoke_all_for(db, OwnerKind.administrator, admin.id)
    if password:
        admin.password_hash = hash_password(password)
    if changes:
        _audit(db, actor, "Admin updated", f"Admin {admin.email} updated.", changes)
    _commit_unique(db)
    db.refresh(admin)
    return admin


def delete_admin(db: Session, actor: Administrator, admin_id: str) -> None:
    if admin_id == actor.id:
        raise Forbidden("You cannot delete your own account.")
    admin = get_admin(db, admin_id)
    refresh_tokens.revoke_all_for(db, OwnerKind.administrator, admin.id)
    _audit(db, actor, "Admin deleted", f"Admin {admin.email} deleted.", {"admin_id": admin.id})
    db.delete(admin)
    db.commit()


def toggle_admin_status(db: Session, actor: Administrator, admin_id: str) -> Administrator:
    if admin_id == actor.id:
        raise Forbidden("You cannot deactivate your own account.")
    admin = get_admin(db, admin_id)
    admin.active = not admin.active
    if not admin.active:
        refresh_tokens.revoke_all_for(db, OwnerKind.administrator, admin.id)
    _audit(
        db,
        actor,
        "Admin status changed",
        f"Admin {admin.email} {'activated' if admin.active else 'deactivated'}.",
        {"admin_id": admin.id, "active": admin.active},
    )
    db.commit()
    db.refresh(admin)
    return admin


def get_user(db: Session, account_id: str) -> Account:
    account = db.query(Account).filter(Account.id == account_id, Account.role == AccountRole.user).first()
    if account is None:
        raise NotFound("User not found.")
    return account


def toggle_user_status(db: Session, actor: Administrator, account_id: str) -> Account:
    """Flip ``active``. Deactivation also revokes the account's refresh tokens."""
    account = get_user(db, account_id)
    account.active = not account.active
    if not account.active:
        refresh_tokens.revoke_all_for(db, OwnerKind.account, account.id)
    _audit(
        db,
        actor,
        "User status changed",
        f"User {account.email or account.phone} {'activated' if account.active else 'deactivated'}.",
        {"account_id": account.id, "active": account.active},
    )
    db.commit()
    db.refresh(account)
    return account
