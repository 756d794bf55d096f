"""Security audit trail: admin status changes, failed logins and refresh-token reuse. Rows are never updated."""
import enum

from fastapi import Request
from sqlalchemy.orm import Session

from marketplace.models.audit_log import AuditLog

CATEGORY_STATUS_CHANGE = "status_change"
CATEGORY_FAILED_ATTEMPT = "failed_attempt"
CATEGORY_TOKEN_REUSE = "token_reuse"


def _clip(value: str | None, column: str) -> str | None:
    # Login identifiers and user agents arrive straight from the client
    if not value:
        return None
    return str(value)[: AuditLog.__table__.c[column].type.length]


def _plain_meta(meta: dict | None) -> dict | None:
    """Meta holds ids, flags and roles; enum members are stored by value."""
    if meta is None:
        return None
    return {key: value.value if isinstance(value, enum.Enum) else value for key, value in meta.items()}


def request_context(request: Request | None) -> dict[str, str | None]:
    """ip/user agent pair captured for refresh-token device info and audit rows."""
    if request is None:
        return {"ip": None, "user_agent": None}
    return {
        "ip": request.client.host if request.client else None,
        "user_agent": (request.headers.get("user-agent") or "").strip() or None,
    }


def create_log(
    db: Session,
    category: str,
    title: str,
    message: str,
    *,
    actor_kind: str | None = None,
    actor_id: str | None = None,
    actor_email: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
    meta: dict | None = None,
) -> AuditLog:
    """Add one audit row and flush; the caller commits."""
    entry = AuditLog(
        category=category,
        title=title,
        message=message,
        actor_kind=actor_kind,
        actor_id=actor_id,
        actor_email=_clip(actor_email, "actor_email"),
        ip_address=_clip(ip_address, "ip_address"),
        user_agent=_clip(user_agent, "user_agent"),
        meta=_plain_meta(meta),
    )
    db.add(entry)
    db.flush()
    return entry
