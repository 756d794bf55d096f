"""Refresh-token store: persist fingerprints, rotate, revoke, sweep.

Functions flush but never commit; the gateway that calls them owns the transaction.
"""
import logging
from datetime import datetime

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from marketplace.models.refresh_token import OwnerKind, RefreshToken
from marketplace.services.errors import Conflict, InvalidToken
from marketplace.services.security import fingerprint, utcnow

logger = logging.getLogger(__name__)


def persist(
    db: Session,
    owner_kind: OwnerKind,
    owner_id: str,
    raw_token: str,
    device_info: dict | None,
    expires_at: datetime,
) -> RefreshToken:
    device_info = device_info or {}
    record = RefreshToken(
        owner_kind=owner_kind,
        owner_id=owner_id,
        token_fingerprint=fingerprint(raw_token),
        expires_at=expires_at,
        revoked=False,
        user_agent=(device_info.get("user_agent") or None),
        ip_address=(device_info.get("ip") or None),
        last_used_at=utcnow(),
    )
    db.add(record)
    try:
        db.flush()
    except IntegrityError as e:
        db.rollback()
        raise Conflict("Refresh token collision.") from e
    return record


def lookup(db: Session, owner_kind: OwnerKind, owner_id: str, raw_token: str) -> RefreshToken | None:
    return (
        db.query(RefreshToken)
        .filter(
            RefreshToken.token_fingerprint == fingerprint(raw_token),
            RefreshToken.owner_kind == owner_kind,
            RefreshToken.owner_id == owner_id,
        )
        .first()
    )


def rotate(
    db: Session,
    record: RefreshToken,
    new_raw_token: str,
    new_expires_at: datetime,
    device_info: dict | None,
) -> RefreshToken:
    """Revoke ``record`` and persist its successor.

    The revoke is a conditional update on ``revoked = false``: of two concurrent rotations of
    the same token only one matches a row, the other fails with InvalidToken.
    """
    now = utcnow()
    updated = (
        db.query(RefreshToken)
        .filter(RefreshToken.id == record.id, RefreshToken.revoked.is_(False))
        .update({"revoked": True, "last_used_at": now}, synchronize_session="fetch")
    )
    if updated != 1:
        raise InvalidToken("Invalid or expired refresh token.")
    return persist(db, record.owner_kind, record.owner_id, new_raw_token, device_info, new_expires_at)


def revoke(db: Session, owner_kind: OwnerKind, raw_token: str) -> bool:
    """Revoke a single token. Already revoked or unknown tokens are a no-op."""
    updated = (
        db.query(RefreshToken)
        .filter(
            RefreshToken.token_fingerprint == fingerprint(raw_token),
            RefreshToken.owner_kind == owner_kind,
            RefreshToken.revoked.is_(False),
        )
        .update({"revoked": True}, synchronize_session="fetch")
    )
    return updated > 0


def revoke_all_for(db: Session, owner_kind: OwnerKind, owner_id: str) -> int:
    return (
        db.query(RefreshToken)
        .filter(
            RefreshToken.owner_kind == owner_kind,
            RefreshToken.owner_id == owner_id,
            RefreshToken.revoked.is_(False),
        )
        .update({"revoked": True}, synchronize_session="fetch")
    )


def cleanup_expired(db: Session) -> int:
    deleted = (
        db.query(RefreshToken)
        .filter(or_(RefreshToken.expires_at <= utcnow(), RefreshToken.revoked.is_(True)))
        .delete(synchronize_session=False)
    )
    if deleted:
        logger.info("Token cleanup: removed %d expired/revoked refresh token(s).", deleted)
    return deleted
