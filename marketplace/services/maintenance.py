"""Periodic cleanup of expired refresh tokens and abandoned pending registrations."""
import logging

from sqlalchemy.orm import Session

from marketplace.database import SessionLocal
from marketplace.models.pending_registration import PendingRegistration
from marketplace.services import pending_registrations as pending_store
from marketplace.services import refresh_tokens
from marketplace.services.object_store import LocalObjectStore, get_object_store

logger = logging.getLogger(__name__)


def cleanup(db: Session, object_store: LocalObjectStore) -> dict:
    """Delete expired/revoked refresh tokens and expired pending rows, releasing their uploads."""
    tokens_deleted = refresh_tokens.cleanup_expired(db)
    expired = pending_store.find_expired(db)
    handles = [h for row in expired for h in row.file_handles]
    ids = [row.id for row in expired]
    if ids:
        db.query(PendingRegistration).filter(PendingRegistration.id.in_(ids)).delete(synchronize_session=False)
    db.commit()
    object_store.release(handles)
    if ids:
        logger.info("Pending cleanup: removed %d expired pending registration(s).", len(ids))
    return {"refresh_tokens": tokens_deleted, "pending_registrations": len(ids)}


def run_cleanup_job() -> None:
    """Scheduler entry point: own session, never raises into the scheduler thread."""
    db: Session = SessionLocal()
    try:
        cleanup(db, get_object_store())
    except Exception:
        db.rollback()
        logger.exception("Cleanup job failed")
    finally:
        db.close()
