"""Append-only security audit trail. No updates or deletes - every record is permanent."""
from sqlalchemy import Column, Integer, String, Text, DateTime, JSON
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.sql import func
from marketplace.database import Base


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)

    # category: failed_attempt | status_change | token_reuse
    category = Column(String(32), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)

    # Optional structured data (e.g. reason, target id, old/new value)
    meta = Column(JSON().with_variant(JSONB, "postgresql"), nullable=True)

    # Who did it (if applicable). actor_kind: account | administrator
    actor_kind = Column(String(32), nullable=True)
    actor_id = Column(String(32), nullable=True, index=True)
    actor_email = Column(String(255), nullable=True)

    # Request context
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(String(500), nullable=True)

    # UTC only - server_default
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
