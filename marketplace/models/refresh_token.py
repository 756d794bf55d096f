"""Refresh-token records. Only the SHA-256 fingerprint of the raw token is stored."""
import enum

from sqlalchemy import Column, Integer, String, DateTime, Boolean, Enum as SQLEnum, Index
from sqlalchemy.sql import func

from marketplace.database import Base
from marketplace.services.security import as_utc, utcnow


class OwnerKind(str, enum.Enum):
    account = "account"
    administrator = "administrator"


class RefreshToken(Base):
    __tablename__ = "refresh_tokens"
    __table_args__ = (
        Index("ix_refresh_tokens_owner", "owner_kind", "owner_id"),
    )

    id = Column(Integer, primary_key=True, index=True)
    owner_kind = Column(SQLEnum(OwnerKind), nullable=False)
    owner_id = Column(String(32), nullable=False)
    token_fingerprint = Column(String(64), unique=True, nullable=False, index=True)
    # Swept by the cleanup job once past
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)
    revoked = Column(Boolean, nullable=False, default=False, index=True)

    user_agent = Column(String(500), nullable=True)
    ip_address = Column(String(64), nullable=True)
    last_used_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def is_valid(self, now=None) -> bool:
        now = now or utcnow()
        return not self.revoked and now < as_utc(self.expires_at)
