"""Pending signup data: the account is created only after the OTP exchange succeeds."""
from sqlalchemy import Column, Integer, String, DateTime, Boolean, Enum as SQLEnum, UniqueConstraint
from sqlalchemy.orm import validates
from sqlalchemy.sql import func

from marketplace.database import Base
from marketplace.models.account import AccountRole


class PendingRegistration(Base):
    __tablename__ = "pending_registrations"
    # One pending row per contact within a flow; re-requesting an OTP updates it in place
    __table_args__ = (
        UniqueConstraint("flow", "email", name="uq_pending_registrations_flow_email"),
        UniqueConstraint("flow", "phone", name="uq_pending_registrations_flow_phone"),
    )

    id = Column(Integer, primary_key=True, index=True)
    flow = Column(SQLEnum(AccountRole), nullable=False)
    email = Column(String(255), nullable=True, index=True)
    phone = Column(String(50), nullable=True, index=True)

    full_name = Column(String(100), nullable=True)
    password_hash = Column(String(255), nullable=True)
    terms_accepted = Column(Boolean, nullable=True)

    # Provider flow
    occupation = Column(String(100), nullable=True)
    reference_id = Column(String(100), nullable=True)
    id_card_front_ref = Column(String(500), nullable=True)
    id_card_back_ref = Column(String(500), nullable=True)

    otp_hash = Column(String(64), nullable=True)
    otp_expires_at = Column(DateTime(timezone=True), nullable=True)
    verified = Column(Boolean, nullable=False, default=False)
    verification_token_hash = Column(String(64), nullable=True, index=True)
    verification_token_expires_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    @validates("email")
    def _normalize_email(self, key, value):
        value = (value or "").strip().lower()
        return value or None

    @validates("phone")
    def _normalize_phone(self, key, value):
        value = (value or "").strip()
        return value or None

    @property
    def file_handles(self) -> list[str]:
        return [h for h in (self.id_card_front_ref, self.id_card_back_ref) if h]
