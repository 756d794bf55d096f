"""Role-specific profile for service providers, created atomically with its account."""
import enum

from sqlalchemy import Column, Integer, String, ForeignKey, Enum as SQLEnum, DateTime
from sqlalchemy.orm import backref, relationship
from sqlalchemy.sql import func

from marketplace.database import Base


class VerificationStatus(str, enum.Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"
    verified = "verified"


class ProviderProfile(Base):
    __tablename__ = "provider_profiles"

    id = Column(Integer, primary_key=True, index=True)
    account_id = Column(String(32), ForeignKey("accounts.id", ondelete="CASCADE"), unique=True, nullable=False)

    # Object-store handles for the uploaded ID card images
    id_card_front_ref = Column(String(500), nullable=True)
    id_card_back_ref = Column(String(500), nullable=True)
    full_name_on_id = Column(String(100), nullable=True)

    occupation = Column(String(100), nullable=True)
    reference_id = Column(String(100), nullable=True)

    verification_status = Column(SQLEnum(VerificationStatus), nullable=False, default=VerificationStatus.pending)
    verification_notes = Column(String(1000), nullable=True)
    id_verified_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    account = relationship("Account", backref=backref("provider_profile", uselist=False))
