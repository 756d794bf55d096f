"""Canonical identity row for end-user principals (users, providers, business owners, event managers)."""
import enum
import uuid

from sqlalchemy import Column, String, Enum as SQLEnum, DateTime, Boolean, Float, UniqueConstraint
from sqlalchemy.orm import validates
from sqlalchemy.sql import func

from marketplace.database import Base
from marketplace.services.security import ensure_password_hash


class AccountRole(str, enum.Enum):
    user = "user"
    provider = "provider"
    business_owner = "businessOwner"
    event_manager = "eventManager"


class AuthProvider(str, enum.Enum):
    local = "local"
    google = "google"
    facebook = "facebook"
    apple = "apple"


def new_id() -> str:
    return uuid.uuid4().hex


class Account(Base):
    __tablename__ = "accounts"
    __table_args__ = (
        UniqueConstraint("auth_provider", "provider_subject", name="uq_accounts_provider_subject"),
    )

    id = Column(String(32), primary_key=True, default=new_id)
    full_name = Column(String(100), nullable=False)
    # Unique over non-null values; NULLs never collide
    email = Column(String(255), unique=True, nullable=True, index=True)
    phone = Column(String(50), unique=True, nullable=True, index=True)
    password_hash = Column(String(255), nullable=True)

    auth_provider = Column(SQLEnum(AuthProvider), nullable=False, default=AuthProvider.local)
    provider_subject = Column(String(255), nullable=True)
    role = Column(SQLEnum(AccountRole), nullable=False, default=AccountRole.user)

    active = Column(Boolean, nullable=False, default=True)
    terms_accepted = Column(Boolean, nullable=False, default=False)

    location_lon = Column(Float, nullable=True)
    location_lat = Column(Float, nullable=True)
    location_address = Column(String(500), nullable=True)
    profile_image_ref = Column(String(500), nullable=True)

    # Transient reset artifacts; only SHA-256 digests are stored
    reset_otp_hash = Column(String(64), nullable=True)
    reset_otp_expires_at = Column(DateTime(timezone=True), nullable=True)
    reset_token_hash = Column(String(64), nullable=True, index=True)
    reset_token_expires_at = Column(DateTime(timezone=True), nullable=True)

    last_login = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    @validates("email")
    def _normalize_email(self, key, value):
        value = (value or "").strip().lower()
        return value or None

    @validates("phone")
    def _normalize_phone(self, key, value):
        value = (value or "").strip()
        return value or None

    @validates("password_hash")
    def _hash_password(self, key, value):
        if value is None:
            return None
        return ensure_password_hash(value)

    @validates("role")
    def _role_is_immutable(self, key, value):
        if self.role is not None and AccountRole(value) != self.role:
            raise ValueError("Account role cannot be changed after creation.")
        return value

    @property
    def is_federated(self) -> bool:
        return self.auth_provider != AuthProvider.local

    @property
    def location(self) -> dict | None:
        if self.location_lon is None and self.location_lat is None and not self.location_address:
            return None
        return {
            "coordinates": [self.location_lon or 0.0, self.location_lat or 0.0],
            "address": self.location_address,
        }

    def clear_reset_state(self) -> None:
        self.reset_otp_hash = None
        self.reset_otp_expires_at = None
        self.reset_token_hash = None
        self.reset_token_expires_at = None
