"""Platform operators. Disjoint from accounts: own table, own id space, own refresh tokens."""
import enum
import uuid

from sqlalchemy import Column, String, Enum as SQLEnum, DateTime, Boolean, ForeignKey, JSON
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import validates
from sqlalchemy.sql import func

from marketplace.database import Base
from marketplace.services.security import ensure_password_hash


class AdminRole(str, enum.Enum):
    super_admin = "super-admin"
    admin = "admin"


class Permission(str, enum.Enum):
    can_manage_users = "canManageUsers"
    can_manage_providers = "canManageProviders"
    can_manage_settings = "canManageSettings"
    can_view_reports = "canViewReports"


ROLE_PERMISSIONS = {
    AdminRole.super_admin: [p.value for p in Permission],
    AdminRole.admin: [
        Permission.can_manage_users.value,
        Permission.can_manage_providers.value,
        Permission.can_view_reports.value,
    ],
}


class Administrator(Base):
    __tablename__ = "administrators"

    id = Column(String(32), primary_key=True, default=lambda: uuid.uuid4().hex)
    full_name = Column(String(100), nullable=False)
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    role = Column(SQLEnum(AdminRole), nullable=False, default=AdminRole.admin)
    permissions = Column(JSON().with_variant(JSONB, "postgresql"), nullable=False, default=list)
    active = Column(Boolean, nullable=False, default=True)
    last_login = Column(DateTime(timezone=True), nullable=True)
    created_by = Column(String(32), ForeignKey("administrators.id", ondelete="SET NULL"), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    @validates("email")
    def _normalize_email(self, key, value):
        return (value or "").strip().lower()

    @validates("password_hash")
    def _hash_password(self, key, value):
        return ensure_password_hash(value)

    @validates("role")
    def _derive_permissions(self, key, value):
        # Assign a new list so the JSON column change is persisted
        self.permissions = list(ROLE_PERMISSIONS[AdminRole(value)])
        return value

    @property
    def is_super_admin(self) -> bool:
        return self.role == AdminRole.super_admin

    def has_permission(self, name: str) -> bool:
        return self.is_super_admin or name in (self.permissions or [])
