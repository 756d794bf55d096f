"""
All SQLAlchemy models. Schema is the source of truth for new DBs.
Base.metadata.create_all() creates every table and unique index.
"""
from marketplace.models.account import Account, AccountRole, AuthProvider
from marketplace.models.provider import ProviderProfile, VerificationStatus
from marketplace.models.administrator import Administrator, AdminRole, Permission
from marketplace.models.refresh_token import RefreshToken, OwnerKind
from marketplace.models.pending_registration import PendingRegistration
from marketplace.models.audit_log import AuditLog

__all__ = [
    "Account",
    "AccountRole",
    "AuthProvider",
    "ProviderProfile",
    "VerificationStatus",
    "Administrator",
    "AdminRole",
    "Permission",
    "RefreshToken",
    "OwnerKind",
    "PendingRegistration",
    "AuditLog",
]
