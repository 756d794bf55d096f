"""Administrator login, session and management endpoints, plus account moderation."""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from marketplace.database import get_db
from marketplace.dependencies import (
    get_current_administrator,
    get_device_info,
    require_permission,
    require_super_admin,
)
from marketplace.models.administrator import Administrator, Permission
from marketplace.schemas.admin import (
    AdminCreateRequest,
    AdminListResponse,
    AdminLoginRequest,
    AdminResponse,
    AdminUpdateRequest,
)
from marketplace.schemas.auth import AccountResponse, LogoutRequest, RefreshRequest, SessionResponse
from marketplace.schemas.common import envelope
from marketplace.services import administrators
from marketplace.services import auth as gateway
from marketplace.services.tokens import PRINCIPAL_ADMINISTRATOR

router = APIRouter(prefix="/admin", tags=["admin"])


@router.post("/login")
def login(data: AdminLoginRequest, db: Session = Depends(get_db), device_info: dict = Depends(get_device_info)):
    admin, tokens = gateway.login_administrator(db, data.email, data.password, device_info)
    return envelope("Login successful", {"admin": AdminResponse.model_validate(admin), **tokens})


@router.post("/refresh-token")
def refresh_token(data: RefreshRequest, db: Session = Depends(get_db), device_info: dict = Depends(get_device_info)):
    tokens = gateway.refresh_session(db, data.refresh_token, PRINCIPAL_ADMINISTRATOR, device_info)
    return envelope("Token refreshed successfully", SessionResponse.model_validate(tokens))


@router.post("/logout")
def logout(
    data: LogoutRequest,
    db: Session = Depends(get_db),
    admin: Administrator = Depends(get_current_administrator),
):
    gateway.logout(db, data.refresh_token, PRINCIPAL_ADMINISTRATOR)
    return envelope("Logged out successfully")


@router.get("/me")
def me(admin: Administrator = Depends(get_current_administrator)):
    return envelope("Admin profile", {"admin": AdminResponse.model_validate(admin)})


# Administrator management (super-admin only)

@router.get("/admins")
def list_admins(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    actor: Administrator = Depends(require_super_admin),
):
    result = administrators.list_admins(db, page=page, limit=limit)
    return envelope("Admins", AdminListResponse.model_validate(result))


@router.post("/admins", status_code=201)
def create_admin(
    data: AdminCreateRequest,
    db: Session = Depends(get_db),
    actor: Administrator = Depends(require_super_admin),
):
    admin = administrators.create_admin(db, actor, data.full_name, data.email, data.password, data.role)
    return envelope("Admin created successfully", {"admin": AdminResponse.model_validate(admin)})


@router.get("/admins/{admin_id}")
def get_admin(admin_id: str, db: Session = Depends(get_db), actor: Administrator = Depends(require_super_admin)):
    return envelope("Admin", {"admin": AdminResponse.model_validate(administrators.get_admin(db, admin_id))})


@router.put("/admins/{admin_id}")
def update_admin(
    admin_id: str,
    data: AdminUpdateRequest,
    db: Session = Depends(get_db),
    actor: Administrator = Depends(require_super_admin),
):
    admin = administrators.update_admin(
        db,
        actor,
        admin_id,
        full_name=data.full_name,
        email=data.email,
        password=data.password,
        role=data.role,
        active=data.is_active,
    )
    return envelope("Admin updated successfully", {"admin": AdminResponse.model_validate(admin)})


@router.put("/admins/{admin_id}/toggle-status")
def toggle_admin_status(
    admin_id: str,
    db: Session = Depends(get_db),
    actor: Administrator = Depends(require_super_admin),
):
    admin = administrators.toggle_admin_status(db, actor, admin_id)
    return envelope(
        f"Admin {'activated' if admin.active else 'deactivated'} successfully",
        {"admin": AdminResponse.model_validate(admin)},
    )


@router.delete("/admins/{admin_id}")
def delete_admin(admin_id: str, db: Session = Depends(get_db), actor: Administrator = Depends(require_super_admin)):
    administrators.delete_admin(db, actor, admin_id)
    return envelope("Admin deleted successfully")


# Account moderation

@router.get("/users/{account_id}")
def get_user(
    account_id: str,
    db: Session = Depends(get_db),
    actor: Administrator = Depends(require_permission(Permission.can_manage_users.value)),
):
    return envelope("User", {"user": AccountResponse.model_validate(administrators.get_user(db, account_id))})


@router.put("/users/{account_id}/toggle-status")
def toggle_user_status(
    account_id: str,
    db: Session = Depends(get_db),
    actor: Administrator = Depends(require_permission(Permission.can_manage_users.value)),
):
    account = administrators.toggle_user_status(db, actor, account_id)
    return envelope(
        f"User {'activated' if account.active else 'deactivated'} successfully",
        {"user": AccountResponse.model_validate(account)},
    )
