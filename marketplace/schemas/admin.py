"""Administrator request and response schemas."""
from datetime import datetime

from pydantic import EmailStr, Field, field_validator

from marketplace.models.administrator import AdminRole
from marketplace.schemas.common import CamelModel, validate_full_name

ADMIN_PASSWORD_MIN_LENGTH = 8


class AdminLoginRequest(CamelModel):
    email: EmailStr
    password: str


class AdminCreateRequest(CamelModel):
    full_name: str
    email: EmailStr
    password: str = Field(min_length=ADMIN_PASSWORD_MIN_LENGTH)
    # Checked against AdminRole by the service so the error names the valid roles
    role: str | None = None

    @field_validator("full_name")
    @classmethod
    def full_name_length(cls, v: str) -> str:
        return validate_full_name(v)


class AdminUpdateRequest(CamelModel):
    full_name: str | None = None
    email: EmailStr | None = None
    password: str | None = Field(default=None, min_length=ADMIN_PASSWORD_MIN_LENGTH)
    role: str | None = None
    is_active: bool | None = None

    @field_validator("full_name")
    @classmethod
    def full_name_length(cls, v: str | None) -> str | None:
        return validate_full_name(v)


class AdminResponse(CamelModel):
    id: str
    full_name: str
    email: str
    role: AdminRole
    permissions: list[str] = []
    is_active: bool = Field(validation_alias="active")
    last_login: datetime | None = None
    created_by: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class AdminListResponse(CamelModel):
    admins: list[AdminResponse]
    total_pages: int
    current_page: int
    total: int
