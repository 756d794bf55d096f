"""Account-side request and response schemas (end-users and providers)."""
from datetime import datetime

from pydantic import Field, field_validator, model_validator

from marketplace.models.account import AccountRole, AuthProvider
from marketplace.models.provider import VerificationStatus
from marketplace.schemas.common import CamelModel, validate_email, validate_full_name, validate_phone

ACCOUNT_PASSWORD_MIN_LENGTH = 6


class ContactFields(CamelModel):
    email: str | None = None
    phone_number: str | None = None

    @field_validator("email")
    @classmethod
    def email_shape(cls, v: str | None) -> str | None:
        return validate_email(v)

    @field_validator("phone_number")
    @classmethod
    def phone_shape(cls, v: str | None) -> str | None:
        return validate_phone(v)


class ContactModel(ContactFields):
    """Email and/or phone number; at least one is required."""

    @model_validator(mode="after")
    def contact_present(self):
        if not self.email and not self.phone_number:
            raise ValueError("Email or phone number is required")
        return self


class ProfileFields(CamelModel):
    full_name: str | None = None
    password: str | None = Field(default=None, min_length=ACCOUNT_PASSWORD_MIN_LENGTH)
    terms_accepted: bool | None = None

    @field_validator("full_name")
    @classmethod
    def full_name_length(cls, v: str | None) -> str | None:
        return validate_full_name(v)


class RegisterOtpRequest(ContactModel, ProfileFields):
    pass


class RegisterVerifyOtpRequest(ContactModel, ProfileFields):
    otp: str


class CompleteRegistrationRequest(ContactFields, ProfileFields):
    verification_token: str


class ProviderVerifyOtpRequest(ContactModel):
    otp: str


class LoginRequest(ContactModel):
    password: str


class RefreshRequest(CamelModel):
    refresh_token: str


class LogoutRequest(CamelModel):
    refresh_token: str | None = None


class ForgotPasswordRequest(ContactModel):
    pass


class VerifyResetOtpRequest(ContactModel):
    otp: str


class ResetPasswordRequest(CamelModel):
    reset_token: str
    new_password: str = Field(min_length=ACCOUNT_PASSWORD_MIN_LENGTH)


class ChangePasswordRequest(CamelModel):
    current_password: str
    new_password: str = Field(min_length=ACCOUNT_PASSWORD_MIN_LENGTH)


class LocationResponse(CamelModel):
    coordinates: list[float]
    address: str | None = None


class AccountResponse(CamelModel):
    id: str
    full_name: str
    email: str | None = None
    phone_number: str | None = Field(default=None, validation_alias="phone")
    role: AccountRole
    auth_provider: AuthProvider
    is_active: bool = Field(validation_alias="active")
    terms_accepted: bool
    location: LocationResponse | None = None
    profile_image: str | None = Field(default=None, validation_alias="profile_image_ref")
    last_login: datetime | None = None
    created_at: datetime | None = None


class ProviderProfileResponse(CamelModel):
    id: int
    id_card_front: str | None = Field(default=None, validation_alias="id_card_front_ref")
    id_card_back: str | None = Field(default=None, validation_alias="id_card_back_ref")
    occupation: str | None = None
    reference_id: str | None = None
    verification_status: VerificationStatus
    verification_notes: str | None = None
    created_at: datetime | None = None


class SessionResponse(CamelModel):
    access_token: str
    refresh_token: str
    expires_in: int
    token_type: str = "Bearer"
