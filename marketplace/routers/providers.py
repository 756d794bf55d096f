"""Provider registration (multipart, with optional ID card images), login, session and password endpoints."""
from fastapi import APIRouter, Depends, File, Form, Response, UploadFile
from sqlalchemy.orm import Session

from marketplace.database import get_db
from marketplace.dependencies import get_device_info, require_provider
from marketplace.models.account import Account, AccountRole
from marketplace.routers.auth import RESET_REQUESTED_MESSAGE, otp_sent_message, session_data
from marketplace.schemas.auth import (
    ACCOUNT_PASSWORD_MIN_LENGTH,
    AccountResponse,
    ChangePasswordRequest,
    ForgotPasswordRequest,
    LoginRequest,
    LogoutRequest,
    ProviderProfileResponse,
    ProviderVerifyOtpRequest,
    ResetPasswordRequest,
    VerifyResetOtpRequest,
)
from marketplace.schemas.common import envelope, validate_email, validate_full_name, validate_phone
from marketplace.services import auth as gateway
from marketplace.services import password_recovery, registration
from marketplace.services.errors import InvalidInput
from marketplace.services.notifications import OtpDelivery, get_otp_delivery
from marketplace.services.object_store import LocalObjectStore, get_object_store
from marketplace.services.tokens import PRINCIPAL_ACCOUNT

router = APIRouter(prefix="/providers", tags=["providers"])

ID_CARD_FOLDER = "id-cards"


def _validated(fn, value):
    try:
        return fn(value)
    except ValueError as e:
        raise InvalidInput(str(e)) from e


@router.post("/register")
def register(
    full_name: str = Form("", alias="fullName"),
    email: str = Form("", alias="email"),
    password: str = Form("", alias="password"),
    confirm_password: str = Form("", alias="confirmPassword"),
    phone_number: str | None = Form(None, alias="phoneNumber"),
    occupation: str | None = Form(None, alias="occupation"),
    reference_id: str | None = Form(None, alias="referenceId"),
    terms_accepted: bool = Form(True, alias="termsAccepted"),
    id_card_front: UploadFile | None = File(None, alias="idCardFront"),
    id_card_back: UploadFile | None = File(None, alias="idCardBack"),
    db: Session = Depends(get_db),
    delivery: OtpDelivery = Depends(get_otp_delivery),
    object_store: LocalObjectStore = Depends(get_object_store),
):
    """Start provider registration: store the ID card images, park the profile and send an OTP."""
    if not full_name.strip() or not email.strip() or not password:
        raise InvalidInput("Full name, email, and password are required.")
    if password != confirm_password:
        raise InvalidInput("Passwords do not match.")
    if len(password) < ACCOUNT_PASSWORD_MIN_LENGTH:
        raise InvalidInput(f"Password must be at least {ACCOUNT_PASSWORD_MIN_LENGTH} characters long.")
    full_name = _validated(validate_full_name, full_name)
    email = _validated(validate_email, email)
    phone = _validated(validate_phone, phone_number)

    uploads = {}
    try:
        if id_card_front is not None and id_card_front.filename:
            uploads["id_card_front_ref"] = object_store.upload(id_card_front, ID_CARD_FOLDER)
        if id_card_back is not None and id_card_back.filename:
            uploads["id_card_back_ref"] = object_store.upload(id_card_back, ID_CARD_FOLDER)
    except Exception:
        object_store.release(uploads.values())
        raise

    result = registration.request_otp(
        db,
        delivery,
        object_store,
        AccountRole.provider,
        email=email,
        phone=phone,
        full_name=full_name,
        password=password,
        terms_accepted=terms_accepted,
        occupation=occupation,
        reference_id=reference_id,
        uploads=uploads,
    )
    return envelope(
        otp_sent_message(result["channel"]) + " Please verify to complete registration.",
        {"sentTo": result["channel"], "expiresIn": result["expiresInSeconds"]},
    )


def provider_data(account: Account) -> dict:
    profile = account.provider_profile
    return {
        "user": AccountResponse.model_validate(account),
        "provider": ProviderProfileResponse.model_validate(profile) if profile is not None else None,
    }


@router.post("/register/verify-otp")
def register_verify_otp(
    data: ProviderVerifyOtpRequest,
    response: Response,
    db: Session = Depends(get_db),
    object_store: LocalObjectStore = Depends(get_object_store),
    device_info: dict = Depends(get_device_info),
):
    result = registration.verify_otp(
        db,
        object_store,
        AccountRole.provider,
        data.otp,
        email=data.email,
        phone=data.phone_number,
        device_info=device_info,
    )
    if result["finalized"]:
        response.status_code = 201
        account = result["account"]
        return envelope(
            "Provider registered successfully. Your account is pending verification.",
            {**provider_data(account), **result["tokens"]},
        )
    return envelope(
        "OTP verified successfully.",
        {
            "verificationToken": result["verificationToken"],
            "identifier": result["email"] or result["phone"],
            "expiresIn": result["expiresInSeconds"],
        },
    )


@router.post("/login")
def login(data: LoginRequest, db: Session = Depends(get_db), device_info: dict = Depends(get_device_info)):
    account, tokens = gateway.login_account(
        db, data.email, data.phone_number, data.password, AccountRole.provider, device_info
    )
    return envelope("Login successful", {**provider_data(account), **tokens})


@router.post("/logout")
def logout(
    data: LogoutRequest,
    db: Session = Depends(get_db),
    current: Account = Depends(require_provider),
):
    gateway.logout(db, data.refresh_token, PRINCIPAL_ACCOUNT)
    return envelope("Logged out successfully")


@router.post("/logout-all")
def logout_all(db: Session = Depends(get_db), current: Account = Depends(require_provider)):
    revoked = gateway.logout_all(db, current, PRINCIPAL_ACCOUNT)
    return envelope("Logged out from all devices successfully", {"revokedSessions": revoked})


@router.post("/forgot-password")
def forgot_password(
    data: ForgotPasswordRequest,
    db: Session = Depends(get_db),
    delivery: OtpDelivery = Depends(get_otp_delivery),
):
    password_recovery.request_reset(db, delivery, AccountRole.provider, email=data.email, phone=data.phone_number)
    return envelope(RESET_REQUESTED_MESSAGE)


@router.post("/verify-otp")
def verify_reset_otp(data: VerifyResetOtpRequest, db: Session = Depends(get_db)):
    token = password_recovery.verify_reset(
        db, AccountRole.provider, data.otp, email=data.email, phone=data.phone_number
    )
    return envelope("OTP verified successfully.", {"resetToken": token})


@router.post("/reset-password")
def reset_password(data: ResetPasswordRequest, db: Session = Depends(get_db)):
    password_recovery.apply_reset(db, AccountRole.provider, data.reset_token, data.new_password)
    return envelope("Password has been reset successfully. Please login with your new password.")


@router.post("/change-password")
def change_password(
    data: ChangePasswordRequest,
    db: Session = Depends(get_db),
    current: Account = Depends(require_provider),
):
    password_recovery.change_password(db, current, data.current_password, data.new_password)
    return envelope("Password changed successfully")


@router.get("/me")
def me(current: Account = Depends(require_provider)):
    return envelope("Provider profile", provider_data(current))
