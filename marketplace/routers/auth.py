"""End-user registration, login, session and password endpoints."""
from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from marketplace.database import get_db
from marketplace.dependencies import get_current_account, get_device_info, require_user
from marketplace.models.account import Account, AccountRole
from marketplace.schemas.auth import (
    AccountResponse,
    ChangePasswordRequest,
    CompleteRegistrationRequest,
    ForgotPasswordRequest,
    LoginRequest,
    LogoutRequest,
    RefreshRequest,
    RegisterOtpRequest,
    RegisterVerifyOtpRequest,
    ResetPasswordRequest,
    SessionResponse,
    VerifyResetOtpRequest,
)
from marketplace.schemas.common import envelope
from marketplace.services import auth as gateway
from marketplace.services import password_recovery, registration
from marketplace.services.notifications import CHANNEL_EMAIL, OtpDelivery, get_otp_delivery
from marketplace.services.object_store import LocalObjectStore, get_object_store
from marketplace.services.tokens import PRINCIPAL_ACCOUNT

router = APIRouter(prefix="/auth", tags=["auth"])

RESET_REQUESTED_MESSAGE = "If an account exists with this email or phone number, an OTP has been sent."


def session_data(account: Account, tokens: dict) -> dict:
    return {"user": AccountResponse.model_validate(account), **tokens}


def otp_sent_message(channel: str) -> str:
    return f"OTP has been sent to your {'email' if channel == CHANNEL_EMAIL else 'phone number'}."


@router.post("/register/request-otp")
def register_request_otp(
    data: RegisterOtpRequest,
    db: Session = Depends(get_db),
    delivery: OtpDelivery = Depends(get_otp_delivery),
    object_store: LocalObjectStore = Depends(get_object_store),
):
    result = registration.request_otp(
        db,
        delivery,
        object_store,
        AccountRole.user,
        email=data.email,
        phone=data.phone_number,
        full_name=data.full_name,
        password=data.password,
        terms_accepted=data.terms_accepted,
    )
    return envelope(
        otp_sent_message(result["channel"]),
        {"sentTo": result["channel"], "expiresIn": result["expiresInSeconds"]},
    )


@router.post("/register/verify-otp")
def register_verify_otp(
    data: RegisterVerifyOtpRequest,
    response: Response,
    db: Session = Depends(get_db),
    object_store: LocalObjectStore = Depends(get_object_store),
    device_info: dict = Depends(get_device_info),
):
    """Finalizes (201) when the pending row is complete; otherwise returns a verification token."""
    result = registration.verify_otp(
        db,
        object_store,
        AccountRole.user,
        data.otp,
        email=data.email,
        phone=data.phone_number,
        full_name=data.full_name,
        password=data.password,
        terms_accepted=data.terms_accepted,
        device_info=device_info,
    )
    if result["finalized"]:
        response.status_code = 201
        return envelope("User registered successfully", session_data(result["account"], result["tokens"]))
    return envelope(
        "OTP verified successfully.",
        {
            "verificationToken": result["verificationToken"],
            "identifier": result["email"] or result["phone"],
            "expiresIn": result["expiresInSeconds"],
        },
    )


@router.post("/register/complete", status_code=201)
def register_complete(
    data: CompleteRegistrationRequest,
    db: Session = Depends(get_db),
    object_store: LocalObjectStore = Depends(get_object_store),
    device_info: dict = Depends(get_device_info),
):
    account, tokens = registration.complete_registration(
        db,
        object_store,
        data.verification_token,
        email=data.email,
        phone=data.phone_number,
        full_name=data.full_name,
        password=data.password,
        terms_accepted=data.terms_accepted,
        device_info=device_info,
    )
    return envelope("User registered successfully", session_data(account, tokens))


@router.post("/login")
def login(data: LoginRequest, db: Session = Depends(get_db), device_info: dict = Depends(get_device_info)):
    account, tokens = gateway.login_account(
        db, data.email, data.phone_number, data.password, AccountRole.user, device_info
    )
    return envelope("Login successful", session_data(account, tokens))


@router.post("/refresh")
def refresh(data: RefreshRequest, db: Session = Depends(get_db), device_info: dict = Depends(get_device_info)):
    tokens = gateway.refresh_session(db, data.refresh_token, PRINCIPAL_ACCOUNT, device_info)
    return envelope("Token refreshed successfully", SessionResponse.model_validate(tokens))


@router.post("/logout")
def logout(
    data: LogoutRequest,
    db: Session = Depends(get_db),
    current: Account = Depends(get_current_account),
):
    gateway.logout(db, data.refresh_token, PRINCIPAL_ACCOUNT)
    return envelope("Logged out successfully")


@router.post("/logout-all")
def logout_all(db: Session = Depends(get_db), current: Account = Depends(get_current_account)):
    revoked = gateway.logout_all(db, current, PRINCIPAL_ACCOUNT)
    return envelope("Logged out from all devices successfully", {"revokedSessions": revoked})


@router.post("/forgot-password")
def forgot_password(
    data: ForgotPasswordRequest,
    db: Session = Depends(get_db),
    delivery: OtpDelivery = Depends(get_otp_delivery),
):
    password_recovery.request_reset(db, delivery, AccountRole.user, email=data.email, phone=data.phone_number)
    return envelope(RESET_REQUESTED_MESSAGE)


@router.post("/verify-otp")
def verify_reset_otp(data: VerifyResetOtpRequest, db: Session = Depends(get_db)):
    token = password_recovery.verify_reset(db, AccountRole.user, data.otp, email=data.email, phone=data.phone_number)
    return envelope("OTP verified successfully.", {"resetToken": token})


@router.post("/reset-password")
def reset_password(data: ResetPasswordRequest, db: Session = Depends(get_db)):
    password_recovery.apply_reset(db, AccountRole.user, data.reset_token, data.new_password)
    return envelope("Password has been reset successfully. Please login with your new password.")


@router.post("/change-password")
def change_password(
    data: ChangePasswordRequest,
    db: Session = Depends(get_db),
    current: Account = Depends(require_user),
):
    password_recovery.change_password(db, current, data.current_password, data.new_password)
    return envelope("Password changed successfully")


@router.get("/me")
def me(current: Account = Depends(require_user)):
    return envelope("User profile", {"user": AccountResponse.model_validate(current)})
