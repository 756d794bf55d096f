"""Service-layer errors with stable kinds.

Each class carries the ``kind`` clients see in the response envelope and the HTTP status
the exception handlers in ``marketplace.main`` translate it to. Orchestrators raise these;
routers never build error responses themselves.
"""
from __future__ import annotations

from typing import Any


class ServiceError(Exception):
    status_code: int = 400
    kind: str = "InvalidInput"
    default_message: str = "Invalid request."

    def __init__(self, message: str | None = None, *, data: dict[str, Any] | None = None) -> None:
        self.message = message or self.default_message
        self.data = data
        super().__init__(self.message)


class InvalidInput(ServiceError):
    status_code = 400
    kind = "InvalidInput"
    default_message = "Invalid request."


class AlreadyRegistered(ServiceError):
    status_code = 400
    kind = "AlreadyRegistered"
    default_message = "User already exists with this email or phone number."


class ContactMismatch(ServiceError):
    status_code = 400
    kind = "ContactMismatch"
    default_message = "Contact does not match the pending registration."


class OtpInvalid(ServiceError):
    status_code = 400
    kind = "OtpInvalid"
    default_message = "Invalid OTP. Please try again."


class OtpExpired(ServiceError):
    status_code = 400
    kind = "OtpExpired"
    default_message = "OTP has expired. Please request a new one."


class IncompletePayload(ServiceError):
    status_code = 400
    kind = "IncompletePayload"
    default_message = "Full name, password and accepted terms are required to complete registration."


class NotFound(ServiceError):
    status_code = 404
    kind = "NotFound"
    default_message = "Not found."


class InvalidCredentials(ServiceError):
    status_code = 401
    kind = "InvalidCredentials"
    default_message = "Invalid credentials."


class InvalidToken(ServiceError):
    status_code = 401
    kind = "InvalidToken"
    default_message = "Invalid or expired token."


class ExpiredToken(InvalidToken):
    kind = "ExpiredToken"
    default_message = "Token has expired."


class Unauthorized(ServiceError):
    status_code = 401
    kind = "Unauthorized"
    default_message = "Not authenticated."


class Forbidden(ServiceError):
    status_code = 403
    kind = "Forbidden"
    default_message = "You do not have permission to perform this action."


class AccountDeactivated(ServiceError):
    status_code = 403
    kind = "AccountDeactivated"
    default_message = "Your account has been deactivated. Please contact support."


class VerificationRejected(ServiceError):
    status_code = 403
    kind = "VerificationRejected"
    default_message = "Your provider account has been rejected. Please contact support."


class Conflict(ServiceError):
    status_code = 409
    kind = "Conflict"
    default_message = "The request conflicts with existing data."


class DeliveryFailed(ServiceError):
    status_code = 500
    kind = "DeliveryFailed"
    default_message = "Failed to send OTP. Please try again later."


class WeakRandom(ServiceError):
    status_code = 500
    kind = "WeakRandom"
    default_message = "Secure random source unavailable."


class Internal(ServiceError):
    status_code = 500
    kind = "Internal"
    default_message = "Internal server error."
