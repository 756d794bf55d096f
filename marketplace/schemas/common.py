"""Response envelope and the camelCase base model shared by every schema."""
import re
from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

EMAIL_PATTERN = re.compile(r"^\S+@\S+\.\S+$")
PHONE_PATTERN = re.compile(r"^[\d\s\-+()]+$")
FULL_NAME_MIN_LENGTH = 2
FULL_NAME_MAX_LENGTH = 100


class CamelModel(BaseModel):
    """Snake_case in Python, camelCase on the wire. Both spellings are accepted on input."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


def validate_email(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip().lower()
    if not value:
        return None
    if not EMAIL_PATTERN.match(value):
        raise ValueError("Please enter a valid email address")
    return value


def validate_phone(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    if not value:
        return None
    if not PHONE_PATTERN.match(value) or not any(c.isdigit() for c in value):
        raise ValueError("Please enter a valid phone number")
    return value


def validate_full_name(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    if len(value) < FULL_NAME_MIN_LENGTH:
        raise ValueError(f"Full name must be at least {FULL_NAME_MIN_LENGTH} characters")
    if len(value) > FULL_NAME_MAX_LENGTH:
        raise ValueError(f"Full name cannot exceed {FULL_NAME_MAX_LENGTH} characters")
    return value


def _dump(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(by_alias=True, mode="json")
    if isinstance(value, dict):
        return {k: _dump(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_dump(v) for v in value]
    return value


def envelope(message: str, data: Any = None) -> dict:
    """``{success: true, message, data?}``"""
    body = {"success": True, "message": message}
    if data is not None:
        body["data"] = _dump(data)
    return body


def error_envelope(message: str, kind: str, data: Any = None) -> dict:
    body = {"success": False, "message": message, "error": kind}
    if data is not None:
        body["data"] = _dump(data)
    return body
