"""Token service: signed access and refresh tokens for accounts and administrators."""
import re
import secrets
from dataclasses import dataclass
from datetime import timedelta

import jwt

from marketplace.config import get_settings
from marketplace.services.errors import ExpiredToken, InvalidToken
from marketplace.services.security import utcnow

PRINCIPAL_ACCOUNT = "account"
PRINCIPAL_ADMINISTRATOR = "administrator"
PRINCIPAL_KINDS = (PRINCIPAL_ACCOUNT, PRINCIPAL_ADMINISTRATOR)

TOKEN_ACCESS = "access"
TOKEN_REFRESH = "refresh"

DEFAULT_EXPIRES_IN_SECONDS = 900
_DURATION_RE = re.compile(r"^(\d+)([smhd])$")
_UNIT_SECONDS = {"s": 1, "m": 60, "h": 3600, "d": 86400}


@dataclass(frozen=True)
class TokenClaims:
    principal_id: str
    principal_kind: str
    token_type: str
    role: str | None = None
    nonce: str | None = None


def parse_duration(value: str) -> int:
    """'15m' -> 900. Unparseable values fall back to 15 minutes."""
    match = _DURATION_RE.match((value or "").strip())
    if not match:
        return DEFAULT_EXPIRES_IN_SECONDS
    return int(match.group(1)) * _UNIT_SECONDS[match.group(2)]


def get_token_expires_in(token_type: str = TOKEN_ACCESS) -> int:
    settings = get_settings()
    if token_type == TOKEN_REFRESH:
        return parse_duration(settings.jwt_refresh_expires_in)
    return parse_duration(settings.jwt_access_expires_in)


def _encode(payload: dict, key: str) -> str:
    raw = jwt.encode(payload, key, algorithm=get_settings().jwt_algorithm)
    return raw if isinstance(raw, str) else raw.decode("utf-8")


def create_access_token(principal_id: str, principal_kind: str, role: str | None = None) -> str:
    if principal_kind not in PRINCIPAL_KINDS:
        raise ValueError(f"unknown principal kind: {principal_kind}")
    now = utcnow()
    payload = {
        "sub": str(principal_id),
        "kind": principal_kind,
        "typ": TOKEN_ACCESS,
        "iat": now,
        "exp": now + timedelta(seconds=get_token_expires_in(TOKEN_ACCESS)),
    }
    if role:
        payload["role"] = role
    return _encode(payload, get_settings().jwt_secret_key)


def create_refresh_token(principal_id: str, principal_kind: str) -> str:
    """The random nonce makes every refresh token (and its fingerprint) unique."""
    if principal_kind not in PRINCIPAL_KINDS:
        raise ValueError(f"unknown principal kind: {principal_kind}")
    now = utcnow()
    payload = {
        "sub": str(principal_id),
        "kind": principal_kind,
        "typ": TOKEN_REFRESH,
        "nonce": secrets.token_hex(32),
        "iat": now,
        "exp": now + timedelta(seconds=get_token_expires_in(TOKEN_REFRESH)),
    }
    return _encode(payload, get_settings().refresh_secret_key)


def _decode(token: str, key: str, expected_type: str) -> TokenClaims:
    if not token or not isinstance(token, str):
        raise InvalidToken()
    try:
        payload = jwt.decode(
            token.strip(),
            key,
            algorithms=[get_settings().jwt_algorithm],
            options={"require": ["exp", "sub"]},
        )
    except jwt.ExpiredSignatureError as e:
        raise ExpiredToken() from e
    except jwt.PyJWTError as e:
        raise InvalidToken() from e
    kind = payload.get("kind")
    if payload.get("typ") != expected_type or kind not in PRINCIPAL_KINDS:
        raise InvalidToken()
    return TokenClaims(
        principal_id=str(payload["sub"]),
        principal_kind=kind,
        token_type=expected_type,
        role=payload.get("role"),
        nonce=payload.get("nonce"),
    )


def decode_access_token(token: str) -> TokenClaims:
    return _decode(token, get_settings().jwt_secret_key, TOKEN_ACCESS)


def decode_refresh_token(token: str) -> TokenClaims:
    return _decode(token, get_settings().refresh_secret_key, TOKEN_REFRESH)
