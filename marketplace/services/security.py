"""Secret primitives: password hashing, token fingerprints, OTPs and one-shot tokens."""
import hashlib
import hmac
import re
import secrets
from datetime import datetime, timezone

import bcrypt

from marketplace.config import get_settings
from marketplace.services.errors import WeakRandom

BCRYPT_PATTERN = re.compile(r"^\$2[aby]\$\d{2}\$")
BCRYPT_MIN_LENGTH = 55
OTP_PATTERN = re.compile(r"[0-9]{6}")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """SQLite hands back naive datetimes; everything we store is UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _pwd_bytes(password: str, max_len: int = 72) -> bytes:
    return password.encode("utf-8")[:max_len]


def is_password_hash(value: str | None) -> bool:
    return bool(value) and BCRYPT_PATTERN.match(value) is not None and len(value) >= BCRYPT_MIN_LENGTH


def hash_password(password: str) -> str:
    """Hash a user-supplied password with bcrypt at the configured cost."""
    rounds = get_settings().bcrypt_rounds
    return bcrypt.hashpw(_pwd_bytes(password), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def ensure_password_hash(value: str) -> str:
    """Column-level guard: a stored hash copied between rows passes through, anything else is hashed.

    Only for values that already came out of the database. Raw input goes through ``hash_password``
    first, since a password may itself look like a bcrypt hash.
    """
    if is_password_hash(value):
        return value
    return hash_password(value)


def verify_password(plain: str, hashed: str | None) -> bool:
    if not plain or not hashed:
        return False
    try:
        return bcrypt.checkpw(_pwd_bytes(plain), hashed.encode("utf-8"))
    except ValueError:
        # Malformed stored hash
        return False


_DUMMY_HASH: str | None = None


def burn_password_check(plain: str) -> None:
    """Spend one bcrypt comparison so unknown-principal logins cost the same as wrong passwords."""
    global _DUMMY_HASH
    if _DUMMY_HASH is None:
        _DUMMY_HASH = hash_password(secrets.token_hex(8))
    verify_password(plain or "x", _DUMMY_HASH)


def fingerprint(raw: str) -> str:
    """SHA-256 hex digest of the UTF-8 bytes. Used for refresh, reset and verification tokens and OTPs."""
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


def constant_time_equals(a: str | None, b: str | None) -> bool:
    if a is None or b is None:
        return False
    return hmac.compare_digest(a.encode("utf-8"), b.encode("utf-8"))


def generate_otp() -> str:
    """Six decimal digits, uniform over [100000, 999999]."""
    try:
        return str(100000 + secrets.randbelow(900000))
    except NotImplementedError as e:
        raise WeakRandom() from e


def generate_secret_token() -> str:
    """32 random bytes, hex-encoded."""
    try:
        return secrets.token_hex(32)
    except NotImplementedError as e:
        raise WeakRandom() from e


def is_valid_otp_shape(otp: str | None) -> bool:
    return isinstance(otp, str) and OTP_PATTERN.fullmatch(otp) is not None
