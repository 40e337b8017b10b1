"""Password hashing and opaque session tokens."""

from __future__ import annotations

import hashlib
import secrets
from datetime import datetime, timedelta

import bcrypt

from options_desk.common.timeutils import utc_now

BCRYPT_ROUNDS = 10
MIN_PASSWORD_LENGTH = 6


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=BCRYPT_ROUNDS)).decode("utf-8")


def verify_password(password: str, password_hash: str | None) -> bool:
    if not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Malformed stored hash.
        return False


def generate_session_token() -> str:
    return secrets.token_urlsafe(32)


def hash_session_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def session_expiry_from_now(ttl_hours: float) -> datetime:
    return utc_now() + timedelta(hours=ttl_hours)


def generate_invite_code() -> str:
    return secrets.token_urlsafe(9).replace("-", "").replace("_", "").upper()[:10]
