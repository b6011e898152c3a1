"""One-time verification tokens embedded in the user record.

Each purpose owns a single slot on the user, so issuing always overwrites:
at most one token per purpose is outstanding. Only a SHA-256 digest of the
raw token is stored; comparison uses ``hmac.compare_digest``.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

from .errors import VerificationTokenExpiredError, VerificationTokenInvalidError
from .models import User, VerificationToken

TOKEN_BYTES = 32


class TokenPurpose(str, Enum):
    NEW_USER = "new_user_token"
    UPDATE_KEY = "update_key_token"
    RESET_PASSWORD = "reset_password_token"


def hash_token(raw: str) -> str:
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


def current(user: User, purpose: TokenPurpose) -> Optional[VerificationToken]:
    return getattr(user, purpose.value)


def issue(user: User, purpose: TokenPurpose, now: datetime, ttl: timedelta) -> str:
    """Replace the purpose slot with a fresh token and return the raw value."""
    raw = secrets.token_hex(TOKEN_BYTES)
    setattr(user, purpose.value, VerificationToken(digest=hash_token(raw), expires_at=now + ttl))
    return raw


def clear(user: User, purpose: TokenPurpose) -> None:
    setattr(user, purpose.value, None)


def expire(user: User, purpose: TokenPurpose, now: datetime) -> bool:
    """Force an outstanding token past its expiry. Returns False if none exists."""
    token = current(user, purpose)
    if token is None:
        return False
    setattr(user, purpose.value, VerificationToken(digest=token.digest, expires_at=now))
    return True


def is_unexpired(user: User, purpose: TokenPurpose, now: datetime) -> bool:
    token = current(user, purpose)
    return token is not None and not token.is_expired(now)


def check(user: User, purpose: TokenPurpose, presented: str, now: datetime) -> None:
    """Validate ``presented`` against the slot without consuming it.

    An expired token is cleared before ``VerificationTokenExpiredError`` is
    raised; the caller must persist the user so the expired token cannot be
    retried.
    """
    token = current(user, purpose)
    if token is None or not presented:
        raise VerificationTokenInvalidError()
    if not hmac.compare_digest(token.digest, hash_token(presented)):
        raise VerificationTokenInvalidError()
    if token.is_expired(now):
        clear(user, purpose)
        raise VerificationTokenExpiredError(token.expires_at.isoformat())


def redeem(user: User, purpose: TokenPurpose, presented: str, now: datetime) -> None:
    """Validate and consume the token for ``purpose``."""
    check(user, purpose, presented, now)
    clear(user, purpose)
