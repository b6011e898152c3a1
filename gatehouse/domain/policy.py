"""Account policy: password strength, username shape, identity keys."""

from __future__ import annotations

import re
from typing import Any, Dict

from .errors import InvalidPublicKeyError, MalformedPasswordError, MalformedUsernameError

MIN_PASSWORD_LENGTH = 8
MAX_PASSWORD_LENGTH = 72
MIN_USERNAME_LENGTH = 3
MAX_USERNAME_LENGTH = 30
USERNAME_SUPPORTED_CHARS = "a-z0-9.,:;-@+()_"
PUBLIC_KEY_HEX_LENGTH = 64
USER_LIST_PAGE_SIZE = 20

_USERNAME_RE = re.compile(r"^[a-z0-9.,:;\-@+()_]+$")
_HEX_RE = re.compile(r"^[0-9a-f]+$")


def format_email(email: str) -> str:
    return email.strip().lower()


def format_username(username: str) -> str:
    return username.strip().lower()


def validate_password(password: str) -> None:
    if len(password) < MIN_PASSWORD_LENGTH:
        raise MalformedPasswordError(f"password must be at least {MIN_PASSWORD_LENGTH} characters")
    # bcrypt only looks at the first 72 bytes.
    if len(password.encode("utf-8")) > MAX_PASSWORD_LENGTH:
        raise MalformedPasswordError(f"password must be at most {MAX_PASSWORD_LENGTH} bytes")


def validate_username(username: str) -> str:
    """Return the normalised username or raise ``MalformedUsernameError``."""
    formatted = format_username(username)
    if not MIN_USERNAME_LENGTH <= len(formatted) <= MAX_USERNAME_LENGTH:
        raise MalformedUsernameError(
            f"username must be {MIN_USERNAME_LENGTH}-{MAX_USERNAME_LENGTH} characters"
        )
    if not _USERNAME_RE.match(formatted):
        raise MalformedUsernameError(f"username may only contain {USERNAME_SUPPORTED_CHARS}")
    return formatted


def validate_public_key_format(public_key: str) -> str:
    key = public_key.strip().lower()
    if len(key) != PUBLIC_KEY_HEX_LENGTH or not _HEX_RE.match(key):
        raise InvalidPublicKeyError(f"public key must be {PUBLIC_KEY_HEX_LENGTH} hex characters")
    if key == "0" * PUBLIC_KEY_HEX_LENGTH:
        raise InvalidPublicKeyError("public key must not be zero")
    return key


def describe(paywall_amount: int, paywall_enabled: bool) -> Dict[str, Any]:
    return {
        "min_password_length": MIN_PASSWORD_LENGTH,
        "min_username_length": MIN_USERNAME_LENGTH,
        "max_username_length": MAX_USERNAME_LENGTH,
        "username_supported_chars": USERNAME_SUPPORTED_CHARS,
        "user_list_page_size": USER_LIST_PAGE_SIZE,
        "paywall_enabled": paywall_enabled,
        "paywall_amount": paywall_amount,
    }
