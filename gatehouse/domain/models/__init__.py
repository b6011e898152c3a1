"""Domain models for the Gatehouse service."""

from .session import SessionPayload, SessionRecord
from .user import (
    ALL_EMAIL_NOTIFICATIONS,
    EmailNotification,
    Identity,
    User,
    VerificationToken,
    utcnow,
)

__all__ = [
    "ALL_EMAIL_NOTIFICATIONS",
    "EmailNotification",
    "Identity",
    "SessionPayload",
    "SessionRecord",
    "User",
    "VerificationToken",
    "utcnow",
]
