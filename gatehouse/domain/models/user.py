"""User domain model: identity root, token slots and paywall state."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import IntFlag
from typing import Any, Dict, List, Optional


def utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


class EmailNotification(IntFlag):
    """Bits of the per-user email preference mask."""

    MY_PROPOSAL_STATUS_CHANGE = 1 << 0
    MY_PROPOSAL_VOTE_STARTED = 1 << 1
    REGULAR_PROPOSAL_VETTED = 1 << 2
    REGULAR_PROPOSAL_EDITED = 1 << 3
    REGULAR_PROPOSAL_VOTE_STARTED = 1 << 4
    ADMIN_PROPOSAL_NEW = 1 << 5
    ADMIN_PROPOSAL_VOTE_AUTHORIZED = 1 << 6
    COMMENT_ON_MY_PROPOSAL = 1 << 7
    COMMENT_ON_MY_COMMENT = 1 << 8


ALL_EMAIL_NOTIFICATIONS = int(
    EmailNotification.MY_PROPOSAL_STATUS_CHANGE
    | EmailNotification.MY_PROPOSAL_VOTE_STARTED
    | EmailNotification.REGULAR_PROPOSAL_VETTED
    | EmailNotification.REGULAR_PROPOSAL_EDITED
    | EmailNotification.REGULAR_PROPOSAL_VOTE_STARTED
    | EmailNotification.ADMIN_PROPOSAL_NEW
    | EmailNotification.ADMIN_PROPOSAL_VOTE_AUTHORIZED
    | EmailNotification.COMMENT_ON_MY_PROPOSAL
    | EmailNotification.COMMENT_ON_MY_COMMENT
)


@dataclass(slots=True)
class VerificationToken:
    """Digest of an outstanding one-time token and its absolute expiry."""

    digest: str
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at


@dataclass(slots=True)
class Identity:
    """An ed25519 public key bound to the account.

    A key with no activation time is pending; a key with a deactivation
    time belongs to the history.
    """

    public_key: str
    activated: Optional[datetime] = None
    deactivated: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        return self.activated is not None and self.deactivated is None

    @property
    def is_pending(self) -> bool:
        return self.activated is None and self.deactivated is None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "public_key": self.public_key,
            "activated": self.activated.isoformat() if self.activated else None,
            "deactivated": self.deactivated.isoformat() if self.deactivated else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Identity":
        return cls(
            public_key=data["public_key"],
            activated=_parse_optional(data.get("activated")),
            deactivated=_parse_optional(data.get("deactivated")),
        )


@dataclass(slots=True)
class User:
    """
    User entity.

    Attributes:
        id: Stable identifier (UUID4 string)
        email: Lower-cased email address (unique)
        username: Lower-cased username (unique)
        password_hash: bcrypt hash; never logged or echoed
        email_verified: False while the account is pending
        locked: Set after too many failed logins; cleared by password reset
        deactivated: Soft delete; a deactivated user cannot authenticate
        identities: Active key, at most one pending key, and prior keys
        new_user_token / update_key_token / reset_password_token: one
            outstanding token per purpose
        paywall_*: Registration fee state; ``paywall_tx_id`` set means paid
    """

    email: str
    username: str
    password_hash: str
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    admin: bool = False
    email_verified: bool = False
    deactivated: bool = False
    locked: bool = False
    failed_login_attempts: int = 0
    last_login_time: Optional[datetime] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    identities: List[Identity] = field(default_factory=list)
    new_user_token: Optional[VerificationToken] = None
    update_key_token: Optional[VerificationToken] = None
    reset_password_token: Optional[VerificationToken] = None
    paywall_address_index: Optional[int] = None
    paywall_address: Optional[str] = None
    paywall_amount: int = 0
    paywall_tx_not_before: Optional[datetime] = None
    paywall_poll_expiry: Optional[datetime] = None
    paywall_tx_id: Optional[str] = None
    proposal_credits: int = 0
    email_notifications: int = 0
    admin_notes: List[str] = field(default_factory=list)

    @property
    def active_identity(self) -> Optional[Identity]:
        for identity in self.identities:
            if identity.is_active:
                return identity
        return None

    @property
    def pending_identity(self) -> Optional[Identity]:
        for identity in self.identities:
            if identity.is_pending:
                return identity
        return None

    @property
    def public_key(self) -> Optional[str]:
        identity = self.active_identity
        return identity.public_key if identity else None

    def __repr__(self) -> str:
        return (
            f"<User id={self.id} username={self.username} verified={self.email_verified} "
            f"locked={self.locked} deactivated={self.deactivated}>"
        )


def _parse_optional(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromisoformat(value)
