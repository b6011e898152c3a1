"""Account state machine.

A user is ``pending`` until the new-user token is redeemed, then
``verified``. ``locked`` and ``deactivated`` are orthogonal flags, and the
payment state moves one way from unpaid to paid.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from .errors import (
    EmailNotVerifiedError,
    InvalidAdminActionError,
    InvalidCredentialsError,
    UnauthorizedError,
    UserDeactivatedError,
    UserLockedError,
)
from .models import User


@dataclass(frozen=True, slots=True)
class AccountState:
    verified: bool
    locked: bool
    deactivated: bool
    paid: bool

    @property
    def label(self) -> str:
        if self.deactivated:
            return "deactivated"
        if self.locked:
            return "locked"
        return "verified" if self.verified else "pending"


def has_paid(user: User, paywall_enabled: bool) -> bool:
    if not paywall_enabled:
        return True
    return bool(user.paywall_tx_id)


def state_of(user: User, paywall_enabled: bool = True) -> AccountState:
    return AccountState(
        verified=user.email_verified,
        locked=user.locked,
        deactivated=user.deactivated,
        paid=has_paid(user, paywall_enabled),
    )


def require_admin(actor: Optional[User]) -> User:
    if actor is None or not actor.admin:
        raise UnauthorizedError()
    return actor


def check_login(user: User, password_ok: bool) -> None:
    """Reject a login attempt for ``user``.

    Wrong passwords are reported as ``InvalidCredentialsError`` so callers
    cannot tell an unknown email from a bad password. Deactivation wins over
    the lock once the password is proven, so a deactivated account never
    reaches the lock's reset path.
    """
    if user.deactivated:
        if not password_ok:
            raise InvalidCredentialsError()
        raise UserDeactivatedError()
    if user.locked:
        raise UserLockedError()
    if not password_ok:
        raise InvalidCredentialsError()
    if not user.email_verified:
        raise EmailNotVerifiedError()


def register_failed_login(user: User, threshold: int) -> bool:
    """Count a bad password. Returns True when this attempt locked the account."""
    if user.locked:
        return False
    user.failed_login_attempts += 1
    if user.failed_login_attempts >= threshold:
        user.locked = True
        return True
    return False


def register_successful_login(user: User, now: datetime) -> Optional[datetime]:
    """Reset the failure counter and stamp the login. Returns the previous login time."""
    previous = user.last_login_time
    user.failed_login_attempts = 0
    user.last_login_time = now
    return previous


def mark_verified(user: User) -> None:
    user.email_verified = True


def lock(user: User) -> None:
    if user.locked:
        raise InvalidAdminActionError("user is already locked")
    user.locked = True


def unlock(user: User) -> None:
    """Locked -> verified: clears the flag and the failure counter."""
    user.locked = False
    user.failed_login_attempts = 0


def deactivate(user: User) -> None:
    if user.deactivated:
        raise InvalidAdminActionError("user is already deactivated")
    user.deactivated = True


def reactivate(user: User) -> None:
    if not user.deactivated:
        raise InvalidAdminActionError("user is not deactivated")
    user.deactivated = False


def mark_paid(user: User, tx_id: str) -> bool:
    """Record a qualifying payment. Returns False if the user had already paid."""
    if user.paywall_tx_id:
        return False
    user.paywall_tx_id = tx_id
    user.paywall_poll_expiry = None
    return True
