"""Registration, email verification, login and password reset."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from ...domain import account_state, policy, tokens
from ...domain.errors import (
    DuplicateEmailError,
    DuplicatePublicKeyError,
    DuplicateUsernameError,
    InvalidCredentialsError,
    InvalidSignatureError,
    UserError,
    UserLockedError,
    VerificationTokenExpiredError,
    VerificationTokenInvalidError,
    VerificationTokenUnexpiredError,
)
from ...domain.models import ALL_EMAIL_NOTIFICATIONS, Identity, User, utcnow
from ...domain.ports.persistence import CredentialStore, Notifier
from ...domain.tokens import TokenPurpose
from ...services.passwords import PasswordHasher
from ...services.signatures import load_verify_key, verify_signature
from .paywall_service import PaywallService

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class NewUserResult:
    user: User
    verification_token: Optional[str]


@dataclass(slots=True)
class ResendResult:
    user: Optional[User]
    verification_token: Optional[str]


@dataclass(slots=True)
class LoginResult:
    user: User
    last_login_time: Optional[datetime]


class AccountService:
    """Self-service account workflows.

    Every mutation re-reads the user under ``user_lock``, validates,
    mutates in memory and writes the whole record back. Notifications go
    out after the lock is released.
    """

    def __init__(
        self,
        users: CredentialStore,
        notifier: Notifier,
        paywall: PaywallService,
        hasher: PasswordHasher,
        *,
        verification_ttl: timedelta = timedelta(hours=24),
        reset_ttl: timedelta = timedelta(hours=24),
        lock_threshold: int = 5,
        expose_tokens: bool = False,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._users = users
        self._notifier = notifier
        self._paywall = paywall
        self._hasher = hasher
        self._verification_ttl = verification_ttl
        self._reset_ttl = reset_ttl
        self._lock_threshold = lock_threshold
        self._expose_tokens = expose_tokens
        self._clock = clock
        self._index_lock = threading.Lock()
        self._next_index: Optional[int] = None

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------
    def new_user(self, email: str, username: str, password: str, public_key: str) -> NewUserResult:
        """Create a pending, unpaid account and send its verification token."""
        email = policy.format_email(email)
        policy.validate_password(password)
        username = policy.validate_username(username)
        public_key = self._validate_new_key(public_key)

        if self._users.get_by_email(email) is not None:
            raise DuplicateEmailError()
        if self._users.get_by_username(username) is not None:
            raise DuplicateUsernameError()

        index = self._reserve_paywall_index()
        address = self._paywall.derive_address(index)

        now = self._clock()
        user = User(
            email=email,
            username=username,
            password_hash=self._hasher.hash(password),
            created_at=now,
            updated_at=now,
            identities=[Identity(public_key=public_key, activated=now)],
            paywall_address_index=index,
            email_notifications=ALL_EMAIL_NOTIFICATIONS,
        )
        raw = tokens.issue(user, TokenPurpose.NEW_USER, now, self._verification_ttl)
        self._paywall.open_paywall(user, address, now)
        self._users.create(user)
        logger.info("Created pending user %s (%s)", user.id, user.username)

        self._notifier.send_new_user_verification(user.email, user.username, raw)
        return NewUserResult(user=user, verification_token=self._echo(raw))

    def verify_new_user(self, email: str, token: str, signature: str) -> User:
        """Redeem the new-user token signed by the account's identity key."""
        user = self._users.get_by_email(policy.format_email(email))
        if user is None:
            raise VerificationTokenInvalidError()

        with self._users.user_lock(user.id):
            user = self._reload(user)
            now = self._clock()
            try:
                tokens.check(user, TokenPurpose.NEW_USER, token, now)
            except VerificationTokenExpiredError:
                self._save(user)
                raise
            if user.public_key is None or not verify_signature(user.public_key, token, signature):
                raise InvalidSignatureError()
            tokens.clear(user, TokenPurpose.NEW_USER)
            account_state.mark_verified(user)
            self._save(user)

        logger.info("User %s verified their email", user.id)
        return user

    def resend_verification(
        self, email: str, public_key: str, new_email: Optional[str] = None
    ) -> ResendResult:
        """Issue a fresh new-user token for a pending account.

        Unknown and already verified emails succeed silently. ``public_key``
        replaces the identity when it differs from the current one, and
        ``new_email`` moves the pending account to another address.
        """
        user = self._users.get_by_email(policy.format_email(email))
        if user is None or user.email_verified:
            return ResendResult(user=None, verification_token=None)

        public_key = policy.validate_public_key_format(public_key)
        load_verify_key(public_key)
        target_email = policy.format_email(new_email) if new_email else None

        with self._users.user_lock(user.id):
            user = self._reload(user)
            now = self._clock()
            if user.email_verified:
                return ResendResult(user=None, verification_token=None)
            current = tokens.current(user, TokenPurpose.NEW_USER)
            if current is not None and not current.is_expired(now):
                raise VerificationTokenUnexpiredError(current.expires_at.isoformat())

            if public_key != user.public_key:
                owner = self._users.get_by_public_key(public_key)
                if owner is not None and owner.id != user.id:
                    raise DuplicatePublicKeyError()
                user.identities = [Identity(public_key=public_key, activated=now)]

            if target_email and target_email != user.email:
                if self._users.get_by_email(target_email) is not None:
                    raise DuplicateEmailError()
                logger.info("Pending user %s moved to a new email address", user.id)
                user.email = target_email

            raw = tokens.issue(user, TokenPurpose.NEW_USER, now, self._verification_ttl)
            self._save(user)

        self._notifier.send_new_user_verification(user.email, user.username, raw)
        return ResendResult(user=user, verification_token=self._echo(raw))

    # ------------------------------------------------------------------
    # Login
    # ------------------------------------------------------------------
    def login(self, email: str, password: str) -> LoginResult:
        """Authenticate ``email``/``password``.

        An unknown email and a wrong password both raise
        ``InvalidCredentialsError``.
        """
        user = self._users.get_by_email(policy.format_email(email))
        if user is None:
            self._hasher.burn(password)
            raise InvalidCredentialsError()

        password_ok = self._hasher.verify(password, user.password_hash)
        rejection: Optional[UserError] = None
        reset_token: Optional[str] = None
        locked_now = False

        with self._users.user_lock(user.id):
            user = self._reload(user)
            now = self._clock()
            try:
                account_state.check_login(user, password_ok)
            except UserLockedError as exc:
                rejection = exc
                if not tokens.is_unexpired(user, TokenPurpose.RESET_PASSWORD, now):
                    reset_token = tokens.issue(user, TokenPurpose.RESET_PASSWORD, now, self._reset_ttl)
                    self._save(user)
            except InvalidCredentialsError as exc:
                rejection = exc
                if not user.deactivated:
                    locked_now = account_state.register_failed_login(user, self._lock_threshold)
                    self._save(user)
            else:
                previous = account_state.register_successful_login(user, now)
                self._save(user)

        if rejection is not None:
            if locked_now:
                logger.warning("User %s locked after %d failed logins", user.id, user.failed_login_attempts)
            if locked_now or reset_token is not None:
                self._notifier.send_user_locked(user.email, reset_token)
            raise rejection

        logger.info("User %s logged in", user.id)
        return LoginResult(user=user, last_login_time=previous)

    # ------------------------------------------------------------------
    # Password reset
    # ------------------------------------------------------------------
    def request_password_reset(self, email: str) -> Optional[str]:
        """Issue and send a reset token. Unknown or deactivated emails succeed silently."""
        user = self._users.get_by_email(policy.format_email(email))
        if user is None or user.deactivated:
            return None

        with self._users.user_lock(user.id):
            user = self._reload(user)
            raw = tokens.issue(user, TokenPurpose.RESET_PASSWORD, self._clock(), self._reset_ttl)
            self._save(user)

        self._notifier.send_reset_password(user.email, raw)
        return self._echo(raw)

    def reset_password(self, email: str, token: str, new_password: str) -> User:
        """Redeem a reset token, set the new password and lift any lock.

        Deactivated accounts are treated like unknown emails.
        """
        policy.validate_password(new_password)
        user = self._users.get_by_email(policy.format_email(email))
        if user is None or user.deactivated:
            raise VerificationTokenInvalidError()

        password_hash = self._hasher.hash(new_password)
        with self._users.user_lock(user.id):
            user = self._reload(user)
            if user.deactivated:
                raise VerificationTokenInvalidError()
            try:
                tokens.redeem(user, TokenPurpose.RESET_PASSWORD, token, self._clock())
            except VerificationTokenExpiredError:
                self._save(user)
                raise
            user.password_hash = password_hash
            account_state.unlock(user)
            self._save(user)

        logger.info("User %s reset their password", user.id)
        self._notifier.send_password_changed(user.email)
        return user

    # ------------------------------------------------------------------
    def _validate_new_key(self, public_key: str) -> str:
        public_key = policy.validate_public_key_format(public_key)
        load_verify_key(public_key)
        if self._users.get_by_public_key(public_key) is not None:
            raise DuplicatePublicKeyError()
        return public_key

    def _reserve_paywall_index(self) -> int:
        with self._index_lock:
            if self._next_index is None:
                self._next_index = self._users.next_paywall_index()
            index = self._next_index
            self._next_index += 1
        return index

    def _echo(self, raw: str) -> Optional[str]:
        return raw if self._expose_tokens else None

    def _reload(self, user: User) -> User:
        fresh = self._users.get_by_id(user.id)
        if fresh is None:
            raise VerificationTokenInvalidError()
        return fresh

    def _save(self, user: User) -> None:
        user.updated_at = self._clock()
        self._users.update(user)
