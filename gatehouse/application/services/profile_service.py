from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Callable, Optional, Tuple

from ...domain import policy, tokens
from ...domain.errors import (
    DuplicatePublicKeyError,
    DuplicateUsernameError,
    InvalidCredentialsError,
    InvalidInputError,
    InvalidSignatureError,
    NoPendingIdentityError,
    UserNotFoundError,
    VerificationTokenExpiredError,
)
from ...domain.models import ALL_EMAIL_NOTIFICATIONS, Identity, User, utcnow
from ...domain.ports.persistence import CredentialStore, Notifier
from ...domain.tokens import TokenPurpose
from ...services.passwords import PasswordHasher
from ...services.signatures import load_verify_key, verify_signature

logger = logging.getLogger(__name__)


class ProfileService:
    """Changes a logged-in user makes to their own account."""

    def __init__(
        self,
        users: CredentialStore,
        notifier: Notifier,
        hasher: PasswordHasher,
        *,
        update_key_ttl: timedelta = timedelta(hours=24),
        expose_tokens: bool = False,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._users = users
        self._notifier = notifier
        self._hasher = hasher
        self._update_key_ttl = update_key_ttl
        self._expose_tokens = expose_tokens
        self._clock = clock

    def change_password(self, user: User, current_password: str, new_password: str) -> User:
        if not self._hasher.verify(current_password, user.password_hash):
            raise InvalidCredentialsError()
        policy.validate_password(new_password)
        password_hash = self._hasher.hash(new_password)

        with self._users.user_lock(user.id):
            user = self._get(user.id)
            user.password_hash = password_hash
            self._save(user)

        logger.info("User %s changed their password", user.id)
        self._notifier.send_password_changed(user.email)
        return user

    def change_username(self, user: User, password: str, new_username: str) -> User:
        if not self._hasher.verify(password, user.password_hash):
            raise InvalidCredentialsError()
        username = policy.validate_username(new_username)

        with self._users.user_lock(user.id):
            user = self._get(user.id)
            if username == user.username:
                return user
            if self._users.get_by_username(username) is not None:
                raise DuplicateUsernameError()
            user.username = username
            self._save(user)

        logger.info("User %s changed their username", user.id)
        return user

    def update_user_key(self, user: User, public_key: str) -> Optional[str]:
        """Record ``public_key`` as pending and send the token that activates it."""
        public_key = policy.validate_public_key_format(public_key)
        load_verify_key(public_key)
        if self._users.get_by_public_key(public_key) is not None:
            raise DuplicatePublicKeyError()

        with self._users.user_lock(user.id):
            user = self._get(user.id)
            # Only one pending key at a time.
            user.identities = [identity for identity in user.identities if not identity.is_pending]
            user.identities.append(Identity(public_key=public_key))
            raw = tokens.issue(user, TokenPurpose.UPDATE_KEY, self._clock(), self._update_key_ttl)
            self._save(user)

        self._notifier.send_update_key_verification(user.email, public_key, raw)
        return raw if self._expose_tokens else None

    def verify_update_user_key(self, user: User, token: str, signature: str) -> User:
        """Activate the pending key; the previous key moves to the history."""
        with self._users.user_lock(user.id):
            user = self._get(user.id)
            now = self._clock()
            try:
                tokens.check(user, TokenPurpose.UPDATE_KEY, token, now)
            except VerificationTokenExpiredError:
                self._save(user)
                raise
            pending = user.pending_identity
            if pending is None:
                raise NoPendingIdentityError()
            if not verify_signature(pending.public_key, token, signature):
                raise InvalidSignatureError()

            tokens.clear(user, TokenPurpose.UPDATE_KEY)
            active = user.active_identity
            if active is not None:
                active.deactivated = now
            pending.activated = now
            self._save(user)

        logger.info("User %s activated a new identity key", user.id)
        return user

    def edit_user(self, user: User, email_notifications: int) -> User:
        if email_notifications < 0 or email_notifications & ~ALL_EMAIL_NOTIFICATIONS:
            raise InvalidInputError("email_notifications")

        with self._users.user_lock(user.id):
            user = self._get(user.id)
            user.email_notifications = email_notifications
            self._save(user)
        return user

    def user_details(self, target_id: str, viewer: Optional[User]) -> Tuple[User, bool]:
        """Return the target and whether ``viewer`` may see the full view."""
        target = self._users.get_by_id(target_id)
        if target is None:
            raise UserNotFoundError(target_id)
        full = viewer is not None and (viewer.admin or viewer.id == target.id)
        return target, full

    def _get(self, user_id: str) -> User:
        user = self._users.get_by_id(user_id)
        if user is None:
            raise UserNotFoundError(user_id)
        return user

    def _save(self, user: User) -> None:
        user.updated_at = self._clock()
        self._users.update(user)
