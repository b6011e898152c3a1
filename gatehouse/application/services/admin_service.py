"""Admin-only user management."""

from __future__ import annotations

import base64
import binascii
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, List, Optional

from ...domain import account_state, tokens
from ...domain.errors import InvalidAdminActionError, InvalidInputError, UserNotFoundError
from ...domain.models import User, utcnow
from ...domain.policy import USER_LIST_PAGE_SIZE
from ...domain.ports.persistence import CredentialStore, UserFilter
from ...domain.tokens import TokenPurpose
from .paywall_service import PaymentStatus, PaywallService

logger = logging.getLogger(__name__)


class AdminAction(str, Enum):
    EXPIRE_NEW_USER_VERIFICATION = "expire_new_user_verification"
    EXPIRE_UPDATE_KEY_VERIFICATION = "expire_update_key_verification"
    EXPIRE_RESET_PASSWORD_VERIFICATION = "expire_reset_password_verification"
    CLEAR_PAYWALL = "clear_paywall"
    LOCK = "lock"
    UNLOCK = "unlock"
    DEACTIVATE = "deactivate"
    REACTIVATE = "reactivate"
    ADJUST_CREDITS = "adjust_credits"


CLEARED_BY_ADMIN = "cleared_by_admin"

_EXPIRE_ACTIONS = {
    AdminAction.EXPIRE_NEW_USER_VERIFICATION: TokenPurpose.NEW_USER,
    AdminAction.EXPIRE_UPDATE_KEY_VERIFICATION: TokenPurpose.UPDATE_KEY,
    AdminAction.EXPIRE_RESET_PASSWORD_VERIFICATION: TokenPurpose.RESET_PASSWORD,
}


@dataclass(slots=True)
class UserPage:
    users: List[User]
    total_matches: int
    next_cursor: Optional[str]


def encode_cursor(index: int) -> str:
    return base64.urlsafe_b64encode(str(index).encode("ascii")).decode("ascii").rstrip("=")


def decode_cursor(cursor: Optional[str]) -> int:
    if not cursor:
        return -1
    try:
        padded = cursor + "=" * (-len(cursor) % 4)
        return int(base64.urlsafe_b64decode(padded.encode("ascii")).decode("ascii"))
    except (binascii.Error, UnicodeError, ValueError) as exc:
        raise InvalidInputError("cursor") from exc


class AdminService:
    """Applies admin actions. The admin check runs before any read or write."""

    def __init__(
        self,
        users: CredentialStore,
        paywall: PaywallService,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._users = users
        self._paywall = paywall
        self._clock = clock

    def manage_user(
        self,
        target_id: str,
        action: str,
        reason: str,
        actor: Optional[User],
        amount: Optional[int] = None,
    ) -> User:
        actor = account_state.require_admin(actor)
        try:
            action = AdminAction(action)
        except ValueError as exc:
            raise InvalidAdminActionError(f"unknown action {action!r}") from exc
        reason = (reason or "").strip()
        if not reason:
            raise InvalidInputError("reason")
        if action is AdminAction.ADJUST_CREDITS and amount is None:
            raise InvalidInputError("amount")

        with self._users.user_lock(target_id):
            user = self._users.get_by_id(target_id)
            if user is None:
                raise UserNotFoundError(target_id)
            now = self._clock()
            self._apply(user, action, amount, now)
            user.admin_notes.append(f"{now.isoformat()} {actor.username}: {action.value}: {reason}")
            user.updated_at = now
            self._users.update(user)

        logger.info("Admin %s applied %s to user %s", actor.id, action.value, user.id)
        return user

    def list_users(
        self,
        user_filter: UserFilter,
        cursor: Optional[str],
        actor: Optional[User],
    ) -> UserPage:
        account_state.require_admin(actor)
        after = decode_cursor(cursor)
        users = self._users.search(user_filter, after, USER_LIST_PAGE_SIZE + 1)
        next_cursor = None
        if len(users) > USER_LIST_PAGE_SIZE:
            users = users[:USER_LIST_PAGE_SIZE]
            next_cursor = encode_cursor(users[-1].paywall_address_index)
        return UserPage(
            users=users,
            total_matches=self._users.count(user_filter),
            next_cursor=next_cursor,
        )

    def rescan_payments(self, target_id: str, actor: Optional[User]) -> PaymentStatus:
        account_state.require_admin(actor)
        status = self._paywall.rescan(target_id)
        logger.info("Admin %s rescanned payments of user %s", actor.id, target_id)
        return status

    @staticmethod
    def _apply(user: User, action: AdminAction, amount: Optional[int], now: datetime) -> None:
        if action in _EXPIRE_ACTIONS:
            if not tokens.expire(user, _EXPIRE_ACTIONS[action], now):
                raise InvalidAdminActionError("no outstanding token to expire")
        elif action is AdminAction.CLEAR_PAYWALL:
            # Waives the fee: the account counts as paid from here on.
            account_state.mark_paid(user, CLEARED_BY_ADMIN)
            user.paywall_amount = 0
            user.paywall_address = None
            user.paywall_tx_not_before = None
            user.paywall_poll_expiry = None
        elif action is AdminAction.LOCK:
            account_state.lock(user)
        elif action is AdminAction.UNLOCK:
            if not user.locked:
                raise InvalidAdminActionError("user is not locked")
            account_state.unlock(user)
        elif action is AdminAction.DEACTIVATE:
            account_state.deactivate(user)
        elif action is AdminAction.REACTIVATE:
            account_state.reactivate(user)
        elif action is AdminAction.ADJUST_CREDITS:
            balance = user.proposal_credits + amount
            if balance < 0:
                raise InvalidAdminActionError("credits cannot go below zero")
            user.proposal_credits = balance
