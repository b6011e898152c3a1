from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from ...domain import account_state
from ...domain.errors import (
    CannotVerifyPaymentError,
    PaymentBackendError,
    PaymentNotFoundError,
    UserNotFoundError,
)
from ...domain.models import User, utcnow
from ...domain.ports.persistence import AddressDeriver, CredentialStore, PaymentLookup, PaymentRecord

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class PaymentStatus:
    paid: bool
    amount: int
    tx_id: Optional[str]
    address: Optional[str]
    tx_not_before: Optional[datetime]

    @classmethod
    def of(cls, user: User, paid: bool) -> "PaymentStatus":
        return cls(
            paid=paid,
            amount=user.paywall_amount,
            tx_id=user.paywall_tx_id,
            address=user.paywall_address,
            tx_not_before=user.paywall_tx_not_before,
        )


class PaywallService:
    """Registration-fee gate.

    Lookups against the payment backend run without the per-user lock; the
    result is applied under the lock after re-reading the record, and a
    recorded payment is never cleared.
    """

    def __init__(
        self,
        users: CredentialStore,
        lookup: Optional[PaymentLookup],
        deriver: Optional[AddressDeriver],
        *,
        amount: int = 0,
        expiry_hours: int = 24,
        min_confirmations: int = 2,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._users = users
        self._lookup = lookup
        self._deriver = deriver
        self._amount = amount
        self._window = timedelta(hours=expiry_hours)
        self._min_confirmations = min_confirmations
        self._clock = clock
        if self.enabled and (lookup is None or deriver is None):
            raise RuntimeError("An enabled paywall needs a payment lookup and an address deriver.")

    @property
    def enabled(self) -> bool:
        return self._amount > 0

    @property
    def amount(self) -> int:
        return self._amount

    # ------------------------------------------------------------------
    def derive_address(self, index: int) -> Optional[str]:
        if not self.enabled:
            return None
        return self._deriver.derive(index)

    def open_paywall(self, user: User, address: Optional[str], now: datetime) -> None:
        """Point ``user`` at ``address`` and start a fresh poll window."""
        if not self.enabled or address is None:
            return
        user.paywall_address = address
        user.paywall_amount = self._amount
        user.paywall_tx_not_before = now
        user.paywall_poll_expiry = now + self._window

    def has_paid(self, user: User) -> bool:
        return account_state.has_paid(user, self.enabled)

    def check_payment(self, user_id: str) -> PaymentStatus:
        """Report the user's payment state, looking the payment up if needed."""
        user = self._get(user_id)
        if self.has_paid(user):
            return PaymentStatus.of(user, paid=True)

        if user.paywall_address is None:
            address = self.derive_address(user.paywall_address_index or 0)
            with self._users.user_lock(user.id):
                user = self._get(user_id)
                if user.paywall_address is None:
                    self.open_paywall(user, address, self._clock())
                    self._save(user)
            return PaymentStatus.of(user, paid=self.has_paid(user))

        now = self._clock()
        if user.paywall_poll_expiry is None or user.paywall_poll_expiry <= now:
            with self._users.user_lock(user.id):
                user = self._get(user_id)
                if not self.has_paid(user):
                    self.open_paywall(user, user.paywall_address, now)
                    self._save(user)
            return PaymentStatus.of(user, paid=self.has_paid(user))

        record = self._find(user, not_before=user.paywall_tx_not_before)
        if record is None:
            return PaymentStatus.of(user, paid=False)
        return PaymentStatus.of(self._apply(user_id, record), paid=True)

    def rescan(self, user_id: str) -> PaymentStatus:
        """Look for a qualifying payment regardless of the poll window."""
        user = self._get(user_id)
        if self.has_paid(user):
            return PaymentStatus.of(user, paid=True)
        if not user.paywall_address:
            raise PaymentNotFoundError("user has no paywall address")
        record = self._find(user, not_before=None)
        if record is None:
            raise PaymentNotFoundError(user.paywall_address)
        return PaymentStatus.of(self._apply(user_id, record), paid=True)

    def poll_once(self) -> int:
        """Check every user with an open poll window. Returns how many paid."""
        if not self.enabled:
            return 0
        paid = 0
        for user in self._users.list_pollable(self._clock()):
            try:
                record = self._find(user, not_before=user.paywall_tx_not_before)
            except CannotVerifyPaymentError:
                logger.warning("Paywall poll could not check user %s", user.id)
                continue
            if record is not None:
                self._apply(user.id, record)
                paid += 1
        return paid

    # ------------------------------------------------------------------
    def _find(self, user: User, not_before: Optional[datetime]) -> Optional[PaymentRecord]:
        try:
            return self._lookup.find_payment(
                user.paywall_address,
                user.paywall_amount,
                not_before,
                self._min_confirmations,
            )
        except PaymentBackendError as exc:
            logger.warning("Payment lookup failed for user %s: %s", user.id, exc)
            raise CannotVerifyPaymentError() from exc

    def _apply(self, user_id: str, record: PaymentRecord) -> User:
        with self._users.user_lock(user_id):
            user = self._get(user_id)
            if account_state.mark_paid(user, record.tx_id):
                self._save(user)
                logger.info("User %s paid the registration fee in %s", user.id, record.tx_id)
        return user

    def _get(self, user_id: str) -> User:
        user = self._users.get_by_id(user_id)
        if user is None:
            raise UserNotFoundError(user_id)
        return user

    def _save(self, user: User) -> None:
        user.updated_at = self._clock()
        self._users.update(user)
