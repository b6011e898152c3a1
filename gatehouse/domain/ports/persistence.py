from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import ContextManager, List, Optional, Protocol

from ..models import SessionRecord, User


@dataclass(frozen=True, slots=True)
class UserFilter:
    """Conjunctive predicates for the admin user listing."""

    email: Optional[str] = None
    username: Optional[str] = None
    public_key: Optional[str] = None


@dataclass(frozen=True, slots=True)
class PaymentRecord:
    tx_id: str
    amount: int
    confirmations: int


class CredentialStore(Protocol):
    """Durable storage for user records.

    ``update`` writes the whole record. Callers hold ``user_lock`` for the
    id across read-modify-write so concurrent updates of one user cannot
    lose writes.
    """

    def create(self, user: User) -> User:
        ...

    def update(self, user: User) -> User:
        ...

    def get_by_id(self, user_id: str) -> Optional[User]:
        ...

    def get_by_email(self, email: str) -> Optional[User]:
        ...

    def get_by_username(self, username: str) -> Optional[User]:
        ...

    def get_by_public_key(self, public_key: str) -> Optional[User]:
        ...

    def next_paywall_index(self) -> int:
        ...

    def search(self, user_filter: UserFilter, after_index: int, limit: int) -> List[User]:
        ...

    def count(self, user_filter: UserFilter) -> int:
        ...

    def list_pollable(self, now: datetime) -> List[User]:
        ...

    def user_lock(self, user_id: str) -> ContextManager[None]:
        ...


class SessionRepository(Protocol):
    """Server-side backing for cookie sessions."""

    def save(self, record: SessionRecord) -> None:
        ...

    def load(self, session_id: str) -> Optional[SessionRecord]:
        ...

    def delete(self, session_id: str) -> None:
        ...

    def purge_expired(self, now: datetime) -> int:
        ...

    def close(self) -> None:
        ...


class PaymentLookup(Protocol):
    """Finds a transaction paying ``amount`` atoms to ``address``."""

    def find_payment(
        self,
        address: str,
        amount: int,
        not_before: Optional[datetime],
        min_confirmations: int,
    ) -> Optional[PaymentRecord]:
        ...


class AddressDeriver(Protocol):
    def derive(self, index: int) -> str:
        ...


class Notifier(Protocol):
    """Out-of-band channel the verification workflows hand tokens to."""

    def send_new_user_verification(self, email: str, username: str, token: str) -> None:
        ...

    def send_reset_password(self, email: str, token: str) -> None:
        ...

    def send_update_key_verification(self, email: str, public_key: str, token: str) -> None:
        ...

    def send_user_locked(self, email: str, token: Optional[str]) -> None:
        ...

    def send_password_changed(self, email: str) -> None:
        ...
