"""Fakes and helpers shared by the test modules."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Tuple

import nacl.signing
from fastapi.testclient import TestClient

from gatehouse.domain.errors import PaymentBackendError
from gatehouse.domain.ports.persistence import PaymentRecord

PAYWALL_AMOUNT = 10_000_000
PASSWORD = "correct horse battery"
API = "/api/v1"


class FakeClock:
    def __init__(self) -> None:
        self.now = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class RecordingNotifier:
    """Collects outgoing notifications instead of sending them."""

    def __init__(self) -> None:
        self.sent: List[Tuple[str, str, Optional[str]]] = []

    def send_new_user_verification(self, email: str, username: str, token: str) -> None:
        self.sent.append(("new_user", email, token))

    def send_reset_password(self, email: str, token: str) -> None:
        self.sent.append(("reset_password", email, token))

    def send_update_key_verification(self, email: str, public_key: str, token: str) -> None:
        self.sent.append(("update_key", email, token))

    def send_user_locked(self, email: str, token: Optional[str]) -> None:
        self.sent.append(("user_locked", email, token))

    def send_password_changed(self, email: str) -> None:
        self.sent.append(("password_changed", email, None))

    def of_kind(self, kind: str) -> List[Tuple[str, str, Optional[str]]]:
        return [item for item in self.sent if item[0] == kind]

    def last_token(self, kind: str) -> Optional[str]:
        items = self.of_kind(kind)
        return items[-1][2] if items else None


class FakePaymentLookup:
    def __init__(self) -> None:
        self.payments: Dict[str, PaymentRecord] = {}
        self.calls: List[Tuple[str, int, Optional[datetime], int]] = []
        self.fail = False

    def pay(self, address: str, tx_id: str = "tx-1", amount: int = PAYWALL_AMOUNT) -> None:
        self.payments[address] = PaymentRecord(tx_id=tx_id, amount=amount, confirmations=6)

    def find_payment(
        self,
        address: str,
        amount: int,
        not_before: Optional[datetime],
        min_confirmations: int,
    ) -> Optional[PaymentRecord]:
        self.calls.append((address, amount, not_before, min_confirmations))
        if self.fail:
            raise PaymentBackendError("explorer unavailable")
        record = self.payments.get(address)
        if record is None or record.amount < amount:
            return None
        return record


class FakeAddressDeriver:
    def __init__(self) -> None:
        self.calls: List[int] = []

    def derive(self, index: int) -> str:
        self.calls.append(index)
        return f"Dsaddr{index:04d}"


class ClientKey:
    """An ed25519 key pair as a client would hold it."""

    def __init__(self) -> None:
        self.signing_key = nacl.signing.SigningKey.generate()

    @property
    def public_key(self) -> str:
        return self.signing_key.verify_key.encode().hex()

    def sign(self, message: str) -> str:
        return self.signing_key.sign(message.encode("utf-8")).signature.hex()


def csrf_headers(client: TestClient) -> Dict[str, str]:
    """Prime the anti-forgery cookie if needed and return the matching header."""
    token = client.cookies.get("_csrf")
    if not token:
        client.get(f"{API}/version")
        token = client.cookies.get("_csrf")
    return {"X-CSRF-Token": token}


def post(client: TestClient, path: str, payload: Optional[dict] = None):
    return client.post(f"{API}{path}", json=payload or {}, headers=csrf_headers(client))


def put(client: TestClient, path: str, payload: Optional[dict] = None):
    return client.put(f"{API}{path}", json=payload or {}, headers=csrf_headers(client))


def get(client: TestClient, path: str, **params):
    return client.get(f"{API}{path}", params=params or None)
