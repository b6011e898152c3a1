from __future__ import annotations

import os
import socket
from datetime import timedelta
from typing import Any, Optional

import pytest
from fastapi.testclient import TestClient

from gatehouse.application.services.account_service import AccountService
from gatehouse.application.services.admin_service import AdminService
from gatehouse.application.services.paywall_service import PaywallService
from gatehouse.application.services.profile_service import ProfileService
from gatehouse.core.app_factory import build_container, create_application
from gatehouse.core.config import Settings
from gatehouse.infrastructure.repositories.user_repository import UserRepository
from gatehouse.services.passwords import PasswordHasher
from support import (
    PASSWORD,
    PAYWALL_AMOUNT,
    ClientKey,
    FakeAddressDeriver,
    FakeClock,
    FakePaymentLookup,
    RecordingNotifier,
)


class NetworkBlockedError(RuntimeError):
    pass


def _blocked(*_args: Any, **_kwargs: Any) -> Any:
    raise NetworkBlockedError("Network access is disabled during tests.")


@pytest.fixture(autouse=True)
def _disable_network(monkeypatch: pytest.MonkeyPatch) -> None:
    """Prevent accidental outbound network calls in unit tests."""
    if os.getenv("ALLOW_NETWORK") == "1":
        return
    monkeypatch.setattr(socket, "create_connection", _blocked)
    monkeypatch.setattr(socket, "getaddrinfo", _blocked)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def lookup() -> FakePaymentLookup:
    return FakePaymentLookup()


@pytest.fixture
def deriver() -> FakeAddressDeriver:
    return FakeAddressDeriver()


@pytest.fixture
def hasher() -> PasswordHasher:
    return PasswordHasher(rounds=4)


@pytest.fixture
def users(tmp_path) -> UserRepository:
    return UserRepository(tmp_path / "gatehouse.db")


@pytest.fixture
def paywall(users, lookup, deriver, clock) -> PaywallService:
    return PaywallService(
        users,
        lookup,
        deriver,
        amount=PAYWALL_AMOUNT,
        expiry_hours=24,
        min_confirmations=2,
        clock=clock,
    )


@pytest.fixture
def accounts(users, notifier, paywall, hasher, clock) -> AccountService:
    return AccountService(
        users,
        notifier,
        paywall,
        hasher,
        verification_ttl=timedelta(hours=24),
        reset_ttl=timedelta(hours=24),
        lock_threshold=5,
        clock=clock,
    )


@pytest.fixture
def profiles(users, notifier, hasher, clock) -> ProfileService:
    return ProfileService(users, notifier, hasher, update_key_ttl=timedelta(hours=24), clock=clock)


@pytest.fixture
def admin_service(users, paywall, clock) -> AdminService:
    return AdminService(users, paywall, clock=clock)


@pytest.fixture
def register(accounts, notifier):
    """Create a pending account; returns the user, its key and the emailed token."""

    def _register(email: str = "a@x.com", username: str = "alice", key: Optional[ClientKey] = None):
        key = key or ClientKey()
        result = accounts.new_user(email, username, PASSWORD, key.public_key)
        return result.user, key, notifier.last_token("new_user")

    return _register


@pytest.fixture
def verified_user(register, accounts):
    def _verified(email: str = "a@x.com", username: str = "alice"):
        user, key, token = register(email, username)
        user = accounts.verify_new_user(email, token, key.sign(token))
        return user, key

    return _verified


@pytest.fixture
def make_admin(verified_user, users):
    def _admin(email: str = "root@x.com", username: str = "root"):
        user, _ = verified_user(email, username)
        user.admin = True
        return users.update(user)

    return _admin


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------
@pytest.fixture
def settings(tmp_path, monkeypatch: pytest.MonkeyPatch) -> Settings:
    for key in ("SMTP_HOST", "SMTP_USERNAME", "SMTP_FROM_EMAIL", "CORS_ALLOW_ORIGINS"):
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("DATABASE_PATH", str(tmp_path / "api.db"))
    monkeypatch.setenv("SESSION_SECRET", "session-secret-for-tests-0123456789")
    monkeypatch.setenv("COOKIE_SECURE", "0")
    monkeypatch.setenv("BCRYPT_ROUNDS", "4")
    monkeypatch.setenv("PAYWALL_AMOUNT", str(PAYWALL_AMOUNT))
    monkeypatch.setenv("PAYWALL_POLL_SECONDS", "0")
    monkeypatch.setenv("WALLET_URL", "http://wallet.invalid")
    return Settings()


@pytest.fixture
def container(settings, notifier, lookup, deriver, clock):
    container = build_container(
        settings,
        notifier=notifier,
        payment_lookup=lookup,
        address_deriver=deriver,
        clock=clock,
    )
    yield container
    container.session_store.close()


@pytest.fixture
def make_client(container):
    def _make() -> TestClient:
        return TestClient(create_application(container=container))

    return _make


@pytest.fixture
def client(make_client) -> TestClient:
    return make_client()
