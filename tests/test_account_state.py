import pytest

from gatehouse.domain import account_state
from gatehouse.domain.errors import (
    EmailNotVerifiedError,
    InvalidAdminActionError,
    InvalidCredentialsError,
    UnauthorizedError,
    UserDeactivatedError,
    UserLockedError,
)
from gatehouse.domain.models import User


def make_user(**overrides) -> User:
    user = User(email="a@x.com", username="alice", password_hash="x", email_verified=True)
    for name, value in overrides.items():
        setattr(user, name, value)
    return user


@pytest.mark.parametrize(
    "flags, password_ok, expected",
    [
        ({"deactivated": True}, False, InvalidCredentialsError),
        ({"deactivated": True, "locked": True}, False, InvalidCredentialsError),
        ({"locked": True}, True, UserLockedError),
        ({"locked": True}, False, UserLockedError),
        ({}, False, InvalidCredentialsError),
        ({"email_verified": False}, False, InvalidCredentialsError),
        ({"email_verified": False}, True, EmailNotVerifiedError),
        ({"deactivated": True}, True, UserDeactivatedError),
        ({"deactivated": True, "locked": True}, True, UserDeactivatedError),
        ({"deactivated": True, "email_verified": False}, True, UserDeactivatedError),
    ],
)
def test_check_login_decision_order(flags, password_ok, expected):
    with pytest.raises(expected):
        account_state.check_login(make_user(**flags), password_ok)


def test_check_login_accepts_verified_user():
    account_state.check_login(make_user(), True)


def test_failed_logins_lock_at_threshold():
    user = make_user()
    results = [account_state.register_failed_login(user, threshold=5) for _ in range(5)]

    assert results == [False, False, False, False, True]
    assert user.locked
    assert user.failed_login_attempts == 5
    assert account_state.register_failed_login(user, threshold=5) is False
    assert user.failed_login_attempts == 5


def test_successful_login_resets_counter(clock):
    user = make_user(failed_login_attempts=3)

    previous = account_state.register_successful_login(user, clock())

    assert previous is None
    assert user.failed_login_attempts == 0
    assert user.last_login_time == clock()


def test_unlock_clears_flag_and_counter():
    user = make_user(locked=True, failed_login_attempts=5)
    account_state.unlock(user)
    assert not user.locked
    assert user.failed_login_attempts == 0


def test_admin_transitions_reject_no_ops():
    user = make_user()
    with pytest.raises(InvalidAdminActionError):
        account_state.reactivate(user)
    account_state.deactivate(user)
    with pytest.raises(InvalidAdminActionError):
        account_state.deactivate(user)
    account_state.lock(user)
    with pytest.raises(InvalidAdminActionError):
        account_state.lock(user)


def test_payment_is_monotonic(clock):
    user = make_user(paywall_poll_expiry=clock())

    assert account_state.mark_paid(user, "tx-1") is True
    assert account_state.mark_paid(user, "tx-2") is False
    assert user.paywall_tx_id == "tx-1"
    assert user.paywall_poll_expiry is None
    assert account_state.has_paid(user, paywall_enabled=True)


def test_disabled_paywall_counts_as_paid():
    assert account_state.has_paid(make_user(), paywall_enabled=False)
    assert not account_state.has_paid(make_user(), paywall_enabled=True)


def test_state_labels():
    assert account_state.state_of(make_user(email_verified=False)).label == "pending"
    assert account_state.state_of(make_user()).label == "verified"
    assert account_state.state_of(make_user(locked=True)).label == "locked"
    assert account_state.state_of(make_user(deactivated=True, locked=True)).label == "deactivated"


def test_require_admin():
    with pytest.raises(UnauthorizedError):
        account_state.require_admin(None)
    with pytest.raises(UnauthorizedError):
        account_state.require_admin(make_user())
    admin = make_user(admin=True)
    assert account_state.require_admin(admin) is admin
