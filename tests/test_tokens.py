from datetime import timedelta

import pytest

from gatehouse.domain import tokens
from gatehouse.domain.errors import VerificationTokenExpiredError, VerificationTokenInvalidError
from gatehouse.domain.models import User
from gatehouse.domain.tokens import TokenPurpose
from support import FakeClock

TTL = timedelta(hours=24)


@pytest.fixture
def user():
    return User(email="a@x.com", username="alice", password_hash="x")


def test_issue_stores_only_a_digest(user, clock: FakeClock):
    raw = tokens.issue(user, TokenPurpose.NEW_USER, clock(), TTL)

    assert len(raw) == 64
    assert user.new_user_token.digest == tokens.hash_token(raw)
    assert user.new_user_token.digest != raw
    assert user.new_user_token.expires_at == clock() + TTL


def test_issuing_again_supersedes_the_previous_token(user, clock):
    first = tokens.issue(user, TokenPurpose.RESET_PASSWORD, clock(), TTL)
    second = tokens.issue(user, TokenPurpose.RESET_PASSWORD, clock(), TTL)

    assert first != second
    with pytest.raises(VerificationTokenInvalidError):
        tokens.redeem(user, TokenPurpose.RESET_PASSWORD, first, clock())
    tokens.redeem(user, TokenPurpose.RESET_PASSWORD, second, clock())
    assert user.reset_password_token is None


def test_purposes_do_not_share_slots(user, clock):
    raw = tokens.issue(user, TokenPurpose.UPDATE_KEY, clock(), TTL)

    with pytest.raises(VerificationTokenInvalidError):
        tokens.redeem(user, TokenPurpose.NEW_USER, raw, clock())
    assert tokens.is_unexpired(user, TokenPurpose.UPDATE_KEY, clock())


def test_redeem_without_token_is_invalid(user, clock):
    with pytest.raises(VerificationTokenInvalidError):
        tokens.redeem(user, TokenPurpose.NEW_USER, "anything", clock())


def test_empty_presented_value_is_invalid(user, clock):
    tokens.issue(user, TokenPurpose.NEW_USER, clock(), TTL)
    with pytest.raises(VerificationTokenInvalidError):
        tokens.redeem(user, TokenPurpose.NEW_USER, "", clock())
    assert user.new_user_token is not None


def test_expired_redeem_clears_the_slot(user, clock):
    raw = tokens.issue(user, TokenPurpose.NEW_USER, clock(), TTL)
    clock.advance(hours=24)

    with pytest.raises(VerificationTokenExpiredError) as excinfo:
        tokens.redeem(user, TokenPurpose.NEW_USER, raw, clock())
    assert excinfo.value.context == [clock().isoformat()]
    assert user.new_user_token is None

    with pytest.raises(VerificationTokenInvalidError):
        tokens.redeem(user, TokenPurpose.NEW_USER, raw, clock())


def test_check_does_not_consume(user, clock):
    raw = tokens.issue(user, TokenPurpose.UPDATE_KEY, clock(), TTL)

    tokens.check(user, TokenPurpose.UPDATE_KEY, raw, clock())

    assert user.update_key_token is not None


def test_expire_forces_token_past_expiry(user, clock):
    raw = tokens.issue(user, TokenPurpose.NEW_USER, clock(), TTL)

    assert tokens.expire(user, TokenPurpose.NEW_USER, clock()) is True
    assert not tokens.is_unexpired(user, TokenPurpose.NEW_USER, clock())
    with pytest.raises(VerificationTokenExpiredError):
        tokens.redeem(user, TokenPurpose.NEW_USER, raw, clock())


def test_expire_without_token(user, clock):
    assert tokens.expire(user, TokenPurpose.RESET_PASSWORD, clock()) is False
