import threading
from datetime import timedelta

import pytest

from gatehouse.domain.errors import DuplicateEmailError, DuplicateUsernameError
from gatehouse.domain.models import Identity, User, VerificationToken
from gatehouse.domain.ports.persistence import UserFilter


def make_user(index: int, **overrides) -> User:
    user = User(
        email=f"user{index}@x.com",
        username=f"user{index}",
        password_hash="hash",
        paywall_address_index=index,
        identities=[Identity(public_key=f"{index:064x}")],
    )
    for name, value in overrides.items():
        setattr(user, name, value)
    return user


def test_round_trip_preserves_every_field(users, clock):
    now = clock()
    user = make_user(
        1,
        admin=True,
        last_login_time=now,
        identities=[
            Identity(public_key="aa" * 32, activated=now - timedelta(days=2), deactivated=now),
            Identity(public_key="bb" * 32, activated=now),
            Identity(public_key="cc" * 32),
        ],
        new_user_token=VerificationToken(digest="d1", expires_at=now + timedelta(hours=1)),
        reset_password_token=VerificationToken(digest="d2", expires_at=now),
        paywall_address="Dsaddr",
        paywall_amount=5,
        paywall_poll_expiry=now,
        admin_notes=["note"],
        email_notifications=3,
    )
    users.create(user)

    loaded = users.get_by_id(user.id)

    assert loaded == user
    assert loaded.public_key == "bb" * 32
    assert loaded.pending_identity.public_key == "cc" * 32


def test_lookups_are_case_insensitive(users):
    user = users.create(make_user(1))
    assert users.get_by_email("USER1@X.com").id == user.id
    assert users.get_by_username(" User1 ").id == user.id
    assert users.get_by_public_key(f"{1:064X}").id == user.id
    assert users.get_by_email("nobody@x.com") is None


def test_duplicate_email_and_username(users):
    users.create(make_user(1))
    with pytest.raises(DuplicateEmailError):
        users.create(make_user(2, email="user1@x.com"))
    with pytest.raises(DuplicateUsernameError):
        users.create(make_user(3, username="user1"))


def test_update_maps_duplicate_username(users):
    users.create(make_user(1))
    other = users.create(make_user(2))
    other.username = "user1"
    with pytest.raises(DuplicateUsernameError):
        users.update(other)


def test_next_paywall_index(users):
    assert users.next_paywall_index() == 0
    users.create(make_user(4))
    assert users.next_paywall_index() == 5


def test_search_is_conjunctive_and_ordered(users):
    for index in range(5):
        users.create(make_user(index))
    users.create(make_user(5, email="other@y.com", username="someone"))

    matches = users.search(UserFilter(email="x.com", username="user"), after_index=-1, limit=10)
    assert [user.paywall_address_index for user in matches] == [0, 1, 2, 3, 4]

    after = users.search(UserFilter(email="x.com"), after_index=2, limit=10)
    assert [user.paywall_address_index for user in after] == [3, 4]

    assert users.count(UserFilter(username="some")) == 1
    assert users.count(UserFilter()) == 6


def test_search_escapes_like_wildcards(users):
    users.create(make_user(1, username="a_b"))
    users.create(make_user(2, username="axb"))
    matches = users.search(UserFilter(username="a_b"), after_index=-1, limit=10)
    assert [user.username for user in matches] == ["a_b"]


def test_search_by_public_key_is_exact(users):
    users.create(make_user(1))
    users.create(make_user(2))
    matches = users.search(UserFilter(public_key=f"{2:064x}"), after_index=-1, limit=10)
    assert [user.paywall_address_index for user in matches] == [2]


def test_list_pollable(users, clock):
    now = clock()
    users.create(make_user(1, paywall_address="A1", paywall_poll_expiry=now + timedelta(hours=1)))
    users.create(make_user(2, paywall_address="A2", paywall_poll_expiry=now - timedelta(hours=1)))
    users.create(
        make_user(3, paywall_address="A3", paywall_poll_expiry=now + timedelta(hours=1), paywall_tx_id="tx")
    )

    assert [user.paywall_address for user in users.list_pollable(now)] == ["A1"]


def test_user_locks_are_per_id(users):
    entered = threading.Event()
    with users.user_lock("one"):

        def other() -> None:
            with users.user_lock("two"):
                entered.set()

        thread = threading.Thread(target=other)
        thread.start()
        assert entered.wait(timeout=2)
        thread.join()


def test_user_locks_are_released_after_use(users):
    with users.user_lock("missing-user"):
        assert "missing-user" in users._locks
    assert users._locks == {}


def test_user_lock_serializes_same_id(users):
    order = []
    with users.user_lock("one"):

        def other() -> None:
            with users.user_lock("one"):
                order.append("second")

        thread = threading.Thread(target=other)
        thread.start()
        thread.join(timeout=0.1)
        order.append("first")
    thread.join(timeout=2)

    assert order == ["first", "second"]
    assert users._locks == {}
