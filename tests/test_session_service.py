from datetime import timedelta
from typing import Dict, Optional

import pytest
from starlette.requests import Request
from starlette.responses import Response

from gatehouse.application.services.session_service import SESSION_COOKIE, SessionService
from gatehouse.domain.errors import NoSessionError, NotLoggedInError
from gatehouse.domain.models import SessionRecord
from gatehouse.infrastructure.persistence.sqlite import SQLiteSessionStore


def request_with(cookies: Optional[Dict[str, str]] = None) -> Request:
    headers = []
    if cookies:
        value = "; ".join(f"{name}={token}" for name, token in cookies.items())
        headers.append((b"cookie", value.encode("latin-1")))
    return Request({"type": "http", "method": "GET", "path": "/", "headers": headers})


def cookie_from(response: Response, name: str) -> Optional[str]:
    for raw in response.headers.getlist("set-cookie"):
        if raw.startswith(f"{name}="):
            return raw.split(";", 1)[0].split("=", 1)[1]
    return None


@pytest.fixture
def store(tmp_path):
    store = SQLiteSessionStore(tmp_path / "sessions.db")
    yield store
    store.close()


@pytest.fixture
def sessions(store, users, clock):
    return SessionService(
        store, users, "session-secret-for-tests-0123456789", max_age=3600, cookie_secure=False, clock=clock
    )


def login(sessions: SessionService, user_id: str, previous: Optional[str] = None) -> str:
    response = Response()
    cookies = {SESSION_COOKIE: previous} if previous else None
    sessions.create_session(request_with(cookies), response, user_id)
    return cookie_from(response, SESSION_COOKIE)


def test_resolve_returns_bound_user_id(sessions):
    cookie = login(sessions, "user-1")
    assert sessions.resolve_session(request_with({SESSION_COOKIE: cookie})) == "user-1"


def test_cookie_flags(sessions):
    response = Response()
    sessions.create_session(request_with(), response, "user-1")
    raw = response.headers.getlist("set-cookie")[0].lower()
    assert "httponly" in raw
    assert "samesite=lax" in raw
    assert "max-age=3600" in raw


def test_new_session_replaces_previous(sessions):
    first = login(sessions, "user-1")
    second = login(sessions, "user-1", previous=first)

    assert first != second
    with pytest.raises(NoSessionError):
        sessions.resolve_session(request_with({SESSION_COOKIE: first}))
    assert sessions.resolve_session(request_with({SESSION_COOKIE: second})) == "user-1"


@pytest.mark.parametrize("cookie", [None, "garbage", "a.b.c"])
def test_missing_or_malformed_cookie(sessions, cookie):
    cookies = {SESSION_COOKIE: cookie} if cookie else None
    with pytest.raises(NoSessionError):
        sessions.resolve_session(request_with(cookies))


def test_cookie_signed_with_other_secret(store, users, clock, sessions):
    other = SessionService(
        store, users, "another-session-secret-for-tests-0123", cookie_secure=False, clock=clock
    )
    cookie = login(other, "user-1")
    with pytest.raises(NoSessionError):
        sessions.resolve_session(request_with({SESSION_COOKIE: cookie}))


def test_expired_session(sessions, clock):
    cookie = login(sessions, "user-1")
    clock.advance(seconds=3600)
    with pytest.raises(NoSessionError):
        sessions.resolve_session(request_with({SESSION_COOKIE: cookie}))


def test_payload_shape_mismatch_fails_closed(sessions, store, clock):
    cookie = login(sessions, "user-1")
    session_id = sessions._session_id_from_cookie(request_with({SESSION_COOKIE: cookie}))
    store.save(
        SessionRecord(
            session_id=session_id,
            payload='{"user_id": "user-1", "admin": true}',
            created_at=clock(),
            expires_at=clock() + timedelta(hours=1),
        )
    )
    with pytest.raises(NoSessionError):
        sessions.resolve_session(request_with({SESSION_COOKIE: cookie}))


def test_resolve_user_for_missing_user(sessions):
    cookie = login(sessions, "ghost")
    with pytest.raises(NotLoggedInError):
        sessions.resolve_user(request_with({SESSION_COOKIE: cookie}))


def test_deactivated_user_loses_session_on_resolution(sessions, verified_user, users):
    user, _ = verified_user()
    cookie = login(sessions, user.id)
    user.deactivated = True
    users.update(user)

    request = request_with({SESSION_COOKIE: cookie})
    with pytest.raises(NotLoggedInError):
        sessions.resolve_user(request)
    assert request.state.expired_cookies == [SESSION_COOKIE]

    user.deactivated = False
    users.update(user)
    with pytest.raises(NoSessionError):
        sessions.resolve_user(request_with({SESSION_COOKIE: cookie}))


def test_destroy_is_idempotent(sessions):
    sessions.destroy_session(request_with(), Response())

    cookie = login(sessions, "user-1")
    request = request_with({SESSION_COOKIE: cookie})
    sessions.destroy_session(request, Response())
    sessions.destroy_session(request, Response())
    with pytest.raises(NoSessionError):
        sessions.resolve_session(request)


def test_resolve_has_no_side_effects(sessions, store):
    cookie = login(sessions, "user-1")
    session_id = sessions._session_id_from_cookie(request_with({SESSION_COOKIE: cookie}))
    before = store.load(session_id)
    sessions.resolve_session(request_with({SESSION_COOKIE: cookie}))
    assert store.load(session_id) == before


def test_purge_expired(sessions, store, clock):
    login(sessions, "user-1")
    clock.advance(hours=2)
    login(sessions, "user-2")
    assert sessions.purge_expired() == 1
