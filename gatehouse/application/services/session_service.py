from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta
from typing import Callable, Optional

import jwt
from fastapi import Request, Response
from pydantic import ValidationError

from ...domain.errors import NoSessionError, NotLoggedInError
from ...domain.models import SessionPayload, SessionRecord, User, utcnow
from ...domain.ports.persistence import CredentialStore, SessionRepository

logger = logging.getLogger(__name__)

SESSION_COOKIE = "session"
_ALGORITHM = "HS256"


class SessionService:
    """Binds an opaque cookie to a server-side session record.

    The cookie only carries a signed session id; the user id lives in the
    session store so that destroying the record revokes the cookie.
    """

    def __init__(
        self,
        store: SessionRepository,
        users: CredentialStore,
        secret_key: str,
        *,
        max_age: int = 86400,
        cookie_secure: bool = True,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        if not secret_key:
            raise RuntimeError("SESSION_SECRET is not configured.")
        if secret_key == "change-me":
            logger.warning("SESSION_SECRET is using the default value. Configure a real secret in production.")
        self._store = store
        self._users = users
        self._secret_key = secret_key
        self._max_age = max_age
        self._cookie_secure = cookie_secure
        self._clock = clock

    @property
    def max_age(self) -> int:
        return self._max_age

    # ------------------------------------------------------------------
    def create_session(self, request: Request, response: Response, user_id: str) -> str:
        """Start a session for ``user_id``, replacing any session the request carried."""
        previous = self._session_id_from_cookie(request)
        if previous:
            self._store.delete(previous)

        now = self._clock()
        session_id = secrets.token_urlsafe(32)
        payload = SessionPayload(user_id=user_id)
        self._store.save(
            SessionRecord(
                session_id=session_id,
                payload=payload.model_dump_json(),
                created_at=now,
                expires_at=now + timedelta(seconds=self._max_age),
            )
        )
        response.set_cookie(
            SESSION_COOKIE,
            jwt.encode({"sid": session_id}, self._secret_key, algorithm=_ALGORITHM),
            max_age=self._max_age,
            path="/",
            secure=self._cookie_secure,
            httponly=True,
            samesite="lax",
        )
        logger.debug("Created session for user %s", user_id)
        return session_id

    def resolve_session(self, request: Request) -> str:
        """Return the user id bound to the request's session."""
        session_id = self._session_id_from_cookie(request)
        if not session_id:
            raise NoSessionError()
        record = self._store.load(session_id)
        if record is None or record.expires_at <= self._clock():
            raise NoSessionError()
        try:
            payload = SessionPayload.model_validate_json(record.payload)
        except ValidationError as exc:
            raise NoSessionError() from exc
        return payload.user_id

    def resolve_user(self, request: Request) -> User:
        """Resolve the session and load its user.

        A deactivated user loses the session on the spot.
        """
        user_id = self.resolve_session(request)
        user = self._users.get_by_id(user_id)
        if user is None:
            raise NotLoggedInError()
        if user.deactivated:
            session_id = self._session_id_from_cookie(request)
            if session_id:
                self._store.delete(session_id)
            request.state.expired_cookies = [SESSION_COOKIE]
            logger.info("Revoked session of deactivated user %s", user.id)
            raise NotLoggedInError()
        return user

    def optional_user(self, request: Request) -> Optional[User]:
        try:
            return self.resolve_user(request)
        except NotLoggedInError:
            return None

    def destroy_session(self, request: Request, response: Response) -> None:
        """Expire the request's session. Does nothing without one."""
        session_id = self._session_id_from_cookie(request)
        if session_id:
            self._store.delete(session_id)
        if SESSION_COOKIE in request.cookies:
            response.delete_cookie(
                SESSION_COOKIE,
                path="/",
                secure=self._cookie_secure,
                httponly=True,
                samesite="lax",
            )

    def purge_expired(self) -> int:
        return self._store.purge_expired(self._clock())

    def _session_id_from_cookie(self, request: Request) -> Optional[str]:
        token = request.cookies.get(SESSION_COOKIE)
        if not token:
            return None
        try:
            claims = jwt.decode(token, self._secret_key, algorithms=[_ALGORITHM])
        except jwt.InvalidTokenError:
            return None
        session_id = claims.get("sid")
        if not isinstance(session_id, str) or not session_id:
            return None
        return session_id
