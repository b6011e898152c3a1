"""Double-submit anti-forgery token."""

from __future__ import annotations

import hmac
import logging
import secrets

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from starlette.status import HTTP_403_FORBIDDEN

from ...core.exceptions import user_error_payload
from ...domain.errors import ErrorStatus

logger = logging.getLogger(__name__)

CSRF_COOKIE = "_csrf"
CSRF_HEADER = "X-CSRF-Token"
SAFE_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})


def issue_csrf_token(response: Response, *, secure: bool = True) -> str:
    """Set a fresh token as a cookie and echo it in the response header."""
    token = secrets.token_urlsafe(32)
    response.set_cookie(CSRF_COOKIE, token, path="/", secure=secure, httponly=False, samesite="lax")
    response.headers[CSRF_HEADER] = token
    return token


def install_csrf_protection(app: FastAPI, *, cookie_secure: bool = True) -> None:
    """Reject unsafe requests whose header does not echo the ``_csrf`` cookie."""

    @app.middleware("http")
    async def csrf_protect(request: Request, call_next):
        cookie = request.cookies.get(CSRF_COOKIE)
        if request.method not in SAFE_METHODS:
            header = request.headers.get(CSRF_HEADER)
            if not cookie or not header or not hmac.compare_digest(cookie, header):
                logger.info("Rejected %s %s without a matching CSRF token", request.method, request.url.path)
                rejection = JSONResponse(
                    status_code=HTTP_403_FORBIDDEN,
                    content=user_error_payload(ErrorStatus.INVALID_CSRF_TOKEN, []),
                )
                if not cookie:
                    issue_csrf_token(rejection, secure=cookie_secure)
                return rejection

        response = await call_next(request)
        if not cookie and not _sets_csrf_cookie(response):
            issue_csrf_token(response, secure=cookie_secure)
        return response


def _sets_csrf_cookie(response: Response) -> bool:
    prefix = f"{CSRF_COOKIE}="
    return any(value.startswith(prefix) for value in response.headers.getlist("set-cookie"))
