from __future__ import annotations

import logging
import time
from typing import Any, Dict, List

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.status import (
    HTTP_400_BAD_REQUEST,
    HTTP_401_UNAUTHORIZED,
    HTTP_403_FORBIDDEN,
    HTTP_500_INTERNAL_SERVER_ERROR,
)

from ..domain.errors import ErrorStatus, ServerError, UserError, field_context

logger = logging.getLogger(__name__)

_STATUS_BY_CODE = {
    ErrorStatus.INVALID_CREDENTIALS: HTTP_401_UNAUTHORIZED,
    ErrorStatus.USER_LOCKED: HTTP_401_UNAUTHORIZED,
    ErrorStatus.EMAIL_NOT_VERIFIED: HTTP_401_UNAUTHORIZED,
    ErrorStatus.USER_DEACTIVATED: HTTP_401_UNAUTHORIZED,
    ErrorStatus.NOT_LOGGED_IN: HTTP_401_UNAUTHORIZED,
    ErrorStatus.UNAUTHORIZED: HTTP_403_FORBIDDEN,
    ErrorStatus.INVALID_CSRF_TOKEN: HTTP_403_FORBIDDEN,
}


def user_error_payload(code: ErrorStatus, context: List[str]) -> Dict[str, Any]:
    return {"errorcode": int(code), "errorname": code.name, "errorcontext": context}


def user_error_response(request: Request, exc: UserError) -> JSONResponse:
    response = JSONResponse(
        status_code=_STATUS_BY_CODE.get(exc.error_code, HTTP_400_BAD_REQUEST),
        content=user_error_payload(exc.error_code, exc.context),
    )
    expire_cookies(request, response)
    return response


def _server_error_response(exc: Exception) -> JSONResponse:
    # Logged with the traceback under the same reference.
    reference = int(time.time())
    logger.error("Server error %s: %s", reference, exc, exc_info=exc)
    return JSONResponse(
        status_code=HTTP_500_INTERNAL_SERVER_ERROR,
        content={"errorcode": reference},
    )


def expire_cookies(request: Request, response: Response) -> None:
    for name in getattr(request.state, "expired_cookies", ()):
        response.delete_cookie(name, path="/")


def register_exception_handlers(app: FastAPI) -> None:
    """Translate domain and framework errors into the JSON error envelope."""

    @app.exception_handler(UserError)
    async def _user_error_handler(request: Request, exc: UserError) -> JSONResponse:
        return user_error_response(request, exc)

    @app.exception_handler(RequestValidationError)
    async def _validation_exception_handler(
        _request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        context = field_context(error.get("loc", ()) for error in exc.errors())
        return JSONResponse(
            status_code=HTTP_400_BAD_REQUEST,
            content=user_error_payload(ErrorStatus.INVALID_INPUT, context),
        )

    @app.exception_handler(StarletteHTTPException)
    async def _http_exception_handler(
        _request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        detail = exc.detail if isinstance(exc.detail, str) else "request failed"
        return JSONResponse(
            status_code=exc.status_code,
            content=user_error_payload(ErrorStatus.INVALID_INPUT, [detail]),
        )

    @app.exception_handler(ServerError)
    async def _server_error_handler(_request: Request, exc: ServerError) -> JSONResponse:
        return _server_error_response(exc)

    @app.exception_handler(Exception)
    async def _unhandled_exception_handler(_request: Request, exc: Exception) -> JSONResponse:
        return _server_error_response(exc)
