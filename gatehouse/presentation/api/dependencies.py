from typing import Optional

from fastapi import Depends, Request, Response

from ...application.services.session_service import SessionService
from ...core.dependencies import get_session_service
from ...core.exceptions import expire_cookies
from ...domain.models import User


def require_login(
    request: Request,
    sessions: SessionService = Depends(get_session_service),
) -> User:
    return sessions.resolve_user(request)


def optional_user(
    request: Request,
    response: Response,
    sessions: SessionService = Depends(get_session_service),
) -> Optional[User]:
    user = sessions.optional_user(request)
    # Drops the cookie of a session revoked above.
    expire_cookies(request, response)
    return user
