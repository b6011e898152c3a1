from fastapi import APIRouter, Depends, Request, Response

from ....application.services.account_service import AccountService
from ....application.services.paywall_service import PaywallService
from ....application.services.session_service import SessionService
from ....core.config import Settings
from ....core.dependencies import (
    get_account_service,
    get_paywall_service,
    get_session_service,
    get_settings,
)
from ..csrf import issue_csrf_token
from ..schemas.user_schemas import FullUserResponse, LoginRequest, LoginResponse
from .meta import API_ROUTE

router = APIRouter(prefix=API_ROUTE, tags=["Authentication"])


@router.post("/login", response_model=LoginResponse)
def login(
    payload: LoginRequest,
    request: Request,
    response: Response,
    accounts: AccountService = Depends(get_account_service),
    sessions: SessionService = Depends(get_session_service),
    paywall: PaywallService = Depends(get_paywall_service),
    settings: Settings = Depends(get_settings),
) -> LoginResponse:
    result = accounts.login(payload.email, payload.password)
    sessions.create_session(request, response, result.user.id)
    issue_csrf_token(response, secure=settings.cookie_secure)
    return LoginResponse(
        user=FullUserResponse.from_user(result.user, paid=paywall.has_paid(result.user)),
        last_login_time=result.last_login_time,
        session_max_age=sessions.max_age,
    )


@router.post("/logout")
def logout(
    request: Request,
    response: Response,
    sessions: SessionService = Depends(get_session_service),
) -> dict:
    sessions.destroy_session(request, response)
    return {}
