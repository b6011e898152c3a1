from fastapi import APIRouter, Depends, Request, Response

from ....application.services.paywall_service import PaywallService
from ....core.dependencies import get_paywall_service
from ....domain import policy
from ..csrf import CSRF_COOKIE, CSRF_HEADER
from ..schemas.meta import PolicyResponse, VersionResponse

API_VERSION = 1
API_ROUTE = "/api/v1"

router = APIRouter(prefix=API_ROUTE, tags=["Meta"])


@router.get("/version", response_model=VersionResponse)
def version(
    request: Request,
    response: Response,
    paywall: PaywallService = Depends(get_paywall_service),
) -> VersionResponse:
    # Clients without the cookie get a fresh token from the middleware.
    token = request.cookies.get(CSRF_COOKIE)
    if token:
        response.headers[CSRF_HEADER] = token
    return VersionResponse(version=API_VERSION, route=API_ROUTE, paywall_enabled=paywall.enabled)


@router.get("/policy", response_model=PolicyResponse)
def get_policy(paywall: PaywallService = Depends(get_paywall_service)) -> PolicyResponse:
    return PolicyResponse(**policy.describe(paywall.amount, paywall.enabled))
