from typing import Optional

from fastapi import APIRouter, Depends

from ....application.services.admin_service import AdminService
from ....application.services.paywall_service import PaywallService
from ....core.dependencies import get_admin_service, get_paywall_service
from ....domain.models import User
from ....domain.ports.persistence import UserFilter
from ...api.dependencies import require_login
from ...api.schemas.admin import (
    ManageUserRequest,
    ManageUserResponse,
    RescanPaymentsRequest,
    RescanPaymentsResponse,
    UserListResponse,
)
from ...api.schemas.user_schemas import FullUserResponse
from .meta import API_ROUTE

router = APIRouter(prefix=API_ROUTE, tags=["Administration"])


@router.get("/users", response_model=UserListResponse)
def list_users(
    email: Optional[str] = None,
    username: Optional[str] = None,
    public_key: Optional[str] = None,
    cursor: Optional[str] = None,
    actor: User = Depends(require_login),
    admin: AdminService = Depends(get_admin_service),
    paywall: PaywallService = Depends(get_paywall_service),
) -> UserListResponse:
    user_filter = UserFilter(email=email or None, username=username or None, public_key=public_key or None)
    page = admin.list_users(user_filter, cursor, actor)
    return UserListResponse(
        users=[
            FullUserResponse.from_user(user, paid=paywall.has_paid(user), include_notes=True)
            for user in page.users
        ],
        total_matches=page.total_matches,
        next_cursor=page.next_cursor,
    )


@router.put("/user/payments/rescan", response_model=RescanPaymentsResponse)
def rescan_payments(
    payload: RescanPaymentsRequest,
    actor: User = Depends(require_login),
    admin: AdminService = Depends(get_admin_service),
) -> RescanPaymentsResponse:
    status = admin.rescan_payments(payload.user_id, actor)
    return RescanPaymentsResponse(
        user_id=payload.user_id,
        paid=status.paid,
        amount=status.amount,
        tx_id=status.tx_id,
        address=status.address,
        tx_not_before=status.tx_not_before,
    )


@router.post("/user/manage", response_model=ManageUserResponse)
def manage_user(
    payload: ManageUserRequest,
    actor: User = Depends(require_login),
    admin: AdminService = Depends(get_admin_service),
    paywall: PaywallService = Depends(get_paywall_service),
) -> ManageUserResponse:
    user = admin.manage_user(payload.user_id, payload.action, payload.reason, actor, payload.amount)
    return ManageUserResponse(
        user=FullUserResponse.from_user(user, paid=paywall.has_paid(user), include_notes=True)
    )
