"""API router for account self-service."""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends

from ....application.services.account_service import AccountService
from ....application.services.paywall_service import PaymentStatus, PaywallService
from ....application.services.profile_service import ProfileService
from ....core.dependencies import (
    get_account_service,
    get_paywall_service,
    get_profile_service,
)
from ....domain.models import User
from ..dependencies import optional_user, require_login
from ..schemas.user_schemas import (
    ChangePasswordRequest,
    ChangeUsernameRequest,
    EditUserRequest,
    FullUserResponse,
    MeResponse,
    NewUserRequest,
    NewUserResponse,
    PaymentStatusResponse,
    PublicUserResponse,
    ResendVerificationRequest,
    ResetPasswordRequest,
    UpdateUserKeyRequest,
    UserDetailsResponse,
    VerificationTokenResponse,
    VerifyResetPasswordRequest,
    VerifyUpdateUserKeyRequest,
)
from .meta import API_ROUTE

router = APIRouter(prefix=f"{API_ROUTE}/user", tags=["Users"])


@router.post("/new", response_model=NewUserResponse)
def new_user(
    payload: NewUserRequest,
    accounts: AccountService = Depends(get_account_service),
) -> NewUserResponse:
    result = accounts.new_user(payload.email, payload.username, payload.password, payload.public_key)
    user = result.user
    return NewUserResponse(
        paywall_address=user.paywall_address,
        paywall_amount=user.paywall_amount,
        paywall_tx_not_before=user.paywall_tx_not_before,
        verification_token=result.verification_token,
    )


@router.get("/verify")
def verify_new_user(
    email: str,
    verificationtoken: str,
    signature: str,
    accounts: AccountService = Depends(get_account_service),
) -> dict:
    accounts.verify_new_user(email, verificationtoken, signature)
    return {}


@router.post("/new/resend", response_model=VerificationTokenResponse)
def resend_verification(
    payload: ResendVerificationRequest,
    accounts: AccountService = Depends(get_account_service),
) -> VerificationTokenResponse:
    result = accounts.resend_verification(payload.email, payload.public_key, payload.new_email)
    return VerificationTokenResponse(verification_token=result.verification_token)


@router.post("/password/reset", response_model=VerificationTokenResponse)
def request_password_reset(
    payload: ResetPasswordRequest,
    accounts: AccountService = Depends(get_account_service),
) -> VerificationTokenResponse:
    token = accounts.request_password_reset(payload.email)
    return VerificationTokenResponse(verification_token=token)


@router.post("/password/reset/verify")
def reset_password(
    payload: VerifyResetPasswordRequest,
    accounts: AccountService = Depends(get_account_service),
) -> dict:
    accounts.reset_password(payload.email, payload.verification_token, payload.new_password)
    return {}


@router.get("/me", response_model=MeResponse)
def me(
    user: User = Depends(require_login),
    paywall: PaywallService = Depends(get_paywall_service),
) -> MeResponse:
    return MeResponse(user=FullUserResponse.from_user(user, paid=paywall.has_paid(user)))


@router.post("/key", response_model=VerificationTokenResponse)
def update_user_key(
    payload: UpdateUserKeyRequest,
    user: User = Depends(require_login),
    profiles: ProfileService = Depends(get_profile_service),
) -> VerificationTokenResponse:
    token = profiles.update_user_key(user, payload.public_key)
    return VerificationTokenResponse(verification_token=token)


@router.post("/key/verify")
def verify_update_user_key(
    payload: VerifyUpdateUserKeyRequest,
    user: User = Depends(require_login),
    profiles: ProfileService = Depends(get_profile_service),
) -> dict:
    user = profiles.verify_update_user_key(user, payload.verification_token, payload.signature)
    return {"public_key": user.public_key}


@router.post("/username/change")
def change_username(
    payload: ChangeUsernameRequest,
    user: User = Depends(require_login),
    profiles: ProfileService = Depends(get_profile_service),
) -> dict:
    user = profiles.change_username(user, payload.password, payload.new_username)
    return {"username": user.username}


@router.post("/password/change")
def change_password(
    payload: ChangePasswordRequest,
    user: User = Depends(require_login),
    profiles: ProfileService = Depends(get_profile_service),
) -> dict:
    profiles.change_password(user, payload.current_password, payload.new_password)
    return {}


@router.get("/verifypayment", response_model=PaymentStatusResponse)
def verify_payment(
    user: User = Depends(require_login),
    paywall: PaywallService = Depends(get_paywall_service),
) -> PaymentStatusResponse:
    return payment_status_response(paywall.check_payment(user.id))


@router.post("/edit")
def edit_user(
    payload: EditUserRequest,
    user: User = Depends(require_login),
    profiles: ProfileService = Depends(get_profile_service),
) -> dict:
    user = profiles.edit_user(user, payload.email_notifications)
    return {"email_notifications": user.email_notifications}


@router.get("/{user_id}", response_model=UserDetailsResponse)
def user_details(
    user_id: UUID,
    viewer: Optional[User] = Depends(optional_user),
    profiles: ProfileService = Depends(get_profile_service),
    paywall: PaywallService = Depends(get_paywall_service),
) -> UserDetailsResponse:
    target, full = profiles.user_details(str(user_id), viewer)
    if full:
        view = FullUserResponse.from_user(
            target,
            paid=paywall.has_paid(target),
            include_notes=viewer.admin,
        )
        return UserDetailsResponse(user=view)
    return UserDetailsResponse(user=PublicUserResponse.from_user(target))


def payment_status_response(status: PaymentStatus) -> PaymentStatusResponse:
    return PaymentStatusResponse(
        paid=status.paid,
        amount=status.amount,
        tx_id=status.tx_id,
        address=status.address,
        tx_not_before=status.tx_not_before,
    )
