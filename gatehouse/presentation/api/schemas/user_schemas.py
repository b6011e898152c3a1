"""Pydantic schemas for user API endpoints."""

from datetime import datetime
from typing import List, Optional, Union

from pydantic import BaseModel, EmailStr

from gatehouse.domain.models import User


class NewUserRequest(BaseModel):
    email: EmailStr
    username: str
    password: str
    public_key: str


class NewUserResponse(BaseModel):
    paywall_address: Optional[str] = None
    paywall_amount: int = 0
    paywall_tx_not_before: Optional[datetime] = None
    verification_token: Optional[str] = None


class ResendVerificationRequest(BaseModel):
    """Request schema to resend the new-user token.

    ``new_email`` moves a pending account to a different address.
    """

    email: EmailStr
    public_key: str
    new_email: Optional[EmailStr] = None


class VerificationTokenResponse(BaseModel):
    """Acknowledgement that carries the raw token on development instances."""

    verification_token: Optional[str] = None


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class ResetPasswordRequest(BaseModel):
    email: EmailStr


class VerifyResetPasswordRequest(BaseModel):
    email: EmailStr
    verification_token: str
    new_password: str


class ChangePasswordRequest(BaseModel):
    current_password: str
    new_password: str


class ChangeUsernameRequest(BaseModel):
    password: str
    new_username: str


class UpdateUserKeyRequest(BaseModel):
    public_key: str


class VerifyUpdateUserKeyRequest(BaseModel):
    verification_token: str
    signature: str


class EditUserRequest(BaseModel):
    email_notifications: int


class IdentityResponse(BaseModel):
    public_key: str
    activated: Optional[datetime] = None
    deactivated: Optional[datetime] = None


class PublicUserResponse(BaseModel):
    """What anyone may see about an account."""

    id: str
    username: str
    identities: List[IdentityResponse]

    @classmethod
    def from_user(cls, user: User) -> "PublicUserResponse":
        return cls(id=user.id, username=user.username, identities=_identities(user))


class FullUserResponse(PublicUserResponse):
    """The account as its owner and admins see it. Token values never appear."""

    email: str
    public_key: Optional[str] = None
    admin: bool
    email_verified: bool
    locked: bool
    deactivated: bool
    failed_login_attempts: int
    last_login_time: Optional[datetime] = None
    created_at: datetime
    paid: bool
    paywall_address: Optional[str] = None
    paywall_amount: int
    paywall_tx_not_before: Optional[datetime] = None
    paywall_poll_expiry: Optional[datetime] = None
    paywall_tx_id: Optional[str] = None
    proposal_credits: int
    email_notifications: int
    new_user_token_expiry: Optional[datetime] = None
    update_key_token_expiry: Optional[datetime] = None
    reset_password_token_expiry: Optional[datetime] = None
    admin_notes: Optional[List[str]] = None

    @classmethod
    def from_user(cls, user: User, *, paid: bool = False, include_notes: bool = False) -> "FullUserResponse":
        return cls(
            id=user.id,
            username=user.username,
            identities=_identities(user),
            email=user.email,
            public_key=user.public_key,
            admin=user.admin,
            email_verified=user.email_verified,
            locked=user.locked,
            deactivated=user.deactivated,
            failed_login_attempts=user.failed_login_attempts,
            last_login_time=user.last_login_time,
            created_at=user.created_at,
            paid=paid,
            paywall_address=user.paywall_address,
            paywall_amount=user.paywall_amount,
            paywall_tx_not_before=user.paywall_tx_not_before,
            paywall_poll_expiry=user.paywall_poll_expiry,
            paywall_tx_id=user.paywall_tx_id,
            proposal_credits=user.proposal_credits,
            email_notifications=user.email_notifications,
            new_user_token_expiry=_expiry(user.new_user_token),
            update_key_token_expiry=_expiry(user.update_key_token),
            reset_password_token_expiry=_expiry(user.reset_password_token),
            admin_notes=list(user.admin_notes) if include_notes else None,
        )


class LoginResponse(BaseModel):
    user: FullUserResponse
    last_login_time: Optional[datetime] = None
    session_max_age: int


class UserDetailsResponse(BaseModel):
    user: Union[FullUserResponse, PublicUserResponse]


class MeResponse(BaseModel):
    user: FullUserResponse


class PaymentStatusResponse(BaseModel):
    paid: bool
    amount: int
    tx_id: Optional[str] = None
    address: Optional[str] = None
    tx_not_before: Optional[datetime] = None


def _identities(user: User) -> List[IdentityResponse]:
    return [
        IdentityResponse(
            public_key=identity.public_key,
            activated=identity.activated,
            deactivated=identity.deactivated,
        )
        for identity in user.identities
        if not identity.is_pending
    ]


def _expiry(token) -> Optional[datetime]:
    return token.expires_at if token is not None else None
