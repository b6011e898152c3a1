"""Error taxonomy shared by every workflow.

User errors carry a numeric code plus an optional context list so remote
callers can branch on the code instead of parsing prose. Server errors wrap
collaborator failures and are reported without internal detail.
"""

from __future__ import annotations

from enum import IntEnum
from typing import Iterable, List, Optional


class ErrorStatus(IntEnum):
    INVALID_INPUT = 1
    INVALID_CREDENTIALS = 2
    NOT_LOGGED_IN = 3
    UNAUTHORIZED = 4
    DUPLICATE_EMAIL = 5
    DUPLICATE_USERNAME = 6
    MALFORMED_USERNAME = 7
    MALFORMED_PASSWORD = 8
    INVALID_PUBLIC_KEY = 9
    DUPLICATE_PUBLIC_KEY = 10
    INVALID_SIGNATURE = 11
    NO_PENDING_IDENTITY = 12
    VERIFICATION_TOKEN_INVALID = 13
    VERIFICATION_TOKEN_EXPIRED = 14
    VERIFICATION_TOKEN_UNEXPIRED = 15
    EMAIL_NOT_VERIFIED = 16
    USER_LOCKED = 17
    USER_DEACTIVATED = 18
    USER_NOT_FOUND = 19
    PAYMENT_NOT_FOUND = 20
    CANNOT_VERIFY_PAYMENT = 21
    INVALID_ADMIN_ACTION = 22
    INVALID_CSRF_TOKEN = 23


class UserError(Exception):
    """A failure the caller can act on."""

    error_code: ErrorStatus = ErrorStatus.INVALID_INPUT

    def __init__(self, *context: str, error_code: Optional[ErrorStatus] = None) -> None:
        if error_code is not None:
            self.error_code = error_code
        self.context: List[str] = [str(item) for item in context]
        super().__init__(self.error_code.name, *self.context)

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} code={self.error_code.name} context={self.context}>"


class InvalidInputError(UserError):
    error_code = ErrorStatus.INVALID_INPUT


class InvalidCredentialsError(UserError):
    error_code = ErrorStatus.INVALID_CREDENTIALS


class NotLoggedInError(UserError):
    error_code = ErrorStatus.NOT_LOGGED_IN


class NoSessionError(NotLoggedInError):
    """The request carries no usable session."""


class UnauthorizedError(UserError):
    error_code = ErrorStatus.UNAUTHORIZED


class DuplicateEmailError(UserError):
    error_code = ErrorStatus.DUPLICATE_EMAIL


class DuplicateUsernameError(UserError):
    error_code = ErrorStatus.DUPLICATE_USERNAME


class MalformedUsernameError(UserError):
    error_code = ErrorStatus.MALFORMED_USERNAME


class MalformedPasswordError(UserError):
    error_code = ErrorStatus.MALFORMED_PASSWORD


class InvalidPublicKeyError(UserError):
    error_code = ErrorStatus.INVALID_PUBLIC_KEY


class DuplicatePublicKeyError(UserError):
    error_code = ErrorStatus.DUPLICATE_PUBLIC_KEY


class InvalidSignatureError(UserError):
    error_code = ErrorStatus.INVALID_SIGNATURE


class NoPendingIdentityError(UserError):
    error_code = ErrorStatus.NO_PENDING_IDENTITY


class VerificationTokenInvalidError(UserError):
    error_code = ErrorStatus.VERIFICATION_TOKEN_INVALID


class VerificationTokenExpiredError(UserError):
    error_code = ErrorStatus.VERIFICATION_TOKEN_EXPIRED


class VerificationTokenUnexpiredError(UserError):
    error_code = ErrorStatus.VERIFICATION_TOKEN_UNEXPIRED


class EmailNotVerifiedError(UserError):
    error_code = ErrorStatus.EMAIL_NOT_VERIFIED


class UserLockedError(UserError):
    error_code = ErrorStatus.USER_LOCKED


class UserDeactivatedError(UserError):
    error_code = ErrorStatus.USER_DEACTIVATED


class UserNotFoundError(UserError):
    error_code = ErrorStatus.USER_NOT_FOUND


class PaymentNotFoundError(UserError):
    error_code = ErrorStatus.PAYMENT_NOT_FOUND


class CannotVerifyPaymentError(UserError):
    error_code = ErrorStatus.CANNOT_VERIFY_PAYMENT


class InvalidAdminActionError(UserError):
    error_code = ErrorStatus.INVALID_ADMIN_ACTION


class InvalidCSRFTokenError(UserError):
    error_code = ErrorStatus.INVALID_CSRF_TOKEN


class ServerError(Exception):
    """A collaborator failed; the request is aborted without detail."""


class StoreFailure(ServerError):
    """Credential store I/O failed."""


class SessionStoreError(ServerError):
    """Session backing store I/O failed."""


class NotificationError(ServerError):
    """An outbound notification could not be delivered."""


class PaymentBackendError(ServerError):
    """The transaction lookup backend failed or timed out."""


def field_context(locations: Iterable[Iterable[object]]) -> List[str]:
    """Render pydantic error locations as dotted field paths."""
    paths = []
    for loc in locations:
        parts = [str(part) for part in loc if part not in ("body", "query", "path")]
        paths.append(".".join(parts) or "body")
    return paths
