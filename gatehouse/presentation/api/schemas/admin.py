from typing import List, Optional

from pydantic import BaseModel

from .user_schemas import FullUserResponse, PaymentStatusResponse


class ManageUserRequest(BaseModel):
    user_id: str
    action: str
    reason: str
    amount: Optional[int] = None


class ManageUserResponse(BaseModel):
    user: FullUserResponse


class UserListResponse(BaseModel):
    users: List[FullUserResponse]
    total_matches: int
    next_cursor: Optional[str] = None


class RescanPaymentsRequest(BaseModel):
    user_id: str


class RescanPaymentsResponse(PaymentStatusResponse):
    user_id: str
