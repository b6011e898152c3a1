from pydantic import BaseModel


class VersionResponse(BaseModel):
    version: int
    route: str
    paywall_enabled: bool


class PolicyResponse(BaseModel):
    min_password_length: int
    min_username_length: int
    max_username_length: int
    username_supported_chars: str
    user_list_page_size: int
    paywall_enabled: bool
    paywall_amount: int
