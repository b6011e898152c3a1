"""Typed session payload stored server-side for each cookie session."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from pydantic import BaseModel, ConfigDict


class SessionPayload(BaseModel):
    """The only value a session binds: the authenticated user's id."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    user_id: str


@dataclass(slots=True)
class SessionRecord:
    session_id: str
    payload: str
    created_at: datetime
    expires_at: datetime
