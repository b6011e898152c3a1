"""bcrypt password hashing."""

from __future__ import annotations

from typing import Optional

import bcrypt


class PasswordHasher:
    def __init__(self, rounds: int = 12) -> None:
        self.rounds = rounds
        self._dummy_hash: Optional[bytes] = None

    def hash(self, password: str) -> str:
        return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=self.rounds)).decode("utf-8")

    def verify(self, password: str, password_hash: str) -> bool:
        try:
            return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
        except ValueError:
            return False

    def burn(self, password: str) -> None:
        """Spend a verification's worth of time for a login with no matching user."""
        if self._dummy_hash is None:
            self._dummy_hash = bcrypt.hashpw(b"not-a-real-password", bcrypt.gensalt(rounds=self.rounds))
        bcrypt.checkpw(password.encode("utf-8")[:72], self._dummy_hash)
