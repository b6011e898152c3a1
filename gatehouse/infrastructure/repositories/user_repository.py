"""SQLite-backed credential store."""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple

from gatehouse.domain.errors import DuplicateEmailError, DuplicateUsernameError, StoreFailure
from gatehouse.domain.models import Identity, User, VerificationToken
from gatehouse.domain.ports.persistence import UserFilter

logger = logging.getLogger(__name__)

_COLUMNS = (
    "id",
    "email",
    "username",
    "password_hash",
    "admin",
    "email_verified",
    "deactivated",
    "locked",
    "failed_login_attempts",
    "last_login_time",
    "created_at",
    "updated_at",
    "identities",
    "new_user_token",
    "new_user_token_expiry",
    "update_key_token",
    "update_key_token_expiry",
    "reset_password_token",
    "reset_password_token_expiry",
    "paywall_address_index",
    "paywall_address",
    "paywall_amount",
    "paywall_tx_not_before",
    "paywall_poll_expiry",
    "paywall_tx_id",
    "proposal_credits",
    "email_notifications",
    "admin_notes",
)

_TOKEN_SLOTS = ("new_user_token", "update_key_token", "reset_password_token")


class UserRepository:
    """Repository for managing User entities in SQLite."""

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._locks: Dict[str, List[Any]] = {}
        self._locks_guard = threading.Lock()
        self._initialize_table()

    def _initialize_table(self) -> None:
        """Create users table if it doesn't exist."""
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS users (
                    id TEXT PRIMARY KEY,
                    email TEXT UNIQUE NOT NULL,
                    username TEXT UNIQUE NOT NULL,
                    password_hash TEXT NOT NULL,
                    admin INTEGER NOT NULL DEFAULT 0,
                    email_verified INTEGER NOT NULL DEFAULT 0,
                    deactivated INTEGER NOT NULL DEFAULT 0,
                    locked INTEGER NOT NULL DEFAULT 0,
                    failed_login_attempts INTEGER NOT NULL DEFAULT 0,
                    last_login_time TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    identities TEXT NOT NULL DEFAULT '[]',
                    new_user_token TEXT,
                    new_user_token_expiry TEXT,
                    update_key_token TEXT,
                    update_key_token_expiry TEXT,
                    reset_password_token TEXT,
                    reset_password_token_expiry TEXT,
                    paywall_address_index INTEGER,
                    paywall_address TEXT,
                    paywall_amount INTEGER NOT NULL DEFAULT 0,
                    paywall_tx_not_before TEXT,
                    paywall_poll_expiry TEXT,
                    paywall_tx_id TEXT,
                    proposal_credits INTEGER NOT NULL DEFAULT 0,
                    email_notifications INTEGER NOT NULL DEFAULT 0,
                    admin_notes TEXT NOT NULL DEFAULT '[]'
                )
            """)

            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_users_paywall_index ON users(paywall_address_index)"
            )

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        try:
            conn = sqlite3.connect(self.db_path)
        except sqlite3.Error as exc:
            raise StoreFailure(f"cannot open credential store: {exc}") from exc
        conn.row_factory = sqlite3.Row
        try:
            with conn:
                yield conn
        except sqlite3.IntegrityError:
            raise
        except sqlite3.Error as exc:
            raise StoreFailure(f"credential store error: {exc}") from exc
        finally:
            conn.close()

    @contextmanager
    def user_lock(self, user_id: str) -> Iterator[None]:
        """Serialize read-modify-write on one user record.

        Each entry is a ``[lock, holders]`` pair, dropped once the last
        holder or waiter leaves.
        """
        with self._locks_guard:
            entry = self._locks.setdefault(user_id, [threading.Lock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._locks_guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[user_id]

    def create(self, user: User) -> User:
        """Insert a new user; uniqueness violations become duplicate errors."""
        values = self._user_to_row(user)
        placeholders = ", ".join("?" for _ in _COLUMNS)
        try:
            with self._connect() as conn:
                conn.execute(
                    f"INSERT INTO users ({', '.join(_COLUMNS)}) VALUES ({placeholders})",
                    tuple(values[column] for column in _COLUMNS),
                )
        except sqlite3.IntegrityError as exc:
            message = str(exc)
            if "users.email" in message:
                raise DuplicateEmailError() from exc
            if "users.username" in message:
                raise DuplicateUsernameError() from exc
            raise StoreFailure(f"cannot create user: {exc}") from exc
        return user

    def update(self, user: User) -> User:
        """Persist every field of ``user``."""
        values = self._user_to_row(user)
        assignments = ", ".join(f"{column} = ?" for column in _COLUMNS if column != "id")
        params = tuple(values[column] for column in _COLUMNS if column != "id") + (user.id,)
        try:
            with self._connect() as conn:
                cursor = conn.execute(f"UPDATE users SET {assignments} WHERE id = ?", params)
                if cursor.rowcount == 0:
                    raise StoreFailure(f"user {user.id} does not exist")
        except sqlite3.IntegrityError as exc:
            message = str(exc)
            if "users.email" in message:
                raise DuplicateEmailError() from exc
            if "users.username" in message:
                raise DuplicateUsernameError() from exc
            raise StoreFailure(f"cannot update user: {exc}") from exc
        return user

    def get_by_id(self, user_id: str) -> Optional[User]:
        return self._fetch_one("SELECT * FROM users WHERE id = ?", (user_id,))

    def get_by_email(self, email: str) -> Optional[User]:
        return self._fetch_one("SELECT * FROM users WHERE email = ?", (email.strip().lower(),))

    def get_by_username(self, username: str) -> Optional[User]:
        return self._fetch_one(
            "SELECT * FROM users WHERE username = ?", (username.strip().lower(),)
        )

    def get_by_public_key(self, public_key: str) -> Optional[User]:
        return self._fetch_one(
            """
            SELECT * FROM users WHERE EXISTS (
                SELECT 1 FROM json_each(users.identities)
                WHERE json_extract(json_each.value, '$.public_key') = ?
            )
            """,
            (public_key.strip().lower(),),
        )

    def next_paywall_index(self) -> int:
        with self._connect() as conn:
            row = conn.execute("SELECT MAX(paywall_address_index) FROM users").fetchone()
        current = row[0]
        return 0 if current is None else int(current) + 1

    def search(self, user_filter: UserFilter, after_index: int, limit: int) -> List[User]:
        """Users matching every predicate, ordered by creation index."""
        where, params = self._filter_clause(user_filter)
        where.append("paywall_address_index > ?")
        params.append(after_index)
        sql = (
            f"SELECT * FROM users WHERE {' AND '.join(where)} "
            "ORDER BY paywall_address_index ASC LIMIT ?"
        )
        params.append(limit)
        with self._connect() as conn:
            rows = conn.execute(sql, tuple(params)).fetchall()
        return [self._row_to_user(row) for row in rows]

    def count(self, user_filter: UserFilter) -> int:
        where, params = self._filter_clause(user_filter)
        clause = " AND ".join(where) if where else "1 = 1"
        with self._connect() as conn:
            row = conn.execute(f"SELECT COUNT(*) FROM users WHERE {clause}", tuple(params)).fetchone()
        return int(row[0])

    def list_pollable(self, now: datetime) -> List[User]:
        """Unpaid users whose paywall poll window is still open."""
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT * FROM users
                WHERE paywall_tx_id IS NULL
                  AND paywall_address IS NOT NULL
                  AND paywall_poll_expiry IS NOT NULL
                  AND paywall_poll_expiry > ?
                ORDER BY paywall_address_index ASC
                """,
                (_fmt(now),),
            ).fetchall()
        return [self._row_to_user(row) for row in rows]

    def _fetch_one(self, sql: str, params: Tuple[Any, ...]) -> Optional[User]:
        with self._connect() as conn:
            row = conn.execute(sql, params).fetchone()
        if not row:
            return None
        return self._row_to_user(row)

    @staticmethod
    def _filter_clause(user_filter: UserFilter) -> Tuple[List[str], List[Any]]:
        where: List[str] = []
        params: List[Any] = []
        if user_filter.email:
            where.append("email LIKE ? ESCAPE '\\'")
            params.append(_like(user_filter.email.strip().lower()))
        if user_filter.username:
            where.append("username LIKE ? ESCAPE '\\'")
            params.append(_like(user_filter.username.strip().lower()))
        if user_filter.public_key:
            where.append(
                """EXISTS (
                    SELECT 1 FROM json_each(users.identities)
                    WHERE json_extract(json_each.value, '$.public_key') = ?
                )"""
            )
            params.append(user_filter.public_key.strip().lower())
        return where, params

    @staticmethod
    def _user_to_row(user: User) -> Dict[str, Any]:
        row: Dict[str, Any] = {
            "id": user.id,
            "email": user.email,
            "username": user.username,
            "password_hash": user.password_hash,
            "admin": int(user.admin),
            "email_verified": int(user.email_verified),
            "deactivated": int(user.deactivated),
            "locked": int(user.locked),
            "failed_login_attempts": user.failed_login_attempts,
            "last_login_time": _fmt(user.last_login_time),
            "created_at": _fmt(user.created_at),
            "updated_at": _fmt(user.updated_at),
            "identities": json.dumps([identity.to_dict() for identity in user.identities]),
            "paywall_address_index": user.paywall_address_index,
            "paywall_address": user.paywall_address,
            "paywall_amount": user.paywall_amount,
            "paywall_tx_not_before": _fmt(user.paywall_tx_not_before),
            "paywall_poll_expiry": _fmt(user.paywall_poll_expiry),
            "paywall_tx_id": user.paywall_tx_id,
            "proposal_credits": user.proposal_credits,
            "email_notifications": user.email_notifications,
            "admin_notes": json.dumps(user.admin_notes),
        }
        for slot in _TOKEN_SLOTS:
            token: Optional[VerificationToken] = getattr(user, slot)
            row[slot] = token.digest if token else None
            row[f"{slot}_expiry"] = _fmt(token.expires_at) if token else None
        return row

    def _row_to_user(self, row: sqlite3.Row) -> User:
        """Convert database row to User entity."""
        user = User(
            id=row["id"],
            email=row["email"],
            username=row["username"],
            password_hash=row["password_hash"],
            admin=bool(row["admin"]),
            email_verified=bool(row["email_verified"]),
            deactivated=bool(row["deactivated"]),
            locked=bool(row["locked"]),
            failed_login_attempts=row["failed_login_attempts"],
            last_login_time=_parse(row["last_login_time"]),
            created_at=_parse(row["created_at"]),
            updated_at=_parse(row["updated_at"]),
            identities=[Identity.from_dict(item) for item in json.loads(row["identities"])],
            paywall_address_index=row["paywall_address_index"],
            paywall_address=row["paywall_address"],
            paywall_amount=row["paywall_amount"],
            paywall_tx_not_before=_parse(row["paywall_tx_not_before"]),
            paywall_poll_expiry=_parse(row["paywall_poll_expiry"]),
            paywall_tx_id=row["paywall_tx_id"],
            proposal_credits=row["proposal_credits"],
            email_notifications=row["email_notifications"],
            admin_notes=list(json.loads(row["admin_notes"])),
        )
        for slot in _TOKEN_SLOTS:
            digest = row[slot]
            if digest:
                setattr(
                    user,
                    slot,
                    VerificationToken(digest=digest, expires_at=_parse(row[f"{slot}_expiry"])),
                )
        return user


def _fmt(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat(timespec="microseconds") if value else None


def _parse(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _like(term: str) -> str:
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"
