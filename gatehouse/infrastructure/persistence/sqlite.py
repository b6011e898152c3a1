import sqlite3
import threading
from datetime import datetime
from pathlib import Path
from typing import Optional

from ...domain.errors import SessionStoreError
from ...domain.models import SessionRecord
from ...domain.ports.persistence import SessionRepository


class SQLiteSessionStore(SessionRepository):
    """SQLite-backed implementation of the session repository."""

    def __init__(self, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        try:
            self._conn = sqlite3.connect(path, check_same_thread=False)
        except sqlite3.Error as exc:
            raise SessionStoreError(f"cannot open session store: {exc}") from exc
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.Lock()
        self._initialize()

    def _initialize(self) -> None:
        with self._lock, self._conn:
            self._conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS sessions (
                    id TEXT PRIMARY KEY,
                    payload TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    expires_at TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_sessions_expires_at
                    ON sessions(expires_at);
                """
            )

    def close(self) -> None:
        self._conn.close()

    def save(self, record: SessionRecord) -> None:
        try:
            with self._lock, self._conn:
                self._conn.execute(
                    "INSERT INTO sessions (id, payload, created_at, expires_at) VALUES (?, ?, ?, ?) "
                    "ON CONFLICT(id) DO UPDATE SET payload = excluded.payload, "
                    "expires_at = excluded.expires_at",
                    (
                        record.session_id,
                        record.payload,
                        _fmt(record.created_at),
                        _fmt(record.expires_at),
                    ),
                )
        except sqlite3.Error as exc:
            raise SessionStoreError(f"cannot save session: {exc}") from exc

    def load(self, session_id: str) -> Optional[SessionRecord]:
        try:
            with self._lock:
                cur = self._conn.execute("SELECT * FROM sessions WHERE id = ?", (session_id,))
                row = cur.fetchone()
        except sqlite3.Error as exc:
            raise SessionStoreError(f"cannot load session: {exc}") from exc
        if not row:
            return None
        return SessionRecord(
            session_id=row["id"],
            payload=row["payload"],
            created_at=datetime.fromisoformat(row["created_at"]),
            expires_at=datetime.fromisoformat(row["expires_at"]),
        )

    def delete(self, session_id: str) -> None:
        try:
            with self._lock, self._conn:
                self._conn.execute("DELETE FROM sessions WHERE id = ?", (session_id,))
        except sqlite3.Error as exc:
            raise SessionStoreError(f"cannot delete session: {exc}") from exc

    def purge_expired(self, now: datetime) -> int:
        try:
            with self._lock, self._conn:
                cur = self._conn.execute("DELETE FROM sessions WHERE expires_at <= ?", (_fmt(now),))
                return cur.rowcount
        except sqlite3.Error as exc:
            raise SessionStoreError(f"cannot purge sessions: {exc}") from exc


def _fmt(value: datetime) -> str:
    return value.isoformat(timespec="microseconds")
