"""SQLite-backed persistence for audit management users."""
from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, List, Optional

from .errors import DuplicateResourceError, ResourceNotFoundError, StorageError
from .models import User

logger = logging.getLogger("auditmanagement.database")

_BUSY_TIMEOUT_SECONDS = 5.0
_UNIQUE_COLUMNS = ("username", "email")
_MAX_ROW_ID = 2**63 - 1


def _is_storable_id(user_id: int) -> bool:
    return 0 < user_id <= _MAX_ROW_ID


def _ensure_directory(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def resolve_database_path(env_value: Optional[str]) -> Path:
    """Resolve the on-disk path for the application database."""

    if env_value:
        return Path(env_value).expanduser().resolve(strict=False)
    base_dir = Path(__file__).resolve().parent.parent / "data"
    return (base_dir / "audit_management.sqlite3").resolve(strict=False)


def _current_timestamp() -> datetime:
    return datetime.now(timezone.utc)


def _serialize_datetime(value: datetime) -> str:
    return value.isoformat()


def _parse_datetime(value: str) -> datetime:
    return datetime.fromisoformat(value)


class Database:
    """User store backed by a single SQLite file.

    Every query takes the connection yielded by :meth:`transaction` so that a
    caller can group several reads and writes into one unit of work.
    """

    def __init__(self, path: Path) -> None:
        _ensure_directory(path)
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def _connect(self) -> sqlite3.Connection:
        try:
            conn = sqlite3.connect(
                self._path,
                timeout=_BUSY_TIMEOUT_SECONDS,
                isolation_level=None,
                check_same_thread=False,
            )
        except sqlite3.Error as exc:
            raise StorageError(f"Unable to open database at {self._path}: {exc}") from exc
        conn.row_factory = sqlite3.Row
        return conn

    def initialize(self) -> None:
        """Create the required tables if they do not already exist."""

        with self.transaction(immediate=True) as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS users (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    username TEXT NOT NULL UNIQUE,
                    email TEXT NOT NULL UNIQUE,
                    role TEXT NOT NULL,
                    created_at TEXT NOT NULL
                )
                """
            )
            conn.execute("CREATE INDEX IF NOT EXISTS idx_users_role ON users(role)")

    @contextmanager
    def transaction(self, *, immediate: bool = False) -> Iterator[sqlite3.Connection]:
        """Yield a connection with an open transaction.

        The transaction commits when the block exits normally and rolls back on
        any exception. ``immediate`` takes the write lock up front so that a
        read-then-write sequence cannot interleave with another writer.
        """

        conn = self._connect()
        try:
            conn.execute("BEGIN IMMEDIATE" if immediate else "BEGIN")
            yield conn
            conn.commit()
        except sqlite3.DatabaseError as exc:
            conn.rollback()
            raise StorageError(f"Database operation failed: {exc}") from exc
        except BaseException:
            conn.rollback()
            raise
        finally:
            conn.close()

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------
    def find_by_id(self, conn: sqlite3.Connection, user_id: int) -> Optional[User]:
        if not _is_storable_id(user_id):
            return None
        row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        if row is None:
            return None
        return self._row_to_user(row)

    def find_by_username(self, conn: sqlite3.Connection, username: str) -> Optional[User]:
        row = conn.execute("SELECT * FROM users WHERE username = ?", (username,)).fetchone()
        if row is None:
            return None
        return self._row_to_user(row)

    def find_by_email(self, conn: sqlite3.Connection, email: str) -> Optional[User]:
        row = conn.execute("SELECT * FROM users WHERE email = ?", (email,)).fetchone()
        if row is None:
            return None
        return self._row_to_user(row)

    def exists_by_id(self, conn: sqlite3.Connection, user_id: int) -> bool:
        if not _is_storable_id(user_id):
            return False
        row = conn.execute("SELECT 1 FROM users WHERE id = ?", (user_id,)).fetchone()
        return row is not None

    def exists_by_username(self, conn: sqlite3.Connection, username: str) -> bool:
        row = conn.execute("SELECT 1 FROM users WHERE username = ?", (username,)).fetchone()
        return row is not None

    def exists_by_email(self, conn: sqlite3.Connection, email: str) -> bool:
        row = conn.execute("SELECT 1 FROM users WHERE email = ?", (email,)).fetchone()
        return row is not None

    def find_by_role(self, conn: sqlite3.Connection, role: str) -> List[User]:
        rows = conn.execute(
            "SELECT * FROM users WHERE role = ? ORDER BY id",
            (role,),
        ).fetchall()
        return [self._row_to_user(row) for row in rows]

    def find_by_username_containing(self, conn: sqlite3.Connection, fragment: str) -> List[User]:
        """Return users whose username contains ``fragment``, ignoring case."""

        rows = conn.execute(
            "SELECT * FROM users WHERE instr(lower(username), lower(?)) > 0 ORDER BY id",
            (fragment,),
        ).fetchall()
        return [self._row_to_user(row) for row in rows]

    def find_all(self, conn: sqlite3.Connection) -> List[User]:
        rows = conn.execute("SELECT * FROM users ORDER BY id").fetchall()
        return [self._row_to_user(row) for row in rows]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------
    def save(self, conn: sqlite3.Connection, record: User) -> User:
        """Insert ``record`` when it has no id, otherwise update it.

        Inserts assign ``id`` and ``created_at``. Updates only write the
        username, email and role columns.
        """

        if record.id is None:
            return self._insert(conn, record)
        return self._update(conn, record)

    def delete_by_id(self, conn: sqlite3.Connection, user_id: int) -> None:
        if not _is_storable_id(user_id):
            return
        conn.execute("DELETE FROM users WHERE id = ?", (user_id,))

    def _insert(self, conn: sqlite3.Connection, record: User) -> User:
        created_at = _current_timestamp()
        try:
            cursor = conn.execute(
                """
                INSERT INTO users (username, email, role, created_at)
                VALUES (?, ?, ?, ?)
                """,
                (
                    record.username,
                    record.email,
                    record.role,
                    _serialize_datetime(created_at),
                ),
            )
        except sqlite3.IntegrityError as exc:
            raise self._translate_integrity_error(exc, record) from exc

        return User(
            id=int(cursor.lastrowid),
            username=record.username,
            email=record.email,
            role=record.role,
            created_at=created_at,
        )

    def _update(self, conn: sqlite3.Connection, record: User) -> User:
        if not _is_storable_id(int(record.id)):  # type: ignore[arg-type]
            raise ResourceNotFoundError("User", "id", record.id)
        try:
            cursor = conn.execute(
                "UPDATE users SET username = ?, email = ?, role = ? WHERE id = ?",
                (record.username, record.email, record.role, record.id),
            )
        except sqlite3.IntegrityError as exc:
            raise self._translate_integrity_error(exc, record) from exc

        if cursor.rowcount == 0:
            raise ResourceNotFoundError("User", "id", record.id)

        refreshed = self.find_by_id(conn, int(record.id))  # type: ignore[arg-type]
        if refreshed is None:  # pragma: no cover - row was updated in this transaction
            raise ResourceNotFoundError("User", "id", record.id)
        return refreshed

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _translate_integrity_error(self, exc: sqlite3.IntegrityError, record: User) -> Exception:
        message = str(exc)
        if "UNIQUE constraint failed" in message:
            for column in _UNIQUE_COLUMNS:
                if f"users.{column}" in message:
                    value = getattr(record, column)
                    logger.warning("Unique constraint rejected %s=%r", column, value)
                    return DuplicateResourceError("User", column, value)
        return StorageError(f"Integrity check failed: {message}")

    def _row_to_user(self, row: sqlite3.Row) -> User:
        return User(
            id=int(row["id"]),
            username=str(row["username"]),
            email=str(row["email"]),
            role=str(row["role"]),
            created_at=_parse_datetime(str(row["created_at"])),
        )


__all__ = ["Database", "resolve_database_path"]
