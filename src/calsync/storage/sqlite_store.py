"""Summary: SQLite storage implementation for Calsync.

Importance: Provides local persistence for users, OAuth credentials, and calendar entries.
Alternatives: Use an ORM or an external database immediately.
"""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator

from calsync.errors import PersistenceError
from calsync.models import Appointment, Entry, EntryKind, Event, Task, User


_ENTRY_COLUMNS = (
    "title",
    "description",
    "start_time",
    "end_time",
    "due_date",
    "guests",
    "external_event_id",
    "duration_minutes",
    "location",
    "completed",
)


@dataclass(frozen=True)
class StoredUser:
    """Summary: User record with database identifier.

    Importance: Entries and credentials reference users by this id.
    Alternatives: Key everything by email address.
    """

    id: int
    display_name: str
    email: str


@dataclass(frozen=True)
class StoredApiKey:
    id: int
    user_id: int
    token_hash: str
    label: str | None
    created_at: str


@dataclass(frozen=True)
class StoredCredential:
    """Summary: Encoded OAuth credential row.

    Importance: Token columns hold codec output, never plaintext.
    Alternatives: Decode inside storage and hand out plaintext rows.
    """

    id: int
    user_id: int
    provider_name: str
    access_token: str | None
    refresh_token: str | None
    expires_at: str | None
    token_type: str | None
    scope: str | None
    updated_at: str


class SqliteStore:
    """Summary: SQLite-backed storage for Calsync.

    Importance: Acts as both the credential store and the entry store with one connection policy.
    Alternatives: Use Postgres and SQLAlchemy from day one.
    """

    def __init__(self, db_path: str) -> None:
        self._db_path = Path(db_path)

    def initialize(self) -> None:
        """Summary: Create tables if they do not exist.

        Importance: Ensures the database is ready before the first request.
        Alternatives: Run migrations using a dedicated migration tool.
        """

        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS users (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    display_name TEXT NOT NULL,
                    email TEXT NOT NULL UNIQUE
                )
                """
            )
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS api_keys (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER NOT NULL,
                    token_hash TEXT NOT NULL UNIQUE,
                    label TEXT,
                    created_at TEXT NOT NULL
                )
                """
            )
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS credentials (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER NOT NULL,
                    provider_name TEXT NOT NULL,
                    access_token TEXT,
                    refresh_token TEXT,
                    expires_at TEXT,
                    token_type TEXT,
                    scope TEXT,
                    updated_at TEXT NOT NULL,
                    UNIQUE(user_id, provider_name)
                )
                """
            )
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS entries (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER NOT NULL,
                    kind TEXT NOT NULL,
                    title TEXT NOT NULL,
                    description TEXT,
                    start_time TEXT,
                    end_time TEXT,
                    due_date TEXT,
                    guests TEXT,
                    external_event_id TEXT,
                    duration_minutes INTEGER,
                    location TEXT,
                    completed INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL
                )
                """
            )
            cursor.execute("CREATE INDEX IF NOT EXISTS idx_entries_user ON entries(user_id)")
            connection.commit()

    def ensure_user(self, user: User) -> int:
        """Summary: Insert a user if missing and return its id.

        Importance: Lets the CLI and API bootstrap a default user idempotently.
        Alternatives: Fail when the email already exists.
        """

        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(
                "INSERT OR IGNORE INTO users (display_name, email) VALUES (?, ?)",
                (user.display_name, user.email),
            )
            cursor.execute("SELECT id FROM users WHERE email = ?", (user.email,))
            user_id = cursor.fetchone()[0]
            connection.commit()
        return int(user_id)

    def get_user_by_email(self, email: str) -> StoredUser | None:
        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute("SELECT id, display_name, email FROM users WHERE email = ?", (email,))
            row = cursor.fetchone()
        return StoredUser(*row) if row else None

    def list_users(self) -> list[StoredUser]:
        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute("SELECT id, display_name, email FROM users ORDER BY id ASC")
            rows = cursor.fetchall()
        return [StoredUser(*row) for row in rows]

    def create_api_key(
        self, user_id: int, token_hash: str, label: str | None, created_at: str
    ) -> int:
        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(
                """
                INSERT INTO api_keys (user_id, token_hash, label, created_at)
                VALUES (?, ?, ?, ?)
                """,
                (user_id, token_hash, label, created_at),
            )
            key_id = cursor.lastrowid
            connection.commit()
        return int(key_id)

    def list_api_keys(self, user_id: int) -> list[StoredApiKey]:
        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(
                """
                SELECT id, user_id, token_hash, label, created_at
                FROM api_keys
                WHERE user_id = ?
                ORDER BY id ASC
                """,
                (user_id,),
            )
            rows = cursor.fetchall()
        return [StoredApiKey(*row) for row in rows]

    def delete_api_key(self, user_id: int, key_id: int) -> bool:
        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(
                "DELETE FROM api_keys WHERE id = ? AND user_id = ?",
                (key_id, user_id),
            )
            deleted = cursor.rowcount > 0
            connection.commit()
        return deleted

    def get_user_id_by_api_key(self, token_hash: str) -> int | None:
        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute("SELECT user_id FROM api_keys WHERE token_hash = ?", (token_hash,))
            row = cursor.fetchone()
        return int(row[0]) if row else None

    def get_credential(self, user_id: int, provider_name: str) -> StoredCredential | None:
        """Summary: Fetch the credential row for a user and provider.

        Importance: The refresh gate reads tokens from here before every client build.
        Alternatives: Cache credentials in process memory.
        """

        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(
                """
                SELECT id, user_id, provider_name, access_token, refresh_token,
                       expires_at, token_type, scope, updated_at
                FROM credentials
                WHERE user_id = ? AND provider_name = ?
                """,
                (user_id, provider_name),
            )
            row = cursor.fetchone()
        return StoredCredential(*row) if row else None

    def upsert_credential(
        self,
        user_id: int,
        provider_name: str,
        access_token: str | None,
        refresh_token: str | None,
        expires_at: str | None,
        token_type: str | None = None,
        scope: str | None = None,
    ) -> int:
        """Summary: Insert or update a credential in one statement.

        Importance: NULL arguments keep the stored value, so a rotation without a
        new refresh token never erases the old one.
        Alternatives: Read-modify-write the row in application code.
        """

        updated_at = datetime.now(timezone.utc).isoformat()
        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(
                """
                INSERT INTO credentials (
                    user_id, provider_name, access_token, refresh_token,
                    expires_at, token_type, scope, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(user_id, provider_name) DO UPDATE SET
                    access_token = COALESCE(excluded.access_token, credentials.access_token),
                    refresh_token = COALESCE(excluded.refresh_token, credentials.refresh_token),
                    expires_at = COALESCE(excluded.expires_at, credentials.expires_at),
                    token_type = COALESCE(excluded.token_type, credentials.token_type),
                    scope = COALESCE(excluded.scope, credentials.scope),
                    updated_at = excluded.updated_at
                """,
                (
                    user_id,
                    provider_name,
                    access_token,
                    refresh_token,
                    expires_at,
                    token_type,
                    scope,
                    updated_at,
                ),
            )
            cursor.execute(
                "SELECT id FROM credentials WHERE user_id = ? AND provider_name = ?",
                (user_id, provider_name),
            )
            credential_id = cursor.fetchone()[0]
            connection.commit()
        return int(credential_id)

    def insert_entry(self, kind: EntryKind, user_id: int, fields: dict[str, Any]) -> int:
        """Summary: Persist a new entry row of the given kind.

        Importance: Entries of every kind share one id space, so an id alone identifies a row.
        Alternatives: Keep a separate table and id sequence per kind.
        """

        columns = _checked_columns(fields)
        values = [_to_column_value(fields[column]) for column in columns]
        placeholders = ", ".join("?" for _ in range(len(columns) + 3))
        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(
                f"""
                INSERT INTO entries (user_id, kind, created_at, {", ".join(columns)})
                VALUES ({placeholders})
                """,
                (user_id, kind.value, datetime.now(timezone.utc).isoformat(), *values),
            )
            entry_id = cursor.lastrowid
            connection.commit()
        return int(entry_id)

    def get_entry(self, entry_id: int) -> Entry | None:
        with self._connection() as connection:
            connection.row_factory = sqlite3.Row
            cursor = connection.cursor()
            cursor.execute("SELECT * FROM entries WHERE id = ?", (entry_id,))
            row = cursor.fetchone()
        return _row_to_entry(row) if row else None

    def list_entries(self, user_id: int, kind: EntryKind | None = None) -> list[Entry]:
        """Summary: List entries owned by one user.

        Importance: Ownership is enforced in SQL so no other user's rows are ever loaded.
        Alternatives: Filter rows in memory after loading everything.
        """

        with self._connection() as connection:
            connection.row_factory = sqlite3.Row
            cursor = connection.cursor()
            if kind is None:
                cursor.execute(
                    "SELECT * FROM entries WHERE user_id = ? ORDER BY id ASC",
                    (user_id,),
                )
            else:
                cursor.execute(
                    "SELECT * FROM entries WHERE user_id = ? AND kind = ? ORDER BY id ASC",
                    (user_id, kind.value),
                )
            rows = cursor.fetchall()
        return [_row_to_entry(row) for row in rows]

    def update_entry(self, entry_id: int, fields: dict[str, Any]) -> None:
        columns = _checked_columns(fields)
        if not columns:
            return
        assignments = ", ".join(f"{column} = ?" for column in columns)
        values = [_to_column_value(fields[column]) for column in columns]
        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(f"UPDATE entries SET {assignments} WHERE id = ?", (*values, entry_id))
            connection.commit()

    def delete_entry(self, entry_id: int) -> bool:
        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute("DELETE FROM entries WHERE id = ?", (entry_id,))
            deleted = cursor.rowcount > 0
            connection.commit()
        return deleted

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        """Summary: Context manager for SQLite connections.

        Importance: Closes connections after use and surfaces driver failures as PersistenceError.
        Alternatives: Keep a single long-lived connection.
        """

        try:
            connection = sqlite3.connect(self._db_path)
        except sqlite3.Error as exc:
            raise PersistenceError(f"Could not open database {self._db_path}") from exc
        try:
            yield connection
        except sqlite3.Error as exc:
            raise PersistenceError(f"Database operation failed: {exc}") from exc
        finally:
            connection.close()


def _checked_columns(fields: dict[str, Any]) -> list[str]:
    unknown = set(fields) - set(_ENTRY_COLUMNS)
    if unknown:
        raise ValueError(f"Unknown entry columns: {sorted(unknown)}")
    return [column for column in _ENTRY_COLUMNS if column in fields]


def _to_column_value(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, bool):
        return int(value)
    return value


def _parse_timestamp(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _row_to_entry(row: sqlite3.Row) -> Entry:
    """Summary: Build the entry variant matching the row's kind tag.

    Importance: Keeps variant dispatch in one place for every read path.
    Alternatives: Return raw rows and let callers interpret them.
    """

    kind = EntryKind(row["kind"])
    if kind is EntryKind.TASK:
        return Task(
            id=row["id"],
            user_id=row["user_id"],
            title=row["title"],
            description=row["description"],
            due_date=_parse_timestamp(row["due_date"]),
            completed=bool(row["completed"]),
        )
    if kind is EntryKind.APPOINTMENT:
        return Appointment(
            id=row["id"],
            user_id=row["user_id"],
            title=row["title"],
            description=row["description"],
            start=_parse_timestamp(row["start_time"]),
            end=_parse_timestamp(row["end_time"]),
            duration_minutes=row["duration_minutes"] or 60,
            location=row["location"],
            guests=row["guests"],
            external_event_id=row["external_event_id"],
        )
    return Event(
        id=row["id"],
        user_id=row["user_id"],
        title=row["title"],
        description=row["description"],
        start=_parse_timestamp(row["start_time"]),
        end=_parse_timestamp(row["end_time"]),
        guests=row["guests"],
        external_event_id=row["external_event_id"],
    )
