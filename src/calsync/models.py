"""Summary: Domain model dataclasses for Calsync.

Importance: Defines the entry variants, credentials, and results shared across services and storage.
Alternatives: Use Pydantic models or ORM classes directly.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import ClassVar, Union


class EntryKind(str, Enum):
    """Summary: Tag for the entry variants.

    Importance: Storage and the synchronizer dispatch on this tag instead of guessing shapes.
    Alternatives: Keep one table per variant and infer the kind from the table name.
    """

    EVENT = "event"
    TASK = "task"
    APPOINTMENT = "appointment"

    @property
    def syncs_to_provider(self) -> bool:
        return self is not EntryKind.TASK


@dataclass(frozen=True)
class User:
    """Summary: Represents an application user.

    Importance: Every entry and credential is owned by exactly one user.
    Alternatives: Delegate identity entirely to an external auth service.
    """

    display_name: str
    email: str


@dataclass(frozen=True)
class Credential:
    """Summary: OAuth token set for one user and provider.

    Importance: Enables provider calls on a user's behalf and survives token rotation.
    Alternatives: Keep tokens only in a signed session cookie.

    A ``None`` field means "not supplied" when the credential is upserted.
    """

    access_token: str | None
    refresh_token: str | None = None
    expires_at: str | None = None
    token_type: str | None = None
    scope: str | None = None


@dataclass(frozen=True)
class EntryPayload:
    """Summary: Caller input for creating or updating an entry.

    Importance: Gives HTTP and CLI callers one shape regardless of entry kind.
    Alternatives: Accept a raw form dictionary per variant.
    """

    title: str | None = None
    description: str | None = None
    date: str | None = None
    time: str | None = None
    guests: str | None = None
    duration_minutes: int | None = None
    location: str | None = None
    due_date: str | None = None
    completed: bool | None = None


@dataclass(frozen=True)
class Event:
    id: int
    user_id: int
    title: str
    description: str | None
    start: datetime
    end: datetime
    guests: str | None = None
    external_event_id: str | None = None

    kind: ClassVar[EntryKind] = EntryKind.EVENT


@dataclass(frozen=True)
class Appointment:
    """Summary: A provider-synced entry with an explicit duration and location.

    Importance: Mirrors bookings that need a place and a fixed length.
    Alternatives: Store appointments as events with free-form notes.
    """

    id: int
    user_id: int
    title: str
    description: str | None
    start: datetime
    end: datetime
    duration_minutes: int = 60
    location: str | None = None
    guests: str | None = None
    external_event_id: str | None = None

    kind: ClassVar[EntryKind] = EntryKind.APPOINTMENT


@dataclass(frozen=True)
class Task:
    """Summary: A local-only to-do item.

    Importance: Tasks never reach the provider, so they carry no external id.
    Alternatives: Sync tasks to a separate provider task list.
    """

    id: int
    user_id: int
    title: str
    description: str | None
    due_date: datetime | None = None
    completed: bool = False

    kind: ClassVar[EntryKind] = EntryKind.TASK


Entry = Union[Event, Appointment, Task]


@dataclass(frozen=True)
class SyncEvent:
    """Summary: Provider-neutral event data handed to a calendar adapter.

    Importance: Keeps adapter translation independent of local storage rows.
    Alternatives: Pass stored entries straight to the adapter.
    """

    title: str
    description: str | None
    start: datetime
    end: datetime
    guests: str | None = None
    location: str | None = None


@dataclass(frozen=True)
class RemoteEvent:
    """Summary: Event read back from the calendar provider.

    Importance: Lets callers preview the provider calendar alongside local entries.
    Alternatives: Return the raw provider payload.
    """

    provider_event_id: str
    title: str
    start: datetime | None
    end: datetime | None
    attendees: list[str]
    html_link: str | None = None


@dataclass(frozen=True)
class SyncResult:
    """Summary: Tagged result of a synchronizer operation.

    Importance: Callers receive a message instead of a raw exception or provider payload.
    Alternatives: Let exceptions propagate to the HTTP layer.
    """

    success: bool
    error: str | None = None
    code: str | None = None

    @staticmethod
    def ok() -> "SyncResult":
        return SyncResult(success=True)

    @staticmethod
    def failure(message: str, code: str) -> "SyncResult":
        return SyncResult(success=False, error=message, code=code)

    def to_dict(self) -> dict[str, object]:
        if self.success:
            return {"success": True}
        return {"error": self.error}
