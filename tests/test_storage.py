"""Summary: Tests for SQLite storage.

Importance: Confirms entry rows keep their kind, owner, and provider id across reads.
Alternatives: Rely on API tests for storage coverage.
"""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from calsync.errors import PersistenceError
from calsync.models import Appointment, EntryKind, Event, Task, User
from calsync.storage.sqlite_store import SqliteStore


def _store(tmp_path) -> SqliteStore:
    store = SqliteStore(str(tmp_path / "test.db"))
    store.initialize()
    return store


def test_ensure_user_is_idempotent(tmp_path) -> None:
    store = _store(tmp_path)
    first = store.ensure_user(User(display_name="Ann", email="ann@example.com"))
    second = store.ensure_user(User(display_name="Ann B", email="ann@example.com"))
    assert first == second
    assert [user.email for user in store.list_users()] == ["ann@example.com"]


def test_entries_round_trip_per_kind(tmp_path) -> None:
    """Summary: Each kind reads back as its own variant.

    Importance: The synchronizer dispatches on the variant to decide provider behavior.
    Alternatives: Inspect raw rows in every caller.
    """

    store = _store(tmp_path)
    user_id = store.ensure_user(User(display_name="Ann", email="ann@example.com"))
    start = datetime(2030, 5, 1, 9, 0, tzinfo=timezone.utc)
    end = datetime(2030, 5, 1, 10, 0, tzinfo=timezone.utc)
    event_id = store.insert_entry(
        EntryKind.EVENT,
        user_id,
        {"title": "Standup", "start_time": start, "end_time": end, "external_event_id": "g-1"},
    )
    appointment_id = store.insert_entry(
        EntryKind.APPOINTMENT,
        user_id,
        {
            "title": "Dentist",
            "start_time": start,
            "end_time": end,
            "duration_minutes": 60,
            "location": "Main St",
        },
    )
    task_id = store.insert_entry(EntryKind.TASK, user_id, {"title": "Buy milk", "completed": False})

    event = store.get_entry(event_id)
    assert isinstance(event, Event)
    assert event.start == start
    assert event.external_event_id == "g-1"
    appointment = store.get_entry(appointment_id)
    assert isinstance(appointment, Appointment)
    assert appointment.location == "Main St"
    task = store.get_entry(task_id)
    assert isinstance(task, Task)
    assert task.completed is False
    assert len({event_id, appointment_id, task_id}) == 3


def test_list_entries_is_scoped_to_owner(tmp_path) -> None:
    store = _store(tmp_path)
    ann = store.ensure_user(User(display_name="Ann", email="ann@example.com"))
    bob = store.ensure_user(User(display_name="Bob", email="bob@example.com"))
    store.insert_entry(EntryKind.TASK, ann, {"title": "Ann task"})
    store.insert_entry(EntryKind.TASK, bob, {"title": "Bob task"})
    assert [entry.title for entry in store.list_entries(ann)] == ["Ann task"]
    assert store.list_entries(bob, kind=EntryKind.EVENT) == []


def test_update_and_delete_entry(tmp_path) -> None:
    store = _store(tmp_path)
    user_id = store.ensure_user(User(display_name="Ann", email="ann@example.com"))
    entry_id = store.insert_entry(EntryKind.TASK, user_id, {"title": "Draft"})
    store.update_entry(entry_id, {"title": "Final", "completed": True})
    updated = store.get_entry(entry_id)
    assert updated.title == "Final"
    assert updated.completed is True
    assert store.delete_entry(entry_id) is True
    assert store.get_entry(entry_id) is None
    assert store.delete_entry(entry_id) is False


def test_unknown_entry_column_rejected(tmp_path) -> None:
    store = _store(tmp_path)
    with pytest.raises(ValueError):
        store.insert_entry(EntryKind.TASK, 1, {"title": "x", "owner": "someone"})


def test_driver_errors_surface_as_persistence_error(tmp_path) -> None:
    """Summary: SQLite failures become PersistenceError.

    Importance: The synchronizer maps PersistenceError to a caller-facing message.
    Alternatives: Let sqlite3 exceptions leak to callers.
    """

    store = SqliteStore(str(tmp_path / "uninitialized.db"))
    with pytest.raises(PersistenceError):
        store.insert_entry(EntryKind.TASK, 1, {"title": "x"})
