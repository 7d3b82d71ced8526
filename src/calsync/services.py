"""Summary: Core application services for Calsync.

Importance: Orchestrates credential refresh and write-through synchronization of calendar entries.
Alternatives: Build a full service layer with dependency injection framework.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
import secrets
import hashlib
from datetime import datetime, timedelta, timezone
from typing import Callable, TypeVar

from calsync.calendar import CalendarAdapter, GoogleCalendarClient, TokenListener
from calsync.config import AppConfig
from calsync.errors import (
    CalsyncError,
    Forbidden,
    MissingRefreshToken,
    NoCredential,
    NotFound,
    PersistenceError,
    ProviderError,
    Unauthenticated,
    ValidationError,
)
from calsync.models import (
    Credential,
    Entry,
    EntryKind,
    EntryPayload,
    RemoteEvent,
    SyncEvent,
    SyncResult,
    Task,
    User,
)
from calsync.oauth import OAuthTokenResult, refresh_oauth_token
from calsync.storage.sqlite_store import SqliteStore, StoredApiKey, StoredUser
from calsync.token_codec import TokenCodec


logger = logging.getLogger(__name__)

T = TypeVar("T")

GOOGLE_PROVIDER = "google"


@dataclass(frozen=True)
class UserService:
    """Summary: Manages user records.

    Importance: Every entry and credential hangs off a user id.
    Alternatives: Use an external identity provider.
    """

    store: SqliteStore

    def create_user(self, display_name: str, email: str) -> int:
        return self.store.ensure_user(User(display_name=display_name, email=email))

    def list_users(self) -> list[StoredUser]:
        return self.store.list_users()

    def get_user_by_email(self, email: str) -> StoredUser | None:
        return self.store.get_user_by_email(email)


@dataclass(frozen=True)
class ApiKeyService:
    """Summary: Issues API keys and resolves them back to users.

    Importance: Acts as the session resolver for the HTTP layer.
    Alternatives: Use OAuth sessions or an external auth service.
    """

    store: SqliteStore
    token_secret: str

    def create_api_key(self, user_id: int, label: str | None = None) -> tuple[int, str]:
        """Summary: Create a new API key for a user.

        Importance: Returns a one-time plaintext token for client storage.
        Alternatives: Store raw tokens in the database.
        """

        raw_token = secrets.token_urlsafe(32)
        key_id = self.store.create_api_key(
            user_id=user_id,
            token_hash=self._hash_token(raw_token),
            label=label,
            created_at=datetime.now(timezone.utc).isoformat(),
        )
        return key_id, raw_token

    def revoke_api_key(self, user_id: int, key_id: int) -> bool:
        return self.store.delete_api_key(user_id, key_id)

    def list_api_keys(self, user_id: int) -> list[StoredApiKey]:
        return self.store.list_api_keys(user_id)

    def resolve_user_id(self, token: str | None) -> int | None:
        """Summary: Resolve the current user from an API key.

        Importance: A missing or unknown key yields no user rather than an error.
        Alternatives: Validate tokens with an external service.
        """

        if not token:
            return None
        return self.store.get_user_id_by_api_key(self._hash_token(token))

    def _hash_token(self, token: str) -> str:
        salt = self.token_secret or "calsync"
        return hashlib.sha256(f"{salt}:{token}".encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class CredentialService:
    """Summary: Credential store over encoded OAuth token rows.

    Importance: Holds at most one token set per user and provider, never in plaintext.
    Alternatives: Use a secrets manager or encrypted database.
    """

    store: SqliteStore
    codec: TokenCodec

    def get(self, user_id: int, provider_name: str) -> Credential | None:
        record = self.store.get_credential(user_id, provider_name)
        if not record:
            return None
        return Credential(
            access_token=self.codec.decode_optional(record.access_token),
            refresh_token=self.codec.decode_optional(record.refresh_token),
            expires_at=record.expires_at,
            token_type=record.token_type,
            scope=record.scope,
        )

    def upsert(self, user_id: int, provider_name: str, credential: Credential) -> int:
        """Summary: Insert a credential or overwrite the supplied token fields.

        Importance: A rotation that omits the refresh token leaves the stored one untouched.
        Alternatives: Replace the whole row on every write.
        """

        credential_id = self.store.upsert_credential(
            user_id=user_id,
            provider_name=provider_name,
            access_token=self.codec.encode_optional(credential.access_token),
            refresh_token=self.codec.encode_optional(credential.refresh_token),
            expires_at=credential.expires_at,
            token_type=credential.token_type,
            scope=credential.scope,
        )
        logger.info("Stored %s credential for user %s.", provider_name, user_id)
        return credential_id


@dataclass(frozen=True)
class TokenRefreshGate:
    """Summary: Builds ready-to-use calendar clients for a user.

    Importance: Checks credentials before any provider call and persists tokens the client rotates.
    Alternatives: Refresh tokens eagerly on a schedule.
    """

    credentials: CredentialService
    config: AppConfig
    provider_name: str = GOOGLE_PROVIDER

    def get_client(self, user_id: int | None) -> GoogleCalendarClient:
        if user_id is None:
            raise Unauthenticated()
        credential = self.credentials.get(user_id, self.provider_name)
        if credential is None:
            raise NoCredential("No Google account found. Please sign in with Google again.")
        if not credential.refresh_token:
            raise MissingRefreshToken(
                "No refresh token available. Please sign out and sign in again to re-authorize."
            )
        client = GoogleCalendarClient(
            access_token=credential.access_token,
            refresh_token=credential.refresh_token,
            expires_at=credential.expires_at,
            refresher=self._refresh,
            base_url=self.config.google_calendar_base_url,
            calendar_id=self.config.google_calendar_id,
            timeout=self.config.provider_timeout_seconds,
        )
        client.on_tokens(self._rotation_listener(user_id))
        return client

    def _refresh(self, refresh_token: str) -> OAuthTokenResult:
        return refresh_oauth_token(self.config, refresh_token)

    def _rotation_listener(self, user_id: int) -> TokenListener:
        def persist(result: OAuthTokenResult) -> None:
            self.credentials.upsert(
                user_id,
                self.provider_name,
                Credential(
                    access_token=result.access_token,
                    refresh_token=result.refresh_token,
                    expires_at=result.expires_at,
                ),
            )
            logger.info(
                "Persisted rotated %s tokens for user %s (new refresh token: %s).",
                self.provider_name,
                user_id,
                bool(result.refresh_token),
            )

        return persist


@dataclass(frozen=True)
class EntrySyncService:
    """Summary: Write-through synchronizer for calendar entries.

    Importance: Keeps local rows and provider events consistent: provider first on
    create and update, best-effort provider cleanup on delete.
    Alternatives: Write locally and push to the provider from a background outbox.
    """

    store: SqliteStore
    adapter_factory: Callable[[int], CalendarAdapter]
    default_event_minutes: int = 60

    def create_entry(
        self, user_id: int | None, kind: EntryKind | str, payload: EntryPayload
    ) -> SyncResult:
        return self._guard("create", user_id, None, lambda: self.create(user_id, kind, payload))

    def list_entries(self, user_id: int | None) -> list[Entry]:
        """Summary: Return every entry owned by the caller.

        Importance: Unauthenticated callers get an empty list, never someone else's rows.
        Alternatives: Raise Unauthenticated to the caller.
        """

        if user_id is None:
            logger.info("Listing entries without a signed-in user.")
            return []
        try:
            return self.store.list_entries(user_id)
        except PersistenceError:
            logger.exception("Failed to list entries for user %s.", user_id)
            return []

    def update_entry(
        self, user_id: int | None, entry_id: int, payload: EntryPayload
    ) -> SyncResult:
        return self._guard(
            "update", user_id, entry_id, lambda: self.update(user_id, entry_id, payload)
        )

    def delete_entry(self, user_id: int | None, entry_id: int) -> SyncResult:
        return self._guard("delete", user_id, entry_id, lambda: self.delete(user_id, entry_id))

    def toggle_task_entry(self, user_id: int | None, entry_id: int) -> SyncResult:
        return self._guard(
            "toggle", user_id, entry_id, lambda: self.toggle_task(user_id, entry_id)
        )

    def create(self, user_id: int | None, kind: EntryKind | str, payload: EntryPayload) -> int:
        """Summary: Create an entry, calling the provider before the local insert.

        Importance: A provider failure leaves no local row behind.
        Alternatives: Insert locally first and mark the row unsynced.
        """

        owner = _require_user(user_id)
        entry_kind = _coerce_kind(kind)
        fields, sync_event = self._entry_fields(entry_kind, payload)
        if sync_event is not None:
            adapter = self.adapter_factory(owner)
            external_event_id = self._push_to_provider(
                "create",
                lambda: adapter.create(sync_event),
                user_id=owner,
                entry_id=None,
                block_on_provider_failure=True,
            )
            fields["external_event_id"] = external_event_id
        try:
            entry_id = self.store.insert_entry(entry_kind, owner, fields)
        except PersistenceError:
            if fields.get("external_event_id"):
                logger.error(
                    "Provider event %s has no local row after a failed insert for user %s.",
                    fields["external_event_id"],
                    owner,
                )
            raise
        logger.info("Created %s %s for user %s.", entry_kind.value, entry_id, owner)
        return entry_id

    def update(self, user_id: int | None, entry_id: int, payload: EntryPayload) -> None:
        """Summary: Update an owned entry, pushing to the provider first when synced.

        Importance: A failed provider update leaves the local row unchanged.
        Alternatives: Update locally and reconcile later.
        """

        entry = self._owned_entry(user_id, entry_id)
        fields, sync_event = self._entry_fields(entry.kind, payload, existing=entry)
        external_event_id = getattr(entry, "external_event_id", None)
        if external_event_id and sync_event is not None:
            adapter = self.adapter_factory(entry.user_id)
            self._push_to_provider(
                "update",
                lambda: adapter.update(external_event_id, sync_event),
                user_id=entry.user_id,
                entry_id=entry_id,
                block_on_provider_failure=True,
            )
        self.store.update_entry(entry_id, fields)
        logger.info("Updated %s %s for user %s.", entry.kind.value, entry_id, entry.user_id)

    def delete(self, user_id: int | None, entry_id: int) -> None:
        """Summary: Delete an owned entry, cleaning up the provider event best-effort.

        Importance: The local row is removed even when the provider event is gone or unreachable.
        Alternatives: Refuse to delete locally until the provider confirms.
        """

        entry = self._owned_entry(user_id, entry_id)
        external_event_id = getattr(entry, "external_event_id", None)
        if external_event_id:
            self._push_to_provider(
                "delete",
                lambda: self.adapter_factory(entry.user_id).delete(external_event_id),
                user_id=entry.user_id,
                entry_id=entry_id,
                block_on_provider_failure=False,
            )
        if not self.store.delete_entry(entry_id):
            # A concurrent delete removed the row first.
            raise NotFound("Entry not found")
        logger.info("Deleted %s %s for user %s.", entry.kind.value, entry_id, entry.user_id)

    def toggle_task(self, user_id: int | None, entry_id: int) -> bool:
        entry = self._owned_entry(user_id, entry_id)
        if not isinstance(entry, Task):
            raise ValidationError("Only tasks can be marked complete")
        completed = not entry.completed
        self.store.update_entry(entry_id, {"completed": completed})
        return completed

    def list_upcoming(
        self, user_id: int | None, days: int = 7, limit: int = 25
    ) -> list[RemoteEvent]:
        """Summary: Read upcoming events straight from the provider calendar.

        Importance: Shows events created outside this application.
        Alternatives: Import remote events into the local entry table.
        """

        owner = _require_user(user_id)
        now = datetime.now(timezone.utc)
        return self.adapter_factory(owner).list_upcoming(now, now + timedelta(days=days), limit)

    def _push_to_provider(
        self,
        operation: str,
        action: Callable[[], T],
        *,
        user_id: int,
        entry_id: int | None,
        block_on_provider_failure: bool,
    ) -> T | None:
        try:
            return action()
        except (ProviderError, NoCredential, MissingRefreshToken) as exc:
            if block_on_provider_failure:
                raise
            if isinstance(exc, ProviderError) and exc.not_found:
                logger.info(
                    "Provider event for entry %s already absent during %s (user %s).",
                    entry_id,
                    operation,
                    user_id,
                )
            else:
                logger.warning(
                    "Provider %s failed for entry %s (user %s), continuing locally: %s",
                    operation,
                    entry_id,
                    user_id,
                    exc,
                )
            return None

    def _owned_entry(self, user_id: int | None, entry_id: int) -> Entry:
        owner = _require_user(user_id)
        entry = self.store.get_entry(entry_id)
        if entry is None:
            raise NotFound("Entry not found")
        if entry.user_id != owner:
            raise Forbidden()
        return entry

    def _entry_fields(
        self,
        kind: EntryKind,
        payload: EntryPayload,
        existing: Entry | None = None,
    ) -> tuple[dict[str, object], SyncEvent | None]:
        """Summary: Validate a payload and map it to entry columns.

        Importance: Validation runs before any side effect so bad input never reaches the provider.
        Alternatives: Validate with per-kind Pydantic models.
        """

        title = payload.title or ""
        if kind is EntryKind.TASK:
            if not title.strip():
                raise ValidationError("Title is required")
            fields: dict[str, object] = {
                "title": title,
                "description": payload.description,
                "due_date": _parse_due_date(payload.due_date),
            }
            if payload.completed is not None:
                fields["completed"] = payload.completed
            elif existing is None:
                fields["completed"] = False
            return fields, None

        if not title.strip() or not payload.date or not payload.time:
            raise ValidationError("Title, date, and time are required")
        start = _parse_start(payload.date, payload.time)
        if kind is EntryKind.APPOINTMENT:
            minutes = payload.duration_minutes or 60
        else:
            minutes = self.default_event_minutes
        if minutes <= 0:
            raise ValidationError("Duration must be a positive number of minutes")
        end = start + timedelta(minutes=minutes)
        fields = {
            "title": title,
            "description": payload.description,
            "start_time": start,
            "end_time": end,
            "guests": payload.guests,
        }
        if kind is EntryKind.APPOINTMENT:
            fields["duration_minutes"] = minutes
            fields["location"] = payload.location
        sync_event = SyncEvent(
            title=title,
            description=payload.description,
            start=start,
            end=end,
            guests=payload.guests,
            location=payload.location if kind is EntryKind.APPOINTMENT else None,
        )
        return fields, sync_event

    def _guard(
        self,
        operation: str,
        user_id: int | None,
        entry_id: int | None,
        action: Callable[[], object],
    ) -> SyncResult:
        try:
            action()
        except ProviderError as exc:
            logger.warning(
                "%s failed at provider for entry %s (user %s): %s", operation, entry_id, user_id, exc
            )
            return SyncResult.failure(
                f"Failed to {operation} entry. Make sure you have granted calendar permissions.",
                exc.code,
            )
        except PersistenceError as exc:
            logger.error("%s failed to persist entry %s (user %s): %s", operation, entry_id, user_id, exc)
            return SyncResult.failure(f"Failed to {operation} entry", exc.code)
        except CalsyncError as exc:
            logger.info("%s rejected for entry %s (user %s): %s", operation, entry_id, user_id, exc)
            return SyncResult.failure(str(exc), exc.code)
        except Exception:
            logger.exception("%s crashed for entry %s (user %s).", operation, entry_id, user_id)
            return SyncResult.failure(f"Failed to {operation} entry", "error")
        return SyncResult.ok()


def _require_user(user_id: int | None) -> int:
    if user_id is None:
        raise Unauthenticated()
    return user_id


def _coerce_kind(kind: EntryKind | str) -> EntryKind:
    try:
        return EntryKind(kind)
    except ValueError as exc:
        raise ValidationError(f"Unknown entry kind: {kind}") from exc


def _parse_start(date: str, time: str) -> datetime:
    try:
        start = datetime.fromisoformat(f"{date.strip()}T{time.strip()}")
    except ValueError as exc:
        raise ValidationError("Invalid date or time") from exc
    if start.tzinfo is None:
        start = start.replace(tzinfo=timezone.utc)
    return start.astimezone(timezone.utc)


def _parse_due_date(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        due = datetime.fromisoformat(value.strip())
    except ValueError as exc:
        raise ValidationError("Invalid due date") from exc
    if due.tzinfo is None:
        due = due.replace(tzinfo=timezone.utc)
    return due
