"""Summary: Calendar provider client and adapters.

Importance: Translates entries into Google Calendar events and keeps OAuth tokens fresh during calls.
Alternatives: Use google-api-python-client with google-auth credentials.
"""

from __future__ import annotations

import http.client
import itertools
import json
import logging
import threading
import urllib.error
import urllib.parse
import urllib.request
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from calsync.errors import ProviderError
from calsync.models import RemoteEvent, SyncEvent
from calsync.oauth import OAuthTokenResult


logger = logging.getLogger(__name__)

TokenListener = Callable[[OAuthTokenResult], None]
Refresher = Callable[[str], OAuthTokenResult]

EXPIRY_SKEW = timedelta(seconds=60)


def parse_guests(guests: str | None) -> list[str]:
    """Summary: Split a comma-delimited guest string into addresses.

    Importance: Whitespace and empty tokens must never become attendees.
    Alternatives: Store guests as a JSON array.
    """

    if not guests:
        return []
    return [item.strip() for item in guests.split(",") if item.strip()]


def send_updates_for(attendees: list[dict[str, str]]) -> str:
    return "all" if attendees else "none"


def _utc_iso(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def build_event_body(event: SyncEvent) -> dict[str, Any]:
    """Summary: Build a Google Calendar event resource.

    Importance: Create and update share one translation so both honor the same attendee policy.
    Alternatives: Build request bodies inline per call.
    """

    body: dict[str, Any] = {
        "summary": event.title,
        "description": event.description or "",
        "start": {"dateTime": _utc_iso(event.start), "timeZone": "UTC"},
        "end": {"dateTime": _utc_iso(event.end), "timeZone": "UTC"},
    }
    attendees = [{"email": email} for email in parse_guests(event.guests)]
    if attendees:
        body["attendees"] = attendees
    if event.location:
        body["location"] = event.location
    return body


class GoogleCalendarClient:
    """Summary: Minimal Google Calendar v3 REST client with token rotation.

    Importance: Refreshes expired access tokens on its own and reports every
    rotation to registered listeners before the call returns.
    Alternatives: Refresh tokens in the caller before each request.
    """

    def __init__(
        self,
        access_token: str | None,
        refresh_token: str | None,
        expires_at: str | None,
        refresher: Refresher,
        base_url: str,
        calendar_id: str = "primary",
        timeout: int = 10,
    ) -> None:
        self._access_token = access_token
        self._refresh_token = refresh_token
        self._expires_at = expires_at
        self._refresher = refresher
        self._base_url = base_url.rstrip("/")
        self._calendar_id = calendar_id
        self._timeout = timeout
        self._listeners: list[TokenListener] = []
        self._lock = threading.Lock()

    def on_tokens(self, listener: TokenListener) -> None:
        """Summary: Register a callback for rotated tokens.

        Importance: Lets the refresh gate persist tokens without the client knowing about storage.
        Alternatives: Pass a storage object into the client.
        """

        self._listeners.append(listener)

    @property
    def access_token(self) -> str | None:
        return self._access_token

    def request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        body: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Summary: Call a calendar-scoped endpoint, refreshing tokens as needed.

        Importance: Refreshes proactively near expiry and once more on a 401.
        Alternatives: Fail on 401 and let the caller retry.
        """

        token = self._access_token
        if not token or self._expires_soon():
            self._refresh(token)
            token = self._access_token
        try:
            return self._send(method, path, params, body)
        except ProviderError as exc:
            if exc.status != 401:
                raise
            logger.info("Calendar call rejected with 401, refreshing access token.")
        self._refresh(token)
        return self._send(method, path, params, body)

    def _refresh(self, stale_token: str | None) -> None:
        with self._lock:
            if self._access_token and self._access_token != stale_token:
                # Another call already rotated the token.
                return
            if not self._refresh_token:
                raise ProviderError("Access token expired and no refresh token is available", 401)
            result = self._refresher(self._refresh_token)
            # Expiry first, so a reader that sees the new token never sees the old expiry.
            self._expires_at = result.expires_at
            if result.refresh_token:
                self._refresh_token = result.refresh_token
            self._access_token = result.access_token
        self._emit(result)

    def _emit(self, result: OAuthTokenResult) -> None:
        for listener in list(self._listeners):
            try:
                listener(result)
            except Exception:
                logger.exception("Token rotation listener failed.")

    def _expires_soon(self) -> bool:
        if not self._expires_at:
            return False
        try:
            expires = datetime.fromisoformat(self._expires_at)
        except ValueError:
            return False
        if expires.tzinfo is None:
            expires = expires.replace(tzinfo=timezone.utc)
        return expires <= datetime.now(timezone.utc) + EXPIRY_SKEW

    def _send(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None,
        body: dict[str, Any] | None,
    ) -> dict[str, Any]:
        calendar = urllib.parse.quote(self._calendar_id, safe="")
        url = f"{self._base_url}/calendars/{calendar}/{path}"
        if params:
            url += "?" + urllib.parse.urlencode(params)
        data = json.dumps(body).encode("utf-8") if body is not None else None
        request = urllib.request.Request(
            url,
            data=data,
            headers={
                "Authorization": f"Bearer {self._access_token}",
                "Content-Type": "application/json",
            },
            method=method,
        )
        try:
            with urllib.request.urlopen(request, timeout=self._timeout) as response:
                raw = response.read().decode("utf-8")
        except urllib.error.HTTPError as exc:
            error_body = exc.read().decode("utf-8", errors="ignore")
            raise ProviderError(
                f"Google Calendar {method} {path} failed ({exc.code}): {error_body or exc.reason}",
                status=exc.code,
                not_found=exc.code in (404, 410),
            ) from exc
        except urllib.error.URLError as exc:
            raise ProviderError(f"Google Calendar unreachable: {exc.reason}") from exc
        except (OSError, http.client.HTTPException) as exc:
            # Timeouts and dropped connections while reading the response.
            raise ProviderError(f"Google Calendar {method} {path} failed: {exc!r}") from exc
        if not raw:
            return {}
        try:
            return json.loads(raw)
        except json.JSONDecodeError as exc:
            raise ProviderError(f"Google Calendar returned invalid JSON for {method} {path}") from exc


class CalendarAdapter(ABC):
    """Summary: Abstract interface for provider-side event writes.

    Importance: Lets the synchronizer stay identical for live and offline providers.
    Alternatives: Couple the synchronizer to a single calendar API.
    """

    @abstractmethod
    def create(self, event: SyncEvent) -> str:
        """Create a provider event and return its identifier."""

    @abstractmethod
    def update(self, external_event_id: str, event: SyncEvent) -> None:
        """Overwrite a provider event in place."""

    @abstractmethod
    def delete(self, external_event_id: str) -> None:
        """Delete a provider event; raises ProviderError(not_found=True) when already gone."""

    @abstractmethod
    def list_upcoming(
        self, time_min: datetime, time_max: datetime | None, limit: int
    ) -> list[RemoteEvent]:
        """List provider events starting after ``time_min``."""


class GoogleCalendarAdapter(CalendarAdapter):
    """Summary: Google Calendar implementation of the adapter.

    Importance: Obtains a live client per call so credential checks run before any request.
    Alternatives: Hold one client for the lifetime of the process.
    """

    def __init__(self, client_source: Callable[[], GoogleCalendarClient]) -> None:
        self._client_source = client_source

    def create(self, event: SyncEvent) -> str:
        body = build_event_body(event)
        response = self._client_source().request(
            "POST",
            "events",
            params={"sendUpdates": send_updates_for(body.get("attendees", []))},
            body=body,
        )
        event_id = response.get("id")
        if not event_id:
            raise ProviderError("Google Calendar did not return an event id")
        return event_id

    def update(self, external_event_id: str, event: SyncEvent) -> None:
        body = build_event_body(event)
        self._client_source().request(
            "PUT",
            f"events/{urllib.parse.quote(external_event_id, safe='')}",
            params={"sendUpdates": send_updates_for(body.get("attendees", []))},
            body=body,
        )

    def delete(self, external_event_id: str) -> None:
        self._client_source().request(
            "DELETE", f"events/{urllib.parse.quote(external_event_id, safe='')}"
        )

    def list_upcoming(
        self, time_min: datetime, time_max: datetime | None, limit: int
    ) -> list[RemoteEvent]:
        params: dict[str, Any] = {
            "timeMin": _utc_iso(time_min),
            "singleEvents": "true",
            "orderBy": "startTime",
            "maxResults": limit,
        }
        if time_max is not None:
            params["timeMax"] = _utc_iso(time_max)
        payload = self._client_source().request("GET", "events", params=params)
        return [_parse_remote_event(item) for item in payload.get("items", [])]


class MockCalendarAdapter(CalendarAdapter):
    """Summary: In-memory calendar used offline and in tests.

    Importance: Records every call with the same request bodies the Google adapter would send.
    Alternatives: Stub the HTTP layer with recorded responses.
    """

    def __init__(self) -> None:
        self.events: dict[str, dict[str, Any]] = {}
        self.calls: list[tuple[str, str | None, str | None]] = []
        self._ids = itertools.count(1)

    def create(self, event: SyncEvent) -> str:
        body = build_event_body(event)
        event_id = f"mock-{next(self._ids)}"
        self.events[event_id] = body
        self.calls.append(("create", event_id, send_updates_for(body.get("attendees", []))))
        return event_id

    def update(self, external_event_id: str, event: SyncEvent) -> None:
        body = build_event_body(event)
        self.calls.append(
            ("update", external_event_id, send_updates_for(body.get("attendees", [])))
        )
        if external_event_id not in self.events:
            raise ProviderError("Event not found", status=404, not_found=True)
        self.events[external_event_id] = body

    def delete(self, external_event_id: str) -> None:
        self.calls.append(("delete", external_event_id, None))
        if self.events.pop(external_event_id, None) is None:
            raise ProviderError("Resource has been deleted", status=410, not_found=True)

    def list_upcoming(
        self, time_min: datetime, time_max: datetime | None, limit: int
    ) -> list[RemoteEvent]:
        events = [_parse_remote_event({"id": key, **body}) for key, body in self.events.items()]
        lower = time_min if time_min.tzinfo else time_min.replace(tzinfo=timezone.utc)
        upper = None
        if time_max is not None:
            upper = time_max if time_max.tzinfo else time_max.replace(tzinfo=timezone.utc)
        selected = [
            event
            for event in events
            if event.start and event.start >= lower and (upper is None or event.start < upper)
        ]
        return sorted(selected, key=lambda event: event.start)[:limit]


def _parse_remote_event(item: dict[str, Any]) -> RemoteEvent:
    """Summary: Convert a Google event resource into a RemoteEvent.

    Importance: All-day events carry ``date`` instead of ``dateTime`` and must still parse.
    Alternatives: Skip all-day events entirely.
    """

    return RemoteEvent(
        provider_event_id=item.get("id", ""),
        title=item.get("summary", "Untitled"),
        start=_parse_event_time(item.get("start") or {}),
        end=_parse_event_time(item.get("end") or {}),
        attendees=[
            attendee.get("email", "")
            for attendee in item.get("attendees", [])
            if attendee.get("email")
        ],
        html_link=item.get("htmlLink"),
    )


def _parse_event_time(value: dict[str, str]) -> datetime | None:
    raw = value.get("dateTime") or value.get("date")
    if not raw:
        return None
    parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
