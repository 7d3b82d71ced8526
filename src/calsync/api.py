"""Summary: FastAPI application for Calsync.

Importance: Exposes the entry operations and Google authorization over HTTP.
Alternatives: Use a CLI-only workflow or a different web framework.
"""

from __future__ import annotations

import logging
from dataclasses import asdict
from datetime import datetime, timedelta, timezone
from typing import Any

from fastapi import Depends, FastAPI, Header, HTTPException
from fastapi.responses import HTMLResponse, JSONResponse
from pydantic import BaseModel, Field

from calsync.app import AppServices, build_services
from calsync.config import AppConfig
from calsync.errors import CalsyncError, ProviderError
from calsync.models import Credential, Entry, EntryPayload, SyncResult
from calsync.oauth import build_google_auth_url, create_state_token, exchange_oauth_code
from calsync.services import GOOGLE_PROVIDER


logger = logging.getLogger(__name__)

STATUS_BY_CODE = {
    "validation": 400,
    "unauthenticated": 401,
    "no_credential": 401,
    "missing_refresh_token": 401,
    "forbidden": 403,
    "not_found": 404,
    "persistence": 500,
    "error": 500,
    "provider": 502,
    "oauth": 502,
}


class EntryRequest(BaseModel):
    """Summary: Request payload for creating or updating an entry.

    Importance: Mirrors the form fields of the calendar UI for every entry kind.
    Alternatives: Use one request model per entry kind.
    """

    title: str | None = None
    description: str | None = None
    date: str | None = None
    time: str | None = None
    guests: str | None = None
    duration_minutes: int | None = Field(default=None, ge=1, le=24 * 60)
    location: str | None = None
    due_date: str | None = None
    completed: bool | None = None

    def to_payload(self) -> EntryPayload:
        return EntryPayload(**self.model_dump())


class UserCreateRequest(BaseModel):
    display_name: str
    email: str
    label: str | None = None


class CredentialStoreRequest(BaseModel):
    """Summary: Request payload for storing Google tokens directly.

    Importance: Supports deployments where sign-in happens in another service.
    Alternatives: Accept tokens only through the OAuth callback.
    """

    access_token: str
    refresh_token: str | None = None
    expires_at: str | None = None


def entry_to_dict(entry: Entry) -> dict[str, Any]:
    data = asdict(entry)
    data["kind"] = entry.kind.value
    for key, value in data.items():
        if isinstance(value, datetime):
            data[key] = value.isoformat()
    return data


def _respond(result: SyncResult) -> JSONResponse:
    status_code = 200 if result.success else STATUS_BY_CODE.get(result.code or "error", 400)
    return JSONResponse(status_code=status_code, content=result.to_dict())


def create_app(config: AppConfig, services: AppServices | None = None) -> FastAPI:
    """Summary: Create a FastAPI app wired to Calsync services.

    Importance: Ensures the API layer shares the same configuration and storage.
    Alternatives: Instantiate services globally outside the factory.
    """

    if not logging.getLogger().handlers:
        logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    app = FastAPI(title="Calsync API", version="0.1.0")
    services = services or build_services(config)
    app.state.oauth_states = {}

    def require_admin_key(x_admin_key: str | None = Header(default=None)) -> None:
        """Summary: Enforce the admin key on user management when configured.

        Importance: Keeps user creation closed on shared deployments.
        Alternatives: Manage users only through the CLI.
        """

        if not config.api_key:
            return
        if x_admin_key != config.api_key:
            raise HTTPException(status_code=401, detail="Invalid admin key")

    def current_user_id(x_api_key: str | None = Header(default=None)) -> int | None:
        return services.api_keys.resolve_user_id(x_api_key)

    def require_user(user_id: int | None = Depends(current_user_id)) -> int:
        if user_id is None:
            raise HTTPException(status_code=401, detail="You must be signed in")
        return user_id

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.post("/users", dependencies=[Depends(require_admin_key)])
    def create_user(payload: UserCreateRequest) -> dict[str, Any]:
        """Summary: Create a user and issue its first API key.

        Importance: The API key is the session credential for every entry call.
        Alternatives: Issue keys in a separate request.
        """

        user_id = services.users.create_user(payload.display_name, payload.email)
        key_id, token = services.api_keys.create_api_key(user_id, label=payload.label)
        return {"user_id": user_id, "key_id": key_id, "api_key": token}

    @app.get("/oauth/google")
    def oauth_google(user_id: int = Depends(require_user)) -> dict[str, str]:
        state = create_state_token()
        app.state.oauth_states[state] = {"user_id": user_id, "created_at": datetime.now(timezone.utc)}
        return {"url": build_google_auth_url(config, state), "state": state}

    @app.get("/oauth/callback", response_class=HTMLResponse)
    def oauth_callback(code: str, state: str) -> str:
        """Summary: Exchange the authorization code and store the credential.

        Importance: Creates the credential on first sign-in and refreshes it on re-consent.
        Alternatives: Store only a connection marker and exchange tokens later.
        """

        record = app.state.oauth_states.pop(state, None)
        if not record:
            raise HTTPException(status_code=400, detail="Invalid OAuth state")
        if datetime.now(timezone.utc) - record["created_at"] > timedelta(minutes=10):
            raise HTTPException(status_code=400, detail="OAuth state expired")
        try:
            result = exchange_oauth_code(config, code)
        except CalsyncError as exc:
            logger.warning("OAuth code exchange failed for user %s: %s", record["user_id"], exc)
            raise HTTPException(status_code=502, detail="Google authorization failed") from exc
        services.credentials.upsert(record["user_id"], GOOGLE_PROVIDER, result.to_credential())
        if not result.refresh_token:
            logger.warning("Google did not issue a refresh token for user %s.", record["user_id"])
        return "<h1>Calsync connected to Google Calendar</h1><p>You can close this window.</p>"

    @app.post("/credentials")
    def store_credential(
        payload: CredentialStoreRequest, user_id: int = Depends(require_user)
    ) -> dict[str, Any]:
        credential_id = services.credentials.upsert(
            user_id,
            GOOGLE_PROVIDER,
            Credential(
                access_token=payload.access_token,
                refresh_token=payload.refresh_token,
                expires_at=payload.expires_at,
            ),
        )
        return {"id": credential_id}

    @app.get("/entries")
    def list_entries(user_id: int | None = Depends(current_user_id)) -> list[dict[str, Any]]:
        return [entry_to_dict(entry) for entry in services.entries.list_entries(user_id)]

    @app.post("/entries/{kind}")
    def create_entry(
        kind: str, payload: EntryRequest, user_id: int | None = Depends(current_user_id)
    ) -> JSONResponse:
        return _respond(services.entries.create_entry(user_id, kind, payload.to_payload()))

    @app.put("/entries/{entry_id}")
    def update_entry(
        entry_id: int, payload: EntryRequest, user_id: int | None = Depends(current_user_id)
    ) -> JSONResponse:
        return _respond(services.entries.update_entry(user_id, entry_id, payload.to_payload()))

    @app.delete("/entries/{entry_id}")
    def delete_entry(entry_id: int, user_id: int | None = Depends(current_user_id)) -> JSONResponse:
        return _respond(services.entries.delete_entry(user_id, entry_id))

    @app.post("/entries/{entry_id}/toggle")
    def toggle_task(entry_id: int, user_id: int | None = Depends(current_user_id)) -> JSONResponse:
        return _respond(services.entries.toggle_task_entry(user_id, entry_id))

    @app.get("/calendar/upcoming")
    def upcoming(
        days: int = 7, limit: int = 25, user_id: int = Depends(require_user)
    ) -> list[dict[str, Any]]:
        """Summary: List upcoming events from the provider calendar.

        Importance: Shows remote events next to locally created entries.
        Alternatives: Mirror remote events into local storage.
        """

        try:
            events = services.entries.list_upcoming(user_id, days=days, limit=limit)
        except CalsyncError as exc:
            logger.warning("Upcoming events failed for user %s: %s", user_id, exc)
            detail = "Calendar provider request failed" if isinstance(exc, ProviderError) else str(exc)
            raise HTTPException(status_code=STATUS_BY_CODE.get(exc.code, 400), detail=detail) from exc
        return [
            {
                "provider_event_id": event.provider_event_id,
                "title": event.title,
                "start": event.start.isoformat() if event.start else None,
                "end": event.end.isoformat() if event.end else None,
                "attendees": event.attendees,
                "html_link": event.html_link,
            }
            for event in events
        ]

    return app
