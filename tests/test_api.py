"""Summary: API integration tests.

Importance: Validates FastAPI endpoints against the entry and authorization workflows.
Alternatives: Use manual curl testing only.
"""

from __future__ import annotations

from dataclasses import replace
from pathlib import Path

from fastapi.testclient import TestClient

from calsync.api import create_app
from calsync.app import build_services
from calsync.config import AppConfig
from calsync.oauth import OAuthTokenResult
from calsync.services import GOOGLE_PROVIDER


def _build_config(db_path: str) -> AppConfig:
    """Summary: Build an AppConfig for API tests.

    Importance: Ensures tests use isolated storage and the in-memory calendar.
    Alternatives: Load AppConfig from environment variables.
    """

    return AppConfig(
        db_path=db_path,
        api_host="127.0.0.1",
        api_port=8000,
        default_user_name="Local User",
        default_user_email="local@calsync",
        api_key="",
        google_client_id="google-client",
        google_client_secret="google-secret",
        oauth_redirect_uri="http://localhost:8000/oauth/callback",
        google_token_url="https://oauth2.googleapis.com/token",
        google_calendar_base_url="https://www.googleapis.com/calendar/v3",
        google_calendar_id="primary",
        calendar_provider="mock",
        provider_timeout_seconds=10,
        default_event_minutes=60,
        token_secret="secret",
    )


def _sign_up(client: TestClient, email: str) -> dict[str, str]:
    response = client.post("/users", json={"display_name": email, "email": email})
    assert response.status_code == 200
    return {"X-Api-Key": response.json()["api_key"]}


STANDUP = {"title": "Standup", "date": "2030-05-01", "time": "09:00", "guests": "a@x.com, b@y.com"}


def test_health(tmp_path: Path) -> None:
    client = TestClient(create_app(_build_config(str(tmp_path / "test.db"))))
    assert client.get("/health").json() == {"status": "ok"}


def test_api_entry_round_trip(tmp_path: Path) -> None:
    """Summary: Create, list, update, and delete an event over HTTP.

    Importance: Confirms the HTTP layer wires into the synchronizer and storage.
    Alternatives: Validate only the CLI workflow.
    """

    client = TestClient(create_app(_build_config(str(tmp_path / "test.db"))))
    headers = _sign_up(client, "ann@example.com")

    response = client.post("/entries/event", json=STANDUP, headers=headers)
    assert response.status_code == 200
    assert response.json() == {"success": True}

    entries = client.get("/entries", headers=headers).json()
    assert len(entries) == 1
    assert entries[0]["kind"] == "event"
    assert entries[0]["external_event_id"] == "mock-1"
    assert entries[0]["start"] == "2030-05-01T09:00:00+00:00"
    entry_id = entries[0]["id"]

    response = client.put(
        f"/entries/{entry_id}",
        json={"title": "Standup (moved)", "date": "2030-05-01", "time": "10:00"},
        headers=headers,
    )
    assert response.json() == {"success": True}
    assert client.get("/entries", headers=headers).json()[0]["title"] == "Standup (moved)"

    assert client.delete(f"/entries/{entry_id}", headers=headers).json() == {"success": True}
    response = client.delete(f"/entries/{entry_id}", headers=headers)
    assert response.status_code == 404
    assert response.json() == {"error": "Entry not found"}


def test_api_requires_session(tmp_path: Path) -> None:
    client = TestClient(create_app(_build_config(str(tmp_path / "test.db"))))
    response = client.post("/entries/event", json=STANDUP)
    assert response.status_code == 401
    assert response.json() == {"error": "You must be signed in"}
    assert client.get("/entries").json() == []
    assert client.get("/entries", headers={"X-Api-Key": "bogus"}).json() == []
    assert client.get("/calendar/upcoming").status_code == 401


def test_api_rejects_foreign_entries(tmp_path: Path) -> None:
    client = TestClient(create_app(_build_config(str(tmp_path / "test.db"))))
    ann = _sign_up(client, "ann@example.com")
    bob = _sign_up(client, "bob@example.com")
    client.post("/entries/event", json=STANDUP, headers=ann)
    entry_id = client.get("/entries", headers=ann).json()[0]["id"]

    response = client.delete(f"/entries/{entry_id}", headers=bob)
    assert response.status_code == 403
    assert response.json() == {"error": "Unauthorized"}
    assert client.get("/entries", headers=bob).json() == []
    assert len(client.get("/entries", headers=ann).json()) == 1


def test_api_validation_errors(tmp_path: Path) -> None:
    client = TestClient(create_app(_build_config(str(tmp_path / "test.db"))))
    headers = _sign_up(client, "ann@example.com")
    response = client.post("/entries/event", json={"title": "Standup"}, headers=headers)
    assert response.status_code == 400
    assert response.json() == {"error": "Title, date, and time are required"}
    response = client.post(
        "/entries/appointment",
        json={"title": "Dentist", "date": "2030-05-01", "time": "09:00", "duration_minutes": 0},
        headers=headers,
    )
    assert response.status_code == 422


def test_api_task_toggle(tmp_path: Path) -> None:
    client = TestClient(create_app(_build_config(str(tmp_path / "test.db"))))
    headers = _sign_up(client, "ann@example.com")
    client.post("/entries/task", json={"title": "Buy milk"}, headers=headers)
    task = client.get("/entries", headers=headers).json()[0]
    assert task["completed"] is False

    assert client.post(f"/entries/{task['id']}/toggle", headers=headers).json() == {"success": True}
    assert client.get("/entries", headers=headers).json()[0]["completed"] is True


def test_api_upcoming_lists_provider_events(tmp_path: Path) -> None:
    client = TestClient(create_app(_build_config(str(tmp_path / "test.db"))))
    headers = _sign_up(client, "ann@example.com")
    client.post("/entries/event", json=STANDUP, headers=headers)
    response = client.get("/calendar/upcoming", params={"days": 36500}, headers=headers)
    assert response.status_code == 200
    [event] = response.json()
    assert event["provider_event_id"] == "mock-1"
    assert event["attendees"] == ["a@x.com", "b@y.com"]


def test_admin_key_guards_user_creation(tmp_path: Path) -> None:
    config = replace(_build_config(str(tmp_path / "test.db")), api_key="admin")
    client = TestClient(create_app(config))
    payload = {"display_name": "Ann", "email": "ann@example.com"}
    assert client.post("/users", json=payload).status_code == 401
    response = client.post("/users", json=payload, headers={"X-Admin-Key": "admin"})
    assert response.status_code == 200
    assert response.json()["api_key"]


def test_oauth_callback_stores_credential(tmp_path: Path, monkeypatch) -> None:
    """Summary: The OAuth callback exchanges the code and stores tokens.

    Importance: This is how users first connect their Google calendar.
    Alternatives: Store tokens only through the credentials endpoint.
    """

    def _fake_exchange(_config: AppConfig, code: str) -> OAuthTokenResult:
        assert code == "auth-code"
        return OAuthTokenResult(
            access_token="access",
            refresh_token="refresh",
            expires_at="2099-01-01T00:00:00+00:00",
            token_type="Bearer",
            scope="https://www.googleapis.com/auth/calendar",
            raw={},
        )

    monkeypatch.setattr("calsync.api.exchange_oauth_code", _fake_exchange)
    config = _build_config(str(tmp_path / "test.db"))
    services = build_services(config)
    client = TestClient(create_app(config, services=services))
    headers = _sign_up(client, "ann@example.com")
    user_id = services.api_keys.resolve_user_id(headers["X-Api-Key"])

    start = client.get("/oauth/google", headers=headers).json()
    assert "accounts.google.com" in start["url"]
    response = client.get("/oauth/callback", params={"code": "auth-code", "state": start["state"]})
    assert response.status_code == 200
    credential = services.credentials.get(user_id, GOOGLE_PROVIDER)
    assert credential.refresh_token == "refresh"

    replay = client.get("/oauth/callback", params={"code": "auth-code", "state": start["state"]})
    assert replay.status_code == 400


def test_store_credential_endpoint(tmp_path: Path) -> None:
    config = _build_config(str(tmp_path / "test.db"))
    services = build_services(config)
    client = TestClient(create_app(config, services=services))
    headers = _sign_up(client, "ann@example.com")
    response = client.post(
        "/credentials", json={"access_token": "access", "refresh_token": "refresh"}, headers=headers
    )
    assert response.status_code == 200
    user_id = services.api_keys.resolve_user_id(headers["X-Api-Key"])
    assert services.credentials.get(user_id, GOOGLE_PROVIDER).access_token == "access"
