"""Summary: Tests for configuration loading.

Importance: Ensures defaults, .env, and environment overrides behave correctly.
Alternatives: Validate configuration manually during runtime.
"""

from __future__ import annotations

import json
import os
from pathlib import Path

import pytest

from calsync.config import AppConfig, load_defaults, load_dotenv


DEFAULTS = {
    "db_path": "test.db",
    "api_host": "127.0.0.1",
    "api_port": "8000",
    "default_user_name": "Local User",
    "default_user_email": "local@calsync",
    "api_key": "",
    "google_client_id": "",
    "google_client_secret": "",
    "oauth_redirect_uri": "http://localhost:8000/oauth/callback",
    "google_token_url": "https://oauth2.googleapis.com/token",
    "google_calendar_base_url": "https://www.googleapis.com/calendar/v3",
    "google_calendar_id": "primary",
    "calendar_provider": "google",
    "provider_timeout_seconds": "10",
    "default_event_minutes": "60",
    "token_secret": "",
}


def _write_defaults(root: Path) -> None:
    (root / "config").mkdir()
    (root / "config" / "defaults.json").write_text(json.dumps(DEFAULTS), encoding="utf-8")


def test_load_defaults_reads_json(tmp_path: Path) -> None:
    """Summary: Verify defaults are parsed from JSON.

    Importance: Confirms config file is the source of truth for variables.
    Alternatives: Hardcode defaults in the test.
    """

    defaults_path = tmp_path / "defaults.json"
    defaults_path.write_text("{\"db_path\": \"test.db\"}", encoding="utf-8")
    assert load_defaults(defaults_path)["db_path"] == "test.db"


def test_load_defaults_missing_file(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        load_defaults(tmp_path / "missing.json")


def test_load_dotenv_sets_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Summary: Ensure .env values populate environment variables.

    Importance: Validates local secret loading without external tools.
    Alternatives: Assume OS environment is always set.
    """

    env_path = tmp_path / ".env"
    env_path.write_text("# comment\nGOOGLE_CLIENT_ID=\"from-dotenv\"\n", encoding="utf-8")
    monkeypatch.delenv("GOOGLE_CLIENT_ID", raising=False)
    load_dotenv(env_path)
    assert os.getenv("GOOGLE_CLIENT_ID") == "from-dotenv"
    monkeypatch.delenv("GOOGLE_CLIENT_ID", raising=False)


def test_app_config_uses_defaults(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Summary: Verify AppConfig honors defaults when env is absent.

    Importance: Confirms config file remains the baseline for variables.
    Alternatives: Inline defaults directly in the AppConfig class.
    """

    _write_defaults(tmp_path)
    monkeypatch.chdir(tmp_path)
    for name in ("CALSYNC_DB_PATH", "CALSYNC_CALENDAR_PROVIDER", "GOOGLE_CLIENT_ID"):
        monkeypatch.delenv(name, raising=False)
    config = AppConfig.from_env()
    assert config.db_path == "test.db"
    assert config.api_port == 8000
    assert config.google_calendar_id == "primary"
    assert config.calendar_provider == "google"
    assert config.provider_timeout_seconds == 10
    assert config.default_event_minutes == 60


def test_app_config_env_overrides(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    _write_defaults(tmp_path)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("CALSYNC_CALENDAR_PROVIDER", "mock")
    monkeypatch.setenv("CALSYNC_DEFAULT_EVENT_MINUTES", "30")
    config = AppConfig.from_env()
    assert config.calendar_provider == "mock"
    assert config.default_event_minutes == 30
