"""Summary: Application configuration for Calsync.

Importance: Centralizes environment, .env, and config defaults for consistent behavior.
Alternatives: Use a dedicated settings library like Pydantic Settings.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from dataclasses import dataclass


@dataclass(frozen=True)
class AppConfig:
    """Summary: Holds configuration values for the calendar provider and storage.

    Importance: Ensures all services derive settings from a single source of truth.
    Alternatives: Store settings in a shared config file and parse at startup.
    """

    db_path: str
    api_host: str
    api_port: int
    default_user_name: str
    default_user_email: str
    api_key: str
    google_client_id: str
    google_client_secret: str
    oauth_redirect_uri: str
    google_token_url: str
    google_calendar_base_url: str
    google_calendar_id: str
    calendar_provider: str
    provider_timeout_seconds: int
    default_event_minutes: int
    token_secret: str

    @staticmethod
    def from_env() -> "AppConfig":
        """Summary: Build configuration from defaults, .env, and environment.

        Importance: Keeps all variables defined in config defaults while allowing overrides.
        Alternatives: Parse only environment variables without a defaults file.
        """

        defaults = load_defaults(Path("config") / "defaults.json")
        load_dotenv(Path(".env"))
        return AppConfig(
            db_path=os.getenv("CALSYNC_DB_PATH", defaults["db_path"]),
            api_host=os.getenv("CALSYNC_API_HOST", defaults["api_host"]),
            api_port=int(os.getenv("CALSYNC_API_PORT", defaults["api_port"])),
            default_user_name=os.getenv(
                "CALSYNC_DEFAULT_USER_NAME", defaults["default_user_name"]
            ),
            default_user_email=os.getenv(
                "CALSYNC_DEFAULT_USER_EMAIL", defaults["default_user_email"]
            ),
            api_key=os.getenv("CALSYNC_API_KEY", defaults["api_key"]),
            google_client_id=os.getenv("GOOGLE_CLIENT_ID", defaults["google_client_id"]),
            google_client_secret=os.getenv("GOOGLE_CLIENT_SECRET", defaults["google_client_secret"]),
            oauth_redirect_uri=os.getenv(
                "CALSYNC_OAUTH_REDIRECT_URI", defaults["oauth_redirect_uri"]
            ),
            google_token_url=os.getenv("GOOGLE_TOKEN_URL", defaults["google_token_url"]),
            google_calendar_base_url=os.getenv(
                "GOOGLE_CALENDAR_BASE_URL", defaults["google_calendar_base_url"]
            ),
            google_calendar_id=os.getenv("CALSYNC_CALENDAR_ID", defaults["google_calendar_id"]),
            calendar_provider=os.getenv(
                "CALSYNC_CALENDAR_PROVIDER", defaults["calendar_provider"]
            ),
            provider_timeout_seconds=int(
                os.getenv("CALSYNC_PROVIDER_TIMEOUT", defaults["provider_timeout_seconds"])
            ),
            default_event_minutes=int(
                os.getenv("CALSYNC_DEFAULT_EVENT_MINUTES", defaults["default_event_minutes"])
            ),
            token_secret=os.getenv("CALSYNC_TOKEN_SECRET", defaults["token_secret"]),
        )


def load_defaults(path: Path) -> dict[str, str]:
    """Summary: Load configuration defaults from JSON.

    Importance: Ensures all variables exist in a single config file.
    Alternatives: Inline defaults in the AppConfig initializer.
    """

    if not path.exists():
        raise FileNotFoundError(f"Defaults file not found: {path}")
    return json.loads(path.read_text(encoding="utf-8"))


def load_dotenv(path: Path) -> None:
    """Summary: Load key-value pairs from a .env file into the environment.

    Importance: Keeps OAuth client secrets out of code while supporting local workflows.
    Alternatives: Use python-dotenv or OS-specific secret stores.
    """

    if not path.exists():
        return
    for raw_line in path.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        os.environ.setdefault(key.strip(), value.strip().strip('"'))
