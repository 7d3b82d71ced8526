"""Summary: Application factory wiring core services.

Importance: Centralizes dependency creation for the CLI and API layers.
Alternatives: Instantiate services manually in each entrypoint.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from calsync.calendar import CalendarAdapter, GoogleCalendarAdapter, MockCalendarAdapter
from calsync.config import AppConfig
from calsync.services import (
    ApiKeyService,
    CredentialService,
    EntrySyncService,
    TokenRefreshGate,
    UserService,
)
from calsync.storage.sqlite_store import SqliteStore
from calsync.token_codec import TokenCodec


@dataclass(frozen=True)
class AppServices:
    """Summary: Bundle of core services for Calsync.

    Importance: Simplifies passing dependencies to UI or API layers.
    Alternatives: Use a dependency injection container.
    """

    users: UserService
    api_keys: ApiKeyService
    credentials: CredentialService
    gate: TokenRefreshGate
    entries: EntrySyncService
    store: SqliteStore
    config: AppConfig


def build_adapter_factory(
    config: AppConfig, gate: TokenRefreshGate
) -> Callable[[int], CalendarAdapter]:
    """Summary: Choose the calendar adapter for the configured provider.

    Importance: ``mock`` keeps a single in-memory calendar so the app runs without Google.
    Alternatives: Branch on the provider inside the synchronizer.
    """

    if config.calendar_provider == "mock":
        mock = MockCalendarAdapter()
        return lambda _user_id: mock
    if config.calendar_provider != "google":
        raise ValueError(f"Unknown calendar provider: {config.calendar_provider}")
    return lambda user_id: GoogleCalendarAdapter(lambda: gate.get_client(user_id))


def build_services(
    config: AppConfig, adapter_factory: Callable[[int], CalendarAdapter] | None = None
) -> AppServices:
    """Summary: Build core services from configuration.

    Importance: Provides a single construction path for the application.
    Alternatives: Instantiate services directly within each entrypoint.
    """

    store = SqliteStore(config.db_path)
    store.initialize()
    credentials = CredentialService(store=store, codec=TokenCodec(config.token_secret))
    gate = TokenRefreshGate(credentials=credentials, config=config)
    entries = EntrySyncService(
        store=store,
        adapter_factory=adapter_factory or build_adapter_factory(config, gate),
        default_event_minutes=config.default_event_minutes,
    )
    return AppServices(
        users=UserService(store=store),
        api_keys=ApiKeyService(store=store, token_secret=config.token_secret),
        credentials=credentials,
        gate=gate,
        entries=entries,
        store=store,
        config=config,
    )
