"""Summary: Command-line interface for Calsync.

Importance: Provides a local entry point for managing users, credentials, and entries.
Alternatives: Drive everything through the HTTP API.
"""

from __future__ import annotations

import argparse
import logging

from calsync.app import AppServices, build_services
from calsync.config import AppConfig
from calsync.models import Credential, EntryKind, EntryPayload, SyncResult, Task
from calsync.oauth import build_google_auth_url, create_state_token
from calsync.services import GOOGLE_PROVIDER


def build_parser() -> argparse.ArgumentParser:
    """Summary: Build the CLI argument parser.

    Importance: Defines supported commands for local operation.
    Alternatives: Use a CLI framework like Typer or Click.
    """

    parser = argparse.ArgumentParser(description="Calsync CLI")
    parser.add_argument(
        "--user-email", type=str, default=None, help="Act as this user instead of the default"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    create_user = subparsers.add_parser("create-user", help="Create a user")
    create_user.add_argument("display_name", type=str)
    create_user.add_argument("email", type=str)

    create_api_key = subparsers.add_parser("create-api-key", help="Issue an API key")
    create_api_key.add_argument("--label", type=str, default=None)

    subparsers.add_parser("oauth-google", help="Print Google OAuth URL")

    store_credential = subparsers.add_parser(
        "store-credential", help="Store Google tokens for the current user"
    )
    store_credential.add_argument("access_token", type=str)
    store_credential.add_argument("--refresh-token", type=str, default=None)
    store_credential.add_argument("--expires-at", type=str, default=None)

    for kind in (EntryKind.EVENT, EntryKind.APPOINTMENT):
        add_entry = subparsers.add_parser(f"add-{kind.value}", help=f"Create an {kind.value}")
        _add_timed_arguments(add_entry)

    add_task = subparsers.add_parser("add-task", help="Create a task")
    add_task.add_argument("title", type=str)
    add_task.add_argument("--description", type=str, default=None)
    add_task.add_argument("--due-date", type=str, default=None)

    subparsers.add_parser("list-entries", help="List entries")

    update_entry = subparsers.add_parser("update-entry", help="Update an event or appointment")
    update_entry.add_argument("entry_id", type=int)
    _add_timed_arguments(update_entry)

    delete_entry = subparsers.add_parser("delete-entry", help="Delete an entry")
    delete_entry.add_argument("entry_id", type=int)

    toggle_task = subparsers.add_parser("toggle-task", help="Toggle task completion")
    toggle_task.add_argument("entry_id", type=int)

    subparsers.add_parser("serve", help="Run the HTTP API with uvicorn")

    return parser


def _add_timed_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("title", type=str)
    parser.add_argument("date", type=str, help="YYYY-MM-DD")
    parser.add_argument("time", type=str, help="HH:MM (UTC)")
    parser.add_argument("--description", type=str, default=None)
    parser.add_argument("--guests", type=str, default=None, help="Comma-separated emails")
    parser.add_argument("--duration", type=int, default=None, help="Appointment minutes")
    parser.add_argument("--location", type=str, default=None)


def _timed_payload(args: argparse.Namespace) -> EntryPayload:
    return EntryPayload(
        title=args.title,
        description=args.description,
        date=args.date,
        time=args.time,
        guests=args.guests,
        duration_minutes=args.duration,
        location=args.location,
    )


def _resolve_user(services: AppServices, config: AppConfig, email: str | None) -> int | None:
    if email:
        user = services.users.get_user_by_email(email)
        return user.id if user else None
    return services.users.create_user(config.default_user_name, config.default_user_email)


def _print_result(result: SyncResult, success_message: str) -> None:
    if result.success:
        print(success_message)
    else:
        print(f"Error: {result.error}")


def run_cli() -> None:
    """Summary: Execute CLI commands based on arguments.

    Importance: Lets operators exercise the synchronizer without a UI.
    Alternatives: Invoke services via an HTTP API.
    """

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    parser = build_parser()
    args = parser.parse_args()
    config = AppConfig.from_env()

    if args.command == "serve":
        import uvicorn

        from calsync.api import create_app

        uvicorn.run(create_app(config), host=config.api_host, port=config.api_port)
        return

    services = build_services(config)

    if args.command == "create-user":
        user_id = services.users.create_user(args.display_name, args.email)
        print(f"User {user_id} ({args.email}).")
        return

    user_id = _resolve_user(services, config, args.user_email)

    if args.command == "create-api-key":
        if user_id is None:
            print("Error: unknown user")
            return
        key_id, token = services.api_keys.create_api_key(user_id, label=args.label)
        print(f"API key {key_id}: {token}")
        return

    if args.command == "oauth-google":
        print(build_google_auth_url(config, create_state_token()))
        return

    if args.command == "store-credential":
        if user_id is None:
            print("Error: unknown user")
            return
        services.credentials.upsert(
            user_id,
            GOOGLE_PROVIDER,
            Credential(
                access_token=args.access_token,
                refresh_token=args.refresh_token,
                expires_at=args.expires_at,
            ),
        )
        print("Stored Google credential.")
        return

    if args.command in ("add-event", "add-appointment"):
        kind = EntryKind.EVENT if args.command == "add-event" else EntryKind.APPOINTMENT
        result = services.entries.create_entry(user_id, kind, _timed_payload(args))
        _print_result(result, f"Created {kind.value} {args.title}.")
        return

    if args.command == "add-task":
        payload = EntryPayload(
            title=args.title, description=args.description, due_date=args.due_date
        )
        result = services.entries.create_entry(user_id, EntryKind.TASK, payload)
        _print_result(result, f"Created task {args.title}.")
        return

    if args.command == "list-entries":
        for entry in services.entries.list_entries(user_id):
            if isinstance(entry, Task):
                status = "done" if entry.completed else "open"
                print(f"{entry.id}: [task] {entry.title} ({status})")
            else:
                synced = entry.external_event_id or "unsynced"
                print(f"{entry.id}: [{entry.kind.value}] {entry.title} {entry.start} ({synced})")
        return

    if args.command == "update-entry":
        result = services.entries.update_entry(user_id, args.entry_id, _timed_payload(args))
        _print_result(result, f"Updated entry {args.entry_id}.")
        return

    if args.command == "delete-entry":
        result = services.entries.delete_entry(user_id, args.entry_id)
        _print_result(result, f"Deleted entry {args.entry_id}.")
        return

    if args.command == "toggle-task":
        result = services.entries.toggle_task_entry(user_id, args.entry_id)
        _print_result(result, f"Toggled task {args.entry_id}.")
        return


if __name__ == "__main__":
    run_cli()
