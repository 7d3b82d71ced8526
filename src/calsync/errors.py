"""Summary: Error taxonomy for Calsync.

Importance: Lets the synchronizer translate every failure into a caller-facing message.
Alternatives: Raise ValueError and RuntimeError everywhere and match on message text.
"""

from __future__ import annotations


class CalsyncError(Exception):
    """Base exception for calendar entry and credential failures."""

    code = "error"


class Unauthenticated(CalsyncError):
    """Raised when no user could be resolved for the request."""

    code = "unauthenticated"

    def __init__(self, message: str = "You must be signed in") -> None:
        super().__init__(message)


class ValidationError(CalsyncError):
    """Raised when a required entry field is missing or malformed."""

    code = "validation"


class NotFound(CalsyncError):
    """Raised when an entry id has no stored row."""

    code = "not_found"


class Forbidden(CalsyncError):
    """Raised when the caller does not own the entry."""

    code = "forbidden"

    def __init__(self, message: str = "Unauthorized") -> None:
        super().__init__(message)


class ProviderError(CalsyncError):
    """Raised when a calendar provider call fails.

    ``not_found`` marks failures where the remote event is already gone.
    """

    code = "provider"

    def __init__(self, message: str, status: int | None = None, not_found: bool = False) -> None:
        super().__init__(message)
        self.status = status
        self.not_found = not_found


class OAuthError(ProviderError):
    """Raised when the OAuth token endpoint rejects an exchange or refresh."""

    code = "oauth"


class NoCredential(CalsyncError):
    """Raised when the user never authorized the calendar provider."""

    code = "no_credential"


class MissingRefreshToken(CalsyncError):
    """Raised when a stored credential cannot be refreshed and needs re-consent."""

    code = "missing_refresh_token"


class PersistenceError(CalsyncError):
    """Raised when a local store write fails."""

    code = "persistence"
