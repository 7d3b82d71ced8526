"""Summary: Google OAuth helpers for calendar authorization.

Importance: Builds consent URLs, exchanges codes, and refreshes tokens without extra dependencies.
Alternatives: Use google-auth-oauthlib flows.
"""

from __future__ import annotations

import http.client
import json
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any
import urllib.error
import urllib.parse
import urllib.request

from calsync.config import AppConfig
from calsync.errors import OAuthError
from calsync.models import Credential


GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_SCOPES = "openid email profile https://www.googleapis.com/auth/calendar"


@dataclass(frozen=True)
class OAuthTokenResult:
    """Summary: Normalized OAuth token response data.

    Importance: Gives the refresh gate one shape for both code exchange and refresh grants.
    Alternatives: Store the raw provider response without normalization.
    """

    access_token: str
    refresh_token: str | None
    expires_at: str | None
    token_type: str | None
    scope: str | None
    raw: dict[str, Any]

    @staticmethod
    def from_response(payload: dict[str, Any]) -> "OAuthTokenResult":
        """Summary: Build an OAuthTokenResult from a token endpoint payload.

        Importance: Converts relative ``expires_in`` into an absolute UTC instant.
        Alternatives: Store ``expires_in`` and the fetch time separately.
        """

        if "access_token" not in payload:
            raise OAuthError("Token response did not include an access token")
        expires_in = payload.get("expires_in")
        expires_at = None
        if isinstance(expires_in, (int, float)):
            expires_at = (datetime.now(timezone.utc) + timedelta(seconds=expires_in)).isoformat()
        return OAuthTokenResult(
            access_token=payload["access_token"],
            refresh_token=payload.get("refresh_token"),
            expires_at=expires_at,
            token_type=payload.get("token_type"),
            scope=payload.get("scope"),
            raw=payload,
        )

    def to_credential(self) -> Credential:
        return Credential(
            access_token=self.access_token,
            refresh_token=self.refresh_token,
            expires_at=self.expires_at,
            token_type=self.token_type,
            scope=self.scope,
        )


def create_state_token() -> str:
    """Summary: Generate a CSRF state token.

    Importance: Protects OAuth callbacks from CSRF attacks.
    Alternatives: Use server-side session storage with pre-generated tokens.
    """

    return secrets.token_urlsafe(24)


def build_google_auth_url(config: AppConfig, state: str) -> str:
    """Summary: Build a Google OAuth authorization URL with calendar scope.

    Importance: Offline access plus forced consent guarantees a refresh token is issued.
    Alternatives: Request online access and re-prompt whenever the token expires.
    """

    params = {
        "client_id": config.google_client_id,
        "redirect_uri": config.oauth_redirect_uri,
        "response_type": "code",
        "access_type": "offline",
        "prompt": "consent",
        "scope": GOOGLE_SCOPES,
        "state": state,
    }
    return GOOGLE_AUTH_URL + "?" + urllib.parse.urlencode(params)


def exchange_oauth_code(config: AppConfig, code: str) -> OAuthTokenResult:
    """Summary: Exchange an authorization code for tokens.

    Importance: Creates the credential used by every later calendar call.
    Alternatives: Delegate the exchange to an external auth service.
    """

    response = _post_form(
        config.google_token_url, _token_payload(config, code), config.provider_timeout_seconds
    )
    return OAuthTokenResult.from_response(response)


def refresh_oauth_token(config: AppConfig, refresh_token: str) -> OAuthTokenResult:
    """Summary: Redeem a refresh token for a new access token.

    Importance: Keeps calendar calls working after the short-lived access token expires.
    Alternatives: Force the user through consent again.
    """

    response = _post_form(
        config.google_token_url,
        _refresh_payload(config, refresh_token),
        config.provider_timeout_seconds,
    )
    return OAuthTokenResult.from_response(response)


def _token_payload(config: AppConfig, code: str) -> dict[str, str]:
    _ensure_oauth_config(config)
    return {
        "client_id": config.google_client_id,
        "client_secret": config.google_client_secret,
        "code": code,
        "grant_type": "authorization_code",
        "redirect_uri": config.oauth_redirect_uri,
    }


def _refresh_payload(config: AppConfig, refresh_token: str) -> dict[str, str]:
    _ensure_oauth_config(config)
    return {
        "client_id": config.google_client_id,
        "client_secret": config.google_client_secret,
        "refresh_token": refresh_token,
        "grant_type": "refresh_token",
    }


def _ensure_oauth_config(config: AppConfig) -> None:
    """Summary: Validate that OAuth client credentials exist.

    Importance: Prevents confusing token endpoint errors when credentials are missing.
    Alternatives: Allow requests to fail at the provider endpoint.
    """

    if not config.google_client_id or not config.google_client_secret:
        raise OAuthError("Missing OAuth client credentials for google")


def _post_form(url: str, payload: dict[str, str], timeout: int) -> dict[str, Any]:
    """Summary: Send a form-encoded POST request and parse JSON.

    Importance: Avoids new dependencies while supporting OAuth grants.
    Alternatives: Use requests or a provider SDK.
    """

    data = urllib.parse.urlencode(payload).encode("utf-8")
    request = urllib.request.Request(
        url,
        data=data,
        headers={"Content-Type": "application/x-www-form-urlencoded"},
        method="POST",
    )
    try:
        with urllib.request.urlopen(request, timeout=timeout) as response:
            raw = response.read().decode("utf-8")
    except urllib.error.HTTPError as exc:
        error_body = exc.read().decode("utf-8", errors="ignore")
        raise OAuthError(
            f"Token request failed: {error_body or exc.reason}", status=exc.code
        ) from exc
    except urllib.error.URLError as exc:
        raise OAuthError(f"Token endpoint unreachable: {exc.reason}") from exc
    except (OSError, http.client.HTTPException) as exc:
        raise OAuthError(f"Token request failed: {exc!r}") from exc
    try:
        return json.loads(raw)
    except json.JSONDecodeError as exc:
        raise OAuthError("Token endpoint returned invalid JSON") from exc
