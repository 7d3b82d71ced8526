"""Summary: Tests for token encoding and the credential store.

Importance: Ensures tokens are encoded at rest and rotations never lose the refresh token.
Alternatives: Trust the OAuth flow to always return complete token sets.
"""

from __future__ import annotations

import pytest

from calsync.models import Credential, User
from calsync.services import GOOGLE_PROVIDER, CredentialService
from calsync.storage.sqlite_store import SqliteStore
from calsync.token_codec import TokenCodec


def _service(tmp_path) -> tuple[CredentialService, SqliteStore, int]:
    store = SqliteStore(str(tmp_path / "test.db"))
    store.initialize()
    user_id = store.ensure_user(User(display_name="Local User", email="local@calsync"))
    return CredentialService(store=store, codec=TokenCodec("secret")), store, user_id


def test_token_codec_roundtrip() -> None:
    """Summary: Verify encoding and decoding restores plaintext.

    Importance: Ensures token storage can be reversed for use.
    Alternatives: Store tokens in a vault without encoding.
    """

    codec = TokenCodec("secret")
    encoded = codec.encode("ya29.token")
    assert encoded != "ya29.token"
    assert codec.decode(encoded) == "ya29.token"


def test_token_codec_uses_fresh_nonce() -> None:
    codec = TokenCodec("secret")
    assert codec.encode("same") != codec.encode("same")


def test_token_codec_rejects_unknown_prefix() -> None:
    with pytest.raises(ValueError):
        TokenCodec("secret").decode("plain-token")


def test_credential_store_and_load(tmp_path) -> None:
    """Summary: Store and load a credential via the service.

    Importance: Confirms tokens come back decoded while the row holds codec output.
    Alternatives: Keep tokens in memory.
    """

    service, store, user_id = _service(tmp_path)
    service.upsert(
        user_id,
        GOOGLE_PROVIDER,
        Credential(access_token="access", refresh_token="refresh", expires_at="2030-01-01T00:00:00+00:00"),
    )
    loaded = service.get(user_id, GOOGLE_PROVIDER)
    assert loaded is not None
    assert loaded.access_token == "access"
    assert loaded.refresh_token == "refresh"
    assert loaded.expires_at == "2030-01-01T00:00:00+00:00"
    row = store.get_credential(user_id, GOOGLE_PROVIDER)
    assert row.access_token != "access"
    assert row.refresh_token != "refresh"


def test_upsert_without_refresh_token_keeps_existing(tmp_path) -> None:
    """Summary: A rotation without a refresh token preserves the stored one.

    Importance: Google omits the refresh token on most refresh grants.
    Alternatives: Re-prompt the user for consent after every refresh.
    """

    service, store, user_id = _service(tmp_path)
    first_id = service.upsert(user_id, GOOGLE_PROVIDER, Credential("old-access", "refresh", "2000-01-01T00:00:00+00:00"))
    second_id = service.upsert(user_id, GOOGLE_PROVIDER, Credential("new-access", None, "2030-01-01T00:00:00+00:00"))
    loaded = service.get(user_id, GOOGLE_PROVIDER)
    assert first_id == second_id
    assert loaded.access_token == "new-access"
    assert loaded.refresh_token == "refresh"
    assert loaded.expires_at == "2030-01-01T00:00:00+00:00"


def test_upsert_with_new_refresh_token_replaces_it(tmp_path) -> None:
    service, _store, user_id = _service(tmp_path)
    service.upsert(user_id, GOOGLE_PROVIDER, Credential("access", "refresh-1"))
    service.upsert(user_id, GOOGLE_PROVIDER, Credential("access-2", "refresh-2"))
    assert service.get(user_id, GOOGLE_PROVIDER).refresh_token == "refresh-2"


def test_missing_credential_returns_none(tmp_path) -> None:
    service, _store, user_id = _service(tmp_path)
    assert service.get(user_id, GOOGLE_PROVIDER) is None
