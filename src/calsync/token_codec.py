"""Summary: Token encoding utilities for stored OAuth credentials.

Importance: Keeps access and refresh tokens obscured in the local credential table.
Alternatives: Use a dedicated secrets manager or strong encryption library.
"""

from __future__ import annotations

import base64
import hashlib
import secrets

_PREFIX = "v1."
_NONCE_BYTES = 8


class TokenCodec:
    """Summary: Salted token encoder/decoder.

    Importance: Provides a lightweight obfuscation layer so rotated tokens never hit disk in clear.
    Alternatives: Use a proper encryption library with key management.
    """

    def __init__(self, secret: str) -> None:
        self._secret = (secret or "calsync").encode("utf-8")

    def encode(self, plaintext: str) -> str:
        """Summary: Encode plaintext under a fresh random nonce.

        Importance: Two users holding the same token value still get different stored strings.
        Alternatives: Use a fixed keystream per deployment.
        """

        nonce = secrets.token_bytes(_NONCE_BYTES)
        raw = plaintext.encode("utf-8")
        key = _keystream(self._secret, nonce, len(raw))
        obfuscated = bytes(b ^ k for b, k in zip(raw, key))
        return _PREFIX + base64.urlsafe_b64encode(nonce + obfuscated).decode("utf-8")

    def decode(self, payload: str) -> str:
        if not payload.startswith(_PREFIX):
            raise ValueError("Unrecognized token encoding")
        blob = base64.urlsafe_b64decode(payload[len(_PREFIX):].encode("utf-8"))
        nonce, obfuscated = blob[:_NONCE_BYTES], blob[_NONCE_BYTES:]
        key = _keystream(self._secret, nonce, len(obfuscated))
        return bytes(b ^ k for b, k in zip(obfuscated, key)).decode("utf-8")

    def encode_optional(self, plaintext: str | None) -> str | None:
        return self.encode(plaintext) if plaintext else None

    def decode_optional(self, payload: str | None) -> str | None:
        return self.decode(payload) if payload else None


def _keystream(secret: bytes, nonce: bytes, length: int) -> bytes:
    """Summary: Derive a deterministic keystream from the secret and nonce.

    Importance: Keeps encoding reversible without external dependencies.
    Alternatives: Use a proper stream cipher.
    """

    output = b""
    counter = 0
    while len(output) < length:
        output += hashlib.sha256(secret + nonce + counter.to_bytes(4, "big")).digest()
        counter += 1
    return output[:length]
