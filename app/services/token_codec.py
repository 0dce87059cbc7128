"""
Compact encoding for temporary video access tokens.

A token is the URL-safe base64 form of ``file_id:identity:expires_at_ms``.
This is obfuscation, not a signature: anyone who knows the layout can build
a token for any file and expiry. Forgery is only blocked when persisted token
records are enforced (see ``TokenVerifier``).
"""

from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass

from app.core.errors import MalformedTokenError

_SEPARATOR = ":"

# 9999-12-31T00:00:00Z; later instants do not fit in a datetime.
MAX_EXPIRES_AT_MS = 253_402_214_400_000
_MAX_EXPIRY_DIGITS = len(str(MAX_EXPIRES_AT_MS))


@dataclass(frozen=True)
class AccessToken:
    """Decoded contents of an access token."""

    resource_locator_id: str
    requester_identity: str
    expires_at_ms: int

    def is_expired(self, now_ms: int) -> bool:
        return now_ms > self.expires_at_ms


def token_safe(value: str) -> str:
    """Replace separators so addresses such as IPv6 fit in a token field."""
    return value.replace(_SEPARATOR, "_")


def encode_token(
    resource_locator_id: str, requester_identity: str, expires_at_ms: int
) -> str:
    """Encode the token triple into its URL-safe wire form."""
    if not resource_locator_id:
        raise ValueError("resource_locator_id must not be empty.")
    for value in (resource_locator_id, requester_identity):
        if _SEPARATOR in value:
            raise ValueError(f"Token fields may not contain {_SEPARATOR!r}.")
    if not 0 <= int(expires_at_ms) <= MAX_EXPIRES_AT_MS:
        raise ValueError("expires_at_ms is out of range.")

    joined = _SEPARATOR.join(
        (resource_locator_id, requester_identity, str(int(expires_at_ms)))
    )
    encoded = base64.b64encode(joined.encode("utf-8")).decode("ascii")
    return encoded.replace("+", "-").replace("/", "_").rstrip("=")


def decode_token(token: str) -> AccessToken:
    """Decode a wire token, raising ``MalformedTokenError`` on any defect."""
    if not token:
        raise MalformedTokenError("Empty token.")

    standard = token.replace("-", "+").replace("_", "/")
    padded = standard + "=" * (-len(standard) % 4)
    try:
        raw = base64.b64decode(padded, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError, ValueError) as exc:
        raise MalformedTokenError("Token is not valid base64.") from exc

    parts = raw.split(_SEPARATOR)
    if len(parts) != 3:
        raise MalformedTokenError(
            f"Token has {len(parts)} fields; expected 3."
        )

    locator, identity, expires_raw = parts
    if not locator:
        raise MalformedTokenError("Token has an empty file identifier.")
    if not (expires_raw.isascii() and expires_raw.isdigit()):
        raise MalformedTokenError("Token expiry is not an integer.")
    if len(expires_raw) > _MAX_EXPIRY_DIGITS or int(expires_raw) > MAX_EXPIRES_AT_MS:
        raise MalformedTokenError("Token expiry is out of range.")

    return AccessToken(
        resource_locator_id=locator,
        requester_identity=identity,
        expires_at_ms=int(expires_raw),
    )


__all__ = [
    "AccessToken",
    "MAX_EXPIRES_AT_MS",
    "MalformedTokenError",
    "decode_token",
    "encode_token",
    "token_safe",
]
