"""HMAC-SHA256 signing and verification of webhook payloads.

The signed bytes are the canonical JSON encoding of the event (compact
separators, sorted keys, UTF-8). The dispatcher embeds exactly these bytes as
the ``event`` member of the request body, so a receiver can verify either by
re-canonicalizing ``body["event"]`` or by slicing the raw body.
"""
from __future__ import annotations

import hmac
import json
import secrets
from hashlib import sha256
from typing import Any

SIGNATURE_HEADER = "X-Webhook-Signature"
SECRET_BYTES = 32


def canonical_json(value: Any) -> bytes:
    return json.dumps(
        value, separators=(",", ":"), sort_keys=True, ensure_ascii=False
    ).encode("utf-8")


def _as_bytes(payload: bytes | str) -> bytes:
    return payload if isinstance(payload, bytes) else payload.encode("utf-8")


def generate_secret() -> str:
    """Return a new random HMAC key (hex, 64 chars)."""
    return secrets.token_hex(SECRET_BYTES)


def sign(payload: bytes | str, secret: str) -> str:
    """Hex HMAC-SHA256 of *payload* keyed by *secret*."""
    return hmac.new(secret.encode("utf-8"), _as_bytes(payload), sha256).hexdigest()


def verify(payload: bytes | str, signature: str, secret: str) -> bool:
    """Constant-time check of *signature* against *payload*."""
    expected = sign(payload, secret)
    try:
        candidate = signature.strip().lower().encode("ascii")
    except (AttributeError, UnicodeEncodeError):
        return False
    return hmac.compare_digest(candidate, expected.encode("ascii"))


def sign_event(event: dict[str, Any], secret: str) -> tuple[bytes, str]:
    """Canonicalize *event* and sign it; returns ``(event_bytes, signature)``."""
    event_bytes = canonical_json(event)
    return event_bytes, sign(event_bytes, secret)
