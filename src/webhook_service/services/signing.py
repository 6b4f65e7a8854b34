"""Webhook secrets and HMAC-SHA256 payload signatures."""
from __future__ import annotations

import hmac
import json
import secrets
import time
from hashlib import sha256
from typing import Any

SIGNATURE_HEADER = "X-Webhook-Signature"
TIMESTAMP_HEADER = "X-Webhook-Timestamp"
SIGNATURE_PREFIX = "sha256="


def generate_secret() -> str:
    """Return a new 256-bit signing secret as 64 hex characters."""
    return secrets.token_hex(32)


def canonical_body(payload: dict[str, Any]) -> bytes:
    """Serialize a stored payload to the exact bytes sent on every attempt."""
    return json.dumps(
        payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False
    ).encode("utf-8")


def _message(body: bytes, timestamp: int | None) -> bytes:
    if timestamp is None:
        return body
    return f"{timestamp}.".encode("ascii") + body


def sign(secret: str, body: bytes, timestamp: int | None = None) -> str:
    """Hex HMAC-SHA256 of ``body`` (prefixed with ``"{timestamp}."`` when given)."""
    return hmac.new(secret.encode("utf-8"), _message(body, timestamp), sha256).hexdigest()


def signature_header(secret: str, body: bytes, timestamp: int) -> str:
    return f"{SIGNATURE_PREFIX}{sign(secret, body, timestamp)}"


def verify(
    secret: str,
    body: bytes,
    signature: str,
    *,
    timestamp: int | None = None,
    tolerance_seconds: int = 300,
    now: float | None = None,
) -> bool:
    """Check a signature the way a receiver should.

    Accepts the bare hex digest or the ``sha256=`` header form. When a
    timestamp is given it must be within ``tolerance_seconds`` of ``now``.
    """
    if signature.startswith(SIGNATURE_PREFIX):
        signature = signature[len(SIGNATURE_PREFIX):]
    if timestamp is not None:
        current = time.time() if now is None else now
        if abs(current - timestamp) > tolerance_seconds:
            return False
    expected = sign(secret, body, timestamp)
    return hmac.compare_digest(expected, signature)
