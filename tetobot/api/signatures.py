"""
tetobot.api.signatures — Standard Webhooks Signature Check
===========================================================

Polar signs webhook deliveries with the Standard Webhooks scheme:

    signed  = f"{webhook-id}.{webhook-timestamp}.{raw body}"
    digest  = base64(HMAC-SHA256(secret, signed))
    header  = "v1,<digest> [v1,<digest> …]"     # webhook-signature

The secret is the raw string configured in the Polar dashboard.
Deliveries older (or newer) than five minutes are rejected so a captured
request cannot be replayed later.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import time
from collections.abc import Mapping

TOLERANCE_SECONDS = 5 * 60


class SignatureError(Exception):
    """The webhook signature headers are missing, stale or do not match."""


def sign(secret: str, msg_id: str, timestamp: int, body: bytes) -> str:
    signed = f"{msg_id}.{timestamp}.".encode() + body
    digest = hmac.new(secret.encode(), signed, hashlib.sha256).digest()
    return "v1," + base64.b64encode(digest).decode()


def verify(
    secret: str,
    headers: Mapping[str, str],
    body: bytes,
    *,
    now: float | None = None,
) -> None:
    """Raise :class:`SignatureError` unless *body* carries a valid signature."""
    msg_id = headers.get("webhook-id")
    raw_ts = headers.get("webhook-timestamp")
    signatures = headers.get("webhook-signature")
    if not msg_id or not raw_ts or not signatures:
        raise SignatureError("Missing webhook signature headers")

    try:
        timestamp = int(raw_ts)
    except ValueError:
        raise SignatureError("Invalid webhook timestamp")

    now = time.time() if now is None else now
    if abs(now - timestamp) > TOLERANCE_SECONDS:
        raise SignatureError("Webhook timestamp outside tolerance")

    expected = sign(secret, msg_id, timestamp, body)
    for candidate in signatures.split(" "):
        if hmac.compare_digest(candidate.encode(), expected.encode()):
            return
    raise SignatureError("No matching webhook signature")
