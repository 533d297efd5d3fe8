"""Slack request signature verification (``X-Slack-Signature``)."""

from __future__ import annotations

import hashlib
import hmac
import time

from joebot.assistant.errors import ValidationError

SIGNATURE_HEADER = "X-Slack-Signature"
TIMESTAMP_HEADER = "X-Slack-Request-Timestamp"
SIGNATURE_VERSION = "v0"

# Requests older than this are rejected as possible replays.
MAX_REQUEST_AGE = 5 * 60


def compute_signature(secret: str, timestamp: str, body: bytes) -> str:
    base = f"{SIGNATURE_VERSION}:{timestamp}:".encode() + body
    digest = hmac.new(secret.encode(), base, hashlib.sha256).hexdigest()
    return f"{SIGNATURE_VERSION}={digest}"


def verify_request(secret: str, timestamp: str, signature: str, body: bytes, now: float | None = None) -> None:
    """Raise ``ValidationError`` unless ``signature`` signs ``body`` with ``secret``."""
    if not timestamp or not signature:
        msg = "missing Slack signature headers"
        raise ValidationError(msg)

    try:
        ts = int(timestamp)
    except ValueError as e:
        msg = f"invalid request timestamp: {timestamp!r}"
        raise ValidationError(msg) from e

    if abs((now or time.time()) - ts) > MAX_REQUEST_AGE:
        msg = "request timestamp is too old"
        raise ValidationError(msg)

    if not hmac.compare_digest(compute_signature(secret, timestamp, body), signature):
        msg = "computed unexpected signature"
        raise ValidationError(msg)
