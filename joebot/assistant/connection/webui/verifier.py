"""Signature check for requests coming from the Platform."""

from __future__ import annotations

import hashlib
import hmac

from joebot.assistant.errors import ValidationError

VERIFICATION_HEADER = "Verification-Signature"
SIGNATURE_PREFIX = "v0="
BODY_PREFIX = b"v0:"


def compute_signature(secret: str, body: bytes) -> str:
    digest = hmac.new(secret.encode(), BODY_PREFIX + body, hashlib.sha256).hexdigest()
    return SIGNATURE_PREFIX + digest


def verify_signature(secret: str, signature: str, body: bytes) -> None:
    if not signature:
        msg = f"{VERIFICATION_HEADER!r} not found"
        raise ValidationError(msg)

    try:
        given = bytes.fromhex(signature.removeprefix(SIGNATURE_PREFIX))
    except ValueError as e:
        msg = f"failed to decode a request signature: {e}"
        raise ValidationError(msg) from e

    expected = hmac.new(secret.encode(), BODY_PREFIX + body, hashlib.sha256).digest()
    if not hmac.compare_digest(given, expected):
        msg = f"invalid {VERIFICATION_HEADER!r} given"
        raise ValidationError(msg)
