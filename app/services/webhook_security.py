from __future__ import annotations

import hashlib
import hmac
from collections.abc import Mapping

from app.core.errors import SignatureError, WebhookVerificationNotConfiguredError

SIGNATURE_HEADERS = (
    "x-webhook-signature",
    "x-kajabi-signature",
    "x-signature",
    "x-hub-signature-256",
)


def compute_signature(*, body: bytes, secret: str) -> str:
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def extract_signature(headers: Mapping[str, str]) -> str | None:
    for header_name in SIGNATURE_HEADERS:
        value = headers.get(header_name)
        if value and value.strip():
            signature = value.strip()
            if signature.lower().startswith("sha256="):
                signature = signature[len("sha256=") :]
            return signature
    return None


def is_valid_signature(*, body: bytes, secret: str, signature: str) -> bool:
    expected = compute_signature(body=body, secret=secret)
    return hmac.compare_digest(expected, signature.strip().lower())


def verify_webhook_request(
    *,
    body: bytes,
    headers: Mapping[str, str],
    secret: str,
    require_verification: bool,
) -> bool:
    """Returns True when the signature was checked, False when verification was skipped.

    Raises ``WebhookVerificationNotConfiguredError`` when verification is
    required without a secret and ``SignatureError`` for a missing (required)
    or mismatching signature.
    """
    if not secret:
        if require_verification:
            raise WebhookVerificationNotConfiguredError("Webhook secret is not configured")
        return False

    signature = extract_signature(headers)
    if signature is None:
        if require_verification:
            raise SignatureError("Missing webhook signature")
        return False

    if not is_valid_signature(body=body, secret=secret, signature=signature):
        raise SignatureError("Invalid webhook signature")
    return True
