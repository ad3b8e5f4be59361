"""Contains HMAC signature verification for Linear webhook deliveries."""

import hashlib
import hmac
from typing import Iterable

SIGNATURE_HEADER = "Linear-Signature"


class WebhookAuthError(Exception):
    """Raised when a webhook delivery cannot be authenticated."""

    pass


def compute_signature(secret: str, body: bytes) -> str:
    """Compute the hex HMAC-SHA256 of a request body."""
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def verify_signature(body: bytes, signature: str | None, secrets: Iterable[str]) -> None:
    """Check a delivery signature against each candidate secret.

    Raises:
        WebhookAuthError: If the header is missing, no secret is configured,
            or no secret produces the given signature
    """
    if not signature:
        raise WebhookAuthError(f"Missing {SIGNATURE_HEADER} header")
    candidates = [secret for secret in secrets if secret]
    if not candidates:
        raise WebhookAuthError("No webhook secret configured")
    received = signature.strip().lower().encode("utf-8", "surrogateescape")
    for secret in candidates:
        if hmac.compare_digest(compute_signature(secret, body).encode("ascii"), received):
            return
    raise WebhookAuthError("Invalid webhook signature")
