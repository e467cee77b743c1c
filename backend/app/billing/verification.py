"""Signature verification for inbound payment provider webhooks."""
from __future__ import annotations

import hashlib
import hmac
import logging
from typing import Optional, Protocol

logger = logging.getLogger(__name__)

SIGNATURE_PREFIX = "sha256="


class WebhookVerifier(Protocol):
    """Decides whether a raw webhook body was produced by the provider."""

    def verify(self, raw_payload: bytes, signature_header: Optional[str]) -> bool:
        ...


def compute_signature(raw_payload: bytes, shared_secret: str) -> str:
    """Return the lowercase hex HMAC-SHA256 digest of ``raw_payload``."""

    return hmac.new(shared_secret.encode("utf-8"), raw_payload, hashlib.sha256).hexdigest()


def verify_signature(
    raw_payload: bytes,
    signature_header: Optional[str],
    shared_secret: Optional[str],
) -> bool:
    """Check ``signature_header`` against the payload digest in constant time.

    The header may carry a ``sha256=`` prefix; hex digits are compared
    case-insensitively. A missing header or secret never verifies.
    """

    if not shared_secret or not signature_header:
        return False

    provided = signature_header.strip()
    if provided[: len(SIGNATURE_PREFIX)].lower() == SIGNATURE_PREFIX:
        provided = provided[len(SIGNATURE_PREFIX):]
    provided = provided.lower()

    expected = compute_signature(raw_payload, shared_secret)
    return hmac.compare_digest(expected.encode("ascii"), provided.encode("utf-8"))


class HmacWebhookVerifier(WebhookVerifier):
    """Production verifier bound to the configured webhook secret."""

    def __init__(self, shared_secret: Optional[str]) -> None:
        self._shared_secret = shared_secret or None
        if self._shared_secret is None:
            logger.warning("Webhook secret is not configured; all webhooks will be rejected")

    def verify(self, raw_payload: bytes, signature_header: Optional[str]) -> bool:
        return verify_signature(raw_payload, signature_header, self._shared_secret)


__all__ = [
    "HmacWebhookVerifier",
    "SIGNATURE_PREFIX",
    "WebhookVerifier",
    "compute_signature",
    "verify_signature",
]
