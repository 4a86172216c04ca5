"""
Webhook signature verification.

Resend signs every webhook with a shared secret.  The signature header is a
flat, comma-separated list of version/value pairs::

    v1,<hex signature>[,v2,<hex signature>...]

and the v1 signature is HMAC-SHA256 over ``"{timestamp}.{raw body}"``,
hex-encoded in lower case.  The timestamp travels in its own header and is
also used for replay protection.

Security contract:
  - Missing secret -> verification always fails (fail-closed)
  - Comparison uses hmac.compare_digest (constant-time)
  - verify() never raises; every failure is a VerificationResult
"""

import hashlib
import hmac
import logging
import secrets
import time
from typing import Callable, Optional

from mailrelay.models.webhook import VerificationResult

logger = logging.getLogger(__name__)

SIGNATURE_VERSION = "v1"


def compute_signature(secret: str, timestamp: str, payload: str) -> str:
    """Return the lower-case hex HMAC-SHA256 of ``"{timestamp}.{payload}"``."""
    message = f"{timestamp}.{payload}".encode("utf-8")
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def sign_webhook_payload(secret: str, timestamp: str, payload: str) -> str:
    """Return a signature header value (``v1,<hex>``) for payload."""
    return f"{SIGNATURE_VERSION},{compute_signature(secret, timestamp, payload)}"


def extract_v1_signature(signature_header: str) -> Optional[str]:
    """
    Return the value of the first ``v1`` pair in a signature header.

    The header alternates tag and value; a trailing tag without a value is
    ignored.  Returns None when no v1 pair is present.
    """
    parts = [part.strip() for part in signature_header.split(",")]
    for i in range(0, len(parts) - 1, 2):
        if parts[i] == SIGNATURE_VERSION:
            return parts[i + 1]
    return None


def generate_webhook_id() -> str:
    """Return a collision-resistant id of the form ``wh_<epoch ms>_<random>``."""
    return f"wh_{int(time.time() * 1000)}_{secrets.token_hex(6)}"


class SignatureVerifier:
    """
    Verifies the authenticity and freshness of inbound webhooks.

    Args:
        signing_secret: Shared HMAC secret. An empty secret rejects everything.
        max_age: Maximum accepted age of the timestamp header, in seconds.
        clock: Returns the current unix time in seconds (injectable for tests).
    """

    def __init__(
        self,
        signing_secret: str,
        max_age: int = 300,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._secret = signing_secret
        self._max_age = max_age
        self._clock = clock

    def verify(
        self,
        payload: Optional[str],
        signature_header: Optional[str],
        timestamp_header: Optional[str],
    ) -> VerificationResult:
        try:
            return self._verify(payload, signature_header, timestamp_header)
        except Exception as exc:
            return VerificationResult(
                is_valid=False, error=f"Error verifying signature: {exc}"
            )

    def _verify(
        self,
        payload: Optional[str],
        signature_header: Optional[str],
        timestamp_header: Optional[str],
    ) -> VerificationResult:
        if not payload:
            return VerificationResult(is_valid=False, error="Missing payload")

        if not signature_header:
            return VerificationResult(is_valid=False, error="Missing signature")

        if not timestamp_header:
            return VerificationResult(is_valid=False, error="Missing timestamp")

        timestamp_value = timestamp_header.strip()
        try:
            timestamp = int(timestamp_value)
        except ValueError:
            return VerificationResult(is_valid=False, error="Invalid timestamp format")

        # Replay protection
        age = int(self._clock()) - timestamp
        if age > self._max_age:
            return VerificationResult(
                is_valid=False,
                error=f"Webhook too old: {age}s (max age: {self._max_age}s)",
            )

        if not self._secret:
            logger.warning(
                "WEBHOOK_SIGNING_SECRET not set, rejecting inbound webhook"
            )
            return VerificationResult(
                is_valid=False, error="Webhook signing secret not configured"
            )

        provided = extract_v1_signature(signature_header)
        if not provided:
            return VerificationResult(is_valid=False, error="Missing v1 signature")

        expected = compute_signature(self._secret, timestamp_value, payload)

        # compare_digest on bytes: constant-time, False on length mismatch
        if not hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8")):
            return VerificationResult(is_valid=False, error="Signature mismatch")

        return VerificationResult(is_valid=True)
