"""Webhook signature verification: constant-time HMAC.

Security contract:
- ShipHero sends x-shiphero-hmac-sha256: base64(HMAC-SHA256(secret, raw body))
- The HMAC is computed over the raw bytes, never over re-serialized JSON
- Comparison is constant-time for equal lengths; unequal lengths fail at once
- Missing secret env var -> verification always fails (fail-closed)
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import logging
import os

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "x-shiphero-hmac-sha256"

_SHIPHERO_WEBHOOK_SECRET = os.environ.get("SHIPHERO_WEBHOOK_SECRET", "")


def compute_hmac_sha256_base64(secret: str, body: bytes) -> str:
    """Base64 HMAC-SHA256 of ``body`` keyed with ``secret``."""
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("utf-8")


def safe_equal(a: str | None, b: str | None) -> bool:
    """Constant-time string comparison; None compares as the empty string."""
    left = (a or "").encode("utf-8")
    right = (b or "").encode("utf-8")
    if len(left) != len(right):
        return False
    return hmac.compare_digest(left, right)


def verify_shiphero(body: bytes, signature_header: str | None, secret: str | None = None) -> bool:
    """Verify a ShipHero webhook signature.

    Args:
        body: Raw request body bytes, exactly as received
        signature_header: Value of the x-shiphero-hmac-sha256 header
        secret: Shared secret; defaults to SHIPHERO_WEBHOOK_SECRET

    Returns:
        True if signature is valid
    """
    secret = secret or _SHIPHERO_WEBHOOK_SECRET
    if not secret:
        logger.warning("SHIPHERO_WEBHOOK_SECRET not set, rejecting webhook")
        return False
    if not signature_header:
        return False
    return safe_equal(signature_header, compute_hmac_sha256_base64(secret, body))
