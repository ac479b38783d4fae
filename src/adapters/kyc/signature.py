"""
Webhook signature verification.

The provider signs each delivery with HMAC-SHA256 (hex) using the shared
webhook secret, over either the raw body or "{timestamp}.{body}". Both
candidates are always computed and compared in constant time.
"""

import hashlib
import hmac
import time

SIGNATURE_HEADER = "x-signature"
TIMESTAMP_HEADER = "x-timestamp"


def compute_signature(secret: str, message: bytes) -> str:
    return hmac.new(secret.encode(), message, hashlib.sha256).hexdigest()


def verify_signature(
    secret: str,
    body: bytes,
    signature: str | None,
    timestamp: str | None,
    max_skew: int = 300,
    now: float | None = None,
) -> bool:
    """
    Check a delivery's signature and freshness.

    Returns False for a missing signature or timestamp, a timestamp more
    than max_skew seconds away from now, or a signature matching neither
    signing form.
    """
    if not signature or not timestamp:
        return False
    try:
        sent_at = int(timestamp)
    except ValueError:
        return False
    current = time.time() if now is None else now
    if abs(current - sent_at) > max_skew:
        return False

    provided = signature.strip().lower().encode()
    candidates = (
        compute_signature(secret, body),
        compute_signature(secret, timestamp.encode() + b"." + body),
    )
    matched = False
    for candidate in candidates:
        matched |= hmac.compare_digest(candidate.encode(), provided)
    return matched
