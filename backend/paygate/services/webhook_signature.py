"""Paystack webhook signature verification"""
import hashlib
import hmac
from typing import Optional

# Paystack signs the raw body with HMAC-SHA512 and sends the hex digest
# in the X-Paystack-Signature header.
SIGNATURE_HEADER = "x-paystack-signature"
SIGNATURE_ALGORITHM = hashlib.sha512


def compute_signature(raw_body: bytes, secret: str) -> str:
    """Hex HMAC-SHA512 of the exact request bytes"""
    return hmac.new(secret.encode("utf-8"), raw_body, SIGNATURE_ALGORITHM).hexdigest()


def verify_signature(raw_body: bytes, provided_signature: Optional[str], secret: Optional[str]) -> bool:
    """Check a webhook delivery against the shared secret.

    `raw_body` must be the bytes exactly as received; re-serialized JSON
    will not match. A missing secret or header is a failure, never a pass.
    """
    if not secret or not provided_signature:
        return False
    candidate = provided_signature.strip().lower()
    # Header values arrive latin-1 decoded; compare_digest rejects non-ASCII str
    if not candidate.isascii():
        return False
    expected = compute_signature(raw_body, secret)
    return hmac.compare_digest(expected, candidate)
