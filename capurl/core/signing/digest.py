"""
HMAC Digest Engine

Creates and compares the digests embedded in signed URLs.

Digest Format:
    base64(HMAC-SHA256(key=secret, msg="{salt}.{secret}.{message}"))

Uses the cryptography library for HMAC and constant-time comparison.
"""

import base64
from typing import Optional, Union

from cryptography.hazmat.primitives import constant_time, hashes, hmac

Secret = Union[str, bytes]


def _to_bytes(value: Secret) -> bytes:
    if isinstance(value, bytes):
        return value
    return str(value).encode("utf-8")


def create_digest(salt: str, secret: Secret, message: str) -> str:
    """
    Create the HMAC digest for a canonical URL.

    Args:
        salt: Per-issuance salt
        secret: Server secret (HMAC key)
        message: Canonical URL string

    Returns:
        Base64-encoded HMAC-SHA256 digest (44 characters)
    """
    key = _to_bytes(secret)
    h = hmac.HMAC(key, hashes.SHA256())
    h.update(b".".join((_to_bytes(salt), key, _to_bytes(message))))
    return base64.b64encode(h.finalize()).decode("ascii")


def digests_equal(a: Optional[str], b: Optional[str]) -> bool:
    """
    Compare two digests in constant time.

    Comparison time does not depend on the position of the first differing
    byte. Returns False when either side is missing or the lengths differ.
    """
    if not a or not b:
        return False
    return constant_time.bytes_eq(_to_bytes(a), _to_bytes(b))
