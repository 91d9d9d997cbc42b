"""
Signed URL Module

HMAC-SHA256 capability URLs: issue a time-limited URL bound to a scope
identifier, verify it on a later request, then complete it so it cannot be
replayed.

Signed URL query parameters:
    expires   - Unix timestamp (seconds), part of the signed message
    signature - base64 HMAC-SHA256 digest, excluded from the signed message
"""

from capurl.core.signing.canonical import (
    ParsedUrl,
    canonicalize,
    format_url,
    parse_url,
)
from capurl.core.signing.digest import create_digest, digests_equal
from capurl.core.signing.errors import (
    SignedUrlError,
    ConfigurationError,
    CollaboratorError,
    StoreFailed,
    RetrieveFailed,
    CompleteFailed,
)
from capurl.core.signing.lifecycle import (
    CapabilityLifecycle,
    ScopedCapability,
    VerificationResult,
    VerifyOutcome,
    DEFAULT_TTL_SECONDS,
    PARAM_EXPIRES,
    PARAM_SIGNATURE,
)
from capurl.core.signing.stores import InMemorySaltStore, SaltStore, SqlSaltStore

__all__ = [
    # Canonical form
    "ParsedUrl",
    "canonicalize",
    "format_url",
    "parse_url",
    # Digests
    "create_digest",
    "digests_equal",
    # Errors
    "SignedUrlError",
    "ConfigurationError",
    "CollaboratorError",
    "StoreFailed",
    "RetrieveFailed",
    "CompleteFailed",
    # Lifecycle
    "CapabilityLifecycle",
    "ScopedCapability",
    "VerificationResult",
    "VerifyOutcome",
    "DEFAULT_TTL_SECONDS",
    "PARAM_EXPIRES",
    "PARAM_SIGNATURE",
    # Stores
    "InMemorySaltStore",
    "SaltStore",
    "SqlSaltStore",
]
