"""
Capability Lifecycle

Issues, verifies and completes signed URLs for a scope identifier.

Lifecycle per (scope_id, issuance):
    Unissued -> Issued -> Verified (repeatable) -> Completed

    issue:    generate salt, store it, sign the URL (expires included)
    verify:   retrieve salt, recompute the digest, then check expiry
    complete: ask the store to remove the salt

The salt lives in an external store reached through three async hooks.
Nothing else is stored: the URL itself carries the expiry and the digest.
Issuing twice for the same scope overwrites the salt (last store wins), which
invalidates URLs issued earlier.
"""

import inspect
import logging
import secrets
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Union

from capurl.core.signing.canonical import canonicalize, format_url, parse_url
from capurl.core.signing.digest import Secret, create_digest, digests_equal
from capurl.core.signing.errors import (
    CompleteFailed,
    ConfigurationError,
    RetrieveFailed,
    StoreFailed,
)

logger = logging.getLogger(__name__)


# Query parameter names (wire format)
PARAM_EXPIRES = "expires"
PARAM_SIGNATURE = "signature"

# Default lifetime of an issued URL: 1 hour
DEFAULT_TTL_SECONDS = 60 * 60

# 16 random bytes -> 22 URL-safe characters
SALT_BYTES = 16

StoreHook = Callable[[str, str], Awaitable[Any]]
RetrieveHook = Callable[[str], Awaitable[Optional[str]]]
CompleteHook = Callable[[str], Awaitable[Any]]


class VerifyOutcome(str, Enum):
    """Possible outcomes of verifying a signed URL."""
    VALID = "valid"
    INVALID = "invalid"
    EXPIRED = "expired"


@dataclass
class VerificationResult:
    """
    Result of verifying a signed URL.

    Attributes:
        outcome: VALID, INVALID or EXPIRED
        scope_id: Scope identifier the URL was verified against
        expires: Parsed expiry timestamp (None unless the digest matched)
        message: Human-readable reason for failures
    """
    outcome: VerifyOutcome
    scope_id: str
    expires: Optional[int] = None
    message: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.outcome is VerifyOutcome.VALID

    @classmethod
    def valid(cls, scope_id: str, expires: int) -> "VerificationResult":
        return cls(outcome=VerifyOutcome.VALID, scope_id=scope_id, expires=expires)

    @classmethod
    def invalid(cls, scope_id: str) -> "VerificationResult":
        return cls(outcome=VerifyOutcome.INVALID, scope_id=scope_id, message="invalid HMAC digest")

    @classmethod
    def expired(cls, scope_id: str, expires: int) -> "VerificationResult":
        return cls(
            outcome=VerifyOutcome.EXPIRED,
            scope_id=scope_id,
            expires=expires,
            message="URL has timed out",
        )


def generate_salt() -> str:
    """Generate a fresh, unpredictable salt."""
    return secrets.token_urlsafe(SALT_BYTES)


def parse_expires(value: Optional[str]) -> int:
    """Parse the expires parameter; missing or malformed values count as 0 (expired)."""
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def parse_ttl(ttl: Any) -> int:
    """
    Coerce a configured TTL to seconds.

    Missing, zero or unparsable values fall back to the default.

    Raises:
        ConfigurationError: If the TTL is negative
    """
    try:
        seconds = int(ttl)
    except (TypeError, ValueError):
        return DEFAULT_TTL_SECONDS
    if seconds < 0:
        raise ConfigurationError(f"TTL must not be negative (got {seconds}).")
    return seconds or DEFAULT_TTL_SECONDS


async def maybe_await(value: Union[Any, Awaitable[Any]]) -> Any:
    """Await value if it is awaitable, so plain callables work as hooks too."""
    if inspect.isawaitable(value):
        return await value
    return value


def _require_scope(scope_id: Optional[str]) -> str:
    if not scope_id:
        raise ConfigurationError("You must provide a scope identifier to scope signed URLs with.")
    return scope_id


class CapabilityLifecycle:
    """
    Issue / verify / complete signed URLs.

    Holds no per-request state: only the secret, the TTL, the store hooks and
    the clock. Safe to share across concurrent requests.

    Example:
        >>> store = InMemorySaltStore()
        >>> lifecycle = CapabilityLifecycle.from_store("s3cr3t", store)
        >>> url = await lifecycle.issue("user-42", "/entry?x=1")
        >>> (await lifecycle.verify("user-42", url)).outcome
        <VerifyOutcome.VALID: 'valid'>
    """

    def __init__(
        self,
        secret: Optional[Secret] = None,
        store: Optional[StoreHook] = None,
        retrieve: Optional[RetrieveHook] = None,
        complete: Optional[CompleteHook] = None,
        ttl: Any = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        if not secret:
            raise ConfigurationError("You must provide a secret to sign URLs with.")
        if store is None:
            raise ConfigurationError("You must provide a store function to request a salt be stored.")
        if retrieve is None:
            raise ConfigurationError("You must provide a retrieve function to request a salt be retrieved.")
        if complete is None:
            raise ConfigurationError("You must provide a complete function to request a salt be removed.")

        self._secret = secret
        self._store = store
        self._retrieve = retrieve
        self._complete = complete
        self._clock = clock
        self.ttl = parse_ttl(ttl)

    @classmethod
    def from_store(cls, secret: Secret, store, ttl: Any = DEFAULT_TTL_SECONDS, **kwargs) -> "CapabilityLifecycle":
        """Build a lifecycle from an object implementing the SaltStore protocol."""
        if store is None:
            raise ConfigurationError("You must provide a salt store.")
        return cls(
            secret=secret,
            store=store.store,
            retrieve=store.retrieve,
            complete=store.complete,
            ttl=ttl,
            **kwargs,
        )

    def now(self, ttl: int = 0) -> int:
        """Current timestamp in whole seconds, plus ttl."""
        return int(self._clock()) + ttl

    def scoped(self, scope_id: str) -> "ScopedCapability":
        """Bind this lifecycle to one scope identifier."""
        return ScopedCapability(self, _require_scope(scope_id))

    async def issue(self, scope_id: str, target_url: str) -> str:
        """
        Issue a signed URL for scope_id.

        Args:
            scope_id: Scope identifier the capability is bound to
            target_url: URL to sign (relative or absolute)

        Returns:
            The signed URL with expires and signature query parameters

        Raises:
            StoreFailed: If the store hook failed (no URL is produced)
        """
        scope_id = _require_scope(scope_id)
        logger.debug(f"Signing url: scope={scope_id}, url={target_url}")

        salt = generate_salt()
        try:
            await maybe_await(self._store(scope_id, salt))
        except Exception as e:
            logger.warning(f"Failed to store salt for scope {scope_id}: {e}")
            raise StoreFailed(scope_id) from e

        logger.debug(f"Stored salt for scope {scope_id}: {salt[:4]}...")

        parsed = parse_url(target_url)
        # Expiry goes in before signing so it cannot be extended
        parsed.set(PARAM_EXPIRES, self.now(self.ttl))
        parsed.pop(PARAM_SIGNATURE)

        message = canonicalize(parsed.path, parsed.query)
        digest = create_digest(salt, self._secret, message)
        logger.debug(f"Created digest for {message}")

        parsed.set(PARAM_SIGNATURE, digest)
        signed_url = format_url(parsed)

        logger.debug(f"Signed url for scope {scope_id}: {message}")
        return signed_url

    async def verify(self, scope_id: str, observed_url: str) -> VerificationResult:
        """
        Verify a signed URL for scope_id.

        Performs the following checks in order:
        1. Recompute the digest from the retrieved salt and the URL minus its signature
        2. Compare digests in constant time (mismatch -> INVALID)
        3. Check the embedded expiry (passed -> EXPIRED)

        Args:
            scope_id: Scope identifier the URL was issued for
            observed_url: URL as received (path + query, or absolute)

        Returns:
            VerificationResult

        Raises:
            RetrieveFailed: If the retrieve hook failed
        """
        scope_id = _require_scope(scope_id)

        try:
            salt = await maybe_await(self._retrieve(scope_id))
        except Exception as e:
            logger.warning(f"Failed to retrieve salt for scope {scope_id}: {e}")
            raise RetrieveFailed(scope_id) from e

        if not salt:
            logger.debug(f"No salt stored for scope {scope_id}")
            return VerificationResult.invalid(scope_id)

        logger.debug(f"Retrieved salt for scope {scope_id}: {salt[:4]}...")
        parsed = parse_url(observed_url or "")
        signature = parsed.pop(PARAM_SIGNATURE)
        message = canonicalize(parsed.path, parsed.query)

        logger.debug(f"Verifying url: scope={scope_id}, url={message}")

        expected = create_digest(salt, self._secret, message)
        logger.debug(f"Comparing signatures: scope={scope_id}")
        if not digests_equal(expected, signature):
            logger.debug(f"Verify failed: scope={scope_id}")
            return VerificationResult.invalid(scope_id)

        expires = parse_expires(parsed.get_first(PARAM_EXPIRES))
        if self.now() >= expires:
            logger.debug(f"Verify timed out: scope={scope_id}, expires={expires}")
            return VerificationResult.expired(scope_id, expires)

        logger.debug(f"Verify successful: scope={scope_id}")
        return VerificationResult.valid(scope_id, expires)

    async def complete(self, scope_id: str) -> None:
        """
        Invalidate the capability for scope_id by removing its salt.

        Raises:
            CompleteFailed: If the complete hook failed
        """
        scope_id = _require_scope(scope_id)
        try:
            await maybe_await(self._complete(scope_id))
        except Exception as e:
            logger.warning(f"Failed to complete scope {scope_id}: {e}")
            raise CompleteFailed(scope_id) from e
        logger.debug(f"Completed scope {scope_id}")


class ScopedCapability:
    """A lifecycle bound to a single scope identifier."""

    def __init__(self, lifecycle: CapabilityLifecycle, scope_id: str):
        self.lifecycle = lifecycle
        self.scope_id = scope_id

    async def issue(self, target_url: str) -> str:
        return await self.lifecycle.issue(self.scope_id, target_url)

    async def verify(self, observed_url: str) -> VerificationResult:
        return await self.lifecycle.verify(self.scope_id, observed_url)

    async def complete(self) -> None:
        await self.lifecycle.complete(self.scope_id)
