"""
Signed URL Dependencies for FastAPI

Wires the capability lifecycle into request handling. One SignedUrls instance
holds the secret and the salt store hooks; calling it with a scope returns a
SignedUrlScope with three dependencies:

    setup    -> UrlSigner     (sign URLs for this scope)
    verify   -> VerificationResult, or HTTPException 403
    complete -> Completer     (await it to invalidate the capability)

Example:
    signed_urls = SignedUrls(secret=..., store=..., retrieve=..., complete=...)
    reset = signed_urls("reset-password")

    @app.post("/reset-links")
    async def create_link(signer: UrlSigner = Depends(reset.setup)):
        return {"url": await signer.sign_url("/reset?user=42")}

    @app.get("/reset")
    async def reset_page(
        result: VerificationResult = Depends(reset.verify),
        done: Completer = Depends(reset.complete),
    ):
        ...
        await done()
"""

import logging
from typing import Any, Awaitable, Callable, Optional, Union

from fastapi import HTTPException, Request, status

from capurl.core.signing.errors import ConfigurationError
from capurl.core.signing.lifecycle import (
    DEFAULT_TTL_SECONDS,
    CapabilityLifecycle,
    VerificationResult,
    VerifyOutcome,
    maybe_await,
)

logger = logging.getLogger(__name__)


# Reason codes returned in the 403 detail
CODE_BAD_DIGEST = "EBADHMACDIGEST"
CODE_TIMED_OUT = "ETIMEOUTHMACDIGEST"

ScopeResolver = Union[str, Callable[[Request], str]]
UrlToVerify = Callable[[Request, str], Union[str, Awaitable[str]]]


def default_url_to_verify(request: Request, scope_id: str) -> str:
    """
    Return the URL being verified: the request's original path and query string.

    Uses the raw, still percent-encoded request target. request.url.path is
    already decoded and would not match what was signed.

    Override via SignedUrls(url_to_verify=...) when the signed URL travels
    somewhere else (a JSON body, a header).
    """
    raw_path = request.scope.get("raw_path")
    # Some servers include the query string in raw_path
    path = raw_path.split(b"?", 1)[0].decode("latin-1") if raw_path else request.url.path
    query = request.scope.get("query_string", b"").decode("latin-1")
    if query:
        path = f"{path}?{query}"
    return path


class UrlSigner:
    """Signs URLs for one resolved scope identifier."""

    def __init__(self, lifecycle: CapabilityLifecycle, scope_id: str):
        self.lifecycle = lifecycle
        self.scope_id = scope_id

    async def sign_url(self, url: str) -> str:
        """Issue a signed URL (stores a new salt for the scope)."""
        return await self.lifecycle.issue(self.scope_id, url)

    __call__ = sign_url


class Completer:
    """Invalidates the capability for one resolved scope identifier when awaited."""

    def __init__(self, lifecycle: CapabilityLifecycle, scope_id: str):
        self.lifecycle = lifecycle
        self.scope_id = scope_id

    async def __call__(self) -> None:
        await self.lifecycle.complete(self.scope_id)


class SignedUrlScope:
    """
    The setup / verify / complete dependencies for one scope.

    The scope is either a fixed identifier or a callable that resolves the
    identifier from the request (e.g. from a path parameter or the current user).
    """

    def __init__(self, owner: "SignedUrls", scope: ScopeResolver):
        if not scope:
            raise ConfigurationError("You must provide a scope identifier to scope signed URLs with.")
        self.owner = owner
        self.scope = scope

    def resolve_scope(self, request: Request) -> str:
        scope_id = self.scope(request) if callable(self.scope) else self.scope
        if not scope_id:
            raise ConfigurationError("Scope resolver returned an empty scope identifier.")
        return scope_id

    async def setup(self, request: Request) -> UrlSigner:
        """Dependency: a signer bound to this request's scope."""
        return UrlSigner(self.owner.lifecycle, self.resolve_scope(request))

    async def verify(self, request: Request) -> VerificationResult:
        """
        Dependency: verify the signed URL of this request.

        Raises:
            HTTPException: 403 with code EBADHMACDIGEST or ETIMEOUTHMACDIGEST
            RetrieveFailed: If the salt store could not be read
        """
        scope_id = self.resolve_scope(request)
        signed_url = await maybe_await(self.owner.url_to_verify(request, scope_id))

        result = await self.owner.lifecycle.verify(scope_id, signed_url)

        if result.outcome is VerifyOutcome.INVALID:
            logger.warning(f"Signed URL verification failed for scope {scope_id}: {request.url.path}")
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail={"code": CODE_BAD_DIGEST, "message": "invalid HMAC digest"},
            )

        if result.outcome is VerifyOutcome.EXPIRED:
            logger.warning(f"Signed URL timed out for scope {scope_id} (expires={result.expires})")
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail={"code": CODE_TIMED_OUT, "message": "URL has timed out"},
            )

        logger.debug(f"Signed URL verified for scope {scope_id}")
        return result

    async def complete(self, request: Request) -> Completer:
        """Dependency: a completer; nothing is removed until it is awaited."""
        return Completer(self.owner.lifecycle, self.resolve_scope(request))


class SignedUrls:
    """
    Signed URL protection for FastAPI routes.

    Args:
        secret: HMAC secret
        store: async (scope_id, salt) -> None
        retrieve: async (scope_id) -> salt or None
        complete: async (scope_id) -> None
        ttl: Seconds until issued URLs expire (default 1 hour)
        url_to_verify: (request, scope_id) -> URL string to verify
        lifecycle: Pre-built lifecycle (e.g. one with a custom clock); when given,
            secret, store, retrieve, complete and ttl are not used

    Raises:
        ConfigurationError: If a required option is missing
    """

    def __init__(
        self,
        secret=None,
        store=None,
        retrieve=None,
        complete=None,
        ttl: Any = DEFAULT_TTL_SECONDS,
        url_to_verify: Optional[UrlToVerify] = None,
        lifecycle: Optional[CapabilityLifecycle] = None,
    ):
        if lifecycle is None:
            lifecycle = CapabilityLifecycle(
                secret=secret,
                store=store,
                retrieve=retrieve,
                complete=complete,
                ttl=ttl,
            )
        self.lifecycle = lifecycle
        self.url_to_verify = url_to_verify or default_url_to_verify

    @classmethod
    def from_lifecycle(cls, lifecycle: CapabilityLifecycle, url_to_verify: Optional[UrlToVerify] = None) -> "SignedUrls":
        """Wrap an existing lifecycle (e.g. one built with a custom clock)."""
        return cls(url_to_verify=url_to_verify, lifecycle=lifecycle)

    def __call__(self, scope: ScopeResolver) -> SignedUrlScope:
        return SignedUrlScope(self, scope)
