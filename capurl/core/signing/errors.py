"""
Signed URL Errors

Exceptions raised by the signed URL system.

Verification failures (bad digest, expired URL) are NOT exceptions - they are
returned as VerificationResult outcomes. Exceptions are reserved for
misconfiguration and for failures of the salt store collaborator.
"""

from typing import Optional


class SignedUrlError(Exception):
    """Base class for all signed URL errors."""


class ConfigurationError(SignedUrlError, ValueError):
    """A required option (secret, hook, scope identifier) is missing."""


class CollaboratorError(SignedUrlError):
    """
    A salt store hook failed.

    The original exception is chained as __cause__.

    Attributes:
        scope_id: Scope identifier the failing call was made for
    """
    operation = "collaborator"

    def __init__(self, scope_id: Optional[str], message: Optional[str] = None):
        self.scope_id = scope_id
        super().__init__(message or f"Salt {self.operation} failed for scope '{scope_id}'")


class StoreFailed(CollaboratorError):
    """The store hook failed; no URL was issued."""
    operation = "store"


class RetrieveFailed(CollaboratorError):
    """The retrieve hook failed; the URL was not verified."""
    operation = "retrieve"


class CompleteFailed(CollaboratorError):
    """The complete hook failed; the capability may still be usable."""
    operation = "complete"
