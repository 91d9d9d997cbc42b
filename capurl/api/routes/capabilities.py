"""
Capability Routes

Issue, use and complete signed URLs for a scope identifier taken from the path.

    POST /capabilities/{scope_id}                     -> issue a signed URL
    GET  /capabilities/{scope_id}/resource            -> protected (verify)
    DELETE /capabilities/{scope_id}/resource           -> verify, then complete

The same signed URL serves GET and DELETE: the HTTP method is not signed.
"""
import logging
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, Request, status
from pydantic import BaseModel, Field, field_validator

from capurl.api.signed_urls import Completer, SignedUrls, UrlSigner
from capurl.core.signing import PARAM_EXPIRES, PARAM_SIGNATURE, VerificationResult, parse_url

logger = logging.getLogger(__name__)


class IssueRequest(BaseModel):
    """Body of an issue request."""
    path: str = Field(..., description="Path (and query) to sign, e.g. /capabilities/user-42/resource?x=1")

    @field_validator("path")
    @classmethod
    def path_must_be_relative(cls, value: str) -> str:
        if not value.startswith("/") or value.startswith("//"):
            raise ValueError("path must start with a single '/'")
        return value


class IssueResponse(BaseModel):
    url: str
    expires: int


class ResourceResponse(BaseModel):
    scope_id: str
    query: Dict[str, List[str]]


def scope_from_path(request: Request) -> str:
    """Resolve the scope identifier from the {scope_id} path parameter."""
    return request.path_params.get("scope_id", "")


def build_router(signed_urls: SignedUrls, base_url: Optional[str] = None) -> APIRouter:
    """
    Build the capability router around a SignedUrls instance.

    Args:
        signed_urls: Configured signed URL protection
        base_url: Optional scheme + host prefixed to issued URLs
    """
    router = APIRouter(prefix="/capabilities", tags=["capabilities"])
    capability = signed_urls(scope_from_path)

    @router.post("/{scope_id}", response_model=IssueResponse, status_code=status.HTTP_201_CREATED)
    async def issue_capability(
        scope_id: str,
        body: IssueRequest,
        signer: UrlSigner = Depends(capability.setup),
    ):
        """Issue a signed URL; any URL issued earlier for this scope stops working."""
        target = f"{base_url.rstrip('/')}{body.path}" if base_url else body.path
        url = await signer.sign_url(target)
        expires = int(parse_url(url).get_first(PARAM_EXPIRES))
        logger.info(f"Issued signed URL for scope {scope_id}")
        return IssueResponse(url=url, expires=expires)

    @router.get("/{scope_id}/resource", response_model=ResourceResponse)
    async def read_resource(
        scope_id: str,
        request: Request,
        result: VerificationResult = Depends(capability.verify),
    ):
        """Protected resource; reachable only through a valid signed URL."""
        query = parse_url(str(request.url)).query
        query.pop(PARAM_EXPIRES, None)
        query.pop(PARAM_SIGNATURE, None)
        return ResourceResponse(scope_id=result.scope_id, query=query)

    @router.delete("/{scope_id}/resource")
    async def complete_resource(
        scope_id: str,
        result: VerificationResult = Depends(capability.verify),
        done: Completer = Depends(capability.complete),
    ):
        """Verify, then invalidate the capability so the URL cannot be replayed."""
        await done()
        logger.info(f"Completed capability for scope {scope_id}")
        return {"completed": True, "scope_id": result.scope_id}

    return router
