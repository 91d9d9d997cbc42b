"""
FastAPI application serving capability-style signed URLs.

Run with:
    SIGNED_URL_SECRET=... uvicorn capurl.api.main:create_app --factory
"""
from fastapi import FastAPI, Request as FastAPIRequest
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from typing import Optional
import logging
import re
import uuid

from capurl import __version__
from capurl.api.routes import capabilities
from capurl.api.signed_urls import SignedUrls
from capurl.core.config import Settings, get_settings
from capurl.core.database import init_db
from capurl.core.signing import CapabilityLifecycle, ConfigurationError, SaltStore, SqlSaltStore

logger = logging.getLogger(__name__)
error_logger = logging.getLogger("api.errors")


# Security Headers Middleware
class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses"""
    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        # Signed URLs must not leak to third parties through the Referer header
        response.headers["Referrer-Policy"] = "no-referrer"
        response.headers["Cache-Control"] = "no-store"
        return response


def sanitize_error_message(message: str) -> str:
    """
    Scrub potential secrets from exception messages before logging.

    Redacts:
    - Database URLs with passwords
    - secret/token/key assignments
    - signature query parameters (a leaked signature is a usable capability)
    """
    sanitized = re.sub(
        r'(postgresql|postgres|mysql|sqlite)://[^:]+:[^@]+@',
        r'\1://[USER]:[REDACTED]@',
        message,
        flags=re.IGNORECASE
    )
    sanitized = re.sub(
        r'(SIGNED_URL_SECRET|password|passwd|secret|token|key)["\']?\s*[=:]\s*["\']?[^"\'\s,;]+',
        r'\1=[REDACTED]',
        sanitized,
        flags=re.IGNORECASE
    )
    sanitized = re.sub(r'(signature=)[^&\s]+', r'\1[REDACTED]', sanitized, flags=re.IGNORECASE)
    return sanitized


async def global_exception_handler(request: FastAPIRequest, exc: Exception):
    """
    Log detailed errors internally but return a generic message to clients.

    Salt store failures (StoreFailed, RetrieveFailed, CompleteFailed) end up here.
    """
    error_id = str(uuid.uuid4())
    sanitized_message = sanitize_error_message(str(exc))

    error_logger.error(
        f"Error {error_id}: {type(exc).__name__}: {sanitized_message}",
        exc_info=True,
        extra={
            "error_id": error_id,
            "path": request.url.path,
            "method": request.method,
        }
    )

    return JSONResponse(
        status_code=500,
        content={
            "detail": "An internal error occurred",
            "error_id": error_id,
        }
    )


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[SaltStore] = None,
    lifecycle: Optional[CapabilityLifecycle] = None,
) -> FastAPI:
    """
    Build the application.

    Args:
        settings: Settings (default: loaded from the environment)
        store: Salt store (default: SqlSaltStore on settings.database_url)
        lifecycle: Pre-built lifecycle; overrides settings and store

    Raises:
        ConfigurationError: If no signing secret is configured
    """
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    if lifecycle is None:
        if not settings.signed_url_secret:
            raise ConfigurationError("SIGNED_URL_SECRET must be set to sign URLs.")
        if store is None:
            store = SqlSaltStore(init_db(settings.database_url))
        lifecycle = CapabilityLifecycle.from_store(
            settings.signed_url_secret,
            store,
            ttl=settings.signed_url_ttl,
        )

    signed_urls = SignedUrls.from_lifecycle(lifecycle)

    app = FastAPI(
        title="capurl",
        description="Capability-style signed URLs",
        version=__version__,
    )
    app.state.signed_urls = signed_urls

    app.add_exception_handler(Exception, global_exception_handler)
    app.add_middleware(SecurityHeadersMiddleware)
    app.include_router(capabilities.build_router(signed_urls, base_url=settings.share_base_url))

    @app.get("/health")
    async def health():
        return {"status": "ok", "version": __version__}

    logger.info(f"capurl API ready (ttl={lifecycle.ttl}s)")
    return app
