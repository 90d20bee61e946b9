"""
Response security headers and startup checks for public deployments.
"""
import os
import logging
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response
from chartsense.core.config import Settings

logger = logging.getLogger(__name__)

# JSON-only API: nothing may be framed, embedded or loaded from it
CONTENT_SECURITY_POLICY = "default-src 'none'; frame-ancestors 'none'; base-uri 'none'; form-action 'none'"

PERMISSIONS_POLICY = "camera=(), geolocation=(), microphone=(), payment=(), usb=()"

SECURITY_HEADERS = {
    "Content-Security-Policy": CONTENT_SECURITY_POLICY,
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "no-referrer",
    "Permissions-Policy": PERMISSIONS_POLICY,
}


class SecurityHeadersMiddleware(BaseHTTPMiddleware):

    async def dispatch(self, request: Request, call_next) -> Response:
        response = await call_next(request)
        for header, value in SECURITY_HEADERS.items():
            response.headers.setdefault(header, value)
        return response


def validate_production_security(settings: Settings):
    """
    Fail fast on configuration that cannot work in production and warn on
    configuration that weakens it. Does nothing outside production.

    Raises:
        RuntimeError: Redis storage selected without REDIS_URL
    """
    if not settings.is_production:
        logger.info(f"Running in {settings.environment} mode - production checks skipped")
        return

    if settings.storage_backend == 'redis' and not settings.redis_url:
        raise RuntimeError("REDIS_URL is required when STORAGE_BACKEND=redis in production")

    if settings.storage_backend == 'memory':
        logger.warning("In-memory analysis storage in production - analyses are lost on restart")

    if any('localhost' in origin for origin in settings.allowed_origins_list):
        logger.warning("ALLOWED_ORIGINS contains localhost in production")

    if not os.getenv('GROQ_API_KEY') and not os.getenv('GEMINI_API_KEY'):
        logger.warning("No AI provider key set - insights will use the statistical fallback")

    logger.info("Production configuration checks passed")
