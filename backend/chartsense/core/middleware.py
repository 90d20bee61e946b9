"""
Request middleware: correlation ids, request timing and request timeouts.
"""
import uuid
import asyncio
import logging
import time
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from fastapi import status
from chartsense.core.errors import ErrorCodes, error_json_response
from chartsense.core.logging import correlation_id_var
from chartsense.core.performance import PerformanceMonitor

logger = logging.getLogger(__name__)

CORRELATION_HEADER = "X-Correlation-ID"


class CorrelationIDMiddleware(BaseHTTPMiddleware):
    """
    Tag each request with a correlation id and record its duration.

    The id comes from the client's X-Correlation-ID header when present.
    It is stored on ``request.state`` for error bodies and in
    ``correlation_id_var`` so engine code logs it without seeing the request.
    """

    async def dispatch(self, request: Request, call_next):
        correlation_id = request.headers.get(CORRELATION_HEADER) or str(uuid.uuid4())
        request.state.correlation_id = correlation_id
        token = correlation_id_var.set(correlation_id)
        route = f"{request.method} {request.url.path}"

        start_time = time.perf_counter()
        logger.info(f"Request started: {route}", extra={"method": request.method, "path": request.url.path})

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                f"Request failed: {route} - {e} ({time.perf_counter() - start_time:.3f}s)",
                extra={"method": request.method, "path": request.url.path},
                exc_info=True
            )
            return error_json_response(
                status.HTTP_500_INTERNAL_SERVER_ERROR, ErrorCodes.UNKNOWN_ERROR, correlation_id
            )
        finally:
            correlation_id_var.reset(token)

        duration = time.perf_counter() - start_time
        PerformanceMonitor.record_metric(
            "request_duration",
            duration,
            {"correlation_id": correlation_id, "path": request.url.path, "status_code": response.status_code}
        )
        response.headers[CORRELATION_HEADER] = correlation_id
        response.headers["X-Response-Time"] = f"{duration:.3f}"
        logger.info(
            f"Request completed: {route} - {response.status_code} ({duration:.3f}s)",
            extra={"correlation_id": correlation_id, "status_code": response.status_code,
                   "response_time_ms": duration * 1000}
        )
        return response


class TimeoutMiddleware(BaseHTTPMiddleware):
    """Answer 504 TIMEOUT when a request runs past ``timeout_seconds``."""

    def __init__(self, app, timeout_seconds: float):
        super().__init__(app)
        self.timeout_seconds = timeout_seconds

    async def dispatch(self, request: Request, call_next):
        try:
            return await asyncio.wait_for(call_next(request), timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            logger.error(f"Request timed out after {self.timeout_seconds}s: {request.url.path}")
            return error_json_response(
                status.HTTP_504_GATEWAY_TIMEOUT,
                ErrorCodes.TIMEOUT,
                getattr(request.state, 'correlation_id', 'unknown')
            )
