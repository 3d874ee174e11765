"""
Request middleware for FastAPI
Request ids, structured request logging and body size limits.
"""

import time
import uuid
from typing import Callable
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
import structlog

from classcrush.config import settings


logger = structlog.get_logger(__name__)

# Don't log health checks to reduce noise
QUIET_PATHS = {"/", "/health", "/docs", "/openapi.json"}


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Binds a request id to every log line of the request and logs
    one ``api_request`` event when it completes.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())[:8]
        request.state.request_id = request_id

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)

        start_time = time.time()
        response = await call_next(request)
        duration_ms = (time.time() - start_time) * 1000

        response.headers["X-Request-ID"] = request_id

        if request.url.path not in QUIET_PATHS:
            logger.info(
                "api_request",
                method=request.method,
                path=str(request.url.path),
                status_code=response.status_code,
                duration_ms=round(duration_ms, 2),
                client_ip=self._get_client_ip(request),
                user_agent=request.headers.get("User-Agent", "Unknown")[:100],
            )

        return response

    def _get_client_ip(self, request: Request) -> str:
        """Extract real client IP from request."""
        # Check proxy headers
        forwarded_for = request.headers.get("X-Forwarded-For")
        if forwarded_for:
            return forwarded_for.split(",")[0].strip()

        real_ip = request.headers.get("X-Real-IP")
        if real_ip:
            return real_ip.strip()

        return request.client.host if request.client else "unknown"


class RequestSizeLimitMiddleware(BaseHTTPMiddleware):
    """
    Middleware to limit request body size.
    Image uploads are the only large bodies the API accepts.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        content_length = request.headers.get("Content-Length")

        if content_length and content_length.isdigit():
            if int(content_length) > settings.MAX_REQUEST_BYTES:
                logger.warning("request_too_large", path=str(request.url.path), size=int(content_length))
                return Response(
                    content='{"detail": "Request body too large."}',
                    status_code=413,
                    media_type="application/json",
                )

        return await call_next(request)
