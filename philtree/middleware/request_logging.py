"""
Request Logging Middleware
==========================

One structlog event per request with method, route, status, latency, request
id and the acting user.
"""

import time
from typing import Callable

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = structlog.get_logger("philtree.requests")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    # Paths to exclude from logging (e.g., health checks)
    EXCLUDED_PATHS = {"/health", "/metrics", "/docs", "/redoc"}

    async def dispatch(
        self,
        request: Request,
        call_next: Callable,
    ) -> Response:
        if request.url.path in self.EXCLUDED_PATHS:
            return await call_next(request)

        start_time = time.perf_counter()
        log = logger.bind(
            request_id=getattr(request.state, "request_id", None),
            method=request.method,
            path=request.url.path,
            user_id=request.headers.get("X-User-Id"),
            client_ip=request.client.host if request.client else None,
        )

        try:
            response = await call_next(request)
        except Exception:
            log.exception(
                "request_failed",
                duration_ms=round((time.perf_counter() - start_time) * 1000, 2),
            )
            raise

        duration_ms = round((time.perf_counter() - start_time) * 1000, 2)
        if response.status_code >= 500:
            log.error("request_completed", status_code=response.status_code, duration_ms=duration_ms)
        elif response.status_code >= 400:
            log.warning("request_completed", status_code=response.status_code, duration_ms=duration_ms)
        else:
            log.info("request_completed", status_code=response.status_code, duration_ms=duration_ms)
        return response
