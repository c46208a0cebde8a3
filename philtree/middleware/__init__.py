"""HTTP middleware."""

from philtree.middleware.prometheus import PrometheusMiddleware
from philtree.middleware.request_id import RequestIdMiddleware
from philtree.middleware.request_logging import RequestLoggingMiddleware

__all__ = [
    "PrometheusMiddleware",
    "RequestIdMiddleware",
    "RequestLoggingMiddleware",
]
