"""Middleware package for request processing."""

from task_api.middleware.rate_limiter import (
    RateLimitDecision,
    RateLimiter,
    RateLimitExceeded,
)
from task_api.middleware.request_context import RequestContextMiddleware

__all__ = [
    "RateLimitDecision",
    "RateLimitExceeded",
    "RateLimiter",
    "RequestContextMiddleware",
]
