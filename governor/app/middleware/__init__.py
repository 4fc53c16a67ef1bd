"""Middleware package for the governor."""

from governor.app.middleware.rate_limit import RateLimitMiddleware
from governor.app.middleware.request_id import RequestIdMiddleware, get_request_id

__all__ = [
    "RateLimitMiddleware",
    "RequestIdMiddleware",
    "get_request_id",
]
