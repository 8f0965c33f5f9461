"""Middleware package for the annotation service."""

from annotator.app.middleware.rate_limit import RateLimiter, rate_limit
from annotator.app.middleware.request_id import RequestIdMiddleware, get_request_id
from annotator.app.middleware.request_size import RequestSizeLimitMiddleware

__all__ = [
    "RateLimiter",
    "rate_limit",
    "RequestIdMiddleware",
    "RequestSizeLimitMiddleware",
    "get_request_id",
]
