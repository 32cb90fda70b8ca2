"""
API Middleware Package

Error handling, rate limiting and request logging.
"""

from api.middleware.error_handler import (
    setup_error_handlers,
    raise_for_result,
    APIError,
    NotFoundError,
    ValidationError,
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    RateLimitError,
)
from api.middleware.logging import LoggingMiddleware
from api.middleware.rate_limit import setup_rate_limiting, limiter

__all__ = [
    "setup_error_handlers",
    "raise_for_result",
    "APIError",
    "NotFoundError",
    "ValidationError",
    "AuthenticationError",
    "AuthorizationError",
    "ConflictError",
    "RateLimitError",
    "LoggingMiddleware",
    "setup_rate_limiting",
    "limiter"
]
