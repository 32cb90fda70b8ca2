"""
Rate Limiting Middleware

Protect the API from abuse with slowapi.
"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from api.middleware.error_handler import RateLimitError


def get_identifier(request: Request) -> str:
    """
    Get rate limit identifier from request.

    Uses the authenticated user id if the auth dependency has stored one,
    otherwise the client IP.
    """
    user_id = getattr(request.state, "user_id", None)
    if user_id:
        return f"user:{user_id}"
    return get_remote_address(request)


# Create limiter instance
limiter = Limiter(key_func=get_identifier, default_limits=["100/minute"])


async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Render slowapi rejections in the API error format."""
    error = RateLimitError(f"Rate limit exceeded: {exc.detail}")
    return JSONResponse(
        status_code=error.status_code,
        content={"error": {"code": error.error_code, "message": error.message}}
    )


def setup_rate_limiting(app: FastAPI, enabled: bool = True):
    """
    Set up rate limiting for the application.

    Args:
        app: FastAPI application instance
        enabled: Disable to skip limits entirely (tests)
    """
    limiter.enabled = enabled
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
    app.add_middleware(SlowAPIMiddleware)


# Common limits
# Usage: @limiter.limit(LIMIT_SIGNING)
LIMIT_STANDARD = "100/minute"
LIMIT_AUTH_HOOK = "30/minute"  # Identity provider webhooks
LIMIT_SIGNING = "20/minute"  # NDA signatures
LIMIT_UPLOAD = "30/minute"  # Document uploads
LIMIT_INVITE = "20/minute"  # Invitations trigger email
