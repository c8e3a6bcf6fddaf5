"""Rate limiting middleware using SlowAPI."""

from fastapi import Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

# Create limiter instance using client IP as key
limiter = Limiter(key_func=get_remote_address)

OAUTH_START_LIMIT = "10/minute"
REPORT_GENERATE_LIMIT = "5/minute"


async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded):
    """Custom handler for rate limit exceeded errors."""
    return JSONResponse(
        status_code=429,
        content={
            "error": "rate_limited",
            "detail": "Too many requests. Please try again later.",
            "retry_after": exc.detail,
        }
    )
