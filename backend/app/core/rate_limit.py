"""
Shared rate limiting configuration.

Defines the global SlowAPI limiter instance to avoid circular imports between
routers and the FastAPI app.
"""
import logging

from fastapi import Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

logger = logging.getLogger(__name__)


def user_fingerprint(request: Request) -> str:
    """Key by authenticated user when a dependency recorded one, else by client address."""
    key = getattr(request.state, "rate_limit_key", None)
    if key:
        return key
    return get_remote_address(request)


# Global limiter instance reused by the app and routers (fixed-window strategy)
limiter = Limiter(key_func=get_remote_address, default_limits=["1000/hour"], strategy="fixed-window")


def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    logger.warning(f"Rate limit exceeded for {user_fingerprint(request)} on {request.url.path}: {exc.detail}")
    response = JSONResponse(
        status_code=429,
        content={
            "status": "error",
            "code": "rate_limited",
            "message": "You have been blocked",
        },
    )
    return request.app.state.limiter._inject_headers(response, request.state.view_rate_limit)


rate_limit_exception = RateLimitExceeded
