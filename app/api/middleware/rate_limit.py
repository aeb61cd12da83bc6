"""
Rate Limiting

Per-client-IP rate limiting of the public booking endpoints with a Redis
backend. The dependency does the counting; the middleware copies the
resulting X-RateLimit-* values onto the response.
"""

import logging

from fastapi import Depends, Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from app.api.errors import ApiError
from app.infra.redis import RateLimiterStore, get_rate_limiter_store

logger = logging.getLogger(__name__)

# Header names
HEADER_LIMIT = "X-RateLimit-Limit"
HEADER_REMAINING = "X-RateLimit-Remaining"
HEADER_RESET = "X-RateLimit-Reset"
HEADER_RETRY_AFTER = "Retry-After"


def client_identifier(request: Request) -> str:
    """Rate limit bucket for the calling client."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return f"ip:{forwarded.split(',')[0].strip()}"
    return f"ip:{request.client.host if request.client else 'unknown'}"


def add_rate_limit_headers(
    response: Response,
    limit: int,
    remaining: int,
    reset_seconds: int,
) -> None:
    """Add rate limit headers to response."""
    response.headers[HEADER_LIMIT] = str(limit)
    response.headers[HEADER_REMAINING] = str(remaining)
    response.headers[HEADER_RESET] = str(reset_seconds)


async def require_rate_limit(
    request: Request,
    store: RateLimiterStore = Depends(get_rate_limiter_store),
) -> None:
    """
    FastAPI dependency that enforces the public rate limit.

    Raises ApiError 429 (RATE_LIMITED) when the window is exhausted.

    Usage:
        router = APIRouter(dependencies=[Depends(require_rate_limit)])
    """
    if request.method == "OPTIONS":
        return

    identifier = client_identifier(request)
    allowed, remaining, reset_seconds = await store.hit(identifier)

    # Read back by RateLimitMiddleware
    request.state.rate_limit_limit = store.max_requests
    request.state.rate_limit_remaining = remaining
    request.state.rate_limit_reset = reset_seconds

    if not allowed:
        logger.warning(
            f"Rate limit exceeded | Client: {identifier} | "
            f"Limit: {store.max_requests} | Path: {request.url.path}"
        )
        raise ApiError(
            status_code=429,
            code="RATE_LIMITED",
            message="Too many requests",
            headers={
                HEADER_LIMIT: str(store.max_requests),
                HEADER_REMAINING: "0",
                HEADER_RESET: str(reset_seconds),
                HEADER_RETRY_AFTER: str(reset_seconds),
            },
        )


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Adds rate limit headers to responses of rate-limited routes."""

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        response = await call_next(request)

        limit = getattr(request.state, "rate_limit_limit", None)
        if limit:
            add_rate_limit_headers(
                response,
                limit,
                getattr(request.state, "rate_limit_remaining", 0),
                getattr(request.state, "rate_limit_reset", 0),
            )

        return response
