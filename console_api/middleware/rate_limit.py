"""Rate limiting middleware using slowapi.

Default limits:
- Global: 100 req/min per IP
- Status reads: 30 req/min (each one hits Stripe)
- Checkout creation: 10 req/min
- Health checks: 120 req/min
"""

from __future__ import annotations

import logging

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from ..utils.client_ip import get_client_ip

logger = logging.getLogger("console_api.rate_limit")
security_logger = logging.getLogger("security")

RETRY_AFTER_SECONDS = 60


limiter = Limiter(
    key_func=get_client_ip,
    default_limits=["100/minute"],
    storage_uri="memory://",
)

# Usage: @rate_limit_read on status endpoints
rate_limit_read = limiter.limit("30/minute")
rate_limit_write = limiter.limit("10/minute")
rate_limit_health = limiter.limit("120/minute")


def setup_rate_limiting(app):
    """Configure rate limiting on the FastAPI app."""
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _custom_rate_limit_handler)
    app.add_middleware(SlowAPIMiddleware)
    logger.info("Rate limiting enabled")


async def _custom_rate_limit_handler(request: Request, exc: RateLimitExceeded) -> Response:
    """Log the event and return 429 with Retry-After."""
    security_logger.warning({
        "event": "rate_limit_exceeded",
        "ip": get_client_ip(request),
        "path": request.url.path,
        "method": request.method,
        "limit": str(exc.detail),
    })

    return JSONResponse(
        status_code=429,
        content={
            "error": "Too many requests",
            "code": "RATE_LIMIT_EXCEEDED",
            "retryable": True,
            "details": {"limit": str(exc.detail)},
        },
        headers={"Retry-After": str(RETRY_AFTER_SECONDS)}
    )
