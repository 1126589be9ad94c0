"""Rate limiting dependency for the credential endpoints.

A dependency rather than middleware, so only the routes that declare it
pay for it:

  POST /auth/login     10 attempts, refill ~1 per 6s   (password guessing)
  POST /auth/register   5 attempts, refill ~1 per 12s  (account spam)
  everything else      unlimited

Buckets are keyed by route scope and client IP.  Both endpoints are
called anonymously, so there is no user identity to key on.
"""

from __future__ import annotations

import logging

from fastapi import HTTPException, Request, status

from course_platform.core.metrics import RATE_LIMIT_HITS
from course_platform.db.redis import redis_pool
from course_platform.services.rate_limiter import (
    InMemoryRateLimiter,
    RateLimitConfig,
    RateLimiter,
    RedisRateLimiter,
)

logger = logging.getLogger(__name__)

_rate_limiter: RateLimiter
if redis_pool is not None:
    _rate_limiter = RedisRateLimiter(redis_pool)
else:
    _rate_limiter = InMemoryRateLimiter()

LOGIN_LIMIT = RateLimitConfig(capacity=10, refill_rate=0.17)
REGISTER_LIMIT = RateLimitConfig(capacity=5, refill_rate=0.08)


def require_rate_limit(scope: str, config: RateLimitConfig):
    """Dependency factory: enforce *config* per client IP within *scope*.

    Usage: dependencies=[Depends(require_rate_limit("login", LOGIN_LIMIT))]
    """

    async def _check(request: Request) -> None:
        client_ip = request.client.host if request.client else "unknown"
        key = f"{scope}:ip:{client_ip}"
        result = await _rate_limiter.check(key, config)

        if not result.allowed:
            RATE_LIMIT_HITS.labels(key_type="ip").inc()
            logger.warning("Rate limit exceeded key=%s", key)
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail="Too many attempts, try again later",
                headers={
                    "Retry-After": str(int(result.retry_after) + 1),
                    "X-RateLimit-Limit": str(result.limit),
                    "X-RateLimit-Remaining": "0",
                },
            )

    return _check
