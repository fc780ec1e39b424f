from __future__ import annotations

import time
import uuid
from typing import TYPE_CHECKING, Any

import structlog
from fastapi import HTTPException, Request, status
from fastapi.responses import ORJSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.types import ASGIApp

if TYPE_CHECKING:
    from redis.asyncio import Redis

logger = structlog.get_logger(__name__)


class RateLimitExceeded(HTTPException):
    """Raised when rate limit is exceeded."""

    def __init__(self, reset_after: int) -> None:
        super().__init__(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Rate limit exceeded",
            headers={"Retry-After": str(max(1, reset_after))},
        )
        self.reset_after = max(1, reset_after)


def client_ip(request: Request) -> str:
    """Extract client IP from request, respecting X-Forwarded-For header."""
    if x_forwarded_for := request.headers.get("X-Forwarded-For"):
        return x_forwarded_for.split(",")[0].strip()
    if request.client:
        return request.client.host
    return "unknown"


class RedisRateLimiter:
    """Redis-backed rate limiter using sliding window algorithm."""

    def __init__(
        self,
        redis_client: Redis,
        requests_per_minute: int = 100,
        window_seconds: int = 60,
    ) -> None:
        self.redis_client = redis_client
        self.requests_per_minute = requests_per_minute
        self.window_seconds = window_seconds

    async def check_rate_limit(
        self, identifier: str, max_requests: int | None = None
    ) -> tuple[bool, int]:
        """
        Check if identifier is within rate limit.

        Returns:
            Tuple of (is_allowed, seconds_until_reset)
        """
        max_requests = max_requests or self.requests_per_minute
        key = f"rate_limit:{identifier}"
        now = time.time()
        window_start = now - self.window_seconds

        try:
            await self.redis_client.zremrangebyscore(key, 0, window_start)
            count = await self.redis_client.zcard(key)

            if count < max_requests:
                await self.redis_client.zadd(key, {uuid.uuid4().hex: now})
                await self.redis_client.expire(key, self.window_seconds)
                return True, 0

            oldest: list[tuple[Any, float]] = await self.redis_client.zrange(
                key, 0, 0, withscores=True
            )
            if oldest:
                reset_at = float(oldest[0][1]) + self.window_seconds
                return False, max(1, int(reset_at - now) + 1)

            return False, self.window_seconds

        except Exception as exc:
            logger.exception(
                "rate_limit_check_error", identifier=identifier, error=str(exc)
            )
            return True, 0


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Middleware that enforces per-IP rate limiting.

    The Redis client is created by the application lifespan, so the limiter
    is resolved from ``app.state`` on first use.
    """

    def __init__(
        self,
        app: ASGIApp,
        global_requests_per_minute: int = 100,
        window_seconds: int = 60,
        exempt_paths: tuple[str, ...] = (),
    ) -> None:
        super().__init__(app)
        self.requests_per_minute = global_requests_per_minute
        self.window_seconds = window_seconds
        self.exempt_paths = exempt_paths
        self._limiter: RedisRateLimiter | None = None

    def _get_limiter(self, request: Request) -> RedisRateLimiter | None:
        redis_client = getattr(request.app.state, "redis", None)
        if redis_client is None:
            return None
        if self._limiter is None or self._limiter.redis_client is not redis_client:
            self._limiter = RedisRateLimiter(
                redis_client,
                requests_per_minute=self.requests_per_minute,
                window_seconds=self.window_seconds,
            )
        return self._limiter

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Any:
        if request.method == "OPTIONS" or request.url.path in self.exempt_paths:
            return await call_next(request)

        limiter = self._get_limiter(request)
        if limiter is None:
            return await call_next(request)

        ip = client_ip(request)
        is_allowed, reset_after = await limiter.check_rate_limit(f"ip:{ip}")

        if not is_allowed:
            logger.warning(
                "rate_limit_exceeded",
                client_ip=ip,
                path=request.url.path,
                reset_after=reset_after,
            )
            exc = RateLimitExceeded(reset_after=reset_after)
            return ORJSONResponse(
                {"detail": exc.detail},
                status_code=exc.status_code,
                headers=exc.headers,
            )

        return await call_next(request)
