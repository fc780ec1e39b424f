from __future__ import annotations

import structlog
from redis.asyncio import Redis

from wysteria.security.rate_limit import RateLimitExceeded

logger = structlog.get_logger(__name__)


class RateLimiter:
    """Fixed-window counters for OTP delivery and verification.

    Keys are scoped per flow and per email address or phone number, so one
    caller cannot flood a single inbox from many IP addresses.
    """

    def __init__(
        self,
        redis: Redis,
        *,
        send_limit: int,
        verify_limit: int,
        window_seconds: int = 60,
        enabled: bool = True,
        prefix: str = "auth:rate",
    ) -> None:
        self._redis = redis
        self._limits = {"send": send_limit, "verify": verify_limit}
        self._window_seconds = window_seconds
        self._enabled = enabled
        self._prefix = prefix

    def _key(self, action: str, scope: str, identifier: str) -> str:
        return f"{self._prefix}:{action}:{scope}:{identifier.strip().lower()}"

    async def hit(self, action: str, scope: str, identifier: str) -> None:
        """Count one attempt, raising :class:`RateLimitExceeded` past the limit."""

        if not self._enabled:
            return

        key = self._key(action, scope, identifier)
        count = await self._redis.incr(key)
        if count == 1:
            await self._redis.expire(key, self._window_seconds)

        if count > self._limits[action]:
            ttl = await self._redis.ttl(key)
            retry_after = int(ttl) if ttl and ttl > 0 else self._window_seconds
            logger.warning(
                "otp_rate_limited", action=action, scope=scope, retry_after=retry_after
            )
            raise RateLimitExceeded(retry_after)

    async def check_send(self, scope: str, identifier: str) -> None:
        await self.hit("send", scope, identifier)

    async def check_verify(self, scope: str, identifier: str) -> None:
        await self.hit("verify", scope, identifier)

    async def reset(self, scope: str, identifier: str) -> None:
        await self._redis.delete(
            self._key("send", scope, identifier),
            self._key("verify", scope, identifier),
        )
