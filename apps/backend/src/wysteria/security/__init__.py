from .rate_limit import (
    RateLimitExceeded,
    RateLimitMiddleware,
    RedisRateLimiter,
    client_ip,
)

__all__ = [
    "RateLimitExceeded",
    "RateLimitMiddleware",
    "RedisRateLimiter",
    "client_ip",
]
