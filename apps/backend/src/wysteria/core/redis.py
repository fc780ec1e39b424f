from __future__ import annotations

from collections.abc import Awaitable
from urllib.parse import urlparse

from redis.asyncio import Redis

from wysteria.core.config import Settings, get_settings

FakeRedisFactory: type[Redis] | None = None

try:  # pragma: no cover - fakeredis is a test dependency
    from fakeredis.aioredis import FakeRedis as _FakeRedis

    FakeRedisFactory = _FakeRedis
except ModuleNotFoundError:  # pragma: no cover
    pass


_REDIS: Redis | None = None


def _create_client(url: str) -> Redis:
    scheme = (urlparse(url).scheme or "").lower()
    if scheme in {"fakeredis", "memory"}:
        if FakeRedisFactory is None:
            raise RuntimeError("fakeredis requested but fakeredis is not installed.")
        return FakeRedisFactory(decode_responses=True)
    return Redis.from_url(url, encoding="utf-8", decode_responses=True)


async def init_redis(settings: Settings | None = None) -> Redis:
    """Initialise and cache the process wide Redis client."""

    global _REDIS
    if _REDIS is not None:
        return _REDIS

    settings = settings or get_settings()
    client = _create_client(settings.redis.url)

    ping_result: bool | Awaitable[bool] = client.ping()
    if isinstance(ping_result, Awaitable):
        await ping_result

    _REDIS = client
    return _REDIS


async def get_redis(settings: Settings | None = None) -> Redis:
    return await init_redis(settings)


async def close_redis() -> None:
    global _REDIS
    if _REDIS is None:
        return

    await _REDIS.aclose()
    _REDIS = None
