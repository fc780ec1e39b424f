from __future__ import annotations

from dataclasses import asdict, dataclass

import orjson
from redis.asyncio import Redis

from wysteria.auth.enums import OAuthProviderName
from wysteria.auth.exceptions import OAuthStateError

_KEY_PREFIX = "oauth:state:"


@dataclass(slots=True)
class OAuthState:
    provider: OAuthProviderName
    code_verifier: str | None
    callback_url: str


class OAuthStateStore:
    """Short-lived authorization requests keyed by their ``state`` value."""

    def __init__(self, redis: Redis, *, ttl_seconds: int) -> None:
        self._redis = redis
        self._ttl = ttl_seconds

    async def save(self, state: str, payload: OAuthState) -> None:
        await self._redis.set(
            f"{_KEY_PREFIX}{state}", orjson.dumps(asdict(payload)), ex=self._ttl
        )

    async def consume(self, state: str, provider: OAuthProviderName) -> OAuthState:
        raw = await self._redis.getdel(f"{_KEY_PREFIX}{state}")
        if raw is None:
            raise OAuthStateError("Unknown or expired OAuth state")

        data = orjson.loads(raw)
        payload = OAuthState(
            provider=OAuthProviderName(data["provider"]),
            code_verifier=data.get("code_verifier"),
            callback_url=data["callback_url"],
        )
        if payload.provider is not provider:
            raise OAuthStateError("OAuth state was issued for another provider")
        return payload
