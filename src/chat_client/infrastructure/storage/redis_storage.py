from __future__ import annotations

import redis.asyncio as aioredis

from chat_client.infrastructure.auth.claims import SECONDS_PER_DAY


class RedisCredentialStorage:
    """Implements application.ports.storage.CredentialStorage."""

    def __init__(self, redis: aioredis.Redis, prefix: str = "") -> None:
        self._redis = redis
        self._prefix = prefix

    def _key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    async def get(self, key: str) -> str | None:
        value = await self._redis.get(self._key(key))
        if isinstance(value, bytes):
            return value.decode()
        return value

    async def set(self, key: str, value: str, *, expires_in_days: int | None = None) -> None:
        ttl = expires_in_days * SECONDS_PER_DAY if expires_in_days is not None else None
        await self._redis.set(self._key(key), value, ex=ttl)

    async def delete(self, key: str) -> None:
        await self._redis.delete(self._key(key))
