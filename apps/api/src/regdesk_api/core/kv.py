"""Key-value persistence used by report cursors, item configs and orders."""

from __future__ import annotations

import time
from typing import Mapping, Protocol

from redis.asyncio import Redis

from regdesk_api.core.settings import settings

_DELETE_IF_EQUALS_SCRIPT = """
if redis.call("GET", KEYS[1]) == ARGV[1] then
    return redis.call("DEL", KEYS[1])
end
return 0
"""


class KeyValueStore(Protocol):
    """Subset of KV operations the service relies on."""

    async def get(self, key: str) -> str | None:
        ...

    async def set(self, key: str, value: str, *, ttl_seconds: int | None = None) -> None:
        ...

    async def set_if_absent(self, key: str, value: str, *, ttl_seconds: int) -> bool:
        ...

    async def delete_if_equals(self, key: str, value: str) -> bool:
        ...

    async def hgetall(self, key: str) -> dict[str, str]:
        ...

    async def hset(self, key: str, mapping: Mapping[str, str]) -> None:
        ...

    async def sadd(self, key: str, member: str) -> None:
        ...

    async def smembers(self, key: str) -> set[str]:
        ...

    async def lpush_capped(self, key: str, value: str, *, max_length: int) -> None:
        ...

    async def lrange(self, key: str, start: int, stop: int) -> list[str]:
        ...

    async def ping(self) -> bool:
        ...


class RedisKeyValueStore:
    """Redis-backed store; values are plain strings (``decode_responses=True``)."""

    def __init__(self, redis_client: Redis | None = None) -> None:
        self._redis = redis_client or create_redis_client()

    async def get(self, key: str) -> str | None:
        return await self._redis.get(key)

    async def set(self, key: str, value: str, *, ttl_seconds: int | None = None) -> None:
        await self._redis.set(key, value, ex=ttl_seconds)

    async def set_if_absent(self, key: str, value: str, *, ttl_seconds: int) -> bool:
        acquired = await self._redis.set(key, value, ex=ttl_seconds, nx=True)
        return bool(acquired)

    async def delete_if_equals(self, key: str, value: str) -> bool:
        deleted = await self._redis.eval(_DELETE_IF_EQUALS_SCRIPT, 1, key, value)
        return bool(deleted)

    async def hgetall(self, key: str) -> dict[str, str]:
        return dict(await self._redis.hgetall(key) or {})

    async def hset(self, key: str, mapping: Mapping[str, str]) -> None:
        if mapping:
            await self._redis.hset(key, mapping=dict(mapping))

    async def sadd(self, key: str, member: str) -> None:
        await self._redis.sadd(key, member)

    async def smembers(self, key: str) -> set[str]:
        return set(await self._redis.smembers(key) or set())

    async def lpush_capped(self, key: str, value: str, *, max_length: int) -> None:
        await self._redis.lpush(key, value)
        await self._redis.ltrim(key, 0, max(max_length, 1) - 1)

    async def lrange(self, key: str, start: int, stop: int) -> list[str]:
        return list(await self._redis.lrange(key, start, stop) or [])

    async def ping(self) -> bool:
        return bool(await self._redis.ping())

    async def close(self) -> None:
        await self._redis.aclose()


class InMemoryKeyValueStore:
    """Process-local store with the same semantics, used by tests."""

    def __init__(self) -> None:
        self.values: dict[str, str] = {}
        self.hashes: dict[str, dict[str, str]] = {}
        self.sets: dict[str, set[str]] = {}
        self.lists: dict[str, list[str]] = {}
        self._expiry: dict[str, float] = {}

    def _expire(self, key: str) -> None:
        deadline = self._expiry.get(key)
        if deadline is not None and time.monotonic() >= deadline:
            self.values.pop(key, None)
            self._expiry.pop(key, None)

    async def get(self, key: str) -> str | None:
        self._expire(key)
        return self.values.get(key)

    async def set(self, key: str, value: str, *, ttl_seconds: int | None = None) -> None:
        self.values[key] = value
        if ttl_seconds:
            self._expiry[key] = time.monotonic() + ttl_seconds
        else:
            self._expiry.pop(key, None)

    async def set_if_absent(self, key: str, value: str, *, ttl_seconds: int) -> bool:
        self._expire(key)
        if key in self.values:
            return False
        await self.set(key, value, ttl_seconds=ttl_seconds)
        return True

    async def delete_if_equals(self, key: str, value: str) -> bool:
        self._expire(key)
        if self.values.get(key) != value:
            return False
        self.values.pop(key, None)
        self._expiry.pop(key, None)
        return True

    async def hgetall(self, key: str) -> dict[str, str]:
        return dict(self.hashes.get(key, {}))

    async def hset(self, key: str, mapping: Mapping[str, str]) -> None:
        self.hashes.setdefault(key, {}).update(mapping)

    async def sadd(self, key: str, member: str) -> None:
        self.sets.setdefault(key, set()).add(member)

    async def smembers(self, key: str) -> set[str]:
        return set(self.sets.get(key, set()))

    async def lpush_capped(self, key: str, value: str, *, max_length: int) -> None:
        items = self.lists.setdefault(key, [])
        items.insert(0, value)
        del items[max(max_length, 1):]

    async def lrange(self, key: str, start: int, stop: int) -> list[str]:
        items = self.lists.get(key, [])
        end = None if stop == -1 else stop + 1
        return items[start:end]

    async def ping(self) -> bool:
        return True


def create_redis_client(url: str | None = None) -> Redis:
    return Redis.from_url(
        url or settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
    )


__all__ = [
    "InMemoryKeyValueStore",
    "KeyValueStore",
    "RedisKeyValueStore",
    "create_redis_client",
]
