"""Redis-backed key-value store shared by every API instance."""

from __future__ import annotations

import redis.asyncio as aioredis


class RedisKeyValueStore:
    """Thin async Redis wrapper for session state and one-time codes."""

    # Atomic swap: only overwrite KEYS[1] when it still holds ARGV[1]
    _COMPARE_AND_SET_SCRIPT = """
local current = redis.call('GET', KEYS[1])
if current ~= ARGV[1] then
  return 0
end
local ttl = tonumber(ARGV[3])
if ttl and ttl > 0 then
  redis.call('SET', KEYS[1], ARGV[2], 'EX', ttl)
else
  redis.call('SET', KEYS[1], ARGV[2], 'KEEPTTL')
end
return 1
"""

    # Only extend a set's TTL, never shorten it below a longer-lived member
    _ADD_TO_SET_SCRIPT = """
redis.call('SADD', KEYS[1], ARGV[1])
local ttl = tonumber(ARGV[2])
if ttl and ttl > 0 and redis.call('TTL', KEYS[1]) < ttl then
  redis.call('EXPIRE', KEYS[1], ttl)
end
return 1
"""

    # First increment starts the expiry window; later ones keep it
    _INCREMENT_SCRIPT = """
local count = redis.call('INCR', KEYS[1])
local ttl = tonumber(ARGV[1])
if count == 1 and ttl and ttl > 0 then
  redis.call('EXPIRE', KEYS[1], ttl)
end
return count
"""

    def __init__(self, redis_url: str, *, socket_timeout: float = 5.0) -> None:
        self.redis_url = redis_url
        self.client = aioredis.from_url(
            redis_url,
            decode_responses=True,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
        )
        self._compare_and_set = self.client.register_script(self._COMPARE_AND_SET_SCRIPT)
        self._add_to_set = self.client.register_script(self._ADD_TO_SET_SCRIPT)
        self._increment = self.client.register_script(self._INCREMENT_SCRIPT)

    @staticmethod
    def _ttl(ttl_seconds: int | None) -> int | None:
        if ttl_seconds is None:
            return None
        return max(1, int(ttl_seconds))

    async def ping(self) -> bool:
        return bool(await self.client.ping())

    async def close(self) -> None:
        await self.client.aclose()

    async def get(self, key: str) -> str | None:
        return await self.client.get(key)

    async def set(self, key: str, value: str, ttl_seconds: int | None = None) -> None:
        await self.client.set(key, value, ex=self._ttl(ttl_seconds))

    async def delete(self, key: str) -> None:
        await self.client.delete(key)

    async def compare_and_set(
        self, key: str, expected: str, value: str, ttl_seconds: int | None = None
    ) -> bool:
        result = await self._compare_and_set(
            keys=[key], args=[expected, value, self._ttl(ttl_seconds) or 0]
        )
        return int(result) == 1

    async def increment(self, key: str, ttl_seconds: int | None = None) -> int:
        return int(await self._increment(keys=[key], args=[self._ttl(ttl_seconds) or 0]))

    async def add_to_set(self, key: str, member: str, ttl_seconds: int | None = None) -> None:
        await self._add_to_set(keys=[key], args=[member, self._ttl(ttl_seconds) or 0])

    async def remove_from_set(self, key: str, member: str) -> None:
        await self.client.srem(key, member)

    async def set_members(self, key: str) -> set[str]:
        return set(await self.client.smembers(key))
