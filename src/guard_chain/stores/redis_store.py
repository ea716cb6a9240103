"""Redis stores — shared state for multi-process and multi-host deployments.

Each counter operation is one Lua script, so the check and the update
happen atomically inside Redis.  Cache operations map onto single
commands (``GET``, ``SET PX``, ``DEL``), which are atomic already.
"""

from __future__ import annotations

import json
import logging
import math
import uuid
from typing import Any

try:
    from redis.asyncio import Redis
    from redis.exceptions import RedisError
except ImportError as exc:
    raise ImportError(
        "The Redis stores require the 'redis' package. "
        "Install it with: pip install guard-chain[redis]"
    ) from exc

from guard_chain._internal.clock import Clock, SystemClock, epoch
from guard_chain.exceptions import StoreError
from guard_chain.response import StoredResponse
from guard_chain.stores.base import Admission, CacheEntry, CacheStore, CounterStore, bucket_ttl

logger = logging.getLogger(__name__)

_INCREMENT_LUA = """
-- KEYS[1] = counter key
-- ARGV[1] = ttl (ms)
local count = redis.call('INCR', KEYS[1])
if count == 1 then
  redis.call('PEXPIRE', KEYS[1], ARGV[1])
end
return count
"""

_SLIDE_LUA = """
-- KEYS[1] = sorted-set key
-- ARGV[1] = now (float seconds)
-- ARGV[2] = window (float seconds)
-- ARGV[3] = limit
-- ARGV[4] = unique member for this hit
local key = KEYS[1]
local now = tonumber(ARGV[1])
local window = tonumber(ARGV[2])
local limit = tonumber(ARGV[3])

redis.call('ZREMRANGEBYSCORE', key, '-inf', now - window)
local count = redis.call('ZCARD', key)
local ttl = math.ceil(window * 1000)

if count < limit then
  redis.call('ZADD', key, now, ARGV[4])
  redis.call('PEXPIRE', key, ttl)
  return {1, tostring(limit - count - 1), '0'}
end

local blocking = redis.call('ZRANGE', key, count - limit, count - limit, 'WITHSCORES')
local retry_after = tonumber(blocking[2]) + window - now
if retry_after < 0 then
  retry_after = 0
end
return {0, '0', tostring(retry_after)}
"""

_CONSUME_LUA = """
-- KEYS[1] = hash key
-- ARGV[1] = now (float seconds)
-- ARGV[2] = refill rate (tokens per second)
-- ARGV[3] = capacity
-- ARGV[4] = cost
-- ARGV[5] = ttl (ms)
local key = KEYS[1]
local now = tonumber(ARGV[1])
local rate = tonumber(ARGV[2])
local capacity = tonumber(ARGV[3])
local cost = tonumber(ARGV[4])

local data = redis.call('HMGET', key, 'tokens', 'ts')
local tokens = tonumber(data[1])
local ts = tonumber(data[2])

if tokens == nil or ts == nil then
  tokens = capacity
  ts = now
elseif now > ts then
  tokens = math.min(capacity, tokens + (now - ts) * rate)
  ts = now
end

local allowed = 0
local retry_after = -1
if tokens >= cost then
  tokens = tokens - cost
  allowed = 1
  retry_after = 0
elseif rate > 0 then
  retry_after = (cost - tokens) / rate
end

redis.call('HSET', key, 'tokens', tostring(tokens), 'ts', tostring(ts))
redis.call('PEXPIRE', key, ARGV[5])
return {allowed, tostring(tokens), tostring(retry_after)}
"""


class RedisCounterStore(CounterStore):
    """Rate-limit state in Redis.

    Parameters:
        client: A ``redis.asyncio.Redis`` client.
        prefix: Prepended to every key.
    """

    def __init__(self, client: Redis, *, prefix: str = "guard_chain:rl:") -> None:
        self._client = client
        self._prefix = prefix
        self._increment = client.register_script(_INCREMENT_LUA)
        self._slide = client.register_script(_SLIDE_LUA)
        self._consume = client.register_script(_CONSUME_LUA)

    @classmethod
    def from_url(cls, url: str, **kwargs: Any) -> RedisCounterStore:
        return cls(Redis.from_url(url), **kwargs)

    def _key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    async def _run(self, operation: str, script: Any, key: str, args: list[Any]) -> Any:
        try:
            return await script(keys=[self._key(key)], args=args)
        except RedisError as exc:
            logger.warning("Redis %s failed for %s: %s", operation, key, exc)
            raise StoreError(operation, str(exc)) from exc

    async def increment(self, key: str, ttl_seconds: float) -> int:
        ttl_ms = max(1, math.ceil(ttl_seconds * 1000))
        return int(await self._run("increment", self._increment, key, [ttl_ms]))

    async def slide(self, key: str, now: float, window_seconds: float, limit: int) -> Admission:
        member = f"{now}:{uuid.uuid4().hex}"
        result = await self._run(
            "slide", self._slide, key, [repr(now), repr(window_seconds), limit, member]
        )
        return Admission(int(result[0]) == 1, float(result[1]), float(result[2]))

    async def consume(
        self, key: str, capacity: float, refill_rate: float, now: float, cost: float = 1.0
    ) -> Admission:
        ttl_ms = math.ceil(bucket_ttl(capacity, refill_rate) * 1000)
        result = await self._run(
            "consume",
            self._consume,
            key,
            [repr(now), repr(float(refill_rate)), repr(float(capacity)), repr(float(cost)), ttl_ms],
        )
        retry_after = float(result[2])
        return Admission(
            int(result[0]) == 1,
            float(result[1]),
            math.inf if retry_after < 0 else retry_after,
        )

    async def reset(self, key: str) -> None:
        try:
            await self._client.delete(self._key(key))
        except RedisError as exc:
            raise StoreError("reset", str(exc)) from exc

    async def close(self) -> None:
        await self._client.aclose()


class RedisCacheStore(CacheStore):
    """Response cache in Redis.  Entries are JSON documents with a ``PX`` expiry."""

    def __init__(
        self,
        client: Redis,
        *,
        prefix: str = "guard_chain:cache:",
        clock: Clock | None = None,
    ) -> None:
        self._client = client
        self._prefix = prefix
        self._clock = clock or SystemClock()

    @classmethod
    def from_url(cls, url: str, **kwargs: Any) -> RedisCacheStore:
        return cls(Redis.from_url(url), **kwargs)

    def _key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    async def get(self, key: str) -> CacheEntry | None:
        try:
            raw = await self._client.get(self._key(key))
        except RedisError as exc:
            raise StoreError("get", str(exc)) from exc
        if raw is None:
            return None
        data = json.loads(raw)
        return CacheEntry(StoredResponse.from_dict(data["response"]), float(data["expires_at"]))

    async def set(self, key: str, response: StoredResponse, ttl_seconds: float) -> None:
        ttl_ms = max(1, math.ceil(ttl_seconds * 1000))
        expires_at = epoch(self._clock) + ttl_seconds
        try:
            payload = json.dumps({"response": response.to_dict(), "expires_at": expires_at})
        except (TypeError, ValueError) as exc:
            raise StoreError("set", f"response is not JSON-serializable: {exc}") from exc
        try:
            await self._client.set(self._key(key), payload, px=ttl_ms)
        except RedisError as exc:
            raise StoreError("set", str(exc)) from exc

    async def evict(self, key: str) -> None:
        try:
            await self._client.delete(self._key(key))
        except RedisError as exc:
            raise StoreError("evict", str(exc)) from exc

    async def close(self) -> None:
        await self._client.aclose()
