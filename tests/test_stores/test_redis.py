"""Tests for the Redis stores against a mocked async client."""

import json
import math
from unittest.mock import AsyncMock, MagicMock

import pytest

pytest.importorskip("redis")

from redis.exceptions import ConnectionError as RedisConnectionError  # noqa: E402

from guard_chain import StoredResponse, StoreError  # noqa: E402
from guard_chain.stores.redis_store import RedisCacheStore, RedisCounterStore  # noqa: E402


@pytest.fixture
def client():
    client = MagicMock()
    client.register_script.side_effect = lambda source: AsyncMock(name="script")
    client.get = AsyncMock(return_value=None)
    client.set = AsyncMock()
    client.delete = AsyncMock()
    client.aclose = AsyncMock()
    return client


@pytest.fixture
def counters(client):
    return RedisCounterStore(client, prefix="t:")


async def test_scripts_registered_once(client, counters):
    assert client.register_script.call_count == 3


async def test_increment(counters):
    counters._increment.return_value = 4
    assert await counters.increment("rl:client:a:16", 60) == 4
    counters._increment.assert_awaited_once_with(keys=["t:rl:client:a:16"], args=[60000])


async def test_slide_admitted(counters):
    counters._slide.return_value = [1, "1", "0"]
    admission = await counters.slide("k", 100.0, 10.0, 2)
    assert admission.admitted
    assert admission.remaining == 1.0

    args = counters._slide.await_args.kwargs["args"]
    assert args[:3] == ["100.0", "10.0", 2]


async def test_slide_denied(counters):
    counters._slide.return_value = [0, "0", "7.5"]
    admission = await counters.slide("k", 100.0, 10.0, 2)
    assert not admission.admitted
    assert admission.retry_after == 7.5


async def test_consume_without_refill_never_recovers(counters):
    counters._consume.return_value = [0, "0", "-1"]
    admission = await counters.consume("k", 5, 0.0, 100.0)
    assert not admission.admitted
    assert math.isinf(admission.retry_after)


async def test_script_failure_raises_store_error(counters):
    counters._increment.side_effect = RedisConnectionError("refused")
    with pytest.raises(StoreError) as info:
        await counters.increment("k", 60)
    assert info.value.operation == "increment"


async def test_reset_and_close(client, counters):
    await counters.reset("k")
    client.delete.assert_awaited_once_with("t:k")
    await counters.close()
    client.aclose.assert_awaited_once()


async def test_cache_round_trip(client, clock):
    cache = RedisCacheStore(client, prefix="c:", clock=clock)
    response = StoredResponse(200, {"X": "1"}, {"ok": True})

    await cache.set("k", response, 30)
    key, payload = client.set.await_args.args
    assert key == "c:k"
    assert client.set.await_args.kwargs == {"px": 30000}
    assert json.loads(payload)["expires_at"] == 1030.0

    client.get.return_value = payload
    entry = await cache.get("k")
    assert entry.response == response
    assert entry.expires_at == 1030.0


async def test_cache_miss(client, clock):
    assert await RedisCacheStore(client, clock=clock).get("k") is None


async def test_cache_failure_raises_store_error(client, clock):
    client.get.side_effect = RedisConnectionError("refused")
    with pytest.raises(StoreError):
        await RedisCacheStore(client, clock=clock).get("k")


async def test_cache_evict(client, clock):
    await RedisCacheStore(client, prefix="c:", clock=clock).evict("k")
    client.delete.assert_awaited_once_with("c:k")
