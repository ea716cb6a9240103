"""Tests for RateLimitGuard."""

import asyncio

import pytest

from guard_chain import ErrorKind, GuardConfigError, Principal, RequestContext
from guard_chain.guards import RateLimitGuard, by_principal
from guard_chain.stores import InMemoryCounterStore


@pytest.fixture
def rl(counter_store, clock):
    return RateLimitGuard(
        name="rl", max_requests=3, window_seconds=60, store=counter_store, clock=clock
    )


async def test_allows_under_limit(rl, alice_ctx):
    for _ in range(3):
        assert (await rl.attempt(alice_ctx)).allowed


async def test_denies_over_limit(rl, alice_ctx):
    for _ in range(3):
        await rl.attempt(alice_ctx)
    result = await rl.attempt(alice_ctx)

    assert not result.allowed
    assert result.error.kind is ErrorKind.RATE_LIMIT
    assert result.error.code == "RATE_LIMITED"
    assert "Rate limit exceeded" in result.error.message
    # clock starts at t=1000, inside the window [960, 1020)
    assert result.error.detail["retry_after"] == 20


async def test_window_resets(rl, alice_ctx, clock):
    for _ in range(4):
        await rl.attempt(alice_ctx)

    clock.advance(61)
    assert (await rl.attempt(alice_ctx)).allowed


async def test_per_client_isolation(rl, alice_ctx, bob_ctx):
    for _ in range(3):
        await rl.attempt(alice_ctx)
    assert (await rl.attempt(bob_ctx)).allowed


async def test_quota_published(rl, alice_ctx):
    await rl.attempt(alice_ctx)
    assert alice_ctx.state["rate_limit"] == {"limit": 3, "remaining": 2}
    assert alice_ctx.response_headers["X-RateLimit-Remaining"] == "2"


async def test_forwarded_for_fallback(rl):
    ctx = RequestContext(headers={"X-Forwarded-For": "203.0.113.9, 10.0.0.1"})
    await rl.attempt(ctx)
    assert await rl.store.increment("rl:client:203.0.113.9:16", 60) == 2


async def test_concurrent_requests_never_exceed_limit(counter_store, clock):
    guard = RateLimitGuard(max_requests=5, window_seconds=60, store=counter_store, clock=clock)
    results = await asyncio.gather(
        *(guard.attempt(RequestContext(client="10.0.0.1")) for _ in range(20))
    )
    assert sum(r.allowed for r in results) == 5


async def test_sliding_window(counter_store, clock):
    guard = RateLimitGuard(
        max_requests=2,
        window_seconds=10,
        algorithm="sliding_window",
        store=counter_store,
        clock=clock,
    )
    ctx = RequestContext(client="c")
    assert (await guard.attempt(ctx)).allowed
    clock.advance(4)
    assert (await guard.attempt(ctx)).allowed
    clock.advance(2)

    denied = await guard.attempt(ctx)
    assert not denied.allowed
    # oldest hit at t=1000 leaves the window at t=1010
    assert denied.error.detail["retry_after"] == 4

    clock.advance(4.5)
    assert (await guard.attempt(ctx)).allowed


async def test_token_bucket_burst_then_refill(counter_store, clock):
    guard = RateLimitGuard(
        max_requests=5,
        window_seconds=5,
        algorithm="token_bucket",
        store=counter_store,
        clock=clock,
    )
    ctx = RequestContext(client="c")
    for _ in range(5):
        assert (await guard.attempt(ctx)).allowed

    denied = await guard.attempt(ctx)
    assert not denied.allowed
    assert denied.error.detail["retry_after"] == 1

    clock.advance(1)
    assert (await guard.attempt(ctx)).allowed
    assert not (await guard.attempt(ctx)).allowed


async def test_by_principal_key(counter_store, clock):
    guard = RateLimitGuard(
        max_requests=1, window_seconds=60, key=by_principal, store=counter_store, clock=clock
    )
    first = RequestContext(client="10.0.0.1", principal=Principal(id="alice"))
    other_host = RequestContext(client="10.0.0.2", principal=Principal(id="alice"))
    assert (await guard.attempt(first)).allowed
    assert not (await guard.attempt(other_host)).allowed


@pytest.mark.parametrize(
    "kwargs",
    [
        {"max_requests": 0, "window_seconds": 60},
        {"max_requests": 1, "window_seconds": 0},
        {"max_requests": 1, "window_seconds": 60, "algorithm": "leaky"},
    ],
)
def test_invalid_config(kwargs):
    with pytest.raises(GuardConfigError):
        RateLimitGuard(**kwargs)


def test_export(rl):
    data = rl.export()
    assert data["type"] == "rate_limit"
    assert data["config"] == {"algorithm": "fixed_window", "max_requests": 3, "window_seconds": 60}


async def test_old_windows_are_swept(alice_ctx, clock):
    store = InMemoryCounterStore(clock, sweep_every=10)
    guard = RateLimitGuard(max_requests=5, window_seconds=1, store=store, clock=clock)
    for _ in range(500):
        assert (await guard.attempt(alice_ctx)).allowed
        clock.advance(1)
    assert len(store) <= 10
