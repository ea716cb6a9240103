"""Tests for GuardChain — full chain integration."""

import asyncio
import json

import pytest

from guard_chain import GuardChain, GuardError, RequestContext, Response, StoredResponse
from guard_chain.guards import CustomGuard, Guard, GuardResult, ResponseCacheGuard

# ── helpers ──────────────────────────────────────────────────


def make_check(calls, label, verdict=True):
    def check(ctx):
        calls.append(label)
        return verdict

    return check


class RecordingGuard(Guard):
    """Records every phase it sees."""

    def __init__(self, name, log):
        self._name = name
        self.log = log

    @property
    def name(self):
        return self._name

    async def attempt(self, context):
        self.log.append(f"{self._name}.attempt")
        return GuardResult.allow(self._name)

    async def settle(self, context, outcome):
        self.log.append(f"{self._name}.settle")

    def finish(self, context, status, elapsed_ms):
        self.log.append(f"{self._name}.finish:{status}")


class CountingHandler:
    def __init__(self, value=None):
        self.calls = 0
        self.value = {"ok": True} if value is None else value

    async def __call__(self, ctx):
        self.calls += 1
        return self.value


# ── basic chain behaviour ────────────────────────────────────


async def test_empty_chain_runs_handler(chain, alice_ctx):
    handler = CountingHandler({"items": []})
    response = await chain.protect(handler)(alice_ctx)

    assert handler.calls == 1
    assert response.status == 200
    assert response.body == {"items": []}


async def test_protect_creates_context_and_response(chain):
    seen = []

    def handler(ctx):
        seen.append(ctx)
        return "hello"

    response = await chain.protect(handler)()
    assert isinstance(response, Response)
    assert response.body == "hello"
    assert isinstance(seen[0], RequestContext)


async def test_sync_handler_tuple_result(chain, alice_ctx):
    response = await chain.protect(lambda ctx: (201, {"id": 7}, {"Location": "/items/7"}))(
        alice_ctx
    )
    assert response.status == 201
    assert response.body == {"id": 7}
    assert response.headers["Location"] == "/items/7"


async def test_handler_writing_to_sink(chain, alice_ctx):
    def handler(ctx):
        return None

    sink = Response()
    sink.set_status(204)
    await chain.run(alice_ctx, sink, handler)
    assert sink.status == 204


async def test_settle_outcome_excludes_chain_headers(chain, alice_ctx):
    outcomes = []

    class Stamping(RecordingGuard):
        async def attempt(self, context):
            context.response_headers["X-Stamp"] = "1"
            return await super().attempt(context)

        async def settle(self, context, outcome):
            outcomes.append(outcome)

    sink = Response()
    sink.set_status(202)
    sink.set_header("Content-Type", "text/plain")
    await chain.use(Stamping("s", [])).run(alice_ctx, sink, lambda ctx: None)

    assert sink.headers["X-Stamp"] == "1"
    assert outcomes[0].status == 202
    assert outcomes[0].headers == {"Content-Type": "text/plain"}


# ── order and short-circuit ──────────────────────────────────


async def test_guards_run_in_registration_order(chain, alice_ctx):
    calls = []
    protected = chain.use(
        CustomGuard(name="a", check=make_check(calls, "a")),
        CustomGuard(name="b", check=make_check(calls, "b")),
        CustomGuard(name="c", check=make_check(calls, "c")),
    ).protect(CountingHandler())

    await protected(alice_ctx)
    assert calls == ["a", "b", "c"]


async def test_first_failure_stops_chain(chain, alice_ctx, observer):
    calls = []
    handler = CountingHandler()
    protected = chain.use(
        CustomGuard(name="a", check=make_check(calls, "a")),
        CustomGuard(name="b", check=make_check(calls, "b", "b failed")),
        CustomGuard(name="c", check=make_check(calls, "c")),
    ).protect(handler)

    response = await protected(alice_ctx)

    assert calls == ["a", "b"]
    assert handler.calls == 0
    assert response.status == 403
    assert response.body["error"] == "b failed"
    assert len(observer.named("request.error")) == 1


async def test_error_handler_called_exactly_once(chain, alice_ctx):
    class SpyHandler:
        def __init__(self, inner):
            self.inner = inner
            self.calls = 0

        @property
        def observer(self):
            return self.inner.observer

        def status_for(self, error):
            return self.inner.status_for(error)

        async def handle(self, error, context, response):
            self.calls += 1
            await self.inner.handle(error, context, response)

    spy = SpyHandler(chain.error_handler)
    custom = GuardChain(
        [CustomGuard(name="deny", check=lambda ctx: False)],
        error_handler=spy,
        observer=chain.observer,
    )
    await custom.protect(CountingHandler())(alice_ctx)
    assert spy.calls == 1


async def test_guard_exception_becomes_internal_error(chain, alice_ctx, observer):
    def boom(ctx):
        raise RuntimeError("database unreachable")

    handler = CountingHandler()
    response = await chain.use(CustomGuard(name="boom", check=boom)).protect(handler)(alice_ctx)

    assert handler.calls == 0
    assert response.status == 500
    assert response.body["code"] == "INTERNAL_ERROR"
    event = observer.named("request.error")[0]
    assert "RuntimeError" in event.data["exception"]


async def test_handler_exception_becomes_internal_error(chain, alice_ctx):
    def handler(ctx):
        raise ValueError("bad state")

    response = await chain.protect(handler)(alice_ctx)
    assert response.status == 500
    assert response.body["error"] == "bad state"


async def test_cancellation_propagates(chain, alice_ctx):
    async def slow(ctx):
        await asyncio.sleep(10)
        return True

    protected = chain.use(CustomGuard(name="slow", check=slow)).protect(CountingHandler())
    task = asyncio.create_task(protected(alice_ctx))
    await asyncio.sleep(0)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task


# ── phases ───────────────────────────────────────────────────


async def test_settle_runs_in_reverse_order_after_success(chain, alice_ctx):
    log = []
    protected = chain.use(RecordingGuard("a", log), RecordingGuard("b", log)).protect(
        CountingHandler()
    )
    await protected(alice_ctx)
    assert log == [
        "a.attempt",
        "b.attempt",
        "b.settle",
        "a.settle",
        "a.finish:200",
        "b.finish:200",
    ]


async def test_settle_skipped_and_finish_runs_on_failure(chain, alice_ctx):
    log = []
    protected = chain.use(
        RecordingGuard("a", log),
        CustomGuard(name="deny", check=lambda ctx: False),
        RecordingGuard("c", log),
    ).protect(CountingHandler())

    await protected(alice_ctx)
    assert log == ["a.attempt", "a.finish:403"]


async def test_settle_failure_is_reported_not_raised(chain, alice_ctx, observer):
    class BrokenSettle(RecordingGuard):
        async def settle(self, context, outcome):
            raise RuntimeError("disk full")

    response = await chain.use(BrokenSettle("x", [])).protect(CountingHandler())(alice_ctx)
    assert response.status == 200
    degraded = observer.named("guard.degraded")
    assert degraded[0].data["guard"] == "x"
    assert degraded[0].data["phase"] == "settle"


# ── cache short-circuit ──────────────────────────────────────


async def test_respond_result_skips_remaining_guards_and_handler(chain, alice_ctx):
    class Canned(Guard):
        @property
        def name(self):
            return "canned"

        async def attempt(self, context):
            return GuardResult.respond("canned", StoredResponse(200, {}, {"cached": True}))

    calls = []
    handler = CountingHandler()
    protected = chain.use(Canned(), CustomGuard(name="after", check=make_check(calls, "after")))
    response = await protected.protect(handler)(alice_ctx)

    assert response.body == {"cached": True}
    assert calls == []
    assert handler.calls == 0


async def test_cache_hit_bypasses_handler(chain, cache_store):
    handler = CountingHandler({"n": 1})
    protected = chain.use(ResponseCacheGuard(store=cache_store, ttl_seconds=60)).protect(handler)

    first = await protected(RequestContext(method="GET", path="/items"))
    second = await protected(RequestContext(method="GET", path="/items"))

    assert handler.calls == 1
    assert first.headers["X-Cache"] == "MISS"
    assert second.headers["X-Cache"] == "HIT"
    assert second.body == {"n": 1}


# ── composition ──────────────────────────────────────────────


async def test_use_returns_new_chain(chain):
    extended = chain.use(CustomGuard(name="a", check=lambda ctx: True))
    assert len(chain) == 0
    assert extended.list_guards() == ["a"]


async def test_clone_is_independent(chain):
    base = chain.use(CustomGuard(name="a", check=lambda ctx: True))
    copy = base.clone()
    grown = copy.use(CustomGuard(name="b", check=lambda ctx: True))

    assert base.list_guards() == ["a"]
    assert copy.list_guards() == ["a"]
    assert grown.list_guards() == ["a", "b"]
    assert copy.get_guard("a") is base.get_guard("a")


async def test_get_guard_and_export(chain):
    extended = chain.use(CustomGuard(name="a", check=lambda ctx: True))
    assert extended.get_guard("a").name == "a"
    assert extended.get_guard("missing") is None

    data = extended.export()
    assert data["guard_count"] == 1
    assert data["guards"][0]["type"] == "custom"
    json.dumps(data)


async def test_guard_error_value_used_as_is(chain, alice_ctx):
    error = GuardError.rate_limit("custom", "slow down", 5)
    response = await chain.use(CustomGuard(name="custom", check=lambda ctx: error)).protect(
        CountingHandler()
    )(alice_ctx)
    assert response.status == 429
    assert response.headers["Retry-After"] == "5"
    assert response.body["retryAfter"] == 5
