"""RateLimitGuard — per-key request admission against a shared counter store."""

from __future__ import annotations

import math
from collections.abc import Callable
from typing import TYPE_CHECKING, Any, Literal

from guard_chain._internal.clock import Clock, SystemClock, epoch
from guard_chain.errors import GuardError
from guard_chain.exceptions import GuardConfigError
from guard_chain.guards.base import Guard
from guard_chain.result import GuardResult
from guard_chain.stores.base import Admission
from guard_chain.stores.memory import InMemoryCounterStore

if TYPE_CHECKING:
    from guard_chain.context import RequestContext
    from guard_chain.stores.base import CounterStore

Algorithm = Literal["fixed_window", "sliding_window", "token_bucket"]
ALGORITHMS: tuple[str, ...] = ("fixed_window", "sliding_window", "token_bucket")

KeyFn = Callable[["RequestContext"], str]


def by_client(context: RequestContext) -> str:
    """Key on the source address (first ``X-Forwarded-For`` hop as fallback)."""
    if context.client:
        return f"client:{context.client}"
    forwarded = (context.header("x-forwarded-for") or "").split(",")[0].strip()
    return f"client:{forwarded or 'anonymous'}"


def by_principal(context: RequestContext) -> str:
    """Key on the authenticated principal, falling back to the client."""
    if context.principal is not None:
        return f"principal:{context.principal.id}"
    return by_client(context)


class RateLimitGuard(Guard):
    """Limits how many requests a key may make.

    Algorithms:

    * ``fixed_window`` — one counter per ``floor(now / window)``; simple,
      but allows up to twice the limit around a window boundary.
    * ``sliding_window`` — a log of admitted hits over the trailing window;
      exact, at the cost of one entry per admitted request.
    * ``token_bucket`` — ``capacity`` tokens refilled at ``refill_rate``
      per second; allows bursts up to ``capacity`` while enforcing the
      long-run rate.

    Each check is a single atomic store operation.  On denial the error
    carries ``retry_after`` in whole seconds.  On admission the quota is
    written to ``context.state["rate_limit"]`` and, when *headers* is set,
    to ``X-RateLimit-Limit`` / ``X-RateLimit-Remaining`` response headers.

    Parameters:
        max_requests:   Requests admitted per window.
        window_seconds: Window length in seconds.
        store:          Shared counter store.  Defaults to an in-memory store.
        algorithm:      One of :data:`ALGORITHMS`.
        key:            Callable deriving the limit key from the context.
        capacity:       Token-bucket size.  Defaults to ``max_requests``.
        refill_rate:    Tokens per second.  Defaults to
                        ``max_requests / window_seconds``.
        headers:        Publish quota headers on the response.
        clock:          Injectable clock for testing.
        name:           Unique guard name; also namespaces the store keys.
    """

    _guard_type = "rate_limit"
    _guard_description = "Limits request rate per key within a time window"

    def __init__(
        self,
        *,
        name: str = "rate_limit",
        max_requests: int,
        window_seconds: float,
        store: CounterStore | None = None,
        algorithm: Algorithm = "fixed_window",
        key: KeyFn = by_client,
        capacity: float | None = None,
        refill_rate: float | None = None,
        headers: bool = True,
        clock: Clock | None = None,
    ) -> None:
        if max_requests < 1:
            raise GuardConfigError(name, "max_requests must be at least 1")
        if window_seconds <= 0:
            raise GuardConfigError(name, "window_seconds must be positive")
        if algorithm not in ALGORITHMS:
            raise GuardConfigError(
                name, f"unknown algorithm '{algorithm}'; expected one of {', '.join(ALGORITHMS)}"
            )
        self._name = name
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.algorithm = algorithm
        self.capacity = float(capacity if capacity is not None else max_requests)
        self.refill_rate = float(
            refill_rate if refill_rate is not None else max_requests / window_seconds
        )
        self.headers = headers
        self._key = key
        self._clock = clock or SystemClock()
        self.store: CounterStore = store or InMemoryCounterStore(self._clock)

    @property
    def name(self) -> str:
        return self._name

    def export(self) -> dict[str, Any]:
        data = super().export()
        data["config"] = {
            "algorithm": self.algorithm,
            "max_requests": self.max_requests,
            "window_seconds": self.window_seconds,
        }
        if self.algorithm == "token_bucket":
            data["config"]["capacity"] = self.capacity
            data["config"]["refill_rate"] = self.refill_rate
        return data

    @property
    def limit(self) -> int:
        if self.algorithm == "token_bucket":
            return int(self.capacity)
        return self.max_requests

    async def _admit(self, key: str, now: float) -> Admission:
        if self.algorithm == "sliding_window":
            return await self.store.slide(key, now, self.window_seconds, self.max_requests)
        if self.algorithm == "token_bucket":
            return await self.store.consume(key, self.capacity, self.refill_rate, now)

        index = math.floor(now / self.window_seconds)
        count = await self.store.increment(f"{key}:{index}", self.window_seconds)
        if count <= self.max_requests:
            return Admission(True, self.max_requests - count, 0.0)
        window_end = (index + 1) * self.window_seconds
        return Admission(False, 0, window_end - now)

    def _retry_after(self, seconds: float) -> int:
        if math.isinf(seconds):
            seconds = self.window_seconds
        return max(1, math.ceil(seconds))

    async def attempt(self, context: RequestContext) -> GuardResult:
        now = epoch(self._clock)
        key = f"{self.name}:{self._key(context)}"
        admission = await self._admit(key, now)

        if not admission.admitted:
            retry_after = self._retry_after(admission.retry_after)
            return GuardResult.deny(
                GuardError.rate_limit(
                    self.name,
                    f"Rate limit exceeded: {self.max_requests} requests per "
                    f"{self.window_seconds:g}s",
                    retry_after,
                    limit=self.limit,
                )
            )

        remaining = max(0, math.floor(admission.remaining))
        context.state["rate_limit"] = {"limit": self.limit, "remaining": remaining}
        if self.headers:
            context.response_headers["X-RateLimit-Limit"] = str(self.limit)
            context.response_headers["X-RateLimit-Remaining"] = str(remaining)
        return GuardResult.allow(self.name)
