"""In-memory stores — zero-config, dict-backed, for development and testing.

Each operation completes its read-modify-write without an ``await`` in
between, so it is atomic with respect to other coroutines on the same
event loop.  Data is lost on process exit and not shared across processes.

Expired entries are dropped when read, and every ``sweep_every`` writes
the whole map is swept, so keys that are never read again (old
fixed-window counters, one-off cache keys) do not accumulate.
"""

from __future__ import annotations

import copy
import math
from typing import TYPE_CHECKING, Any

from guard_chain._internal.clock import Clock, SystemClock, epoch
from guard_chain.exceptions import StoreError
from guard_chain.stores.base import (
    DEFAULT_SWEEP_EVERY,
    Admission,
    CacheEntry,
    CacheStore,
    CounterStore,
    bucket_ttl,
)

if TYPE_CHECKING:
    from guard_chain.response import StoredResponse


class InMemoryCounterStore(CounterStore):
    """Counters, sliding logs and token buckets kept in plain dicts."""

    def __init__(
        self, clock: Clock | None = None, *, sweep_every: int = DEFAULT_SWEEP_EVERY
    ) -> None:
        self._clock = clock or SystemClock()
        self._sweep_every = sweep_every
        self._writes = 0
        # key -> (value, expires_at)
        self._data: dict[str, tuple[Any, float]] = {}

    def _live(self, key: str, now: float) -> Any:
        item = self._data.get(key)
        if item is None:
            return None
        value, expires_at = item
        if expires_at <= now:
            del self._data[key]
            return None
        return value

    def _put(self, key: str, value: Any, expires_at: float, now: float) -> None:
        self._data[key] = (value, expires_at)
        self._writes += 1
        if self._writes >= self._sweep_every:
            self._writes = 0
            self._data = {k: item for k, item in self._data.items() if item[1] > now}

    async def increment(self, key: str, ttl_seconds: float) -> int:
        now = epoch(self._clock)
        item = self._data.get(key)
        if item is None or item[1] <= now:
            count, expires_at = 1, now + ttl_seconds
        else:
            count, expires_at = item[0] + 1, item[1]
        self._put(key, count, expires_at, now)
        return count

    async def slide(self, key: str, now: float, window_seconds: float, limit: int) -> Admission:
        cutoff = now - window_seconds
        hits: list[float] = [ts for ts in (self._live(key, now) or []) if ts > cutoff]

        if len(hits) >= limit:
            self._put(key, hits, now + window_seconds, now)
            retry_after = hits[len(hits) - limit] + window_seconds - now
            return Admission(False, 0, max(retry_after, 0.0))

        hits.append(now)
        self._put(key, hits, now + window_seconds, now)
        return Admission(True, limit - len(hits), 0.0)

    async def consume(
        self, key: str, capacity: float, refill_rate: float, now: float, cost: float = 1.0
    ) -> Admission:
        state = self._live(key, now)
        tokens, last = (capacity, now) if state is None else state
        if now > last:
            tokens = min(capacity, tokens + (now - last) * refill_rate)
            last = now

        if tokens >= cost:
            tokens -= cost
            admitted, retry_after = True, 0.0
        else:
            admitted = False
            retry_after = (cost - tokens) / refill_rate if refill_rate > 0 else math.inf

        self._put(key, (tokens, last), now + bucket_ttl(capacity, refill_rate), now)
        return Admission(admitted, tokens, retry_after)

    async def reset(self, key: str) -> None:
        self._data.pop(key, None)

    def __len__(self) -> int:
        return len(self._data)


class InMemoryCacheStore(CacheStore):
    """Response cache in a dict.

    Responses are deep-copied on the way in and on the way out, so a
    caller mutating a body it was handed never changes what later hits
    replay.

    Parameters:
        max_entries: Optional bound; the oldest entry is evicted when full.
        clock:       Injectable clock for testing.
        sweep_every: Writes between sweeps of expired entries.
    """

    def __init__(
        self,
        *,
        max_entries: int | None = None,
        clock: Clock | None = None,
        sweep_every: int = DEFAULT_SWEEP_EVERY,
    ) -> None:
        self._clock = clock or SystemClock()
        self._max_entries = max_entries
        self._sweep_every = sweep_every
        self._writes = 0
        self._data: dict[str, CacheEntry] = {}

    async def get(self, key: str) -> CacheEntry | None:
        entry = self._data.get(key)
        if entry is None:
            return None
        if entry.expires_at <= epoch(self._clock):
            del self._data[key]
            return None
        return CacheEntry(copy.deepcopy(entry.response), entry.expires_at)

    async def set(self, key: str, response: StoredResponse, ttl_seconds: float) -> None:
        try:
            snapshot = copy.deepcopy(response)
        except Exception as exc:
            raise StoreError("set", f"response cannot be copied: {exc}") from exc

        now = epoch(self._clock)
        self._data.pop(key, None)
        self._data[key] = CacheEntry(snapshot, now + ttl_seconds)

        self._writes += 1
        if self._writes >= self._sweep_every:
            self._writes = 0
            self._data = {k: e for k, e in self._data.items() if e.expires_at > now}
        if self._max_entries is not None:
            while len(self._data) > self._max_entries:
                del self._data[next(iter(self._data))]

    async def evict(self, key: str) -> None:
        self._data.pop(key, None)

    def __len__(self) -> int:
        return len(self._data)
