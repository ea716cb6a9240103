"""Store protocols — the shared state behind rate limiting and response caching.

Both stores are shared by every in-flight request, so each operation is
a single atomic check-and-update: implementations must never split one
call into a read and a later write that another request can interleave
with.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, NamedTuple

if TYPE_CHECKING:
    from guard_chain.response import StoredResponse


class Admission(NamedTuple):
    """Outcome of an atomic admission check.

    Attributes:
        admitted:    Whether the request was let through (and counted).
        remaining:   Requests/tokens left after this one.
        retry_after: Seconds until a denied request could succeed; ``0``
                     when admitted.
    """

    admitted: bool
    remaining: float
    retry_after: float


class CacheEntry(NamedTuple):
    response: StoredResponse
    expires_at: float


class CounterStore(ABC):
    """Atomic counters for the rate limiter.

    Keys arrive fully namespaced by the caller (``"<guard>:<key>"``).
    """

    @abstractmethod
    async def increment(self, key: str, ttl_seconds: float) -> int:
        """Increment *key* and return the new count.

        The first increment creates the counter and sets it to expire after
        *ttl_seconds*; later increments leave the expiry alone.
        """
        ...

    @abstractmethod
    async def slide(self, key: str, now: float, window_seconds: float, limit: int) -> Admission:
        """Sliding-log admission.

        Drop hits older than ``now - window_seconds``; if fewer than *limit*
        remain, record a hit at *now* and admit.  Denied requests are not
        recorded.
        """
        ...

    @abstractmethod
    async def consume(
        self, key: str, capacity: float, refill_rate: float, now: float, cost: float = 1.0
    ) -> Admission:
        """Token-bucket admission.

        Refill ``elapsed * refill_rate`` tokens (capped at *capacity*), then
        take *cost* tokens if available.  A new bucket starts full.
        """
        ...

    @abstractmethod
    async def reset(self, key: str) -> None:
        """Forget all state for *key*.  No-op if absent."""
        ...

    async def close(self) -> None:
        """Release connections held by the store."""
        return None


class CacheStore(ABC):
    """Key → response store with per-entry TTL."""

    @abstractmethod
    async def get(self, key: str) -> CacheEntry | None:
        """Return the live entry, or ``None`` when missing or expired."""
        ...

    @abstractmethod
    async def set(self, key: str, response: StoredResponse, ttl_seconds: float) -> None:
        """Create or overwrite an entry that expires after *ttl_seconds*."""
        ...

    @abstractmethod
    async def evict(self, key: str) -> None:
        """Delete an entry.  No-op if the key does not exist."""
        ...

    async def close(self) -> None:
        """Release connections held by the store."""
        return None


# Writes between sweeps of expired entries in the local backends
DEFAULT_SWEEP_EVERY = 256


def bucket_ttl(capacity: float, refill_rate: float) -> float:
    """How long an idle bucket must be kept before it is indistinguishable from a new one."""
    if refill_rate <= 0:
        return 86400.0
    return max(60.0, capacity / refill_rate * 2)
