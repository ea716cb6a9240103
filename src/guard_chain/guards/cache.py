"""ResponseCacheGuard — serves repeated safe requests from a shared cache."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from typing import TYPE_CHECKING, Any

from guard_chain._internal.awaitables import resolve
from guard_chain.errors import GuardError
from guard_chain.exceptions import GuardConfigError
from guard_chain.guards.base import Guard
from guard_chain.observer import ChainEvent, safe_record
from guard_chain.response import StoredResponse
from guard_chain.result import GuardResult
from guard_chain.stores.memory import InMemoryCacheStore

if TYPE_CHECKING:
    from guard_chain.context import RequestContext
    from guard_chain.stores.base import CacheStore

logger = logging.getLogger(__name__)

KeyFn = Callable[["RequestContext"], str]
CacheablePredicate = Callable[["RequestContext"], bool]
InvalidationFn = Callable[["RequestContext"], Any]

SAFE_METHODS = frozenset({"GET", "HEAD"})


def _scope(context: RequestContext) -> str:
    return f"{context.principal.id}|" if context.principal is not None else ""


def by_method_and_url(context: RequestContext) -> str:
    """Per-caller key: authenticated callers never share entries.

    Anonymous requests (no principal yet, e.g. the cache runs before the
    authenticator) share one entry per method and URL.
    """
    return f"{_scope(context)}{context.method}:{context.url}"


def shared_by_method_and_url(context: RequestContext) -> str:
    """One entry per method and URL for every caller.

    Only for responses that do not depend on who is asking.
    """
    return f"{context.method}:{context.url}"


def safe_methods_only(context: RequestContext) -> bool:
    return context.method in SAFE_METHODS


def same_path(context: RequestContext) -> list[str]:
    """Invalidate the cached ``GET`` of the path being mutated.

    Evicts the mutating caller's entry and the anonymous one; entries held
    for other principals expire with their TTL.
    """
    keys = [f"GET:{context.path}"]
    if context.principal is not None:
        keys.append(f"{_scope(context)}GET:{context.path}")
    return keys


class ResponseCacheGuard(Guard):
    """Caches handler responses and short-circuits the chain on a hit.

    * Cacheable request, hit → the stored response is returned with
      ``X-Cache: HIT`` and the business handler does not run.
    * Cacheable request, miss → the handler runs; a ``2xx`` outcome is
      stored for ``ttl_seconds``.
    * Any other request → after the handler succeeded, every key returned
      by ``invalidates(context)`` is evicted.  A failed handler evicts
      nothing.

    Cache store failures never fail the request: a broken ``get`` is a
    miss, a broken ``set`` or ``evict`` is skipped.  Each is reported to the
    observer as a degraded cache event.

    Parameters:
        store:       Shared cache store.  Defaults to an in-memory store.
        ttl_seconds: Lifetime of stored responses.
        key:         Callable deriving the cache key from the context.
        cacheable:   Predicate selecting cacheable requests.
        invalidates: Callable returning the keys a mutating request makes
                     stale.  May be async.
        name:        Unique guard name; also namespaces the store keys.
    """

    _guard_type = "cache"
    _guard_description = "Caches responses for side-effect-free requests"

    def __init__(
        self,
        *,
        store: CacheStore | None = None,
        ttl_seconds: float = 60.0,
        key: KeyFn = by_method_and_url,
        cacheable: CacheablePredicate = safe_methods_only,
        invalidates: InvalidationFn | None = None,
        name: str = "cache",
    ) -> None:
        if ttl_seconds <= 0:
            raise GuardConfigError(name, "ttl_seconds must be positive")
        self._name = name
        self.store: CacheStore = store or InMemoryCacheStore()
        self.ttl_seconds = ttl_seconds
        self._key = key
        self._cacheable = cacheable
        self._invalidates = invalidates

    @property
    def name(self) -> str:
        return self._name

    @property
    def _pending_key(self) -> str:
        return f"{self._name}_key"

    def store_key(self, key: str) -> str:
        return f"{self._name}:{key}"

    def export(self) -> dict[str, Any]:
        data = super().export()
        data["config"] = {
            "ttl_seconds": self.ttl_seconds,
            "has_invalidation": self._invalidates is not None,
        }
        return data

    async def attempt(self, context: RequestContext) -> GuardResult:
        if not self._cacheable(context):
            return GuardResult.allow(self.name)

        key = self.store_key(self._key(context))
        try:
            entry = await self.store.get(key)
        except Exception as exc:
            self._degraded(context, "get", exc)
            entry = None

        if entry is not None:
            cached = entry.response
            context.state["cache"] = "hit"
            return GuardResult.respond(
                self.name,
                StoredResponse(cached.status, {**cached.headers, "X-Cache": "HIT"}, cached.body),
            )

        context.state["cache"] = "miss"
        context.state[self._pending_key] = key
        context.response_headers["X-Cache"] = "MISS"
        return GuardResult.allow(self.name)

    async def settle(self, context: RequestContext, outcome: StoredResponse) -> None:
        key = context.state.pop(self._pending_key, None)
        if key is not None:
            if 200 <= outcome.status < 300:
                try:
                    await self.store.set(key, outcome, self.ttl_seconds)
                except Exception as exc:
                    self._degraded(context, "set", exc)
            return

        if self._invalidates is None or self._cacheable(context):
            return
        keys: Iterable[str] = await resolve(self._invalidates(context)) or []
        for stale in keys:
            try:
                await self.store.evict(self.store_key(stale))
            except Exception as exc:
                self._degraded(context, "evict", exc)

    def _degraded(self, context: RequestContext, operation: str, exc: Exception) -> None:
        error = GuardError.cache(self.name, f"cache {operation} failed: {exc}", exc)
        logger.warning("%s (treated as a miss)", error.message)
        if self.observer is not None:
            safe_record(
                self.observer,
                ChainEvent(
                    "guard.degraded",
                    context.trace_id,
                    {
                        "guard": self.name,
                        "kind": error.kind.value,
                        "code": error.code,
                        "operation": operation,
                        "message": error.message,
                    },
                ),
            )
