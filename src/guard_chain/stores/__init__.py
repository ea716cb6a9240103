"""Storage backends for rate-limit counters and cached responses.

The Redis backends live in :mod:`guard_chain.stores.redis_store` and need
the ``redis`` extra.
"""

from guard_chain.stores.base import Admission, CacheEntry, CacheStore, CounterStore
from guard_chain.stores.memory import InMemoryCacheStore, InMemoryCounterStore
from guard_chain.stores.sqlite import SQLiteCacheStore, SQLiteCounterStore

__all__ = [
    "Admission",
    "CacheEntry",
    "CacheStore",
    "CounterStore",
    "InMemoryCacheStore",
    "InMemoryCounterStore",
    "SQLiteCacheStore",
    "SQLiteCounterStore",
]
