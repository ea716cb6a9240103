"""SQLite stores — durable, single-file backends using aiosqlite.

Every read-modify-write runs inside ``BEGIN IMMEDIATE``, which takes the
database write lock up front, so concurrent processes sharing the file
cannot interleave between the read and the write.  Within one process an
``asyncio.Lock`` serializes transactions on the shared connection.
"""

from __future__ import annotations

import asyncio
import json
import math
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import aiosqlite

from guard_chain._internal.clock import Clock, SystemClock, epoch
from guard_chain.exceptions import StoreError
from guard_chain.response import StoredResponse
from guard_chain.stores.base import (
    DEFAULT_SWEEP_EVERY,
    Admission,
    CacheEntry,
    CacheStore,
    CounterStore,
    bucket_ttl,
)

_CREATE_COUNTERS = (
    """
CREATE TABLE IF NOT EXISTS guard_counters (
    key        TEXT PRIMARY KEY,
    value      TEXT NOT NULL,
    expires_at REAL NOT NULL
)
""",
    "CREATE INDEX IF NOT EXISTS guard_counters_expiry ON guard_counters (expires_at)",
)

_CREATE_CACHE = (
    """
CREATE TABLE IF NOT EXISTS guard_cache (
    key        TEXT PRIMARY KEY,
    response   TEXT NOT NULL,
    expires_at REAL NOT NULL
)
""",
    "CREATE INDEX IF NOT EXISTS guard_cache_expiry ON guard_cache (expires_at)",
)


class _SQLiteBackend:
    """Connection handling shared by both SQLite stores.

    Every ``sweep_every`` transactions, rows past their expiry are deleted
    inside the same transaction.
    """

    _schema: tuple[str, ...] = ()
    _table = ""

    def __init__(
        self,
        db_path: str = "guard_chain.db",
        clock: Clock | None = None,
        *,
        sweep_every: int = DEFAULT_SWEEP_EVERY,
    ) -> None:
        self._db_path = db_path
        self._db: aiosqlite.Connection | None = None
        self._lock = asyncio.Lock()
        self._clock = clock or SystemClock()
        self._sweep_every = sweep_every
        self._transactions = 0

    async def _connect(self) -> aiosqlite.Connection:
        if self._db is None:
            # autocommit mode; transactions are explicit
            self._db = await aiosqlite.connect(self._db_path, isolation_level=None)
            for statement in self._schema:
                await self._db.execute(statement)
        return self._db

    async def close(self) -> None:
        if self._db:
            await self._db.close()
            self._db = None

    async def count(self) -> int:
        """Number of stored rows, expired ones included."""
        async with self._transaction("count") as db:
            cursor = await db.execute(f"SELECT COUNT(*) FROM {self._table}")
            row = await cursor.fetchone()
        return row[0] if row else 0

    async def _sweep(self, db: aiosqlite.Connection) -> None:
        self._transactions += 1
        if self._transactions < self._sweep_every:
            return
        self._transactions = 0
        await db.execute(f"DELETE FROM {self._table} WHERE expires_at <= ?", (epoch(self._clock),))

    @asynccontextmanager
    async def _transaction(self, operation: str) -> AsyncIterator[aiosqlite.Connection]:
        async with self._lock:
            db = await self._connect()
            try:
                await db.execute("BEGIN IMMEDIATE")
            except aiosqlite.Error as exc:
                raise StoreError(operation, str(exc)) from exc
            try:
                yield db
                await self._sweep(db)
            except aiosqlite.Error as exc:
                await db.execute("ROLLBACK")
                raise StoreError(operation, str(exc)) from exc
            except BaseException:
                await db.execute("ROLLBACK")
                raise
            else:
                await db.execute("COMMIT")


class SQLiteCounterStore(_SQLiteBackend, CounterStore):
    """Rate-limit state persisted in a SQLite file.

    Parameters:
        db_path: Path to the SQLite database file.  Use ``":memory:"``
                 for an in-memory database (useful for testing).
        clock:   Clock used for counter expiry.
        sweep_every: Transactions between deletions of expired rows.
    """

    _schema = _CREATE_COUNTERS
    _table = "guard_counters"

    async def _read(self, db: aiosqlite.Connection, key: str, now: float) -> Any:
        cursor = await db.execute(
            "SELECT value, expires_at FROM guard_counters WHERE key = ?", (key,)
        )
        row = await cursor.fetchone()
        if row is None or row[1] <= now:
            return None
        return json.loads(row[0])

    async def _write(
        self, db: aiosqlite.Connection, key: str, value: Any, expires_at: float
    ) -> None:
        await db.execute(
            "INSERT OR REPLACE INTO guard_counters (key, value, expires_at) VALUES (?, ?, ?)",
            (key, json.dumps(value), expires_at),
        )

    async def increment(self, key: str, ttl_seconds: float) -> int:
        now = epoch(self._clock)
        async with self._transaction("increment") as db:
            cursor = await db.execute(
                "SELECT value, expires_at FROM guard_counters WHERE key = ?", (key,)
            )
            row = await cursor.fetchone()
            if row is None or row[1] <= now:
                count, expires_at = 1, now + ttl_seconds
            else:
                count, expires_at = json.loads(row[0]) + 1, row[1]
            await self._write(db, key, count, expires_at)
        return count

    async def slide(self, key: str, now: float, window_seconds: float, limit: int) -> Admission:
        cutoff = now - window_seconds
        async with self._transaction("slide") as db:
            stored = await self._read(db, key, now)
            hits = [ts for ts in (stored or []) if ts > cutoff]
            if len(hits) >= limit:
                retry_after = max(hits[len(hits) - limit] + window_seconds - now, 0.0)
                result = Admission(False, 0, retry_after)
            else:
                hits.append(now)
                result = Admission(True, limit - len(hits), 0.0)
            await self._write(db, key, hits, now + window_seconds)
        return result

    async def consume(
        self, key: str, capacity: float, refill_rate: float, now: float, cost: float = 1.0
    ) -> Admission:
        async with self._transaction("consume") as db:
            stored = await self._read(db, key, now)
            tokens, last = (capacity, now) if stored is None else stored
            if now > last:
                tokens = min(capacity, tokens + (now - last) * refill_rate)
                last = now
            if tokens >= cost:
                tokens -= cost
                result = Admission(True, tokens, 0.0)
            else:
                wait = (cost - tokens) / refill_rate if refill_rate > 0 else math.inf
                result = Admission(False, tokens, wait)
            await self._write(db, key, [tokens, last], now + bucket_ttl(capacity, refill_rate))
        return result

    async def reset(self, key: str) -> None:
        async with self._transaction("reset") as db:
            await db.execute("DELETE FROM guard_counters WHERE key = ?", (key,))


class SQLiteCacheStore(_SQLiteBackend, CacheStore):
    """Response cache persisted in a SQLite file."""

    _schema = _CREATE_CACHE
    _table = "guard_cache"

    async def get(self, key: str) -> CacheEntry | None:
        now = epoch(self._clock)
        async with self._transaction("get") as db:
            cursor = await db.execute(
                "SELECT response, expires_at FROM guard_cache WHERE key = ?", (key,)
            )
            row = await cursor.fetchone()
            if row is None:
                return None
            if row[1] <= now:
                await db.execute("DELETE FROM guard_cache WHERE key = ?", (key,))
                return None
        return CacheEntry(StoredResponse.from_dict(json.loads(row[0])), row[1])

    async def set(self, key: str, response: StoredResponse, ttl_seconds: float) -> None:
        expires_at = epoch(self._clock) + ttl_seconds
        try:
            payload = json.dumps(response.to_dict())
        except (TypeError, ValueError) as exc:
            raise StoreError("set", f"response is not JSON-serializable: {exc}") from exc
        async with self._transaction("set") as db:
            await db.execute(
                "INSERT OR REPLACE INTO guard_cache (key, response, expires_at) VALUES (?, ?, ?)",
                (key, payload, expires_at),
            )

    async def evict(self, key: str) -> None:
        async with self._transaction("evict") as db:
            await db.execute("DELETE FROM guard_cache WHERE key = ?", (key,))
