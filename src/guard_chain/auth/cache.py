"""VerificationCache — short-lived memo of successful credential verifications."""

from __future__ import annotations

import hashlib
import threading
from collections import OrderedDict
from typing import TYPE_CHECKING, NamedTuple

from guard_chain._internal.clock import Clock, SystemClock, epoch

if TYPE_CHECKING:
    from guard_chain.context import Principal


class _Entry(NamedTuple):
    principal: Principal
    expires_at: float


class VerificationCache:
    """Bounded TTL cache keyed by ``(strategy, credential)``.

    Owned by one authenticator instance; never process-global.  Raw
    credentials are not retained, only their SHA-256 digest.

    An entry expires at ``now + ttl_seconds`` or at the principal's own
    ``expires_at``, whichever comes first.  Entries are immutable once
    written: :meth:`put_if_absent` keeps an existing live entry and returns
    it.  When full, the oldest entry is evicted.

    Parameters:
        ttl_seconds: Upper bound on how long a verification is reused.
        max_entries: Capacity.
        clock:       Injectable clock for testing.
    """

    def __init__(
        self,
        *,
        ttl_seconds: float = 30.0,
        max_entries: int = 1024,
        clock: Clock | None = None,
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock or SystemClock()
        self._entries: OrderedDict[str, _Entry] = OrderedDict()
        self._lock = threading.Lock()

    @staticmethod
    def _key(strategy: str, credential: str) -> str:
        digest = hashlib.sha256(credential.encode("utf-8")).hexdigest()
        return f"{strategy}:{digest}"

    def get(self, strategy: str, credential: str) -> Principal | None:
        key = self._key(strategy, credential)
        now = epoch(self._clock)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.expires_at <= now:
                del self._entries[key]
                return None
            return entry.principal

    def put_if_absent(self, strategy: str, credential: str, principal: Principal) -> Principal:
        """Cache *principal* unless a live entry exists; return the cached one."""
        key = self._key(strategy, credential)
        now = epoch(self._clock)
        expires_at = now + self.ttl_seconds
        if principal.expires_at is not None:
            expires_at = min(expires_at, principal.expires_at)
        if expires_at <= now:
            # already expired credential: nothing worth caching
            return principal

        with self._lock:
            existing = self._entries.get(key)
            if existing is not None and existing.expires_at > now:
                return existing.principal
            self._entries[key] = _Entry(principal, expires_at)
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)
            return principal

    def invalidate(self, strategy: str, credential: str) -> None:
        with self._lock:
            self._entries.pop(self._key(strategy, credential), None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
