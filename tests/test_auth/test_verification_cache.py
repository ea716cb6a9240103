"""Tests for VerificationCache."""

import pytest

from guard_chain import Principal
from guard_chain.auth import VerificationCache


@pytest.fixture
def cache(clock):
    return VerificationCache(ttl_seconds=30, max_entries=2, clock=clock)


def test_miss_then_hit(cache):
    alice = Principal(id="alice")
    assert cache.get("bearer", "tok") is None
    assert cache.put_if_absent("bearer", "tok", alice) is alice
    assert cache.get("bearer", "tok") is alice


def test_keyed_by_strategy(cache):
    cache.put_if_absent("bearer", "tok", Principal(id="alice"))
    assert cache.get("api_key", "tok") is None


def test_ttl_expiry(cache, clock):
    cache.put_if_absent("bearer", "tok", Principal(id="alice"))
    clock.advance(30)
    assert cache.get("bearer", "tok") is None


def test_expiry_capped_by_credential(cache, clock):
    # clock starts at t=1000; the credential itself expires at t=1010
    cache.put_if_absent("bearer", "tok", Principal(id="alice", expires_at=1010.0))
    clock.advance(9)
    assert cache.get("bearer", "tok") is not None
    clock.advance(1)
    assert cache.get("bearer", "tok") is None


def test_expired_credential_not_cached(cache):
    cache.put_if_absent("bearer", "tok", Principal(id="alice", expires_at=999.0))
    assert len(cache) == 0


def test_put_if_absent_keeps_first_entry(cache):
    first = Principal(id="alice")
    cache.put_if_absent("bearer", "tok", first)
    assert cache.put_if_absent("bearer", "tok", Principal(id="mallory")) is first
    assert cache.get("bearer", "tok") is first


def test_oldest_entry_evicted(cache):
    cache.put_if_absent("bearer", "a", Principal(id="a"))
    cache.put_if_absent("bearer", "b", Principal(id="b"))
    cache.put_if_absent("bearer", "c", Principal(id="c"))
    assert len(cache) == 2
    assert cache.get("bearer", "a") is None
    assert cache.get("bearer", "c").id == "c"


def test_invalidate_and_clear(cache):
    cache.put_if_absent("bearer", "a", Principal(id="a"))
    cache.put_if_absent("bearer", "b", Principal(id="b"))
    cache.invalidate("bearer", "a")
    assert cache.get("bearer", "a") is None
    cache.clear()
    assert len(cache) == 0


def test_raw_credential_not_retained(cache):
    cache.put_if_absent("bearer", "super-secret-token", Principal(id="a"))
    assert all("super-secret-token" not in key for key in cache._entries)


@pytest.mark.parametrize("kwargs", [{"ttl_seconds": 0}, {"max_entries": 0}])
def test_invalid_config(kwargs):
    with pytest.raises(ValueError):
        VerificationCache(**kwargs)
