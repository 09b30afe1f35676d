"""Tests for the KV cache and the daily quota counter."""

from __future__ import annotations

import pytest

from coderag.db.cache import DAY_SECONDS, KeyValueCache, QuotaCounter


# --- KeyValueCache ---

def test_put_get(cache):
    cache.put("k", "v")
    assert cache.get("k") == "v"


def test_missing_key(cache):
    assert cache.get("nope") is None


def test_ttl_expiry(cache, clock):
    cache.put("k", "v", ttl=10)
    clock.advance(9)
    assert cache.get("k") == "v"
    clock.advance(1)
    assert cache.get("k") is None


def test_put_replaces(cache):
    cache.put("k", "a", ttl=10)
    cache.put("k", "b")
    assert cache.get("k") == "b"


def test_json_round_trip(cache):
    cache.put_json("k", [{"a": 1}])
    assert cache.get_json("k") == [{"a": 1}]


def test_delete_and_purge(cache, clock):
    cache.put("keep", "1")
    cache.put("old", "1", ttl=1)
    cache.put("gone", "1")
    cache.delete("gone")
    clock.advance(5)
    assert cache.purge_expired() == 1
    assert cache.get("keep") == "1"
    assert cache.get("gone") is None


# --- QuotaCounter ---

def test_key_uses_utc_date(cache):
    # 1_700_000_000 is 2023-11-14 22:13:20 UTC
    assert QuotaCounter(cache, "embedding", 10).key() == "rate:embedding:2023-11-14"


def test_try_consume_within_limit(cache):
    quota = QuotaCounter(cache, "embedding", 10)
    assert quota.try_consume(4) is True
    assert quota.try_consume(6) is True
    assert quota.used() == 10


def test_try_consume_refused_leaves_counter(cache):
    quota = QuotaCounter(cache, "embedding", 10)
    cache.put(quota.key(), "8", ttl=DAY_SECONDS)
    assert quota.try_consume(5) is False
    assert quota.used() == 8


def test_first_batch_larger_than_limit_refused(cache):
    quota = QuotaCounter(cache, "embedding", 3)
    assert quota.try_consume(5) is False
    assert cache.get(quota.key()) is None


def test_usage(cache):
    quota = QuotaCounter(cache, "query", 5)
    quota.try_consume(2)
    assert quota.usage() == {"used": 2, "limit": 5, "remaining": 3}


def test_expired_counter_restarts(tmp_db):
    now = [1_700_000_000.0]
    cache = KeyValueCache(tmp_db, clock=lambda: now[0])
    quota = QuotaCounter(cache, "embedding", 10)
    cache.put(quota.key(), "10", ttl=5)
    now[0] += 5
    assert quota.try_consume(3) is True
    assert quota.used() == 3


def test_refund(cache):
    quota = QuotaCounter(cache, "embedding", 10)
    quota.try_consume(6)
    quota.refund(4)
    assert quota.used() == 2
    quota.refund(5)
    assert quota.used() == 0


def test_negative_units_rejected(cache):
    with pytest.raises(ValueError):
        QuotaCounter(cache, "embedding", 10).try_consume(-1)
