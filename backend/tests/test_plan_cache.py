"""Tests for the Redis-backed plan input cache."""
from __future__ import annotations

import json
from datetime import date
from uuid import uuid4

from redis.exceptions import ConnectionError as RedisConnectionError

from daychain.services.daily_plan.cache import CacheKey, PlanInputCache


class _FakeRedis:
    def __init__(self):
        self.store: dict[str, str] = {}
        self.ttls: dict[str, int] = {}

    def get(self, key):
        return self.store.get(key)

    def setex(self, key, ttl, value):
        self.store[key] = value
        self.ttls[key] = ttl

    def delete(self, *keys):
        removed = 0
        for key in keys:
            if self.store.pop(key, None) is not None:
                removed += 1
        return removed


class _DownRedis:
    def get(self, key):
        raise RedisConnectionError("down")

    def setex(self, key, ttl, value):
        raise RedisConnectionError("down")

    def delete(self, *keys):
        raise RedisConnectionError("down")


def _key(query: str = "tasks") -> CacheKey:
    return CacheKey(uuid4(), date(2025, 3, 3), query)


def test_key_render_is_typed_by_user_date_and_query() -> None:
    user_id = uuid4()
    key = CacheKey(user_id, date(2025, 3, 3), "commitments")

    assert key.render() == f"daychain:plan-input:{user_id}:2025-03-03:commitments"


def test_get_or_load_caches_with_ttl() -> None:
    client = _FakeRedis()
    cache = PlanInputCache(client, 120)
    key = _key()
    calls = []

    def loader():
        calls.append(1)
        return ["a", "b"]

    first = cache.get_or_load(key, loader, encode=list, decode=list)
    second = cache.get_or_load(key, loader, encode=list, decode=list)

    assert first == second == ["a", "b"]
    assert len(calls) == 1
    assert client.ttls[key.render()] == 120
    assert json.loads(client.store[key.render()]) == ["a", "b"]


def test_invalidate_removes_every_input_query() -> None:
    client = _FakeRedis()
    cache = PlanInputCache(client, 60)
    user_id, day = uuid4(), date(2025, 3, 3)
    for query in ("commitments", "tasks", "routines"):
        cache.set(CacheKey(user_id, day, query), [query])

    assert cache.invalidate(user_id, day) == 3
    assert client.store == {}


def test_disabled_cache_always_misses() -> None:
    cache = PlanInputCache(None, 60)

    assert cache.enabled is False
    assert cache.set(_key(), [1]) is False
    assert cache.get(_key()) is None
    assert PlanInputCache(_FakeRedis(), 0).enabled is False


def test_redis_errors_degrade_to_loader() -> None:
    cache = PlanInputCache(_DownRedis(), 60)

    value = cache.get_or_load(_key(), lambda: [42], encode=list, decode=list)

    assert value == [42]
    assert cache.invalidate(uuid4(), date(2025, 3, 3)) == 0


def test_undecodable_entry_is_a_miss() -> None:
    client = _FakeRedis()
    cache = PlanInputCache(client, 60)
    key = _key()
    client.store[key.render()] = "{not json"

    assert cache.get(key) is None
