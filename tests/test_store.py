import asyncio
import json
from unittest.mock import MagicMock

import pytest
import redis

from adaptive_cache.exceptions import CacheOperationError, CacheTimeoutError
from adaptive_cache.payloads import SearchPayload, parse_payload
from adaptive_cache.store import InMemoryCacheStore, RedisCacheStore, with_timeout


async def collect(iterator):
    return [key async for key in iterator]


def test_memory_store_basic_operations():
    store = InMemoryCacheStore(max_entries=10, default_ttl=None)

    async def run():
        assert await store.set("a", 1)
        assert await store.get("a") == 1
        assert await store.get("missing") is None
        assert await store.delete("a")
        assert not await store.delete("a")

    asyncio.run(run())
    stats = store.get_stats()
    assert stats["hits"] == 1
    assert stats["misses"] == 1
    assert stats["entry_count"] == 0


def test_memory_store_namespace():
    store = InMemoryCacheStore(default_ttl=None)
    asyncio.run(store.set("profile", {"x": 1}, namespace="user"))

    assert store.keys() == ["user:profile"]
    assert asyncio.run(store.get("profile", namespace="user")) == {"x": 1}


def test_memory_store_expiry():
    store = InMemoryCacheStore(default_ttl=None)
    asyncio.run(store.set("a", 1, ttl=10))
    store._entries["a"].created_at -= 11

    assert asyncio.run(store.get("a")) is None
    assert asyncio.run(collect(store.scan_keys("*"))) == []


def test_memory_store_evicts_least_recently_used():
    store = InMemoryCacheStore(max_entries=2, default_ttl=None)

    async def run():
        await store.set("a", 1)
        await store.set("b", 2)
        store._entries["a"].last_accessed -= 100
        await store.set("c", 3)

    asyncio.run(run())
    assert sorted(store.keys()) == ["b", "c"]
    assert store.get_stats()["evictions"] == 1


def test_memory_scan_matches_full_key():
    store = InMemoryCacheStore(default_ttl=None)

    async def run():
        for key in ("category:1", "category:2", "listing:category:3"):
            await store.set(key, 1)
        return await collect(store.scan_keys("category:*"))

    assert sorted(asyncio.run(run())) == ["category:1", "category:2"]


def test_with_timeout_raises_cache_timeout():
    async def slow():
        await asyncio.sleep(1)

    with pytest.raises(CacheTimeoutError) as exc_info:
        asyncio.run(with_timeout(slow(), 0.01, "get", "k"))
    assert exc_info.value.key == "k"
    assert exc_info.value.details["timeout"] == 0.01


def test_redis_store_round_trips_payloads():
    client = MagicMock()
    store = RedisCacheStore(client)

    asyncio.run(store.set("search:s1:tv", SearchPayload(query="tv", timestamp=1.0), ttl=1800))

    key, ttl, serialized = client.setex.call_args.args
    assert key == "search:s1:tv"
    assert ttl == 1800

    client.get.return_value = serialized
    cached = asyncio.run(store.get("search:s1:tv"))
    payload = parse_payload(cached)
    assert isinstance(payload, SearchPayload)
    assert payload.query == "tv"


def test_redis_store_set_without_ttl_and_plain_values():
    client = MagicMock()
    client.get.return_value = "not json"
    store = RedisCacheStore(client)

    asyncio.run(store.set("k", {"a": 1}))
    client.set.assert_called_once_with("k", json.dumps({"a": 1}))
    assert asyncio.run(store.get("k")) == "not json"


def test_redis_store_wraps_errors():
    client = MagicMock()
    client.get.side_effect = redis.ConnectionError("down")
    client.delete.side_effect = redis.ConnectionError("down")
    client.ping.side_effect = redis.ConnectionError("down")
    store = RedisCacheStore(client)

    with pytest.raises(CacheOperationError):
        asyncio.run(store.get("k"))
    with pytest.raises(CacheOperationError):
        asyncio.run(store.delete("k"))
    assert asyncio.run(store.ping()) is False


def test_redis_scan_iterates_cursor_and_filters():
    client = MagicMock()
    client.scan.side_effect = [
        (7, ["category:1", b"category:2"]),
        (0, ["category:3", "category:x:listing"]),
    ]
    store = RedisCacheStore(client, scan_count=2)

    keys = asyncio.run(collect(store.scan_keys("category:*")))

    assert keys == ["category:1", "category:2", "category:3", "category:x:listing"]
    assert client.scan.call_args_list[0].args == (0, "category:*", 2)
    assert client.scan.call_args_list[1].args == (7, "category:*", 2)


def test_redis_match_escapes_metacharacters():
    assert RedisCacheStore._to_redis_match("search:results:a?[b]") == "search:results:a\\?\\[b\\]"
