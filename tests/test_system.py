import asyncio

import pytest

from adaptive_cache.config import AdaptiveCacheConfig
from adaptive_cache.exceptions import ConfigurationError, DataProducerError
from adaptive_cache.models import DataType
from adaptive_cache.payloads import ApiPayload
from adaptive_cache.producers import DataProducerRegistry, key_subject
from adaptive_cache.store import InMemoryCacheStore, RedisCacheStore
from adaptive_cache.system import AdaptiveCacheSystem, create_store
from test_prediction import ENGAGED_SESSION


def test_from_config_builds_memory_store():
    system = AdaptiveCacheSystem.from_config(AdaptiveCacheConfig())
    assert isinstance(system.store, InMemoryCacheStore)


def test_create_store_selects_backend():
    config = AdaptiveCacheConfig.from_dict({"store": {"backend": "redis", "redis_port": 6380}})
    assert isinstance(create_store(config.store), RedisCacheStore)

    config.store.backend = "memcached"
    with pytest.raises(ConfigurationError):
        create_store(config.store)


def test_cache_access_feeds_prediction_and_graph(system):
    system.record_behavior("s1", ENGAGED_SESSION)
    system.register_dependency("search:s1:iphone", [])
    asyncio.run(system.run_prediction_cycle())

    assert system.record_cache_access("search:s1:iphone")
    assert system.get_stats()["prediction"]["successful_predictions"] == 1
    assert system.get_dependencies()["search:s1:iphone"]["access_count"] == 1


def test_health_check(system):
    status = asyncio.run(system.health_check())

    assert status["healthy"] is True
    assert status["components"] == {"store": True, "prediction": True, "invalidation": True}
    assert status["scheduler_running"] is False


def test_is_healthy(system):
    assert asyncio.run(system.is_healthy()) is True


def test_key_subject():
    assert key_subject("search:s1:iphone") == "iphone"
    assert key_subject("category:otomotiv") == "otomotiv"
    assert key_subject("plain") == "plain"


def test_registry_accepts_plain_functions():
    registry = DataProducerRegistry()
    registry.register("api", lambda key: {"key": key})

    async def profile(key):
        return ApiPayload(endpoint=key)

    registry.register(DataType.USER, profile)

    assert asyncio.run(registry.synthesize("api:s1:user_profile")) == {"key": "api:s1:user_profile"}
    assert asyncio.run(registry.synthesize("user:profile:1")).endpoint == "user:profile:1"
    assert registry.registered_types() == ["api", "user"]


def test_registry_errors():
    registry = DataProducerRegistry()

    with pytest.raises(DataProducerError):
        asyncio.run(registry.synthesize("listing:1"))
    with pytest.raises(DataProducerError):
        asyncio.run(registry.synthesize("search:s1:tv"))

    def broken(key):
        raise ValueError("no data")

    registry.register(DataType.SEARCH, broken)
    with pytest.raises(DataProducerError) as exc_info:
        asyncio.run(registry.synthesize("search:s1:tv"))
    assert exc_info.value.details["data_type"] == "search"
