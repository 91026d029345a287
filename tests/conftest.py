import asyncio

import pytest

from adaptive_cache.config import AdaptiveCacheConfig
from adaptive_cache.exceptions import CacheOperationError
from adaptive_cache.producers import DataProducerRegistry
from adaptive_cache.store import InMemoryCacheStore
from adaptive_cache.system import AdaptiveCacheSystem

START_TIME = 1_700_000_000.0


class FixedClock:
    """Manually advanced clock injected into the engines."""

    def __init__(self, now: float = START_TIME):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FailingStore(InMemoryCacheStore):
    """In-memory store whose calls fail for selected keys."""

    def __init__(self, failing_keys=(), slow_keys=(), delay: float = 1.0):
        super().__init__(max_entries=1000, default_ttl=None)
        self.failing_keys = set(failing_keys)
        self.slow_keys = set(slow_keys)
        self.delay = delay

    async def _check(self, key, operation):
        if key in self.failing_keys:
            raise CacheOperationError(f"{operation} failed for {key}", operation=operation, key=key)
        if key in self.slow_keys:
            await asyncio.sleep(self.delay)

    async def set(self, key, value, ttl=None, namespace=""):
        await self._check(key, "set")
        return await super().set(key, value, ttl, namespace)

    async def delete(self, key):
        await self._check(key, "delete")
        return await super().delete(key)


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def store():
    return InMemoryCacheStore(max_entries=1000, default_ttl=None)


@pytest.fixture
def producers():
    return DataProducerRegistry.with_defaults()


@pytest.fixture
def system(store, producers, clock):
    return AdaptiveCacheSystem(store, producers=producers, config=AdaptiveCacheConfig(), clock=clock)
