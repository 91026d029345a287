"""Cache store interface and backends.

The engines only talk to :class:`CacheStore`: get/set/delete with a TTL plus
a real key iteration used for pattern matching. Two backends are provided,
an in-process TTL store and a redis-backed store.
"""

import asyncio
import json
import logging
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Awaitable, Dict, List, Optional

import redis
from pydantic import BaseModel

from .exceptions import CacheOperationError, CacheTimeoutError
from .matching import compile_glob

logger = logging.getLogger(__name__)


def namespaced(key: str, namespace: str = "") -> str:
    return f"{namespace}:{key}" if namespace else key


async def with_timeout(awaitable: Awaitable, timeout: float, operation: str, key: Optional[str] = None) -> Any:
    """Await a store call, converting a timeout into :class:`CacheTimeoutError`."""
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except asyncio.TimeoutError as e:
        raise CacheTimeoutError(
            f"Cache {operation} timed out after {timeout}s", operation=operation, timeout=timeout, key=key
        ) from e


class CacheStore(ABC):
    """Narrow async key-value interface consumed by the adaptive cache core."""

    @abstractmethod
    async def get(self, key: str, namespace: str = "") -> Optional[Any]:
        """Return the cached value or None when absent or expired."""

    @abstractmethod
    async def set(self, key: str, value: Any, ttl: Optional[int] = None, namespace: str = "") -> bool:
        """Store ``value`` for ``ttl`` seconds."""

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Remove ``key``; returns True if it existed."""

    @abstractmethod
    def scan_keys(self, glob: str) -> AsyncIterator[str]:
        """Iterate live keys matching ``glob`` (``*`` wildcard, full match)."""

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        return None


@dataclass
class CacheEntry:
    """In-memory cache entry with expiry metadata."""
    key: str
    value: Any
    created_at: float = field(default_factory=time.time)
    last_accessed: float = field(default_factory=time.time)
    access_count: int = 0
    ttl: Optional[int] = None

    def is_expired(self, now: Optional[float] = None) -> bool:
        if self.ttl is None:
            return False
        return (now if now is not None else time.time()) - self.created_at > self.ttl

    def touch(self):
        self.last_accessed = time.time()
        self.access_count += 1


class InMemoryCacheStore(CacheStore):
    """Process-local TTL store with least-recently-used eviction."""

    def __init__(self, max_entries: int = 10000, default_ttl: Optional[int] = 300):
        self.max_entries = max_entries
        self.default_ttl = default_ttl
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.RLock()
        self._stats = {"hits": 0, "misses": 0, "sets": 0, "deletes": 0, "evictions": 0, "expired": 0}

    async def get(self, key: str, namespace: str = "") -> Optional[Any]:
        full_key = namespaced(key, namespace)
        with self._lock:
            entry = self._entries.get(full_key)
            if entry is None:
                self._stats["misses"] += 1
                return None
            if entry.is_expired():
                del self._entries[full_key]
                self._stats["misses"] += 1
                self._stats["expired"] += 1
                return None
            entry.touch()
            self._stats["hits"] += 1
            return entry.value

    async def set(self, key: str, value: Any, ttl: Optional[int] = None, namespace: str = "") -> bool:
        full_key = namespaced(key, namespace)
        with self._lock:
            if full_key not in self._entries:
                self._ensure_capacity()
            self._entries[full_key] = CacheEntry(
                key=full_key,
                value=value,
                ttl=ttl if ttl is not None else self.default_ttl
            )
            self._stats["sets"] += 1
        logger.debug(f"Cached key={full_key}, ttl={ttl}")
        return True

    async def delete(self, key: str) -> bool:
        with self._lock:
            if key in self._entries:
                del self._entries[key]
                self._stats["deletes"] += 1
                return True
            return False

    async def scan_keys(self, glob: str) -> AsyncIterator[str]:
        regex = compile_glob(glob)
        now = time.time()
        with self._lock:
            snapshot = [
                key for key, entry in self._entries.items()
                if not entry.is_expired(now) and regex.fullmatch(key)
            ]
        for key in snapshot:
            yield key

    def _ensure_capacity(self):
        expired = [k for k, e in self._entries.items() if e.is_expired()]
        for key in expired:
            del self._entries[key]
            self._stats["expired"] += 1
        while len(self._entries) >= self.max_entries:
            oldest_key = min(self._entries, key=lambda k: self._entries[k].last_accessed)
            del self._entries[oldest_key]
            self._stats["evictions"] += 1
            logger.debug(f"Evicted key={oldest_key}")

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._entries.keys())

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            return {**self._stats, "entry_count": len(self._entries)}


class RedisCacheStore(CacheStore):
    """Redis-backed store; blocking client calls run in a worker thread."""

    _GLOB_SPECIALS = "\\?[]^"

    def __init__(self, redis_client: redis.Redis, scan_count: int = 500):
        self.redis_client = redis_client
        self.scan_count = scan_count

    @classmethod
    def from_url_parts(
        cls,
        host: str = "localhost",
        port: int = 6379,
        db: int = 0,
        password: Optional[str] = None,
        scan_count: int = 500
    ) -> "RedisCacheStore":
        client = redis.Redis(host=host, port=port, db=db, password=password, decode_responses=True)
        return cls(client, scan_count=scan_count)

    async def get(self, key: str, namespace: str = "") -> Optional[Any]:
        full_key = namespaced(key, namespace)
        try:
            raw = await asyncio.to_thread(self.redis_client.get, full_key)
        except redis.RedisError as e:
            raise CacheOperationError(f"Redis GET failed: {e}", operation="get", key=full_key) from e
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (TypeError, ValueError):
            return raw

    async def set(self, key: str, value: Any, ttl: Optional[int] = None, namespace: str = "") -> bool:
        full_key = namespaced(key, namespace)
        if isinstance(value, BaseModel):
            value = value.model_dump(mode="json")
        serialized = json.dumps(value, default=str)
        try:
            if ttl:
                result = await asyncio.to_thread(self.redis_client.setex, full_key, int(ttl), serialized)
            else:
                result = await asyncio.to_thread(self.redis_client.set, full_key, serialized)
        except redis.RedisError as e:
            raise CacheOperationError(f"Redis SET failed: {e}", operation="set", key=full_key) from e
        return bool(result)

    async def delete(self, key: str) -> bool:
        try:
            result = await asyncio.to_thread(self.redis_client.delete, key)
        except redis.RedisError as e:
            raise CacheOperationError(f"Redis DELETE failed: {e}", operation="delete", key=key) from e
        return result > 0

    async def scan_keys(self, glob: str) -> AsyncIterator[str]:
        match = self._to_redis_match(glob)
        regex = compile_glob(glob)
        cursor = 0
        while True:
            try:
                cursor, batch = await asyncio.to_thread(
                    self.redis_client.scan, cursor, match, self.scan_count
                )
            except redis.RedisError as e:
                raise CacheOperationError(f"Redis SCAN failed: {e}", operation="scan") from e
            for key in batch:
                key = key.decode("utf-8") if isinstance(key, bytes) else key
                if regex.fullmatch(key):
                    yield key
            if cursor == 0:
                break

    async def ping(self) -> bool:
        try:
            return bool(await asyncio.to_thread(self.redis_client.ping))
        except redis.RedisError as e:
            logger.warning(f"Redis ping failed: {e}")
            return False

    async def close(self) -> None:
        await asyncio.to_thread(self.redis_client.close)

    @classmethod
    def _to_redis_match(cls, glob: str) -> str:
        """Escape redis glob metacharacters other than ``*``."""
        return "".join(f"\\{ch}" if ch in cls._GLOB_SPECIALS else ch for ch in glob)
