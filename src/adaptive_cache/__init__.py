"""Adaptive cache core - behavior-driven preloading and pattern-based invalidation.

The behavior tracker and prediction engine preload keys that engaged sessions
are likely to request next; the invalidation engine keeps cached content
fresh from a pattern/rule catalog and a key dependency graph.
"""

__version__ = "1.0.0"

from .behavior import BehaviorTracker
from .config import AdaptiveCacheConfig
from .dependency_graph import DependencyGraph
from .exceptions import (
    AdaptiveCacheError,
    CacheOperationError,
    CacheTimeoutError,
    ConfigurationError,
    DataProducerError,
)
from .invalidation import InvalidationEngine
from .models import (
    CachePrediction,
    CascadeResult,
    DataType,
    InvalidationAction,
    InvalidationPattern,
    InvalidationRule,
    Priority,
)
from .patterns import PatternCatalog
from .prediction import PredictionEngine
from .producers import DataProducer, DataProducerRegistry
from .scheduler import CycleScheduler
from .store import CacheStore, InMemoryCacheStore, RedisCacheStore
from .system import AdaptiveCacheSystem

__all__ = [
    "AdaptiveCacheSystem",
    "AdaptiveCacheConfig",
    "BehaviorTracker",
    "PredictionEngine",
    "PatternCatalog",
    "DependencyGraph",
    "InvalidationEngine",
    "CycleScheduler",
    "CacheStore",
    "InMemoryCacheStore",
    "RedisCacheStore",
    "DataProducer",
    "DataProducerRegistry",
    "CachePrediction",
    "CascadeResult",
    "DataType",
    "InvalidationAction",
    "InvalidationPattern",
    "InvalidationRule",
    "Priority",
    "AdaptiveCacheError",
    "CacheOperationError",
    "CacheTimeoutError",
    "ConfigurationError",
    "DataProducerError",
]
