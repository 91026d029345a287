"""
Adaptive cache system facade.

Wires the behavior tracker, prediction engine, invalidation engine and
scheduler around one cache store and one producer registry. Instances are
explicit; nothing here is a module-level singleton.
"""

import logging
import time
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from .behavior import BehaviorTracker
from .config import AdaptiveCacheConfig, StoreConfig
from .dependency_graph import DependencyGraph
from .exceptions import ConfigurationError
from .invalidation import InvalidationEngine
from .models import CachePrediction, CascadeResult, InvalidationPattern, InvalidationRule, SessionBehavior
from .patterns import PatternCatalog
from .prediction import PredictionEngine
from .producers import DataProducerRegistry
from .scheduler import CycleScheduler
from .store import CacheStore, InMemoryCacheStore, RedisCacheStore

logger = logging.getLogger(__name__)


def create_store(config: StoreConfig) -> CacheStore:
    """Build the cache store backend named in ``config``."""
    if config.backend == "memory":
        return InMemoryCacheStore(max_entries=config.max_entries, default_ttl=config.default_ttl)
    if config.backend == "redis":
        return RedisCacheStore.from_url_parts(
            host=config.redis_host,
            port=config.redis_port,
            db=config.redis_db,
            password=config.redis_password,
            scan_count=config.scan_count
        )
    raise ConfigurationError(f"Unknown cache store backend: {config.backend}", field_name="store.backend")


class AdaptiveCacheSystem:
    """Predictive preloading and smart invalidation over one cache store."""

    def __init__(
        self,
        store: CacheStore,
        producers: Optional[DataProducerRegistry] = None,
        config: Optional[AdaptiveCacheConfig] = None,
        clock: Callable[[], float] = time.time
    ):
        self.config = config or AdaptiveCacheConfig()
        self.store = store
        self.producers = producers or DataProducerRegistry.with_defaults()
        self.clock = clock

        self.tracker = BehaviorTracker(self.config.behavior, clock=clock)
        self.prediction_engine = PredictionEngine(
            self.tracker,
            store,
            self.producers,
            config=self.config.prediction,
            scheduler_config=self.config.scheduler,
            clock=clock
        )
        self.catalog = PatternCatalog(self.config.invalidation, clock=clock)
        self.graph = DependencyGraph(clock=clock)
        self.invalidation_engine = InvalidationEngine(
            store,
            self.producers,
            catalog=self.catalog,
            graph=self.graph,
            config=self.config.invalidation,
            scheduler_config=self.config.scheduler,
            clock=clock
        )
        self.scheduler = CycleScheduler(
            self.tracker,
            self.prediction_engine,
            self.invalidation_engine,
            config=self.config.scheduler
        )

    @classmethod
    def from_config(
        cls,
        config: Optional[AdaptiveCacheConfig] = None,
        producers: Optional[DataProducerRegistry] = None
    ) -> "AdaptiveCacheSystem":
        config = config or AdaptiveCacheConfig()
        store = create_store(config.store)
        logger.info(f"Adaptive cache system using {config.store.backend} store")
        return cls(store, producers=producers, config=config)

    async def start(self):
        await self.scheduler.start()

    async def stop(self):
        await self.scheduler.stop()
        await self.store.close()

    # Write path

    def record_behavior(self, session_id: str, patterns: Optional[Mapping[str, Any]] = None) -> bool:
        return self.tracker.record_behavior(session_id, patterns)

    def register_dependency(self, key: str, depends_on: Iterable[str]) -> bool:
        return self.invalidation_engine.register_dependency(key, depends_on)

    async def cascade_invalidate(self, key: str, depth: Optional[int] = None) -> CascadeResult:
        return await self.invalidation_engine.cascade_invalidate(key, depth)

    def record_cache_access(self, key: str) -> bool:
        """Note a cache read for prediction accuracy and dependency scoring."""
        hit = self.prediction_engine.record_cache_access(key)
        self.graph.record_access(key)
        return hit

    # Cycles

    async def run_prediction_cycle(self) -> Dict[str, Any]:
        return await self.scheduler.run_prediction_cycle()

    async def run_invalidation_cycle(self) -> Dict[str, Any]:
        return await self.scheduler.run_invalidation_cycle()

    # Introspection

    def get_predictions(self) -> List[CachePrediction]:
        return self.prediction_engine.get_current_predictions()

    def get_session(self, session_id: str) -> Optional[SessionBehavior]:
        return self.tracker.get_session(session_id)

    def get_patterns(self) -> List[InvalidationPattern]:
        return self.catalog.get_patterns()

    def get_rules(self) -> List[InvalidationRule]:
        return self.catalog.get_rules()

    def get_dependencies(self) -> Dict[str, Dict[str, Any]]:
        return self.graph.get_dependencies()

    def get_stats(self) -> Dict[str, Any]:
        return {
            "behavior": self.tracker.get_behavior_stats(),
            "prediction": self.prediction_engine.get_model_stats(),
            "invalidation": self.invalidation_engine.get_stats(),
            "scheduler": self.scheduler.get_scheduler_stats(),
        }

    async def health_check(self) -> Dict[str, Any]:
        """Per-component health plus an overall flag."""
        try:
            store_ok = await self.store.ping()
        except Exception as e:
            logger.error(f"Cache store health check failed: {e}")
            store_ok = False

        components = {
            "store": store_ok,
            "prediction": self.prediction_engine.health_check(),
            "invalidation": self.invalidation_engine.health_check(),
        }
        return {
            "healthy": all(components.values()),
            "components": components,
            "scheduler_running": self.scheduler.is_running,
            "timestamp": self.clock(),
        }

    async def is_healthy(self) -> bool:
        report = await self.health_check()
        return report["healthy"]
