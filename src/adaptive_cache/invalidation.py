"""
Pattern-driven cache invalidation.

A cycle scans the live keys of every active pattern, applies the first
matching rule to each key and feeds successful triggers back into the
pattern's confidence. Cascade invalidation walks the dependency graph from
an explicitly invalidated key to its dependents.
"""

import asyncio
import logging
import time
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from .config import InvalidationConfig, SchedulerConfig
from .dependency_graph import DependencyGraph
from .exceptions import AdaptiveCacheError
from .models import CascadeResult, CycleReport, InvalidationAction, InvalidationPattern, InvalidationRule
from .patterns import PatternCatalog
from .producers import DataProducerRegistry
from .store import CacheStore, with_timeout

logger = logging.getLogger(__name__)


class InvalidationEngine:
    """Runs invalidation cycles and cascades against a cache store."""

    def __init__(
        self,
        store: CacheStore,
        producers: DataProducerRegistry,
        catalog: Optional[PatternCatalog] = None,
        graph: Optional[DependencyGraph] = None,
        config: Optional[InvalidationConfig] = None,
        scheduler_config: Optional[SchedulerConfig] = None,
        clock: Callable[[], float] = time.time
    ):
        self.store = store
        self.producers = producers
        self.config = config or InvalidationConfig()
        self.scheduler_config = scheduler_config or SchedulerConfig()
        self.clock = clock
        self.catalog = catalog if catalog is not None else PatternCatalog(self.config, clock=clock)
        self.graph = graph if graph is not None else DependencyGraph(clock=clock)

        self._stats = {
            "cycles": 0,
            "total_invalidations": 0,
            "successful_invalidations": 0,
            "failed_invalidations": 0,
            "cascades": 0,
            "last_cycle": None,
        }

    async def run_invalidation_cycle(self) -> CycleReport:
        """Scan every active pattern once and apply its rules.

        Never raises; a failing pattern is logged and the cycle moves on.
        """
        started = time.monotonic()
        now = self.clock()
        report = CycleReport(started_at=now)
        semaphore = asyncio.Semaphore(self.scheduler_config.max_concurrent_operations)

        for pattern in self.catalog.active_patterns():
            report.patterns_checked += 1
            try:
                keys = await with_timeout(
                    self._collect_keys(pattern.key_glob),
                    self.scheduler_config.store_timeout,
                    "scan"
                )
            except AdaptiveCacheError as e:
                logger.warning(f"Skipping pattern {pattern.id}: {e.message}")
                continue
            except Exception as e:
                logger.error(f"Key scan failed for pattern {pattern.id}: {e}")
                continue

            report.keys_scanned += len(keys)
            succeeded, failed = await self._apply_pattern(pattern, keys, semaphore)
            report.keys_processed += succeeded
            report.keys_failed += failed

            if succeeded > 0:
                self.catalog.record_trigger(pattern.id, now)
                report.patterns_triggered.append(pattern.id)

        report.duration = time.monotonic() - started
        self._stats["cycles"] += 1
        self._stats["last_cycle"] = report.to_dict()

        logger.info(
            f"Invalidation cycle: {report.patterns_checked} patterns, {report.keys_scanned} keys scanned, "
            f"{report.keys_processed} processed, {report.keys_failed} failed"
        )
        return report

    async def _collect_keys(self, glob: str) -> List[str]:
        keys = []
        async for key in self.store.scan_keys(glob):
            keys.append(key)
            if len(keys) >= self.config.max_keys_per_pattern:
                logger.warning(f"Key scan for {glob} truncated at {len(keys)} keys")
                break
        return keys

    async def _apply_pattern(
        self,
        pattern: InvalidationPattern,
        keys: List[str],
        semaphore: asyncio.Semaphore
    ) -> Tuple[int, int]:
        async def execute_with_semaphore(rule: InvalidationRule, key: str) -> bool:
            async with semaphore:
                return await self.execute_rule(rule, key)

        tasks = []
        for key in keys:
            rule = self.catalog.find_matching_rule(pattern.id, key)
            if rule is None:
                continue
            tasks.append(execute_with_semaphore(rule, key))

        if not tasks:
            return 0, 0

        results = await asyncio.gather(*tasks, return_exceptions=True)
        succeeded = sum(1 for r in results if r is True)
        return succeeded, len(results) - succeeded

    async def execute_rule(self, rule: InvalidationRule, key: str) -> bool:
        """Apply one rule action to one key.

        Returns:
            True if the action took effect
        """
        self._stats["total_invalidations"] += 1
        timeout = self.scheduler_config.store_timeout
        try:
            if rule.action is InvalidationAction.INVALIDATE:
                success = await with_timeout(self.store.delete(key), timeout, "delete", key)
            elif rule.action is InvalidationAction.UPDATE:
                payload = await self.producers.synthesize(key)
                success = await with_timeout(
                    self.store.set(key, payload, self.config.update_ttl), timeout, "set", key
                )
            elif rule.action is InvalidationAction.REFRESH:
                value = await with_timeout(self.store.get(key), timeout, "get", key)
                if value is None:
                    logger.debug(f"Rule {rule.id}: {key} expired before refresh; nothing to do")
                    success = True
                else:
                    success = await with_timeout(
                        self.store.set(key, value, self.config.update_ttl), timeout, "set", key
                    )
            else:
                logger.warning(f"Unknown invalidation action {rule.action} in rule {rule.id}")
                success = False
        except AdaptiveCacheError as e:
            logger.warning(f"Rule {rule.id} skipped key {key}: {e.message}")
            success = False
        except Exception as e:
            logger.error(f"Rule {rule.id} failed on key {key}: {e}")
            success = False

        if success:
            self._stats["successful_invalidations"] += 1
            logger.debug(f"Rule {rule.id} applied {rule.action.value} to {key}")
        else:
            self._stats["failed_invalidations"] += 1
        return bool(success)

    def recalculate_confidence(self) -> Dict[str, float]:
        try:
            return self.catalog.recalculate_confidence()
        except Exception as e:
            logger.error(f"Confidence recalculation failed: {e}")
            return {}

    def register_dependency(self, key: str, depends_on: Iterable[str]) -> bool:
        return self.graph.register_dependency(key, depends_on)

    async def cascade_invalidate(self, key: str, depth: Optional[int] = None) -> CascadeResult:
        """Delete ``key`` and its dependents up to ``depth`` hops.

        ``depth`` defaults to the configured cascade depth. Nodes are removed
        only for keys whose delete succeeded. Never raises.
        """
        try:
            depth = self.config.cascade_depth if depth is None else depth
            keys = self.graph.collect_cascade(key, max(depth, 0))
            if not keys:
                logger.debug(f"No dependency node for {key}; nothing to cascade")
                return CascadeResult(success=False)

            semaphore = asyncio.Semaphore(self.scheduler_config.max_concurrent_operations)

            async def delete_with_semaphore(target: str) -> bool:
                async with semaphore:
                    await with_timeout(
                        self.store.delete(target), self.scheduler_config.store_timeout, "delete", target
                    )
                    return True

            results = await asyncio.gather(*(delete_with_semaphore(k) for k in keys), return_exceptions=True)

            invalidated = []
            for target, result in zip(keys, results):
                if result is True:
                    invalidated.append(target)
                else:
                    logger.warning(f"Cascade delete failed for {target}: {result}")

            self.graph.remove_nodes(invalidated)
            self._stats["cascades"] += 1
            failed = len(keys) - len(invalidated)

            logger.info(f"Cascade invalidation from {key}: {len(invalidated)} invalidated, {failed} failed")
            return CascadeResult(
                success=failed == 0,
                keys_invalidated=len(invalidated),
                keys_failed=failed,
                keys=invalidated
            )
        except Exception as e:
            logger.error(f"Cascade invalidation failed for {key}: {e}")
            return CascadeResult(success=False)

    def get_stats(self) -> Dict[str, Any]:
        stats = self.catalog.get_stats()
        stats.update(self._stats)
        stats["dependency_nodes"] = len(self.graph)
        return stats

    def health_check(self) -> bool:
        try:
            return self.catalog.get_stats()["total_patterns"] > 0
        except Exception as e:
            logger.error(f"Invalidation engine health check failed: {e}")
            return False
