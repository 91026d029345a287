"""
Cache prediction and preloading.

Every cycle the engine walks a snapshot of the tracked sessions, derives the
cache keys each engaged session is likely to request next and replaces the
whole prediction set. The best high-priority predictions are then
synthesized through the data producers and written to the cache store.
"""

import asyncio
import logging
import threading
import time
from typing import Any, Callable, Dict, List, Optional

from .behavior import BehaviorTracker
from .config import PredictionConfig, SchedulerConfig
from .exceptions import AdaptiveCacheError
from .models import CachePrediction, DataType, Priority, SessionBehavior
from .producers import DataProducerRegistry
from .store import CacheStore, with_timeout

logger = logging.getLogger(__name__)

MODEL_VERSION = "1.0.0"


class PredictionEngine:
    """Derives per-session cache predictions and preloads the best of them."""

    def __init__(
        self,
        tracker: BehaviorTracker,
        store: CacheStore,
        producers: DataProducerRegistry,
        config: Optional[PredictionConfig] = None,
        scheduler_config: Optional[SchedulerConfig] = None,
        clock: Callable[[], float] = time.time
    ):
        self.tracker = tracker
        self.store = store
        self.producers = producers
        self.config = config or PredictionConfig()
        self.scheduler_config = scheduler_config or SchedulerConfig()
        self.clock = clock

        self._predictions: Dict[str, CachePrediction] = {}
        self._preloaded_keys = set()
        self._lock = threading.RLock()
        self._stats = {
            "total_predictions": 0,
            "refresh_cycles": 0,
            "preloads_attempted": 0,
            "preloads_succeeded": 0,
            "preloads_failed": 0,
            "successful_predictions": 0,
            "last_updated": 0.0,
        }

    def refresh_predictions(self) -> List[CachePrediction]:
        """Rebuild the prediction set from the current session snapshot.

        The previous set is replaced, never merged. Failures for one session
        are logged and that session contributes nothing this cycle.
        """
        predictions: Dict[str, CachePrediction] = {}
        now = self.clock()

        for behavior in self.tracker.snapshot():
            if behavior.prediction_score <= self.config.score_threshold:
                continue
            try:
                for prediction in self.generate_session_predictions(behavior, now):
                    predictions[prediction.key] = prediction
            except Exception as e:
                logger.error(f"Failed to generate predictions for session {behavior.session_id}: {e}")

        with self._lock:
            self._predictions = predictions
            self._stats["total_predictions"] += len(predictions)
            self._stats["refresh_cycles"] += 1
            self._stats["last_updated"] = now

        logger.debug(f"Generated {len(predictions)} cache predictions")
        return list(predictions.values())

    def generate_session_predictions(self, behavior: SessionBehavior, now: Optional[float] = None) -> List[CachePrediction]:
        """Candidate keys for one session, in generation order."""
        now = self.clock() if now is None else now
        cfg = self.config
        session_id = behavior.session_id
        confidence = self.calculate_confidence(behavior, now)
        predictions = []

        queries = behavior.patterns.search_queries
        for query in self._recent_unique(queries, cfg.recent_queries):
            probability = BehaviorTracker.item_probability(query, queries)
            if probability > cfg.probability_threshold:
                predictions.append(CachePrediction(
                    key=f"search:{session_id}:{query}",
                    probability=probability,
                    confidence=confidence,
                    predicted_access_time=now + cfg.search_access_offset,
                    data_type=DataType.SEARCH,
                    priority=self._priority_for(probability)
                ))

        categories = behavior.patterns.popular_categories
        for category in self._recent_unique(categories, cfg.recent_categories):
            probability = BehaviorTracker.item_probability(category, categories)
            if probability > cfg.probability_threshold:
                predictions.append(CachePrediction(
                    key=f"category:{session_id}:{category}",
                    probability=probability,
                    confidence=confidence,
                    predicted_access_time=now + cfg.category_access_offset,
                    data_type=DataType.CATEGORY,
                    priority=self._priority_for(probability)
                ))

        # profile data is requested by nearly every session
        predictions.append(CachePrediction(
            key=f"api:{session_id}:user_profile",
            probability=cfg.api_probability,
            confidence=cfg.api_confidence,
            predicted_access_time=now + cfg.api_access_offset,
            data_type=DataType.API,
            priority=Priority.HIGH
        ))

        return predictions

    @staticmethod
    def _recent_unique(items: List[str], count: int) -> List[str]:
        """The last ``count`` items of the window, duplicates collapsed."""
        recent = items[-count:] if count > 0 else []
        return list(dict.fromkeys(recent))

    def _priority_for(self, probability: float) -> Priority:
        return Priority.HIGH if probability > self.config.high_priority_probability else Priority.MEDIUM

    def calculate_confidence(self, behavior: SessionBehavior, now: Optional[float] = None) -> float:
        """0.6 * recency + 0.4 * prediction score, recency fading to 0 over 24h."""
        now = self.clock() if now is None else now
        idle = max(0.0, now - behavior.last_activity)
        recency = max(0.0, 1 - idle / self.config.recency_window_seconds)
        confidence = recency * 0.6 + behavior.prediction_score * 0.4
        return max(0.0, min(1.0, confidence))

    def select_preload_candidates(self) -> List[CachePrediction]:
        """High-priority, confident predictions, best first, capped."""
        with self._lock:
            predictions = list(self._predictions.values())
        candidates = [
            p for p in predictions
            if p.priority is Priority.HIGH and p.confidence > self.config.preload_confidence_threshold
        ]
        candidates.sort(key=lambda p: (p.confidence, p.probability), reverse=True)
        return candidates[:self.config.max_preloads]

    async def preload_top_predictions(self) -> Dict[str, Any]:
        """Synthesize and cache the top candidates; one failure never stops the batch."""
        candidates = self.select_preload_candidates()
        if not candidates:
            return {"attempted": 0, "succeeded": 0, "failed": 0}

        semaphore = asyncio.Semaphore(self.scheduler_config.max_concurrent_operations)

        async def preload_with_semaphore(prediction: CachePrediction) -> bool:
            async with semaphore:
                return await self.preload_prediction(prediction)

        results = await asyncio.gather(
            *(preload_with_semaphore(p) for p in candidates),
            return_exceptions=True
        )
        succeeded = sum(1 for r in results if r is True)
        failed = len(results) - succeeded

        logger.debug(f"Preloaded {succeeded}/{len(candidates)} high-priority predictions")
        return {"attempted": len(candidates), "succeeded": succeeded, "failed": failed}

    async def preload_prediction(self, prediction: CachePrediction) -> bool:
        """Write one predicted entry to the cache store."""
        with self._lock:
            self._stats["preloads_attempted"] += 1
        try:
            payload = await self.producers.synthesize(prediction.key, prediction.data_type)
            await with_timeout(
                self.store.set(prediction.key, payload, self.config.preload_ttl),
                self.scheduler_config.store_timeout,
                "set",
                prediction.key
            )
        except AdaptiveCacheError as e:
            with self._lock:
                self._stats["preloads_failed"] += 1
            logger.warning(f"Skipped preload of {prediction.key}: {e.message}")
            return False
        except Exception as e:
            with self._lock:
                self._stats["preloads_failed"] += 1
            logger.error(f"Preload of {prediction.key} failed: {e}")
            return False

        with self._lock:
            self._stats["preloads_succeeded"] += 1
            self._preloaded_keys.add(prediction.key)
        logger.debug(f"Preloaded prediction: {prediction.key}")
        return True

    def record_cache_access(self, key: str) -> bool:
        """Count a read of a preloaded key as a successful prediction.

        Each preloaded key counts at most once.
        """
        with self._lock:
            if key in self._preloaded_keys:
                self._preloaded_keys.discard(key)
                self._stats["successful_predictions"] += 1
                return True
            return False

    def get_current_predictions(self) -> List[CachePrediction]:
        with self._lock:
            return list(self._predictions.values())

    def get_model_stats(self) -> Dict[str, Any]:
        with self._lock:
            preloaded = self._stats["preloads_succeeded"]
            accuracy = self._stats["successful_predictions"] / preloaded if preloaded else 0.0
            return {
                **self._stats,
                "current_predictions": len(self._predictions),
                "accuracy": accuracy,
                "model_version": MODEL_VERSION,
            }

    def health_check(self) -> bool:
        try:
            stats = self.get_model_stats()
            return stats["current_predictions"] >= 0 and 0.0 <= stats["accuracy"] <= 1.0
        except Exception as e:
            logger.error(f"Prediction engine health check failed: {e}")
            return False
