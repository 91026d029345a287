"""
Background scheduling of the prediction and invalidation cycles.

Each cycle runs in its own asyncio task on its own interval. Both cycles can
also be driven directly, which is how tests exercise them.
"""

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Optional

from .behavior import BehaviorTracker
from .config import SchedulerConfig
from .invalidation import InvalidationEngine
from .prediction import PredictionEngine

logger = logging.getLogger(__name__)


class CycleScheduler:
    """Runs the prediction and invalidation cycles periodically."""

    def __init__(
        self,
        tracker: BehaviorTracker,
        prediction_engine: PredictionEngine,
        invalidation_engine: InvalidationEngine,
        config: Optional[SchedulerConfig] = None
    ):
        """Initialize the cycle scheduler.

        Args:
            tracker: Behavior tracker, cleaned up after each prediction cycle
            prediction_engine: Engine refreshed and preloaded every prediction cycle
            invalidation_engine: Engine scanned every invalidation cycle
            config: Intervals and store timeouts
        """
        self.tracker = tracker
        self.prediction_engine = prediction_engine
        self.invalidation_engine = invalidation_engine
        self.config = config or SchedulerConfig()

        self._running = False
        self._prediction_task: Optional[asyncio.Task] = None
        self._invalidation_task: Optional[asyncio.Task] = None

        self._stats = {
            "prediction_cycles": 0,
            "prediction_cycle_errors": 0,
            "invalidation_cycles": 0,
            "invalidation_cycle_errors": 0,
            "last_prediction_cycle": 0.0,
            "last_invalidation_cycle": 0.0,
            "start_time": None,
        }

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self):
        """Start both cycle loops."""
        if self._running:
            logger.warning("Cycle scheduler is already running")
            return

        self._running = True
        self._stats["start_time"] = time.time()

        self._prediction_task = asyncio.create_task(
            self._cycle_loop("prediction", self.run_prediction_cycle, self.config.prediction_interval)
        )
        self._invalidation_task = asyncio.create_task(
            self._cycle_loop("invalidation", self.run_invalidation_cycle, self.config.invalidation_interval)
        )

        logger.info(
            f"Cycle scheduler started (prediction every {self.config.prediction_interval}s, "
            f"invalidation every {self.config.invalidation_interval}s)"
        )

    async def stop(self):
        """Stop both cycle loops and wait for them to exit."""
        if not self._running:
            return

        self._running = False

        for task in (self._prediction_task, self._invalidation_task):
            if task:
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass

        self._prediction_task = None
        self._invalidation_task = None
        logger.info("Cycle scheduler stopped")

    async def _cycle_loop(self, name: str, cycle: Callable[[], Awaitable[Any]], interval: float):
        """Run ``cycle`` every ``interval`` seconds until stopped."""
        if not self.config.run_on_start:
            await asyncio.sleep(interval)

        while self._running:
            try:
                await cycle()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self._stats[f"{name}_cycle_errors"] += 1
                logger.error(f"Error in {name} cycle: {e}")

            await asyncio.sleep(interval)

    async def run_prediction_cycle(self) -> Dict[str, Any]:
        """Refresh predictions, preload the best of them, then expire old sessions."""
        predictions = self.prediction_engine.refresh_predictions()
        preload = await self.prediction_engine.preload_top_predictions()
        removed = self.tracker.cleanup()

        self._stats["prediction_cycles"] += 1
        self._stats["last_prediction_cycle"] = time.time()

        logger.info(
            f"Prediction cycle: {len(predictions)} predictions, "
            f"{preload['succeeded']}/{preload['attempted']} preloaded, {removed} sessions removed"
        )
        return {
            "predictions": len(predictions),
            "preload": preload,
            "sessions_removed": removed,
        }

    async def run_invalidation_cycle(self) -> Dict[str, Any]:
        """Scan active patterns, then recalculate pattern confidence."""
        report = await self.invalidation_engine.run_invalidation_cycle()
        confidence = self.invalidation_engine.recalculate_confidence()

        self._stats["invalidation_cycles"] += 1
        self._stats["last_invalidation_cycle"] = time.time()
        return {
            "report": report.to_dict(),
            "confidence": confidence,
        }

    def get_scheduler_stats(self) -> Dict[str, Any]:
        stats = dict(self._stats)
        stats["running"] = self._running
        stats["prediction_interval"] = self.config.prediction_interval
        stats["invalidation_interval"] = self.config.invalidation_interval
        if stats["start_time"]:
            stats["uptime"] = time.time() - stats["start_time"]
        return stats
