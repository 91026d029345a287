"""
Session behavior tracking for predictive preloading.

This module keeps a bounded interaction history per anonymized session and
derives a prediction score from the volume of recent activity. Sessions
expire after a retention window and the map is capped, evicting the least
recently active sessions first.
"""

import copy
import logging
import threading
import time
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from .config import BehaviorConfig
from .models import BehaviorPatterns, SessionBehavior

logger = logging.getLogger(__name__)

# Accepted spellings for the pattern lists of a behavior event.
_FIELD_ALIASES = {
    "search_queries": ("search_queries", "searchQueries"),
    "popular_categories": ("popular_categories", "popularCategories"),
    "time_patterns": ("time_patterns", "timePatterns"),
    "frequency_patterns": ("frequency_patterns", "frequencyPatterns"),
}


def _clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def _as_list(value: Any) -> List[Any]:
    """Missing values become empty lists and a bare string a one-item list."""
    if value is None:
        return []
    if isinstance(value, (str, bytes, int, float)):
        return [value]
    return list(value)


def _as_floats(items: Iterable[Any]) -> List[float]:
    """Numeric points of ``items``; values that are not numbers are dropped."""
    points = []
    for item in items:
        if item is None:
            continue
        try:
            points.append(float(item))
        except (TypeError, ValueError):
            logger.debug(f"Dropping non-numeric behavior point: {item!r}")
    return points


class BehaviorTracker:
    """Accumulates bounded per-session history and scores it."""

    def __init__(self, config: Optional[BehaviorConfig] = None, clock: Callable[[], float] = time.time):
        self.config = config or BehaviorConfig()
        self.clock = clock
        self._sessions: Dict[str, SessionBehavior] = {}
        self._lock = threading.RLock()
        self._stats = {
            "events_recorded": 0,
            "events_failed": 0,
            "sessions_expired": 0,
            "sessions_evicted": 0,
        }

    def record_behavior(self, session_id: str, patterns: Optional[Mapping[str, Any]] = None) -> bool:
        """Merge a behavior event into the session history.

        Never raises; a malformed event is logged and ignored.

        Returns:
            True if the event was recorded
        """
        try:
            if not session_id:
                logger.warning("Ignoring behavior event without a session id")
                return False

            incoming = self._normalize(patterns or {})
            now = self.clock()

            with self._lock:
                behavior = self._sessions.get(session_id)
                if behavior is None:
                    behavior = SessionBehavior(session_id=session_id, last_activity=now)
                    self._sessions[session_id] = behavior

                self._merge(behavior.patterns, incoming)
                behavior.last_activity = now
                behavior.prediction_score = self.calculate_prediction_score(behavior)
                self._stats["events_recorded"] += 1

            logger.debug(f"Behavior recorded for session: {session_id}")
            return True
        except Exception as e:
            self._stats["events_failed"] += 1
            logger.error(f"Failed to record behavior for session {session_id}: {e}")
            return False

    def _normalize(self, patterns: Mapping[str, Any]) -> Dict[str, List[Any]]:
        normalized = {}
        for field_name, aliases in _FIELD_ALIASES.items():
            value = None
            for alias in aliases:
                if alias in patterns:
                    value = patterns[alias]
                    break
            items = _as_list(value)
            if field_name in ("search_queries", "popular_categories"):
                items = [str(item) for item in items if item is not None and str(item) != ""]
            else:
                items = _as_floats(items)
            normalized[field_name] = items
        return normalized

    def _merge(self, patterns: BehaviorPatterns, incoming: Dict[str, List[Any]]) -> None:
        cfg = self.config
        patterns.search_queries = self._bounded(patterns.search_queries, incoming["search_queries"], cfg.max_queries)
        patterns.popular_categories = self._bounded(
            patterns.popular_categories, incoming["popular_categories"], cfg.max_categories
        )
        patterns.time_patterns = self._bounded(patterns.time_patterns, incoming["time_patterns"], cfg.max_time_points)
        patterns.frequency_patterns = self._bounded(
            patterns.frequency_patterns, incoming["frequency_patterns"], cfg.max_frequency_points
        )

    @staticmethod
    def _bounded(existing: List[Any], new_items: Iterable[Any], cap: int) -> List[Any]:
        """Append and keep only the ``cap`` most recent items."""
        merged = existing + list(new_items)
        return merged[-cap:] if len(merged) > cap else merged

    def calculate_prediction_score(self, behavior: SessionBehavior) -> float:
        """Score recent activity volume in [0, 1].

        0.4 * queries/10 + 0.3 * categories/5 + 0.3 * time points/20,
        each term saturating at 1.
        """
        cfg = self.config
        patterns = behavior.patterns
        search_score = min(len(patterns.search_queries) / cfg.max_queries, 1.0)
        category_score = min(len(patterns.popular_categories) / cfg.max_categories, 1.0)
        time_score = min(len(patterns.time_patterns) / cfg.max_time_points, 1.0)
        return _clamp(search_score * 0.4 + category_score * 0.3 + time_score * 0.3)

    def cleanup(self) -> int:
        """Drop expired sessions, then evict the oldest above the session cap.

        Returns:
            Number of sessions removed
        """
        now = self.clock()
        cutoff = now - self.config.retention_seconds
        with self._lock:
            expired = [sid for sid, b in self._sessions.items() if b.last_activity < cutoff]
            for sid in expired:
                del self._sessions[sid]

            evicted = []
            overflow = len(self._sessions) - self.config.max_sessions
            if overflow > 0:
                by_age = sorted(self._sessions.items(), key=lambda item: item[1].last_activity)
                evicted = [sid for sid, _ in by_age[:overflow]]
                for sid in evicted:
                    del self._sessions[sid]

            self._stats["sessions_expired"] += len(expired)
            self._stats["sessions_evicted"] += len(evicted)
            remaining = len(self._sessions)

        logger.debug(
            f"Behavior cleanup: {len(expired)} expired, {len(evicted)} evicted, {remaining} remaining"
        )
        return len(expired) + len(evicted)

    @staticmethod
    def item_probability(item: str, window: List[str]) -> float:
        """Share of ``window`` equal to ``item``; 0 for an empty window."""
        if not window:
            return 0.0
        return min(window.count(item) / len(window), 1.0)

    def query_probability(self, query: str, session_id: str) -> float:
        with self._lock:
            behavior = self._sessions.get(session_id)
            if behavior is None:
                return 0.0
            return self.item_probability(query, behavior.patterns.search_queries)

    def category_probability(self, category: str, session_id: str) -> float:
        with self._lock:
            behavior = self._sessions.get(session_id)
            if behavior is None:
                return 0.0
            return self.item_probability(category, behavior.patterns.popular_categories)

    def get_session(self, session_id: str) -> Optional[SessionBehavior]:
        """Return a copy of one session's behavior."""
        with self._lock:
            behavior = self._sessions.get(session_id)
            return copy.deepcopy(behavior) if behavior else None

    def snapshot(self) -> List[SessionBehavior]:
        """Copies of all sessions, safe to read outside the lock."""
        with self._lock:
            return [copy.deepcopy(b) for b in self._sessions.values()]

    def session_count(self) -> int:
        with self._lock:
            return len(self._sessions)

    def get_behavior_stats(self) -> Dict[str, Any]:
        now = self.clock()
        with self._lock:
            behaviors = list(self._sessions.values())
            total = len(behaviors)
            active = sum(
                1 for b in behaviors if now - b.last_activity < self.config.active_window_seconds
            )
            average = sum(b.prediction_score for b in behaviors) / total if total else 0.0
            return {
                "total_sessions": total,
                "active_sessions": active,
                "average_prediction_score": average,
                **self._stats,
            }
