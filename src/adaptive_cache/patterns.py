"""
Invalidation pattern catalog and rule lookup.

The catalog is seeded once; only a pattern's confidence, trigger frequency
and last trigger time change at runtime. Rules are kept in catalog order and
the first rule of a pattern whose glob matches a key wins.
"""

import logging
import threading
import time
from collections import defaultdict
from typing import Any, Callable, Dict, Iterable, List, Optional

from .config import InvalidationConfig
from .matching import glob_match
from .models import InvalidationAction, InvalidationPattern, InvalidationRule, Priority

logger = logging.getLogger(__name__)


def default_patterns() -> List[InvalidationPattern]:
    return [
        InvalidationPattern(
            id="user-profile-update",
            name="User Profile Update",
            key_glob="user:profile:*",
            confidence=0.9
        ),
        InvalidationPattern(
            id="search-query-update",
            name="Search Query Update",
            key_glob="search:results:*",
            confidence=0.8
        ),
        InvalidationPattern(
            id="category-update",
            name="Category Update",
            key_glob="category:*",
            confidence=0.85
        ),
        InvalidationPattern(
            id="listing-update",
            name="Listing Update",
            key_glob="listing:*",
            confidence=0.75
        ),
        InvalidationPattern(
            id="api-response-update",
            name="API Response Update",
            key_glob="api:*",
            confidence=0.7
        ),
    ]


def default_rules() -> List[InvalidationRule]:
    return [
        InvalidationRule(
            id="user-profile-rule",
            pattern_id="user-profile-update",
            match_glob="user:profile:*",
            action=InvalidationAction.INVALIDATE,
            priority=Priority.HIGH,
            affected_key_globs=("user:profile:*", "user:preferences:*"),
            dependency_globs=("user:session:*",)
        ),
        InvalidationRule(
            id="search-results-rule",
            pattern_id="search-query-update",
            match_glob="search:results:*",
            action=InvalidationAction.REFRESH,
            priority=Priority.MEDIUM,
            affected_key_globs=("search:results:*", "search:suggestions:*"),
            dependency_globs=("search:popular:*",)
        ),
        InvalidationRule(
            id="category-rule",
            pattern_id="category-update",
            match_glob="category:*",
            action=InvalidationAction.UPDATE,
            priority=Priority.HIGH,
            affected_key_globs=("category:*", "listing:category:*"),
            dependency_globs=("category:popular:*",)
        ),
        InvalidationRule(
            id="listing-rule",
            pattern_id="listing-update",
            match_glob="listing:*",
            action=InvalidationAction.INVALIDATE,
            priority=Priority.MEDIUM,
            affected_key_globs=("listing:*", "search:results:*"),
            dependency_globs=("listing:featured:*",)
        ),
        InvalidationRule(
            id="api-response-rule",
            pattern_id="api-response-update",
            match_glob="api:*",
            action=InvalidationAction.REFRESH,
            priority=Priority.LOW,
            affected_key_globs=("api:*",),
            dependency_globs=()
        ),
    ]


class PatternCatalog:
    """Holds the invalidation patterns and their rules."""

    def __init__(
        self,
        config: Optional[InvalidationConfig] = None,
        patterns: Optional[Iterable[InvalidationPattern]] = None,
        rules: Optional[Iterable[InvalidationRule]] = None,
        clock: Callable[[], float] = time.time
    ):
        self.config = config or InvalidationConfig()
        self.clock = clock
        self.created_at = clock()

        self._patterns: Dict[str, InvalidationPattern] = {}
        for pattern in (default_patterns() if patterns is None else patterns):
            self._patterns[pattern.id] = pattern
        self._rules: List[InvalidationRule] = list(default_rules() if rules is None else rules)
        self._lock = threading.RLock()

        logger.info(f"Pattern catalog initialized with {len(self._patterns)} patterns, {len(self._rules)} rules")

    def active_patterns(self) -> List[InvalidationPattern]:
        """Copies of the patterns whose confidence exceeds the threshold."""
        threshold = self.config.confidence_threshold
        with self._lock:
            return [
                InvalidationPattern(**p.to_dict())
                for p in self._patterns.values()
                if p.confidence > threshold
            ]

    def find_matching_rule(self, pattern_id: str, key: str) -> Optional[InvalidationRule]:
        for rule in self._rules:
            if rule.pattern_id == pattern_id and glob_match(rule.match_glob, key):
                return rule
        return None

    def record_trigger(self, pattern_id: str, now: Optional[float] = None) -> bool:
        """Count one trigger of ``pattern_id`` at ``now``."""
        now = self.clock() if now is None else now
        with self._lock:
            pattern = self._patterns.get(pattern_id)
            if pattern is None:
                logger.warning(f"Trigger recorded for unknown pattern: {pattern_id}")
                return False
            pattern.trigger_frequency += 1
            pattern.last_triggered_at = now
            return True

    def calculate_confidence(self, pattern: InvalidationPattern, now: float) -> float:
        """Confidence from trigger frequency and recency, clamped to the floor/ceiling.

        0.6 * frequency factor (saturating at ``frequency_saturation``) plus
        0.4 * recency factor (fading to 0 over ``recency_window_seconds``).
        A never-triggered pattern keeps its seed during the grace period.
        """
        cfg = self.config
        if pattern.never_triggered and now - self.created_at < cfg.seed_grace_period:
            return max(cfg.min_confidence, min(cfg.max_confidence, pattern.seed_confidence))

        frequency_factor = min(pattern.trigger_frequency / cfg.frequency_saturation, 1.0)
        idle = max(0.0, now - pattern.last_triggered_at)
        recency_factor = max(0.0, 1 - idle / cfg.recency_window_seconds)
        confidence = frequency_factor * 0.6 + recency_factor * 0.4
        return max(cfg.min_confidence, min(cfg.max_confidence, confidence))

    def recalculate_confidence(self) -> Dict[str, float]:
        """Recompute every pattern's confidence; returns the new values by id."""
        now = self.clock()
        updated = {}
        with self._lock:
            for pattern in self._patterns.values():
                pattern.confidence = self.calculate_confidence(pattern, now)
                updated[pattern.id] = pattern.confidence
        logger.debug(f"Recalculated confidence for {len(updated)} patterns")
        return updated

    def get_pattern(self, pattern_id: str) -> Optional[InvalidationPattern]:
        with self._lock:
            pattern = self._patterns.get(pattern_id)
            return InvalidationPattern(**pattern.to_dict()) if pattern else None

    def get_patterns(self) -> List[InvalidationPattern]:
        with self._lock:
            return [InvalidationPattern(**p.to_dict()) for p in self._patterns.values()]

    def get_rules(self) -> List[InvalidationRule]:
        return list(self._rules)

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            patterns = list(self._patterns.values())
            total = len(patterns)
            active = sum(1 for p in patterns if p.confidence > self.config.confidence_threshold)
            average = sum(p.confidence for p in patterns) / total if total else 0.0

            by_type = defaultdict(int)
            for p in patterns:
                by_type[p.id.split("-", 1)[0]] += 1

            return {
                "total_patterns": total,
                "active_patterns": active,
                "total_rules": len(self._rules),
                "total_triggers": sum(p.trigger_frequency for p in patterns),
                "average_confidence": average,
                "patterns_by_type": dict(by_type),
            }
