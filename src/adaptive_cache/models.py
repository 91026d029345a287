"""
Domain records shared by the behavior tracker, the prediction engine and
the invalidation engine.
"""

import time
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Set


class DataType(Enum):
    """Kind of cached content a key holds."""
    SEARCH = "search"
    API = "api"
    USER = "user"
    CATEGORY = "category"

    @classmethod
    def from_key(cls, key: str) -> Optional["DataType"]:
        """Infer the data type from a key prefix (``category:5`` -> CATEGORY)."""
        prefix = key.split(":", 1)[0]
        try:
            return cls(prefix)
        except ValueError:
            return None


class Priority(Enum):
    """Priority levels used by predictions and invalidation rules."""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class InvalidationAction(Enum):
    """What a matching rule does to a key."""
    INVALIDATE = "invalidate"
    UPDATE = "update"
    REFRESH = "refresh"


@dataclass
class BehaviorPatterns:
    """Bounded per-session interaction history."""
    search_queries: List[str] = field(default_factory=list)
    popular_categories: List[str] = field(default_factory=list)
    time_patterns: List[float] = field(default_factory=list)
    frequency_patterns: List[float] = field(default_factory=list)


@dataclass
class SessionBehavior:
    """Tracked behavior of one anonymized session."""
    session_id: str
    patterns: BehaviorPatterns = field(default_factory=BehaviorPatterns)
    last_activity: float = field(default_factory=time.time)
    prediction_score: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class CachePrediction:
    """A cache key expected to be requested soon."""
    key: str
    probability: float
    confidence: float
    predicted_access_time: float
    data_type: DataType
    priority: Priority

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "probability": self.probability,
            "confidence": self.confidence,
            "predicted_access_time": self.predicted_access_time,
            "data_type": self.data_type.value,
            "priority": self.priority.value,
        }


@dataclass
class InvalidationPattern:
    """A named key glob whose confidence adapts to how often it fires.

    ``last_triggered_at`` is 0.0 until the pattern triggers for the first time.
    """
    id: str
    name: str
    key_glob: str
    confidence: float
    trigger_frequency: int = 0
    last_triggered_at: float = 0.0
    seed_confidence: Optional[float] = None

    def __post_init__(self):
        if self.seed_confidence is None:
            self.seed_confidence = self.confidence

    @property
    def never_triggered(self) -> bool:
        return self.trigger_frequency == 0 and self.last_triggered_at == 0.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class InvalidationRule:
    """Action applied to keys of a pattern that also match ``match_glob``."""
    id: str
    pattern_id: str
    match_glob: str
    action: InvalidationAction
    priority: Priority
    affected_key_globs: tuple = ()
    dependency_globs: tuple = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "pattern_id": self.pattern_id,
            "match_glob": self.match_glob,
            "action": self.action.value,
            "priority": self.priority.value,
            "affected_key_globs": list(self.affected_key_globs),
            "dependency_globs": list(self.dependency_globs),
        }


@dataclass
class DependencyNode:
    """Dependency bookkeeping for one cache key."""
    key: str
    dependencies: Set[str] = field(default_factory=set)
    dependents: Set[str] = field(default_factory=set)
    last_accessed: float = field(default_factory=time.time)
    access_count: int = 0
    invalidation_score: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "dependencies": sorted(self.dependencies),
            "dependents": sorted(self.dependents),
            "last_accessed": self.last_accessed,
            "access_count": self.access_count,
            "invalidation_score": self.invalidation_score,
        }


@dataclass
class CascadeResult:
    """Outcome of a cascade invalidation."""
    success: bool
    keys_invalidated: int = 0
    keys_failed: int = 0
    keys: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class CycleReport:
    """Summary of one invalidation cycle."""
    patterns_checked: int = 0
    keys_scanned: int = 0
    keys_processed: int = 0
    keys_failed: int = 0
    patterns_triggered: List[str] = field(default_factory=list)
    started_at: float = field(default_factory=time.time)
    duration: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
