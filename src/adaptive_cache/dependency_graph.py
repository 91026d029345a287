"""Dependency graph between cache keys, used for cascade invalidation."""

import logging
import threading
import time
from collections import deque
from typing import Any, Callable, Dict, Iterable, List, Optional

from .models import DependencyNode

logger = logging.getLogger(__name__)


class DependencyGraph:
    """Registered key dependencies with back-edges to their dependents.

    Registering ``A -> B`` always records ``B`` in ``A.dependencies``;
    ``A`` is added to ``B.dependents`` only if ``B`` already has a node.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self.clock = clock
        self._nodes: Dict[str, DependencyNode] = {}
        self._lock = threading.RLock()

    def register_dependency(self, key: str, depends_on: Iterable[str]) -> bool:
        """Create or overwrite the node for ``key``.

        An overwritten node starts without dependents. Never raises.
        """
        try:
            dependencies = {d for d in (depends_on or ()) if d}
            now = self.clock()
            with self._lock:
                previous = self._nodes.get(key)
                if previous is not None:
                    for stale in previous.dependencies - dependencies:
                        stale_node = self._nodes.get(stale)
                        if stale_node is not None:
                            stale_node.dependents.discard(key)
                node = DependencyNode(
                    key=key,
                    dependencies=dependencies,
                    dependents=set(),
                    last_accessed=now
                )
                self._nodes[key] = node

                for dependency in dependencies:
                    dependency_node = self._nodes.get(dependency)
                    if dependency_node is None:
                        logger.debug(f"Dependency {dependency} of {key} has no node; back-edge dropped")
                        continue
                    dependency_node.dependents.add(key)
                    dependency_node.invalidation_score = self._score(dependency_node)
                node.invalidation_score = self._score(node)

            logger.debug(f"Dependency registered: {key} -> {sorted(dependencies)}")
            return True
        except Exception as e:
            logger.error(f"Failed to register dependency for {key}: {e}")
            return False

    def collect_cascade(self, key: str, depth: int = 1) -> List[str]:
        """``key`` followed by its dependents up to ``depth`` hops, breadth first.

        Returns an empty list when ``key`` has no node.
        """
        with self._lock:
            if key not in self._nodes:
                return []
            ordered = [key]
            seen = {key}
            queue = deque([(key, 0)])
            while queue:
                current, level = queue.popleft()
                if level >= depth:
                    continue
                node = self._nodes.get(current)
                if node is None:
                    continue
                for dependent in sorted(node.dependents):
                    if dependent in seen:
                        continue
                    seen.add(dependent)
                    ordered.append(dependent)
                    queue.append((dependent, level + 1))
            return ordered

    def remove_nodes(self, keys: Iterable[str]) -> int:
        """Drop nodes and any edges pointing at them."""
        removed = 0
        with self._lock:
            for key in keys:
                node = self._nodes.pop(key, None)
                if node is None:
                    continue
                removed += 1
                for dependency in node.dependencies:
                    other = self._nodes.get(dependency)
                    if other is not None:
                        other.dependents.discard(key)
                for dependent in node.dependents:
                    other = self._nodes.get(dependent)
                    if other is not None:
                        other.dependencies.discard(key)
        return removed

    def record_access(self, key: str) -> bool:
        with self._lock:
            node = self._nodes.get(key)
            if node is None:
                return False
            node.access_count += 1
            node.last_accessed = self.clock()
            node.invalidation_score = self._score(node)
            return True

    @staticmethod
    def _score(node: DependencyNode) -> float:
        """Fan-out and read volume, each saturating, in [0, 1]."""
        fan_out = min(len(node.dependents) / 10, 1.0)
        reads = min(node.access_count / 100, 1.0)
        return fan_out * 0.7 + reads * 0.3

    def has_node(self, key: str) -> bool:
        with self._lock:
            return key in self._nodes

    def get_node(self, key: str) -> Optional[DependencyNode]:
        with self._lock:
            node = self._nodes.get(key)
            if node is None:
                return None
            return DependencyNode(
                key=node.key,
                dependencies=set(node.dependencies),
                dependents=set(node.dependents),
                last_accessed=node.last_accessed,
                access_count=node.access_count,
                invalidation_score=node.invalidation_score
            )

    def get_dependencies(self) -> Dict[str, Dict[str, Any]]:
        with self._lock:
            return {key: node.to_dict() for key, node in self._nodes.items()}

    def __len__(self) -> int:
        with self._lock:
            return len(self._nodes)
