# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Core data models for the prefab reference index.

This module defines the foundational data structures used throughout the system:
- Category: Enum-like class for dependency classification buckets
- GraphCache: Bidirectional dependency graph (forward map + reverse map)
- BuildProgress / StepResult: Build task state reported to hosts
- ResolutionFailure: Recoverable per-node resolver failure
- QueryResult: Result of a reference/dependency query

All models use JSON-compatible primitives for serialization.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

logger = logging.getLogger(__name__)


class Category:
    """Classification buckets for dependency nodes.

    Design: Using class constants (not Enum) for JSON-compatible strings.
    """

    PREFAB = "prefab"  # native composite asset
    TEXTURE = "texture"  # image formats
    SCRIPT = "script"  # source, shader and module-definition formats
    OTHER = "other"  # everything else


# Fixed display order for dependency categories
CATEGORY_ORDER: Tuple[str, ...] = (
    Category.PREFAB,
    Category.TEXTURE,
    Category.SCRIPT,
    Category.OTHER,
)

CATEGORY_LABELS: Dict[str, str] = {
    Category.PREFAB: "Prefabs",
    Category.TEXTURE: "Textures",
    Category.SCRIPT: "Scripts",
    Category.OTHER: "Other",
}


class GraphCache:
    """Bidirectional graph of asset dependencies.

    Maintains two indices:
    - forward map: node -> set of nodes it depends on
    - reverse map: node -> ordered list of nodes that depend on it

    Invariant: B in forward[A] if and only if A in reverse[B]. Both indices
    are updated together in add_edge(), which never yields mid-update.

    The cache becomes queryable once `initialized` is True, either after a
    completed build or after a successful load from storage.

    NOT thread-safe: a single writer (the active build) is assumed.
    """

    def __init__(self) -> None:
        """Initialize empty, not-initialized cache."""
        self._forward: Dict[str, Set[str]] = {}
        self._reverse: Dict[str, List[str]] = {}
        self.initialized = False

    @classmethod
    def from_reverse_map(
        cls, reverse_map: Iterable[Tuple[str, Optional[List[str]]]]
    ) -> "GraphCache":
        """Build a cache from persisted reverse-map entries.

        The forward map is reconstructed by inverting the reverse map. This
        preserves the bidirectional invariant but not the original forward
        insertion order (forward edges are a set).

        Entries with empty keys are skipped, None value lists load as empty,
        and empty referencing nodes are skipped.

        Args:
            reverse_map: Iterable of (node, referencing nodes) pairs in
                persisted order.

        Returns:
            Initialized GraphCache.
        """
        cache = cls()
        for key, values in reverse_map:
            if not key:
                continue
            # Keep the key even when it has no referencing nodes
            cache._reverse.setdefault(key, [])
            for referencing in values or []:
                if not referencing:
                    continue
                cache.add_edge(referencing, key)
        cache.initialized = True
        return cache

    def record_node(self, node: str) -> None:
        """Register a processed node with an (initially) empty forward entry."""
        self._forward.setdefault(node, set())

    def add_edge(self, dependent: str, dependency: str) -> None:
        """Add a dependent -> dependency edge and update both indices.

        Duplicate edges collapse: the forward entry is a set and the reverse
        entry is append-if-absent.

        Args:
            dependent: Node that depends on `dependency`.
            dependency: Node being depended on.
        """
        self._forward.setdefault(dependent, set()).add(dependency)

        dependents = self._reverse.setdefault(dependency, [])
        if dependent not in dependents:
            dependents.append(dependent)

    def get_dependencies(self, node: str) -> Set[str]:
        """Get the nodes `node` depends on (copy; empty if unknown)."""
        return set(self._forward.get(node, ()))

    def get_dependents(self, node: str) -> List[str]:
        """Get the nodes depending on `node` in processing order (copy)."""
        return list(self._reverse.get(node, ()))

    def has_node(self, node: str) -> bool:
        """Check whether the node appears in either index."""
        return node in self._forward or node in self._reverse

    def reverse_map(self) -> Dict[str, List[str]]:
        """Return a copy of the reverse map in insertion order."""
        return {key: list(values) for key, values in self._reverse.items()}

    def forward_map(self) -> Dict[str, Set[str]]:
        """Return a copy of the forward map."""
        return {key: set(values) for key, values in self._forward.items()}

    def replace_with(self, other: "GraphCache") -> None:
        """Take over another cache's indices wholesale.

        Used to commit a finished build. The other cache must not be used
        afterwards.
        """
        self._forward = other._forward
        self._reverse = other._reverse
        self.initialized = other.initialized

    def clear(self) -> None:
        """Discard both indices and mark the cache not initialized."""
        self._forward = {}
        self._reverse = {}
        self.initialized = False

    def validate_graph(self) -> Tuple[bool, List[str]]:
        """Validate both indices for consistency.

        Checks for:
        - Forward edges missing from the reverse index
        - Reverse entries missing from the forward index
        - Duplicate nodes within a reverse entry

        Returns:
            Tuple of (is_valid, error_messages).
        """
        errors: List[str] = []

        for dependent, dependencies in self._forward.items():
            for dependency in dependencies:
                if dependent not in self._reverse.get(dependency, ()):
                    errors.append(
                        f"Index inconsistency: {dependent} → {dependency} "
                        f"not in reverse index"
                    )

        for dependency, dependents in self._reverse.items():
            if len(dependents) != len(set(dependents)):
                errors.append(f"Duplicate reverse entries for {dependency}")
            for dependent in dependents:
                if dependency not in self._forward.get(dependent, ()):
                    errors.append(
                        f"Index inconsistency: {dependency} ← {dependent} "
                        f"not in forward index"
                    )

        return len(errors) == 0, errors

    def detect_corruption(self) -> bool:
        """Run validation and log any errors found.

        Returns:
            True if corruption detected, False if graph is valid.
        """
        is_valid, errors = self.validate_graph()
        if not is_valid:
            logger.error(
                f"Graph corruption detected! Found {len(errors)} consistency errors. "
                f"Errors: {errors}"
            )
            return True
        return False

    def get_statistics(self) -> Dict[str, Any]:
        """Summarize cache size.

        Returns:
            Dictionary with initialized flag, node and edge counts.
        """
        return {
            "initialized": self.initialized,
            "processed_nodes": len(self._forward),
            "referenced_nodes": len(self._reverse),
            "edge_count": sum(len(deps) for deps in self._forward.values()),
        }


@dataclass
class BuildProgress:
    """Progress of the active (or last) build."""

    completed: int
    total: int

    @property
    def fraction(self) -> float:
        """Completed fraction in [0, 1]; 1.0 for an empty corpus."""
        if self.total == 0:
            return 1.0
        return self.completed / self.total

    def to_dict(self) -> Dict[str, Any]:
        return {"completed": self.completed, "total": self.total}


@dataclass
class StepResult:
    """Outcome of one cooperative build step.

    `done` is True once the build has either completed or been cancelled;
    the host should stop scheduling steps.
    """

    done: bool
    completed: int
    total: int
    cancelled: bool = False

    @property
    def progress(self) -> BuildProgress:
        return BuildProgress(completed=self.completed, total=self.total)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "done": self.done,
            "completed": self.completed,
            "total": self.total,
            "cancelled": self.cancelled,
        }


@dataclass
class ResolutionFailure:
    """A node whose dependencies could not be resolved during a build."""

    node: str
    error: str

    def to_dict(self) -> Dict[str, Any]:
        return {"node": self.node, "error": self.error}


@dataclass
class QueryResult:
    """References to and categorized dependencies of a target node.

    `dependencies` always holds every category in CATEGORY_ORDER, each an
    ascending case-insensitively sorted list (possibly empty).
    """

    target: str
    references: List[str] = field(default_factory=list)
    dependencies: Dict[str, List[str]] = field(
        default_factory=lambda: {category: [] for category in CATEGORY_ORDER}
    )

    @property
    def dependency_count(self) -> int:
        return sum(len(nodes) for nodes in self.dependencies.values())

    @property
    def is_empty(self) -> bool:
        return not self.references and self.dependency_count == 0

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to JSON-compatible dict.

        Returns:
            Dictionary with target, references, and dependencies keyed by
            category in display order.
        """
        return {
            "target": self.target,
            "references": list(self.references),
            "dependencies": {
                category: list(self.dependencies.get(category, []))
                for category in CATEGORY_ORDER
            },
        }
