# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Query API: reference and dependency lookups served from the graph cache.

API Methods:
- query(target): references + categorized dependencies of one node
- get_references(target): nodes depending on target, sorted
- get_dependencies(target): categorized dependencies of target, sorted
- get_cache_statistics(): size of the cache being served

Ordering: every returned list is sorted case-insensitively ascending, with
the raw identifier as a tie-breaker so the order is total. Dependency
categories iterate in CATEGORY_ORDER.

Querying is read-only. Whether the cache is initialized is the caller's
concern (see ReferenceFinderService); an uninitialized or unknown target
simply yields empty results.
"""

from typing import Any, Dict, Iterable, List, Tuple

from prefab_refs.classification import group_by_category
from prefab_refs.models import GraphCache, QueryResult


def node_sort_key(node: str) -> Tuple[str, str]:
    """Case-insensitive sort key for node identifiers."""
    return (node.casefold(), node)


def sort_nodes(nodes: Iterable[str]) -> List[str]:
    return sorted(nodes, key=node_sort_key)


class QueryEngine:
    """Serves lookups from a GraphCache.

    Usage:
        engine = QueryEngine(cache)
        result = engine.query("Assets/Characters/Hero.prefab")
        result.references       # prefabs that use Hero.prefab
        result.dependencies     # {"prefab": [...], "texture": [...], ...}
    """

    def __init__(self, cache: GraphCache) -> None:
        """Initialize the engine.

        Args:
            cache: Cache to read. The engine holds a reference, so a rebuild
                committed into the same cache object is visible immediately.
        """
        self._cache = cache

    @property
    def cache(self) -> GraphCache:
        return self._cache

    def get_references(self, target: str) -> List[str]:
        """Get nodes that depend on `target`.

        Returns:
            Sorted list; empty if `target` has no known dependents.
        """
        return sort_nodes(self._cache.get_dependents(target))

    def get_dependencies(self, target: str) -> Dict[str, List[str]]:
        """Get `target`'s dependencies grouped by category.

        Returns:
            Mapping with every category in display order, each list sorted.
        """
        groups = group_by_category(self._cache.get_dependencies(target))
        return {category: sort_nodes(nodes) for category, nodes in groups.items()}

    def query(self, target: str) -> QueryResult:
        """Look up references to and dependencies of `target`.

        Args:
            target: Node identifier.

        Returns:
            QueryResult (empty lists for unknown targets).
        """
        return QueryResult(
            target=target,
            references=self.get_references(target),
            dependencies=self.get_dependencies(target),
        )

    def get_cache_statistics(self) -> Dict[str, Any]:
        """Get statistics for the cache being served."""
        return self._cache.get_statistics()
