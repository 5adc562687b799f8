# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Dependency resolvers: given one node, return its immediate dependencies.

The resolver is supplied by the host asset system and is opaque to the
cache. Two implementations ship here:
- MappingResolver: wraps a precomputed node -> dependencies mapping
- MetaGuidResolver: reads Unity-style text assets, whose references are
  `guid: <32 hex digits>` entries resolved through `*.meta` sidecar files

Resolvers may raise for an individual node; the cache builder catches,
logs and skips such nodes.
"""

import logging
import re
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence

logger = logging.getLogger(__name__)

# `guid: 0123...` as written in .meta files and serialized asset references
GUID_PATTERN = re.compile(r"\bguid:\s*([0-9a-fA-F]{32})\b")

META_SUFFIX = ".meta"


class ResolutionError(Exception):
    """Raised when a node's dependencies cannot be determined."""

    pass


class DependencyResolver(ABC):
    """Abstract per-node dependency resolver."""

    @abstractmethod
    def resolve(self, node: str) -> List[str]:
        """Return the immediate outgoing edges of `node`.

        Args:
            node: Node identifier.

        Returns:
            Ordered list of dependency nodes (may contain duplicates; the
            cache collapses them).

        Raises:
            Exception: Any failure for this node. Callers treat it as a
                per-node, non-fatal failure.
        """
        pass

    def refresh(self) -> None:
        """Drop any state derived from the corpus. Called before each build."""
        pass


class MappingResolver(DependencyResolver):
    """Resolver backed by an in-memory mapping.

    Nodes listed in `failing` raise ResolutionError, which lets hosts model
    assets that cannot be loaded.
    """

    def __init__(
        self,
        dependencies: Mapping[str, Sequence[str]],
        failing: Optional[Sequence[str]] = None,
    ) -> None:
        self._dependencies = {node: list(deps) for node, deps in dependencies.items()}
        self._failing = set(failing or [])
        self.calls: List[str] = []

    def resolve(self, node: str) -> List[str]:
        self.calls.append(node)
        if node in self._failing:
            raise ResolutionError(f"Cannot resolve dependencies of {node}")
        return list(self._dependencies.get(node, []))


class MetaGuidResolver(DependencyResolver):
    """Resolver for text-serialized assets referencing others by GUID.

    On first use, every `*.meta` file under the project root is scanned for
    its `guid:` line to build a GUID -> asset path index. Resolving a node
    then reads the node's file and maps each referenced GUID back to a path.
    Only direct references are returned; unknown GUIDs (built-in resources)
    and self-references are dropped.

    Usage:
        resolver = MetaGuidResolver(project_root="/path/to/project")
        deps = resolver.resolve("Assets/Characters/Hero.prefab")
    """

    def __init__(
        self, project_root: str, search_roots: Sequence[str] = ("Assets", "Packages")
    ) -> None:
        """Initialize resolver.

        Args:
            project_root: Directory node identifiers are relative to.
            search_roots: Directories (relative to project_root) scanned for
                .meta files.
        """
        self.project_root = Path(project_root).resolve()
        self.search_roots = list(search_roots)
        self._guid_index: Optional[Dict[str, str]] = None

    @property
    def guid_index(self) -> Dict[str, str]:
        """GUID -> node index, built lazily."""
        if self._guid_index is None:
            self._guid_index = self._build_guid_index()
        return self._guid_index

    def refresh(self) -> None:
        """Drop the GUID index so the next resolve rescans .meta files."""
        self._guid_index = None

    def _build_guid_index(self) -> Dict[str, str]:
        index: Dict[str, str] = {}
        for search_root in self.search_roots:
            root_path = self.project_root / search_root
            if not root_path.is_dir():
                logger.debug(f"GUID search root not found: {root_path}")
                continue
            for meta_path in sorted(root_path.rglob(f"*{META_SUFFIX}")):
                guid = self._read_meta_guid(meta_path)
                if guid is None:
                    continue
                asset_path = meta_path.with_name(meta_path.name[: -len(META_SUFFIX)])
                node = asset_path.relative_to(self.project_root).as_posix()
                if guid in index and index[guid] != node:
                    logger.warning(f"Duplicate GUID {guid}: {index[guid]} and {node}")
                    continue
                index[guid] = node

        logger.info(f"Indexed {len(index)} asset GUIDs")
        return index

    def _read_meta_guid(self, meta_path: Path) -> Optional[str]:
        try:
            with open(meta_path, encoding="utf-8", errors="replace") as f:
                for line in f:
                    match = GUID_PATTERN.search(line)
                    if match:
                        return match.group(1).lower()
        except OSError as e:
            logger.warning(f"Failed to read meta file {meta_path}: {e}")
            return None

        logger.debug(f"No guid in meta file {meta_path}")
        return None

    def resolve(self, node: str) -> List[str]:
        path = self.project_root / node
        try:
            text = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise ResolutionError(f"Cannot read {node}: {e}") from e

        index = self.guid_index
        dependencies: List[str] = []
        seen = set()
        for match in GUID_PATTERN.finditer(text):
            dependency = index.get(match.group(1).lower())
            if dependency is None or dependency == node or dependency in seen:
                continue
            seen.add(dependency)
            dependencies.append(dependency)
        return dependencies
