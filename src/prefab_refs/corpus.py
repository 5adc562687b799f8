# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Corpus enumeration: list candidate nodes under a search root.

The enumerator is an external collaborator of the cache builder. The
builder only needs `list_nodes(root)`; FileSystemEnumerator is the default
implementation for a project directory on disk.

Node identifiers are POSIX-style paths relative to the project root
(e.g. "Assets/Characters/Hero.prefab"), returned in sorted order so builds
are deterministic.
"""

import fnmatch
import logging
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Set

logger = logging.getLogger(__name__)


class CorpusEnumerator(ABC):
    """Abstract source of candidate nodes."""

    @abstractmethod
    def list_nodes(self, root: str) -> List[str]:
        """List candidate nodes under `root`.

        Missing or empty roots yield an empty list with a diagnostic, never
        an exception.

        Args:
            root: Search root (relative to the project root, or absolute).

        Returns:
            Node identifiers in a deterministic order.
        """
        pass


class StaticEnumerator(CorpusEnumerator):
    """Enumerator over a fixed node list, for hosts that already know the corpus."""

    def __init__(self, nodes: Iterable[str]) -> None:
        self._nodes = list(nodes)

    def list_nodes(self, root: str) -> List[str]:
        if not root:
            return list(self._nodes)
        prefix = root.rstrip("/") + "/"
        return [node for node in self._nodes if node == root or node.startswith(prefix)]


class FileSystemEnumerator(CorpusEnumerator):
    """Walks a directory tree for files with the configured extensions.

    Usage:
        enumerator = FileSystemEnumerator(project_root="/path/to/project")
        nodes = enumerator.list_nodes("Assets")
    """

    # Directories never descended into
    ALWAYS_IGNORED = {
        ".git",
        ".svn",
        "Library",
        "Temp",
        "Logs",
        "obj",
        "node_modules",
        "__pycache__",
    }

    def __init__(
        self,
        project_root: str,
        extensions: Sequence[str] = (".prefab",),
        ignore_patterns: Optional[Iterable[str]] = None,
    ) -> None:
        """Initialize enumerator.

        Args:
            project_root: Directory node identifiers are relative to.
            extensions: File extensions (with leading dot) that count as nodes.
                Matched case-insensitively.
            ignore_patterns: Additional glob patterns matched against the
                relative path and the file name.
        """
        self.project_root = Path(project_root).resolve()
        self.extensions: Set[str] = {ext.lower() for ext in extensions}
        self.ignore_patterns: Set[str] = set(ignore_patterns or [])

    def should_ignore(self, rel_path: str) -> bool:
        """Check if a relative path is excluded by the ignore rules.

        Args:
            rel_path: POSIX-style path relative to the project root.

        Returns:
            True if the path should be skipped.
        """
        parts = rel_path.split("/")
        if any(part in self.ALWAYS_IGNORED for part in parts[:-1]):
            return True

        name = parts[-1]
        for pattern in self.ignore_patterns:
            if fnmatch.fnmatch(rel_path, pattern) or fnmatch.fnmatch(name, pattern):
                return True
        return False

    def is_node(self, file_name: str) -> bool:
        """Check whether a file name has a node extension."""
        return os.path.splitext(file_name)[1].lower() in self.extensions

    def to_node(self, path: Path) -> str:
        """Convert a filesystem path to a node identifier."""
        try:
            return path.resolve().relative_to(self.project_root).as_posix()
        except ValueError:
            # Outside the project root: keep the absolute path
            return path.resolve().as_posix()

    def list_nodes(self, root: str) -> List[str]:
        root_path = Path(root)
        if not root_path.is_absolute():
            root_path = self.project_root / root_path

        if not root_path.is_dir():
            logger.error(f"Folder not found: {root_path}")
            return []

        nodes: List[str] = []
        for file_path in root_path.rglob("*"):
            if not self.is_node(file_path.name) or not file_path.is_file():
                continue
            node = self.to_node(file_path)
            if self.should_ignore(node):
                continue
            nodes.append(node)

        nodes.sort()
        logger.debug(f"Enumerated {len(nodes)} nodes under {root_path}")
        return nodes
