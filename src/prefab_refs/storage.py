# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Storage abstraction for graph cache persistence.

This module provides a storage abstraction layer for the graph cache:
- GraphCacheStore: Abstract interface for storage backends
- JsonFileStore: Single JSON file holding the reverse map
- LoadStatus / LoadResult: Outcome of a load attempt

Persisted format (text, human-diffable):

    {
      "entries": [
        {"key": "Assets/Textures/wood.png", "values": ["Assets/Crate.prefab"]},
        ...
      ]
    }

Only the reverse map is stored. The forward map is rebuilt by inversion on
load (see GraphCache.from_reverse_map), so processed nodes without
dependencies come back with no forward entry. Queries treat a missing entry
and an empty one alike.
"""

import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from prefab_refs.models import GraphCache

logger = logging.getLogger(__name__)

DEFAULT_CACHE_FILE_NAME = "PrefabReferenceCache.json"


class LoadStatus:
    """Outcome of GraphCacheStore.load().

    Design: Using class constants (not Enum) for JSON-compatible strings.
    """

    LOADED = "loaded"
    NOT_FOUND = "not_found"  # cold start, not an error
    CORRUPT = "corrupt"  # unreadable or structurally invalid; rebuild


@dataclass
class LoadResult:
    """Result of a load attempt.

    `cache` is set only when status is LOADED.
    """

    status: str
    cache: Optional[GraphCache] = None
    quarantined_path: Optional[Path] = None

    @property
    def ok(self) -> bool:
        return self.status == LoadStatus.LOADED


class CorruptCacheError(ValueError):
    """Raised internally when persisted content is structurally invalid."""

    pass


class GraphCacheStore(ABC):
    """Abstract storage interface for the graph cache.

    Enables swapping the storage backend without changing builder or
    service logic.
    """

    @abstractmethod
    def save(self, cache: GraphCache) -> bool:
        """Persist the cache's reverse map.

        Failures must be logged and reported through the return value, never
        raised: the in-memory cache stays authoritative.

        Args:
            cache: Cache to persist.

        Returns:
            True if persisted, False on failure.
        """
        pass

    @abstractmethod
    def load(self) -> LoadResult:
        """Load a previously persisted cache.

        Returns:
            LoadResult with status LOADED, NOT_FOUND or CORRUPT.
        """
        pass


class JsonFileStore(GraphCacheStore):
    """Graph cache persisted as one JSON file.

    Writes are atomic (temp file + os.replace). Unreadable files are renamed
    to `<name>.corrupt-<timestamp>` so repeated loads do not keep failing on
    the same content.
    """

    def __init__(self, path: Path, quarantine_corrupt: bool = True) -> None:
        """Initialize store.

        Args:
            path: Location of the cache file.
            quarantine_corrupt: Rename corrupt files out of the way on load.
        """
        self.path = Path(path)
        self.quarantine_corrupt = quarantine_corrupt

    @classmethod
    def for_project(
        cls,
        project_root: Path,
        file_name: str = DEFAULT_CACHE_FILE_NAME,
        quarantine_corrupt: bool = True,
    ) -> "JsonFileStore":
        """Create a store at the project root, outside the managed corpus."""
        return cls(Path(project_root) / file_name, quarantine_corrupt=quarantine_corrupt)

    def exists(self) -> bool:
        return self.path.is_file()

    def save(self, cache: GraphCache) -> bool:
        data = self._to_document(cache)
        tmp_name: Optional[str] = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self.path.name}.", suffix=".tmp", dir=str(self.path.parent)
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
                f.write("\n")
            os.replace(tmp_name, self.path)
            tmp_name = None
        except OSError as e:
            logger.error(f"Failed to save cache to {self.path}: {e}")
            return False
        finally:
            if tmp_name is not None:
                try:
                    os.unlink(tmp_name)
                except OSError:
                    pass

        logger.info(f"Cache saved successfully with {len(data['entries'])} entries")
        return True

    def load(self) -> LoadResult:
        if not self.path.exists():
            logger.info(f"Cache file not found at {self.path}, will build new cache")
            return LoadResult(status=LoadStatus.NOT_FOUND)

        try:
            with open(self.path, encoding="utf-8") as f:
                document = json.load(f)
            entries = self._parse_document(document)
        except (json.JSONDecodeError, UnicodeDecodeError, RecursionError, CorruptCacheError) as e:
            logger.error(f"Cache data is corrupted ({self.path}): {e}")
            return LoadResult(status=LoadStatus.CORRUPT, quarantined_path=self._quarantine())
        except OSError as e:
            logger.error(f"Failed to load cache from {self.path}: {e}")
            return LoadResult(status=LoadStatus.CORRUPT, quarantined_path=self._quarantine())

        cache = GraphCache.from_reverse_map(entries)
        logger.info(f"Successfully loaded cache with {len(entries)} entries")
        return LoadResult(status=LoadStatus.LOADED, cache=cache)

    def _to_document(self, cache: GraphCache) -> Dict[str, Any]:
        entries = [
            {"key": key, "values": list(values) if values is not None else []}
            for key, values in cache.reverse_map().items()
            if key
        ]
        return {"entries": entries}

    def _parse_document(self, document: Any) -> List[Tuple[str, Optional[List[str]]]]:
        """Validate document structure and extract reverse-map entries.

        Raises:
            CorruptCacheError: If the structure is invalid.
        """
        if not isinstance(document, dict):
            raise CorruptCacheError(f"expected an object, got {type(document).__name__}")

        raw_entries = document.get("entries")
        if raw_entries is None:
            raise CorruptCacheError("entries list is missing or null")
        if not isinstance(raw_entries, list):
            raise CorruptCacheError("entries must be a list")

        entries: List[Tuple[str, Optional[List[str]]]] = []
        for index, entry in enumerate(raw_entries):
            if not isinstance(entry, dict):
                raise CorruptCacheError(f"entry {index} is not an object")
            key = entry.get("key")
            if key is None:
                raise CorruptCacheError(f"entry {index} has a null key")
            if not isinstance(key, str):
                raise CorruptCacheError(f"entry {index} key is not a string")

            values = entry.get("values")
            if values is not None:
                if not isinstance(values, list) or not all(
                    v is None or isinstance(v, str) for v in values
                ):
                    raise CorruptCacheError(f"entry {index} values must be a list of strings")
            entries.append((key, values))

        return entries

    def _quarantine(self) -> Optional[Path]:
        """Move an unreadable cache file aside.

        Returns:
            New path of the quarantined file, or None if not moved.
        """
        if not self.quarantine_corrupt or not self.path.exists():
            return None

        timestamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%fZ")
        target = self.path.with_name(f"{self.path.name}.corrupt-{timestamp}")
        try:
            os.replace(self.path, target)
        except OSError as e:
            logger.warning(f"Could not quarantine corrupt cache {self.path}: {e}")
            return None

        logger.warning(f"Quarantined corrupt cache file to {target}")
        return target
