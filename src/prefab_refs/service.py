# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Service layer for the prefab reference index.

Orchestration of the graph cache components:
- load-or-build: serve queries from the persisted cache when present,
  otherwise build it (first query may take longer)
- target tracking: the current target is re-queried when a build completes
- invalidation: changing the search path, or a corpus change reported by
  the watcher, marks the cache stale so the next query rebuilds
- build status reporting for presentation layers

The service owns one GraphCache and shares it with the builder, the store
and the query engine. Protocol layers (MCP server) contain no business
logic and delegate here.
"""

import logging
from pathlib import Path
from typing import Any, Dict, Optional

from prefab_refs.builder import BuildEvent, CacheBuilder
from prefab_refs.config import Config
from prefab_refs.corpus import CorpusEnumerator, FileSystemEnumerator
from prefab_refs.file_watcher import CorpusWatcher
from prefab_refs.logging_setup import BuildEventRecord, BuildEventType, log_build_event
from prefab_refs.models import BuildProgress, GraphCache, QueryResult, StepResult
from prefab_refs.query_api import QueryEngine
from prefab_refs.resolvers import DependencyResolver, MetaGuidResolver
from prefab_refs.storage import GraphCacheStore, JsonFileStore, LoadStatus

logger = logging.getLogger(__name__)


class ReferenceFinderService:
    """Finds references to and dependencies of prefab assets.

    Usage:
        service = ReferenceFinderService(project_root="/path/to/project")
        result = service.find_references("Assets/Characters/Hero.prefab")
        result.references      # prefabs that use Hero.prefab
        result.dependencies    # Hero.prefab's dependencies by category

    Host-driven (non-blocking) usage:
        service.set_target("Assets/Characters/Hero.prefab")  # may start a build
        while service.is_building:
            service.tick()      # one batch per host update
        service.last_result
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        project_root: Optional[str] = None,
        enumerator: Optional[CorpusEnumerator] = None,
        resolver: Optional[DependencyResolver] = None,
        store: Optional[GraphCacheStore] = None,
        build_logger: Optional[logging.Logger] = None,
    ) -> None:
        """Initialize the service.

        Args:
            config: Configuration. If None, loads from the default location.
            project_root: Project directory. If None, uses the current directory.
            enumerator: Corpus enumerator. Defaults to a FileSystemEnumerator.
            resolver: Dependency resolver. Defaults to a MetaGuidResolver.
            store: Cache persistence. Defaults to a JsonFileStore at the
                project root.
            build_logger: Optional logger receiving build lifecycle events.
        """
        self.config = config or Config()
        self.project_root = Path(project_root or Path.cwd()).resolve()

        self.cache = GraphCache()
        self.store = store or JsonFileStore.for_project(
            self.project_root,
            file_name=self.config.cache_file_name,
            quarantine_corrupt=self.config.quarantine_corrupt_cache,
        )
        self.enumerator = enumerator or FileSystemEnumerator(
            project_root=str(self.project_root),
            extensions=self.config.node_extensions,
            ignore_patterns=self.config.ignore_patterns,
        )
        self.resolver = resolver or MetaGuidResolver(project_root=str(self.project_root))

        self.builder = CacheBuilder(
            cache=self.cache,
            enumerator=self.enumerator,
            resolver=self.resolver,
            store=self.store,
            batch_size=self.config.batch_size,
        )
        self.engine = QueryEngine(self.cache)

        self._corpus_root = self.config.corpus_root
        # Set when the persisted cache must not be trusted (search path or corpus changed)
        self._stale = False
        self._invalidated_during_build = False
        self._build_logger = build_logger

        self.current_target: Optional[str] = None
        self.last_result: Optional[QueryResult] = None

        self.builder.add_listener(BuildEvent.COMPLETED, self._on_build_completed)
        self.builder.add_listener(BuildEvent.CANCELLED, self._on_build_cancelled)
        if build_logger is not None:
            self.builder.add_listener(BuildEvent.PROGRESS, self._log_build_progress)

        self._watcher: Optional[CorpusWatcher] = None
        if self.config.watch_corpus:
            self.start_file_watcher()

        logger.info(f"ReferenceFinderService initialized for {self.project_root}")

    @property
    def corpus_root(self) -> str:
        return self._corpus_root

    @property
    def is_initialized(self) -> bool:
        return self.cache.initialized

    @property
    def is_building(self) -> bool:
        return self.builder.is_active

    @property
    def is_stale(self) -> bool:
        return self._stale

    def load_cache(self) -> bool:
        """Replace the in-memory cache with the persisted one, if readable.

        Returns:
            True if a persisted cache was loaded. NOT_FOUND and CORRUPT both
            return False; the caller builds fresh.
        """
        result = self.store.load()
        if result.status != LoadStatus.LOADED or result.cache is None:
            return False
        self.cache.replace_with(result.cache)
        return True

    def ensure_cache(self, drive: bool = True) -> bool:
        """Make the cache queryable: reuse, load, or build it.

        Args:
            drive: Run a started build to completion before returning. When
                False, the build is left for the host to advance via tick().

        Returns:
            True if the cache can be queried on return. A driven build that
            was invalidated midway still counts: its committed maps are
            served once and the next query rebuilds.
        """
        if self.cache.initialized:
            return True

        if not self.builder.is_active:
            if not self._stale and self.load_cache():
                return True
            self._start_build()
            if not self.builder.is_active:
                # Empty corpus: completed inside start()
                return self.cache.initialized

        if not drive:
            return False
        return not self.builder.run().cancelled

    def find_references(self, target: str, drive: bool = True) -> Optional[QueryResult]:
        """Query references and dependencies of `target`.

        Args:
            target: Node identifier.
            drive: See ensure_cache().

        Returns:
            QueryResult, or None while a non-driven build is still running
            (the result then lands in `last_result` on completion) or after
            the build was cancelled.
        """
        self.current_target = target
        if not self.ensure_cache(drive=drive):
            return None
        self.last_result = self.engine.query(target)
        return self.last_result

    def set_target(self, target: str) -> Optional[QueryResult]:
        """Retarget without blocking (drag-and-drop style).

        Queries the built cache immediately, or starts a build whose
        completion re-queries the new target.
        """
        return self.find_references(target, drive=False)

    def rebuild(self, drive: bool = False) -> bool:
        """Start a full rebuild of the cache.

        Returns:
            True if a build was started, False if one is already active.
        """
        started = self._start_build()
        if started and drive and self.builder.is_active:
            self.builder.run()
        return started

    def tick(self, batch_size: Optional[int] = None) -> Optional[StepResult]:
        """Advance the active build by one batch (host update callback).

        Returns:
            StepResult, or None if no build is active.
        """
        if not self.builder.is_active:
            return None
        return self.builder.step(batch_size)

    def cancel_build(self) -> None:
        """Request cancellation of the active build."""
        self.builder.cancel()

    def set_corpus_root(self, corpus_root: str) -> str:
        """Change the search path; invalidates the cache.

        Args:
            corpus_root: Directory relative to the project root, or an
                absolute path inside the project.

        Returns:
            The stored (project-relative) search path.

        Raises:
            ValueError: If the folder is outside the project.
        """
        path = Path(corpus_root)
        if path.is_absolute():
            try:
                relative = path.resolve().relative_to(self.project_root).as_posix()
            except ValueError:
                raise ValueError("The selected folder must be within the project.") from None
        else:
            if ".." in path.parts:
                raise ValueError("The selected folder must be within the project.")
            relative = path.as_posix()

        self._corpus_root = relative or "."
        self.invalidate()
        logger.info(f"Search path set to {self._corpus_root}")
        return self._corpus_root

    def reset_corpus_root(self) -> str:
        """Restore the configured default search path; invalidates the cache."""
        return self.set_corpus_root(self.config.corpus_root)

    def invalidate(self) -> None:
        """Mark the cache not initialized and the persisted copy stale.

        Only flags are touched, so this is safe to call from the watcher
        thread. The next query rebuilds. An active build still commits, but
        its result is marked stale on completion.
        """
        if self.builder.is_active:
            self._invalidated_during_build = True
        self.cache.initialized = False
        self._stale = True
        logger.debug("Cache invalidated")

    def invalidate_on_change(self, file_path: str) -> None:
        """Corpus watcher callback."""
        logger.debug(f"Corpus changed: {file_path}")
        self.invalidate()

    def build_status(self) -> Dict[str, Any]:
        """Describe cache/build state for presentation.

        Returns:
            Dictionary with initialized, building, stale flags, progress,
            skipped node count, and a human-readable message.
        """
        progress = self.builder.progress()
        if self.builder.is_active:
            message = f"Processing: {progress.completed}/{progress.total} prefabs"
        elif self.cache.initialized:
            message = "Cache initialized. Subsequent searches will be instant."
        else:
            message = "Cache not built. First search may take longer."

        return {
            "initialized": self.cache.initialized,
            "building": self.builder.is_active,
            "stale": self._stale,
            "corpus_root": self._corpus_root,
            "progress": progress.to_dict(),
            "skipped": self.builder.skipped_count,
            "message": message,
        }

    def get_statistics(self) -> Dict[str, Any]:
        return self.engine.get_cache_statistics()

    def start_file_watcher(self) -> None:
        """Watch the search path and invalidate the cache on changes."""
        if self._watcher is not None and self._watcher.is_running():
            return
        watch_root = self.project_root / self._corpus_root
        if not watch_root.is_dir():
            logger.warning(f"Cannot watch missing folder: {watch_root}")
            return
        self._watcher = CorpusWatcher(
            watch_root=str(watch_root), user_ignore_patterns=self.config.ignore_patterns
        )
        self._watcher.register_change_callback(self.invalidate_on_change)
        self._watcher.start()

    def stop_file_watcher(self) -> None:
        if self._watcher is not None:
            self._watcher.stop()
            self._watcher = None

    def shutdown(self) -> None:
        """Cancel any active build and stop the watcher."""
        if self.builder.is_active:
            self.builder.cancel()
            self.builder.step()
        self.stop_file_watcher()
        logger.info("ReferenceFinderService shut down")

    def _start_build(self) -> bool:
        if self.builder.is_active:
            logger.warning("Cache build already in progress")
            return False
        self._stale = False
        self._invalidated_during_build = False
        self._log_build_event(BuildEventType.STARTED, self.builder.progress())
        return self.builder.start(self._corpus_root)

    def _on_build_completed(self, progress: BuildProgress) -> None:
        self._log_build_event(BuildEventType.COMPLETED, progress)
        if self.current_target is not None:
            self.last_result = self.engine.query(self.current_target)
        if self._invalidated_during_build:
            self._invalidated_during_build = False
            self.invalidate()

    def _on_build_cancelled(self, progress: BuildProgress) -> None:
        self._log_build_event(BuildEventType.CANCELLED, progress)
        self.last_result = None

    def _log_build_progress(self, progress: BuildProgress) -> None:
        self._log_build_event(BuildEventType.PROGRESS, progress)

    def _log_build_event(self, event: str, progress: BuildProgress) -> None:
        if self._build_logger is None:
            return
        record = BuildEventRecord.from_progress(
            event, self._corpus_root, progress, skipped=self.builder.skipped_count
        )
        log_build_event(self._build_logger, record)
