# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Cache builder: cooperative, cancellable construction of the graph cache.

The builder is a resumable task. A host drives it by calling step()
repeatedly (from a timer, an editor tick, an asyncio loop, or run() as an
explicit driver loop). Each step processes at most one batch of nodes,
then returns control.

Flow per build:
1. start(root): enumerate nodes (fixes `total`), create a private working cache
2. step(): resolve one batch, add every edge to the working cache
3. between steps: report progress, honour cancel()
4. last step: commit the working cache into the shared cache, mark it
   initialized, persist through the store

Queries made while a build is active read the shared (previously committed)
cache, never the working one. A cancelled build discards the working cache
and resets the shared cache to empty / not initialized.

Per-node resolver failures are logged, recorded in `failures`, and skipped.
"""

import logging
from typing import Callable, Dict, List, Optional

from prefab_refs.corpus import CorpusEnumerator
from prefab_refs.models import BuildProgress, GraphCache, ResolutionFailure, StepResult
from prefab_refs.resolvers import DependencyResolver
from prefab_refs.storage import GraphCacheStore

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 20

# Listener signature: (progress: BuildProgress) -> None
BuildListener = Callable[[BuildProgress], None]


class BuildEvent:
    """Build lifecycle signals.

    Design: Using class constants (not Enum) for JSON-compatible strings.
    """

    PROGRESS = "progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    ALL = (PROGRESS, COMPLETED, CANCELLED)


class BuildError(RuntimeError):
    """Raised when the builder is driven incorrectly (e.g. step() with no build)."""

    pass


class CacheBuilder:
    """Builds a GraphCache from a corpus, one bounded batch at a time.

    At most one build is active per builder; start() while active is
    rejected.

    Usage:
        builder = CacheBuilder(cache, enumerator, resolver, store)
        builder.start("Assets")
        while not builder.step().done:
            ...  # yield to host
    """

    def __init__(
        self,
        cache: GraphCache,
        enumerator: CorpusEnumerator,
        resolver: DependencyResolver,
        store: Optional[GraphCacheStore] = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> None:
        """Initialize builder.

        Args:
            cache: Shared cache that receives the result of a completed build.
            enumerator: Source of candidate nodes.
            resolver: Per-node dependency resolver.
            store: Persistence backend. If None, completed builds are not saved.
            batch_size: Default number of nodes processed per step.
        """
        if batch_size <= 0:
            raise ValueError(f"batch_size must be positive: {batch_size}")

        self.cache = cache
        self.enumerator = enumerator
        self.resolver = resolver
        self.store = store
        self.batch_size = batch_size

        self._nodes: List[str] = []
        self._index = 0
        self._working: Optional[GraphCache] = None
        self._active = False
        self._cancel_requested = False

        # Recoverable-error channel for the current/last build
        self.failures: List[ResolutionFailure] = []
        self.last_save_ok: Optional[bool] = None

        self._listeners: Dict[str, List[BuildListener]] = {event: [] for event in BuildEvent.ALL}

    @property
    def is_active(self) -> bool:
        """Whether a build is in progress."""
        return self._active

    @property
    def skipped_count(self) -> int:
        """Number of nodes skipped because their resolver call failed."""
        return len(self.failures)

    def add_listener(self, event: str, callback: BuildListener) -> None:
        """Register a callback for a build lifecycle event.

        Args:
            event: One of BuildEvent.PROGRESS, COMPLETED, CANCELLED.
            callback: Called with the BuildProgress at the time of the event.

        Raises:
            ValueError: If event is unknown.
        """
        if event not in self._listeners:
            raise ValueError(f"Unknown build event: {event}")
        if callback not in self._listeners[event]:
            self._listeners[event].append(callback)

    def remove_listener(self, event: str, callback: BuildListener) -> None:
        if event in self._listeners and callback in self._listeners[event]:
            self._listeners[event].remove(callback)

    def _notify(self, event: str) -> None:
        progress = self.progress()
        for callback in list(self._listeners[event]):
            try:
                callback(progress)
            except Exception as e:
                # One listener failure must not abort the build
                logger.error(f"Build listener for '{event}' failed: {e}")

    def progress(self) -> BuildProgress:
        """Current (or last) build progress as (completed, total)."""
        return BuildProgress(completed=self._index, total=len(self._nodes))

    def start(self, corpus_root: str) -> bool:
        """Begin a build over the nodes under `corpus_root`.

        An empty corpus completes immediately with an empty, initialized
        cache.

        Args:
            corpus_root: Search root passed to the enumerator.

        Returns:
            True if a build was started (or completed immediately), False if
            rejected because a build is already active.
        """
        if self._active:
            logger.warning("Cache build already in progress, ignoring start request")
            return False

        self.resolver.refresh()
        self._nodes = list(self.enumerator.list_nodes(corpus_root))
        self._index = 0
        self._working = GraphCache()
        self._cancel_requested = False
        self._active = True
        self.failures = []
        self.last_save_ok = None

        logger.info(f"Building cache for {len(self._nodes)} nodes under {corpus_root}")

        if not self._nodes:
            self._finish()
        return True

    def cancel(self) -> None:
        """Request cancellation; honoured at the next batch boundary."""
        if self._active:
            self._cancel_requested = True
            logger.debug("Cache build cancellation requested")

    def step(self, batch_size: Optional[int] = None) -> StepResult:
        """Process one batch of nodes.

        Args:
            batch_size: Nodes to process in this step. Defaults to the
                builder's batch size.

        Returns:
            StepResult; `done` is True once the build completed or was cancelled.

        Raises:
            BuildError: If no build is active.
            ValueError: If batch_size is not positive.
        """
        if not self._active:
            raise BuildError("No cache build is active")

        size = self.batch_size if batch_size is None else batch_size
        if size <= 0:
            raise ValueError(f"batch_size must be positive: {size}")

        if self._cancel_requested:
            return self._abort()

        end = min(self._index + size, len(self._nodes))
        for node in self._nodes[self._index : end]:
            self._process_node(node)
        self._index = end

        if self._index >= len(self._nodes):
            self._finish()
            return StepResult(done=True, completed=self._index, total=len(self._nodes))

        self._notify(BuildEvent.PROGRESS)
        return StepResult(done=False, completed=self._index, total=len(self._nodes))

    def run(self, batch_size: Optional[int] = None) -> StepResult:
        """Drive the active build to completion (or cancellation).

        Returns:
            The final StepResult.
        """
        if not self._active:
            raise BuildError("No cache build is active")

        result = self.step(batch_size)
        while not result.done:
            result = self.step(batch_size)
        return result

    def _process_node(self, node: str) -> None:
        """Resolve one node and record its edges in the working cache.

        Edges are collected before any mutation so a failing resolver leaves
        no trace of the node in either map.
        """
        assert self._working is not None
        try:
            dependencies = list(self.resolver.resolve(node))
        except Exception as e:
            logger.error(f"Failed to process node: {node}\n{e}")
            self.failures.append(ResolutionFailure(node=node, error=str(e)))
            return

        self._working.record_node(node)
        for dependency in dependencies:
            if not dependency:
                continue
            self._working.add_edge(node, dependency)

    def _finish(self) -> None:
        assert self._working is not None
        self._working.initialized = True
        self.cache.replace_with(self._working)
        self._working = None
        self._active = False

        if self.failures:
            logger.warning(f"Cache built with {len(self.failures)} skipped nodes")

        if self.store is not None:
            self.last_save_ok = self.store.save(self.cache)

        logger.info(f"Cache build completed: {len(self._nodes)} nodes processed")
        self._notify(BuildEvent.COMPLETED)

    def _abort(self) -> StepResult:
        self._working = None
        self.cache.clear()
        self._active = False
        self._cancel_requested = False

        logger.info("Cache building cancelled")
        self._notify(BuildEvent.CANCELLED)
        return StepResult(
            done=True, completed=self._index, total=len(self._nodes), cancelled=True
        )
