# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Corpus watcher: signals when the asset corpus changes on disk.

Any create/modify/delete/move of a non-ignored file under the watched root
invalidates the graph cache (full rebuild is the only refresh path; no
per-node re-indexing is attempted).

Thread Safety:
- Watchdog delivers events on its observer thread
- Callbacks only flip flags / record timestamps; they must not touch the
  graph cache maps
"""

import fnmatch
import logging
import time
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Iterable, List, Optional, Set

from watchdog.events import FileMovedEvent, FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

if TYPE_CHECKING:
    from watchdog.observers.api import BaseObserver

logger = logging.getLogger(__name__)

# Callback signature: (filepath: str) -> None
ChangeCallback = Callable[[str], None]


class CorpusWatcher:
    """Watches a corpus directory and notifies on changes.

    Usage:
        watcher = CorpusWatcher(watch_root="/path/to/project/Assets")
        watcher.register_change_callback(service.invalidate_on_change)
        watcher.start()
        ...
        watcher.stop()
    """

    # Editor scratch directories and swap files
    ALWAYS_IGNORED = {
        ".git",
        "Library",
        "Temp",
        "Logs",
        "*.tmp",
        "*~",
        ".DS_Store",
    }

    def __init__(
        self,
        watch_root: str,
        user_ignore_patterns: Optional[Iterable[str]] = None,
    ):
        """Initialize CorpusWatcher.

        Args:
            watch_root: Directory to watch recursively.
            user_ignore_patterns: Additional glob patterns to ignore.
        """
        self.watch_root = Path(watch_root).resolve()
        self.user_ignore_patterns: Set[str] = set(user_ignore_patterns or [])
        self.last_change_time: Optional[float] = None

        self._change_callbacks: List[ChangeCallback] = []
        self._observer: Optional["BaseObserver"] = None
        self._event_handler = _CorpusEventHandler(self)

        logger.info(f"CorpusWatcher initialized for {self.watch_root}")

    def should_ignore(self, file_path: str) -> bool:
        """Check if a changed path should be ignored.

        Args:
            file_path: Absolute or relative file path

        Returns:
            True if the change is irrelevant to the cache
        """
        path = Path(file_path)
        try:
            rel_path = path.relative_to(self.watch_root)
        except ValueError:
            rel_path = path
        rel_path_str = rel_path.as_posix()

        for pattern in self.ALWAYS_IGNORED | self.user_ignore_patterns:
            if fnmatch.fnmatch(rel_path_str, pattern) or fnmatch.fnmatch(path.name, pattern):
                return True
            if any(fnmatch.fnmatch(part, pattern) for part in rel_path.parts):
                return True
        return False

    def register_change_callback(self, callback: ChangeCallback) -> None:
        """Register a callback invoked with the changed path."""
        if callback not in self._change_callbacks:
            self._change_callbacks.append(callback)
            logger.debug(f"Registered change callback: {callback}")

    def unregister_change_callback(self, callback: ChangeCallback) -> None:
        if callback in self._change_callbacks:
            self._change_callbacks.remove(callback)
            logger.debug(f"Unregistered change callback: {callback}")

    def notify_change(self, file_path: str) -> None:
        """Record a change and notify callbacks.

        Args:
            file_path: Path of the changed file.
        """
        if self.should_ignore(file_path):
            return

        self.last_change_time = time.time()
        for callback in list(self._change_callbacks):
            try:
                callback(file_path)
            except Exception as e:
                # One callback failure shouldn't prevent others from being notified
                logger.error(f"Change callback failed for {file_path}: {e}")

    def start(self) -> None:
        """Start watching.

        Raises:
            RuntimeError: If watcher is already running
        """
        if self._observer is not None and self._observer.is_alive():
            raise RuntimeError("CorpusWatcher is already running")

        self._observer = Observer()
        self._observer.schedule(  # type: ignore  # watchdog types vary by version
            self._event_handler, str(self.watch_root), recursive=True
        )
        self._observer.start()  # type: ignore  # watchdog types vary by version

        logger.info(f"CorpusWatcher started, monitoring {self.watch_root}")

    def stop(self) -> None:
        """Stop watching, waiting for the observer thread (with timeout)."""
        if self._observer is not None and self._observer.is_alive():
            self._observer.stop()  # type: ignore  # watchdog types vary by version
            self._observer.join(timeout=5.0)
            logger.info("CorpusWatcher stopped")

    def is_running(self) -> bool:
        return self._observer is not None and self._observer.is_alive()


class _CorpusEventHandler(FileSystemEventHandler):
    """Internal event handler for watchdog.

    Delegates to CorpusWatcher for filtering and notification.
    """

    def __init__(self, watcher: CorpusWatcher):
        super().__init__()
        self.watcher = watcher

    def _handle_event(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        self.watcher.notify_change(str(event.src_path))
        logger.debug(f"Event: {event.event_type} - {event.src_path}")

    def on_created(self, event: FileSystemEvent) -> None:
        self._handle_event(event)

    def on_modified(self, event: FileSystemEvent) -> None:
        self._handle_event(event)

    def on_deleted(self, event: FileSystemEvent) -> None:
        self._handle_event(event)

    def on_moved(self, event: FileSystemEvent) -> None:
        """Treated as delete (old path) + create (new path)."""
        if event.is_directory or not isinstance(event, FileMovedEvent):
            return
        self.watcher.notify_change(str(event.src_path))
        self.watcher.notify_change(str(event.dest_path))
