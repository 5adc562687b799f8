# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Logging for the prefab reference index.

Two outputs share one JSON-lines format:
- the application log (root logger), one file per UTC day
- the build event log (`build_events.jsonl`), one record per build
  lifecycle transition, written through log_build_event()

Console output goes to stderr because stdout carries the MCP stdio
transport.
"""

import json
import logging
import sys
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from prefab_refs.models import BuildProgress

logger = logging.getLogger(__name__)

DEFAULT_LOG_DIR_NAME = ".prefab_refs_logs"
BUILD_LOGGER_NAME = "prefab_refs.builds"
BUILD_EVENTS_FILE_NAME = "build_events.jsonl"

CONSOLE_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


class BuildEventType:
    """Build lifecycle transitions recorded in the build event log.

    Design: Using class constants (not Enum) for JSON-compatible strings.
    """

    STARTED = "build_started"
    PROGRESS = "build_progress"
    COMPLETED = "build_completed"
    CANCELLED = "build_cancelled"


@dataclass
class BuildEventRecord:
    """One line of the build event log."""

    event: str
    corpus_root: str
    completed: int
    total: int
    skipped: int = 0

    @classmethod
    def from_progress(
        cls, event: str, corpus_root: str, progress: BuildProgress, skipped: int = 0
    ) -> "BuildEventRecord":
        return cls(
            event=event,
            corpus_root=corpus_root,
            completed=progress.completed,
            total=progress.total,
            skipped=skipped,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event": self.event,
            "corpus_root": self.corpus_root,
            "completed": self.completed,
            "total": self.total,
            "skipped": self.skipped,
        }


def _utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class StructuredFormatter(logging.Formatter):
    """Renders a log record as one JSON object.

    Records carrying a `build_event` attribute (see log_build_event) have
    the event's fields merged into the object.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": _utc_timestamp(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        build_event = getattr(record, "build_event", None)
        if isinstance(build_event, BuildEventRecord):
            log_data.update(build_event.to_dict())

        return json.dumps(log_data, ensure_ascii=False)


def _resolve_log_dir(log_dir: Optional[Path]) -> Path:
    path = Path(log_dir) if log_dir is not None else Path.cwd() / DEFAULT_LOG_DIR_NAME
    path.mkdir(parents=True, exist_ok=True)
    return path


def _reset_handlers(target: logging.Logger) -> None:
    for handler in list(target.handlers):
        target.removeHandler(handler)
        handler.close()


def _json_file_handler(path: Path, level: int) -> logging.FileHandler:
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(StructuredFormatter())
    return handler


def setup_logging(
    log_dir: Optional[Path] = None,
    log_level: int = logging.INFO,
    console_output: bool = True,
) -> Path:
    """Configure the root logger for the server process.

    Args:
        log_dir: Directory for log files. If None, uses ./.prefab_refs_logs/
        log_level: Logging level (default: INFO)
        console_output: Also log human-readable lines to stderr

    Returns:
        Path of the application log file.
    """
    directory = _resolve_log_dir(log_dir)
    log_file = directory / f"prefab_refs_{datetime.now(timezone.utc):%Y%m%d}.log"

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    _reset_handlers(root_logger)
    root_logger.addHandler(_json_file_handler(log_file, log_level))

    if console_output:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(log_level)
        console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT))
        root_logger.addHandler(console_handler)

    logger.info(f"Logging to {log_file}")
    return log_file


def get_build_logger(log_dir: Optional[Path] = None) -> logging.Logger:
    """Get the logger behind the build event log.

    The logger does not propagate, so build events stay out of the
    application log.
    """
    directory = _resolve_log_dir(log_dir)

    build_logger = logging.getLogger(BUILD_LOGGER_NAME)
    build_logger.setLevel(logging.INFO)
    build_logger.propagate = False
    _reset_handlers(build_logger)
    build_logger.addHandler(_json_file_handler(directory / BUILD_EVENTS_FILE_NAME, logging.INFO))
    return build_logger


def log_build_event(build_logger: logging.Logger, record: BuildEventRecord) -> None:
    """Write one build lifecycle record."""
    build_logger.info(record.event, extra={"build_event": record})
