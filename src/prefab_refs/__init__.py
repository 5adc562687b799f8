# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Prefab Reference Index: persistent bidirectional asset dependency cache."""

from .builder import BuildError, BuildEvent, CacheBuilder
from .classification import classify
from .config import Config, ConfigurationError
from .corpus import CorpusEnumerator, FileSystemEnumerator, StaticEnumerator
from .models import (
    CATEGORY_LABELS,
    CATEGORY_ORDER,
    BuildProgress,
    Category,
    GraphCache,
    QueryResult,
    ResolutionFailure,
    StepResult,
)
from .query_api import QueryEngine
from .resolvers import (
    DependencyResolver,
    MappingResolver,
    MetaGuidResolver,
    ResolutionError,
)
from .service import ReferenceFinderService
from .storage import GraphCacheStore, JsonFileStore, LoadResult, LoadStatus

__version__ = "0.1.0"

__all__ = [
    "BuildError",
    "BuildEvent",
    "BuildProgress",
    "CacheBuilder",
    "Category",
    "CATEGORY_LABELS",
    "CATEGORY_ORDER",
    "classify",
    "Config",
    "ConfigurationError",
    "CorpusEnumerator",
    "DependencyResolver",
    "FileSystemEnumerator",
    "GraphCache",
    "GraphCacheStore",
    "JsonFileStore",
    "LoadResult",
    "LoadStatus",
    "MappingResolver",
    "MetaGuidResolver",
    "QueryEngine",
    "QueryResult",
    "ReferenceFinderService",
    "ResolutionError",
    "ResolutionFailure",
    "StaticEnumerator",
    "StepResult",
]

# Conditional import for MCP server (requires Python 3.10+ and mcp package)
try:
    from .mcp_server import PrefabReferenceMCPServer

    __all__.append("PrefabReferenceMCPServer")
except ImportError:
    # MCP package not available (e.g., Python < 3.10 or mcp not installed)
    pass
