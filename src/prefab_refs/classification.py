# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Dependency classification by file extension.

Maps a node's suffix (case-insensitive) to one of the fixed categories in
models.Category. classify() is pure and total: unknown or missing
extensions map to Category.OTHER.
"""

import posixpath
from typing import Dict, FrozenSet, List

from prefab_refs.models import CATEGORY_ORDER, Category

PREFAB_EXTENSIONS: FrozenSet[str] = frozenset({".prefab"})

TEXTURE_EXTENSIONS: FrozenSet[str] = frozenset(
    {".png", ".jpg", ".jpeg", ".tga", ".tif", ".tiff", ".gif", ".bmp", ".psd", ".exr", ".hdr"}
)

SCRIPT_EXTENSIONS: FrozenSet[str] = frozenset(
    {".cs", ".js", ".shader", ".asmdef", ".cginc", ".hlsl", ".glslinc", ".template"}
)


def get_extension(node: str) -> str:
    """Get the lowercased extension of a node identifier.

    Backslashes are treated as separators so Windows-style paths classify
    the same as POSIX ones.

    Args:
        node: Node identifier (asset path).

    Returns:
        Extension including the leading dot (e.g. ".png"), or "" if none.
    """
    name = posixpath.basename(node.replace("\\", "/"))
    dot = name.rfind(".")
    # Dot-only names such as ".png" still carry an extension
    if dot == -1 or dot == len(name) - 1:
        return ""
    return name[dot:].lower()


def classify(node: str) -> str:
    """Classify a dependency node into a Category.

    Args:
        node: Node identifier (asset path).

    Returns:
        One of Category.PREFAB, TEXTURE, SCRIPT or OTHER.
    """
    extension = get_extension(node)
    if extension in PREFAB_EXTENSIONS:
        return Category.PREFAB
    if extension in TEXTURE_EXTENSIONS:
        return Category.TEXTURE
    if extension in SCRIPT_EXTENSIONS:
        return Category.SCRIPT
    return Category.OTHER


def group_by_category(nodes) -> Dict[str, List[str]]:
    """Bucket nodes by category, preserving iteration order within buckets.

    Every category in CATEGORY_ORDER is present in the result.
    """
    groups: Dict[str, List[str]] = {category: [] for category in CATEGORY_ORDER}
    for node in nodes:
        groups[classify(node)].append(node)
    return groups
