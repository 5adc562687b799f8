# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Shared fixtures for integration tests.

Provides a small Unity-style project on disk: text-serialized prefabs that
reference other assets by GUID, with a `.meta` sidecar next to every asset.
"""

from pathlib import Path
from typing import Dict

import pytest

GUIDS: Dict[str, str] = {
    "Assets/Characters/Hero.prefab": "a0000000000000000000000000000001",
    "Assets/Weapons/Sword.prefab": "a0000000000000000000000000000002",
    "Assets/Enemies/Goblin.prefab": "a0000000000000000000000000000003",
    "Assets/Broken.prefab": "a0000000000000000000000000000004",
    "Assets/Textures/hero.png": "b0000000000000000000000000000001",
    "Assets/Textures/Metal.PNG": "b0000000000000000000000000000002",
    "Assets/Materials/shared.mat": "c0000000000000000000000000000001",
    "Assets/Scripts/HeroController.cs": "d0000000000000000000000000000001",
    "Library/Cached.prefab": "e0000000000000000000000000000001",
}


def prefab_content(*references: str) -> str:
    """Render a minimal serialized prefab referencing the given assets."""
    lines = ["%YAML 1.1", "--- !u!1 &100000", "GameObject:", "  m_Name: Root"]
    for index, reference in enumerate(references):
        lines.append(f"  m_Ref{index}: {{fileID: 2800000, guid: {GUIDS[reference]}, type: 3}}")
    return "\n".join(lines) + "\n"


def write_asset(project_root: Path, rel_path: str, content: bytes) -> None:
    path = project_root / rel_path
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(content)
    meta = path.with_name(path.name + ".meta")
    meta.write_text(f"fileFormatVersion: 2\nguid: {GUIDS[rel_path]}\n", encoding="utf-8")


@pytest.fixture
def unity_project(tmp_path: Path) -> Path:
    """Create a representative Unity-style project.

    Reference structure:
    - Hero.prefab -> Sword.prefab, hero.png, shared.mat, HeroController.cs
    - Sword.prefab -> Metal.PNG, shared.mat
    - Goblin.prefab -> Sword.prefab, shared.mat
    - Broken.prefab is not valid UTF-8 (cannot be resolved)
    - Library/Cached.prefab lives in an ignored directory

    Returns:
        Path to the project root directory
    """
    project_root = tmp_path / "GameProject"
    project_root.mkdir()

    write_asset(project_root, "Assets/Textures/hero.png", b"\x89PNG\r\n")
    write_asset(project_root, "Assets/Textures/Metal.PNG", b"\x89PNG\r\n")
    write_asset(project_root, "Assets/Materials/shared.mat", b"Material:\n")
    write_asset(project_root, "Assets/Scripts/HeroController.cs", b"public class Hero {}\n")

    write_asset(
        project_root,
        "Assets/Characters/Hero.prefab",
        prefab_content(
            "Assets/Weapons/Sword.prefab",
            "Assets/Textures/hero.png",
            "Assets/Materials/shared.mat",
            "Assets/Scripts/HeroController.cs",
        ).encode("utf-8"),
    )
    write_asset(
        project_root,
        "Assets/Weapons/Sword.prefab",
        prefab_content("Assets/Textures/Metal.PNG", "Assets/Materials/shared.mat").encode(
            "utf-8"
        ),
    )
    write_asset(
        project_root,
        "Assets/Enemies/Goblin.prefab",
        prefab_content("Assets/Weapons/Sword.prefab", "Assets/Materials/shared.mat").encode(
            "utf-8"
        ),
    )
    write_asset(project_root, "Assets/Broken.prefab", b"\xff\xfe\xfa broken")
    write_asset(
        project_root,
        "Library/Cached.prefab",
        prefab_content("Assets/Weapons/Sword.prefab").encode("utf-8"),
    )

    return project_root
