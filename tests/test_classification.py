# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Tests for extension-based dependency classification."""

import pytest

from prefab_refs.classification import classify, get_extension, group_by_category
from prefab_refs.models import CATEGORY_ORDER, Category


class TestGetExtension:
    """Tests for get_extension."""

    def test_lowercases(self):
        assert get_extension("Assets/Hero.PNG") == ".png"

    def test_last_suffix_wins(self):
        assert get_extension("Assets/archive.tar.gz") == ".gz"

    def test_no_extension(self):
        assert get_extension("Assets/README") == ""

    def test_trailing_dot(self):
        assert get_extension("Assets/weird.") == ""

    def test_dot_in_directory_only(self):
        """Test dots in parent directories are not extensions."""
        assert get_extension("Assets/v1.2/README") == ""

    def test_windows_separators(self):
        assert get_extension("Assets\\Textures\\wood.Tga") == ".tga"


class TestClassify:
    """Tests for classify."""

    @pytest.mark.parametrize(
        "node,expected",
        [
            ("Assets/Enemy.prefab", Category.PREFAB),
            ("Assets/Enemy.PREFAB", Category.PREFAB),
            ("Assets/wood.png", Category.TEXTURE),
            ("Assets/photo.JPG", Category.TEXTURE),
            ("Assets/photo.jpeg", Category.TEXTURE),
            ("Assets/layer.psd", Category.TEXTURE),
            ("Assets/Player.cs", Category.SCRIPT),
            ("Assets/legacy.js", Category.SCRIPT),
            ("Assets/Toon.shader", Category.SCRIPT),
            ("Assets/Game.asmdef", Category.SCRIPT),
            ("Assets/Metal.mat", Category.OTHER),
            ("Assets/Run.anim", Category.OTHER),
            ("Assets/Level.unity", Category.OTHER),
            ("Assets/NoExtension", Category.OTHER),
        ],
    )
    def test_categories(self, node, expected):
        """Test extension-to-category mapping."""
        assert classify(node) == expected

    def test_is_total(self):
        """Test unusual inputs still classify as OTHER."""
        assert classify("") == Category.OTHER
        assert classify(".") == Category.OTHER
        assert classify("Assets/") == Category.OTHER


class TestGroupByCategory:
    """Tests for group_by_category."""

    def test_all_categories_present(self):
        groups = group_by_category([])

        assert list(groups) == list(CATEGORY_ORDER)
        assert all(nodes == [] for nodes in groups.values())

    def test_grouping_preserves_order(self):
        groups = group_by_category(["b.png", "X.prefab", "a.png", "m.mat", "S.cs"])

        assert groups[Category.TEXTURE] == ["b.png", "a.png"]
        assert groups[Category.PREFAB] == ["X.prefab"]
        assert groups[Category.SCRIPT] == ["S.cs"]
        assert groups[Category.OTHER] == ["m.mat"]
