# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Tests for the cooperative cache builder.

Tests cover:
- Building the bidirectional cache from an enumerator and a resolver
- Batching and progress reporting
- Per-node resolver failures (logged and skipped)
- Cancellation and re-entrancy rules
- Commit-on-completion and persistence
"""

import pytest

from prefab_refs.builder import BuildError, BuildEvent, CacheBuilder
from prefab_refs.corpus import StaticEnumerator
from prefab_refs.models import GraphCache
from prefab_refs.resolvers import MappingResolver
from prefab_refs.storage import JsonFileStore, LoadStatus


def make_builder(nodes, dependencies, failing=None, store=None, batch_size=20):
    cache = GraphCache()
    builder = CacheBuilder(
        cache=cache,
        enumerator=StaticEnumerator(nodes),
        resolver=MappingResolver(dependencies, failing=failing),
        store=store,
        batch_size=batch_size,
    )
    return cache, builder


class TestCacheBuilderBasics:
    """Tests for building a small corpus."""

    def test_three_node_corpus(self):
        """Test X -> {Y, tex.png}, Z -> {Y} yields both indices."""
        cache, builder = make_builder(
            ["X.prefab", "Y.prefab", "Z.prefab"],
            {"X.prefab": ["Y.prefab", "tex.png"], "Z.prefab": ["Y.prefab"]},
        )

        assert builder.start("") is True
        result = builder.run()

        assert result.done is True
        assert result.cancelled is False
        assert cache.initialized is True
        assert cache.get_dependents("Y.prefab") == ["X.prefab", "Z.prefab"]
        assert cache.get_dependents("tex.png") == ["X.prefab"]
        assert cache.get_dependencies("X.prefab") == {"Y.prefab", "tex.png"}
        assert cache.get_dependencies("Y.prefab") == set()
        assert cache.has_node("Y.prefab")
        is_valid, errors = cache.validate_graph()
        assert is_valid, errors

    def test_nodes_processed_in_enumeration_order(self):
        cache, builder = make_builder(["B.prefab", "A.prefab"], {})
        builder.start("")
        builder.run()

        assert builder.resolver.calls == ["B.prefab", "A.prefab"]

    def test_empty_dependencies_skipped(self):
        """Test empty identifiers from the resolver add no edge."""
        cache, builder = make_builder(["X.prefab"], {"X.prefab": ["", "a.png"]})
        builder.start("")
        builder.run()

        assert cache.get_dependencies("X.prefab") == {"a.png"}
        assert "" not in cache.reverse_map()

    def test_duplicate_dependencies_collapse(self):
        cache, builder = make_builder(["X.prefab"], {"X.prefab": ["a.png", "a.png"]})
        builder.start("")
        builder.run()

        assert cache.get_dependents("a.png") == ["X.prefab"]

    def test_corpus_root_filters_nodes(self):
        cache, builder = make_builder(
            ["Assets/A.prefab", "Other/B.prefab"],
            {"Assets/A.prefab": ["a.png"], "Other/B.prefab": ["b.png"]},
        )
        builder.start("Assets")
        builder.run()

        assert cache.get_dependents("a.png") == ["Assets/A.prefab"]
        assert cache.get_dependents("b.png") == []

    def test_empty_corpus_completes_immediately(self):
        """Test an empty corpus yields an initialized, empty cache."""
        cache, builder = make_builder([], {})
        completed = []
        builder.add_listener(BuildEvent.COMPLETED, completed.append)

        assert builder.start("") is True

        assert builder.is_active is False
        assert cache.initialized is True
        assert cache.forward_map() == {}
        assert len(completed) == 1
        assert completed[0].total == 0

    def test_invalid_batch_size(self):
        with pytest.raises(ValueError):
            make_builder([], {}, batch_size=0)


class TestCacheBuilderBatching:
    """Tests for bounded, resumable steps."""

    def test_steps_process_one_batch(self):
        """Test 45 nodes take three steps of at most 20."""
        nodes = [f"N{i:02d}.prefab" for i in range(45)]
        cache, builder = make_builder(nodes, {})
        builder.start("")

        first = builder.step()
        assert (first.done, first.completed, first.total) == (False, 20, 45)
        second = builder.step()
        assert (second.done, second.completed) == (False, 40)
        third = builder.step()
        assert (third.done, third.completed) == (True, 45)
        assert cache.initialized is True

    def test_step_batch_size_override(self):
        cache, builder = make_builder(["A.prefab", "B.prefab", "C.prefab"], {})
        builder.start("")

        result = builder.step(batch_size=1)

        assert result.completed == 1
        assert len(builder.resolver.calls) == 1

    def test_step_rejects_non_positive_batch(self):
        cache, builder = make_builder(["A.prefab"], {})
        builder.start("")

        with pytest.raises(ValueError):
            builder.step(batch_size=0)

    def test_progress_is_monotonic(self):
        """Test PROGRESS listeners see non-decreasing completed counts."""
        nodes = [f"N{i:02d}.prefab" for i in range(50)]
        cache, builder = make_builder(nodes, {}, batch_size=7)
        seen = []
        builder.add_listener(BuildEvent.PROGRESS, lambda p: seen.append(p.completed))

        builder.start("")
        builder.run()

        assert seen == sorted(seen)
        assert all(0 < count < 50 for count in seen)
        assert builder.progress().completed == 50

    def test_queries_see_previous_cache_until_commit(self):
        """Test a running build does not expose partial results."""
        nodes = [f"N{i:02d}.prefab" for i in range(30)]
        cache, builder = make_builder(nodes, {node: ["shared.png"] for node in nodes})
        cache.add_edge("Old.prefab", "old.png")
        cache.initialized = True

        builder.start("")
        builder.step()

        assert cache.get_dependents("old.png") == ["Old.prefab"]
        assert cache.get_dependents("shared.png") == []

        builder.run()

        assert cache.get_dependents("old.png") == []
        assert len(cache.get_dependents("shared.png")) == 30

    def test_step_without_build_raises(self):
        cache, builder = make_builder(["A.prefab"], {})

        with pytest.raises(BuildError):
            builder.step()
        with pytest.raises(BuildError):
            builder.run()


class TestCacheBuilderFailures:
    """Tests for per-node resolver failures."""

    def test_failing_node_is_skipped(self):
        """Test one failing node out of twenty leaves nineteen indexed."""
        nodes = [f"N{i:02d}.prefab" for i in range(20)]
        dependencies = {node: ["shared.mat"] for node in nodes}
        cache, builder = make_builder(nodes, dependencies, failing=["N07.prefab"])

        builder.start("")
        result = builder.run()

        assert result.done is True
        assert cache.initialized is True
        dependents = cache.get_dependents("shared.mat")
        assert len(dependents) == 19
        assert "N07.prefab" not in dependents
        assert not cache.has_node("N07.prefab")
        assert builder.skipped_count == 1
        assert builder.failures[0].node == "N07.prefab"

    def test_failures_reset_on_next_build(self):
        cache, builder = make_builder(["A.prefab"], {}, failing=["A.prefab"])
        builder.start("")
        builder.run()
        assert builder.skipped_count == 1

        builder.resolver._failing.clear()
        builder.start("")
        builder.run()

        assert builder.skipped_count == 0


class TestCacheBuilderCancellation:
    """Tests for cancellation and re-entrancy."""

    def test_cancel_leaves_no_cache(self):
        """Test cancel discards partial results and clears the cache."""
        nodes = [f"N{i:02d}.prefab" for i in range(60)]
        cache, builder = make_builder(nodes, {node: ["a.png"] for node in nodes})
        cache.add_edge("Old.prefab", "old.png")
        cache.initialized = True
        cancelled = []
        builder.add_listener(BuildEvent.CANCELLED, cancelled.append)

        builder.start("")
        builder.step()
        builder.cancel()
        result = builder.step()

        assert result.done is True
        assert result.cancelled is True
        assert builder.is_active is False
        assert cache.initialized is False
        assert cache.forward_map() == {}
        assert cache.reverse_map() == {}
        assert len(cancelled) == 1

    def test_cancel_does_not_persist(self, tmp_path):
        store = JsonFileStore(tmp_path / "cache.json")
        nodes = [f"N{i:02d}.prefab" for i in range(30)]
        cache, builder = make_builder(nodes, {}, store=store)

        builder.start("")
        builder.cancel()
        builder.step()

        assert store.load().status == LoadStatus.NOT_FOUND

    def test_cancel_when_idle_is_noop(self):
        cache, builder = make_builder(["A.prefab"], {})
        builder.cancel()

        assert builder.start("") is True
        assert builder.run().cancelled is False

    def test_start_while_active_is_rejected(self):
        """Test a second start does not restart the active build."""
        nodes = [f"N{i:02d}.prefab" for i in range(30)]
        cache, builder = make_builder(nodes, {})

        assert builder.start("") is True
        builder.step()

        assert builder.start("") is False
        assert builder.progress().completed == 20

    def test_restart_after_completion(self):
        cache, builder = make_builder(["A.prefab"], {"A.prefab": ["a.png"]})
        builder.start("")
        builder.run()

        assert builder.start("") is True
        builder.run()

        assert cache.get_dependents("a.png") == ["A.prefab"]


class TestCacheBuilderPersistence:
    """Tests for saving on completion."""

    def test_completed_build_is_saved(self, tmp_path):
        store = JsonFileStore(tmp_path / "cache.json")
        cache, builder = make_builder(
            ["X.prefab", "Z.prefab"],
            {"X.prefab": ["Y.prefab"], "Z.prefab": ["Y.prefab"]},
            store=store,
        )

        builder.start("")
        builder.run()

        assert builder.last_save_ok is True
        loaded = store.load()
        assert loaded.ok
        assert loaded.cache.get_dependents("Y.prefab") == ["X.prefab", "Z.prefab"]

    def test_save_failure_keeps_cache(self, tmp_path):
        """Test a failed save leaves the in-memory cache usable."""
        target = tmp_path / "cache.json"
        target.mkdir()
        cache, builder = make_builder(
            ["X.prefab"], {"X.prefab": ["a.png"]}, store=JsonFileStore(target)
        )

        builder.start("")
        builder.run()

        assert builder.last_save_ok is False
        assert cache.initialized is True
        assert cache.get_dependents("a.png") == ["X.prefab"]


class TestBuildListeners:
    """Tests for listener registration."""

    def test_unknown_event(self):
        cache, builder = make_builder([], {})

        with pytest.raises(ValueError):
            builder.add_listener("finished", lambda p: None)

    def test_failing_listener_does_not_abort_build(self):
        cache, builder = make_builder(["A.prefab"], {"A.prefab": ["a.png"]})

        def boom(progress):
            raise RuntimeError("listener failed")

        builder.add_listener(BuildEvent.COMPLETED, boom)
        builder.start("")
        builder.run()

        assert cache.initialized is True

    def test_remove_listener(self):
        cache, builder = make_builder(["A.prefab"], {})
        completed = []
        builder.add_listener(BuildEvent.COMPLETED, completed.append)
        builder.remove_listener(BuildEvent.COMPLETED, completed.append)

        builder.start("")
        builder.run()

        assert completed == []
