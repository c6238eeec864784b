"""Tests for ResultStore: latest-by-timestamp index, acknowledgment, subscriptions."""

from __future__ import annotations

import threading
from unittest.mock import patch

import pytest

from scout.results import ChangeKind, ResultStore, ResultStoreRegistry


@pytest.fixture()
def store() -> ResultStore:
    return ResultStore("sess_1")


class TestLatestIndex:
    def test_newer_timestamp_wins_in_order(self, store):
        store.add_result("a", "x", {"n": 1}, timestamp=50)
        store.add_result("b", "x", {"n": 2}, timestamp=100)
        assert store.get_latest_result("x").id == "b"

    def test_newer_timestamp_wins_out_of_order(self, store):
        store.add_result("b", "x", {"n": 2}, timestamp=100)
        store.add_result("a", "x", {"n": 1}, timestamp=50)
        assert store.get_latest_result("x").id == "b"
        # history is kept regardless
        assert {r.id for r in store.get_results_for_tool("x")} == {"a", "b"}

    def test_equal_timestamps_later_insertion_wins(self, store):
        store.add_result("a", "x", {}, timestamp=100)
        store.add_result("b", "x", {}, timestamp=100)
        assert store.get_latest_result("x").id == "b"

    def test_tools_are_independent(self, store):
        store.add_result("a", "x", {}, timestamp=100)
        store.add_result("b", "y", {}, timestamp=10)
        assert store.get_latest_result("x").id == "a"
        assert store.get_latest_result("y").id == "b"
        assert set(store.latest_results()) == {"x", "y"}

    def test_unknown_tool_is_none(self, store):
        assert store.get_latest_result("missing") is None

    def test_timestamp_defaults_to_now(self, store):
        result = store.add_result("a", "x", {})
        assert result is not None
        assert result.timestamp > 0
        assert result.acknowledged is False

    def test_duplicate_id_ignored(self, store):
        store.add_result("a", "x", {"v": 1}, timestamp=10)
        assert store.add_result("a", "x", {"v": 2}, timestamp=20) is None
        assert store.get_result("a").payload == {"v": 1}
        assert len(store) == 1


class TestAcknowledgment:
    def test_acknowledge_sets_flag_everywhere(self, store):
        store.add_result("a", "x", {}, timestamp=10)
        store.acknowledge_result("a")
        assert store.get_result("a").acknowledged is True
        assert store.get_latest_result("x").acknowledged is True

    def test_acknowledge_is_monotonic(self, store):
        store.add_result("a", "x", {}, timestamp=10)
        store.acknowledge_result("a")
        store.acknowledge_result("a")
        assert store.get_result("a").acknowledged is True

    def test_acknowledging_older_result_leaves_latest_untouched(self, store):
        store.add_result("a", "x", {}, timestamp=10)
        store.add_result("b", "x", {}, timestamp=20)
        store.acknowledge_result("a")
        assert store.get_result("a").acknowledged is True
        assert store.get_latest_result("x").id == "b"
        assert store.get_latest_result("x").acknowledged is False

    def test_unknown_id_is_noop(self, store):
        store.acknowledge_result("missing")
        assert store.get_result("missing") is None

    def test_unacknowledged_view(self, store):
        store.add_result("a", "x", {}, timestamp=10)
        store.add_result("b", "y", {}, timestamp=30)
        store.add_result("c", "x", {}, timestamp=20)
        store.acknowledge_result("c")
        assert [r.id for r in store.get_unacknowledged_results()] == ["b", "a"]


class TestClearAndViews:
    def test_clear(self, store):
        store.add_result("a", "x", {}, timestamp=10)
        store.clear_results()
        assert len(store) == 0
        assert store.get_latest_result("x") is None
        assert store.get_unacknowledged_results() == []

    def test_all_results_newest_first(self, store):
        store.add_result("a", "x", {}, timestamp=30)
        store.add_result("b", "y", {}, timestamp=10)
        store.add_result("c", "z", {}, timestamp=20)
        assert [r.id for r in store.all_results()] == ["a", "c", "b"]

    def test_to_dict(self, store):
        result = store.add_result("a", "x", {"k": "v"}, timestamp=5)
        assert result.to_dict() == {
            "id": "a",
            "tool_id": "x",
            "payload": {"k": "v"},
            "timestamp": 5,
            "acknowledged": False,
        }


class TestSubscriptions:
    def test_listener_sees_every_mutation(self, store):
        seen = []
        store.subscribe(lambda change: seen.append(change))
        store.add_result("a", "x", {}, timestamp=1)
        store.acknowledge_result("a")
        store.clear_results()
        assert [c.kind for c in seen] == [
            ChangeKind.added,
            ChangeKind.acknowledged,
            ChangeKind.cleared,
        ]
        assert seen[1].result.acknowledged is True
        assert seen[2].result is None

    def test_late_subscriber_reads_snapshot(self, store):
        store.add_result("a", "x", {"early": True}, timestamp=1)
        seen = []
        store.subscribe(seen.append)
        assert store.get_latest_result("x").payload == {"early": True}
        assert seen == []

    def test_unsubscribe(self, store):
        seen = []
        unsubscribe = store.subscribe(seen.append)
        unsubscribe()
        unsubscribe()
        store.add_result("a", "x", {}, timestamp=1)
        assert seen == []

    def test_listener_error_does_not_propagate(self, store):
        seen = []

        def _broken(change):
            raise RuntimeError("listener bug")

        store.subscribe(_broken)
        store.subscribe(seen.append)
        assert store.add_result("a", "x", {}, timestamp=1) is not None
        assert len(seen) == 1


def test_concurrent_writers_keep_greatest_timestamp():
    store = ResultStore()
    barrier = threading.Barrier(4)

    def _writer(offset: int) -> None:
        barrier.wait()
        for i in range(250):
            ts = i * 4 + offset
            store.add_result(f"r{ts}", "x", {"ts": ts}, timestamp=ts)

    threads = [threading.Thread(target=_writer, args=(n,)) for n in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(store) == 1000
    assert store.get_latest_result("x").timestamp == 999


class TestResultStoreRegistry:
    def test_get_or_create_is_stable(self):
        stores = ResultStoreRegistry()
        first = stores.get_or_create("s1")
        assert stores.get_or_create("s1") is first
        assert stores.get("s2") is None
        assert "s1" in stores
        assert len(stores) == 1

    def test_sessions_are_isolated(self):
        stores = ResultStoreRegistry()
        stores.get_or_create("s1").add_result("a", "x", {}, timestamp=1)
        assert stores.get_or_create("s2").get_latest_result("x") is None

    def test_clear_keeps_store(self):
        stores = ResultStoreRegistry()
        store = stores.get_or_create("s1")
        store.add_result("a", "x", {}, timestamp=1)
        stores.clear("s1")
        assert len(store) == 0
        assert stores.get("s1") is store
        stores.clear("unknown")

    def test_release(self):
        stores = ResultStoreRegistry()
        stores.get_or_create("s1")
        assert stores.release("s1") is True
        assert stores.get("s1") is None
        assert stores.release("s1") is False

    def test_release_refused_while_subscribed(self):
        stores = ResultStoreRegistry()
        unsubscribe = stores.get_or_create("s1").subscribe(lambda change: None)
        assert stores.release("s1") is False
        assert "s1" in stores
        unsubscribe()
        assert stores.release("s1") is True

    def test_release_only_if_empty(self):
        stores = ResultStoreRegistry()
        stores.get_or_create("s1").add_result("a", "x", {}, timestamp=1)
        stores.get_or_create("s2")
        assert stores.release("s1", only_if_empty=True) is False
        assert stores.release("s2", only_if_empty=True) is True
        assert "s1" in stores
        assert "s2" not in stores

    def test_idle_stores_evicted_on_create(self):
        clock = [1000.0]
        with patch("scout.results.store.time.monotonic", side_effect=lambda: clock[0]):
            stores = ResultStoreRegistry(idle_seconds=60)
            stores.get_or_create("old").add_result("a", "x", {}, timestamp=1)
            unsubscribe = stores.get_or_create("watched").subscribe(lambda change: None)
            clock[0] += 30
            stores.get_or_create("recent")

            clock[0] += 45
            stores.get_or_create("new")
            # "old" idled 75s; "recent" only 45s; "watched" has a subscriber
            assert "old" not in stores
            assert len(stores) == 3

            unsubscribe()
            clock[0] += 60
            assert sorted(stores.evict_idle()) == ["new", "recent", "watched"]
            assert len(stores) == 0

    def test_no_eviction_without_idle_limit(self):
        stores = ResultStoreRegistry()
        stores.get_or_create("s1")
        assert stores.evict_idle() == []
        assert "s1" in stores
