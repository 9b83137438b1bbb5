"""
Entry store tests: LRU ordering, capacity, eviction reporting.

Run with: pytest tests/test_memokit_store.py -v
"""

import random
from collections import OrderedDict

import pytest

from memokit.errors import ConfigurationError
from memokit.store import CacheEntry, EntryStore


def _e(value):
    return CacheEntry(value=value)


class TestEntryStoreBasics:

    def test_round_trip(self):
        store = EntryStore(capacity=4)
        entry = _e("v")
        store.set("k", entry)
        assert store.get("k") is entry
        assert store.get("k").value == "v"
        assert store.get("k").value == "v"

    def test_missing_key(self):
        store = EntryStore(capacity=4)
        assert store.get("nope") is None
        assert store.has("nope") is False
        assert store.delete("nope") is False

    def test_delete_and_clear(self):
        store = EntryStore(capacity=4)
        store.set("a", _e(1))
        store.set("b", _e(2))
        assert store.delete("a") is True
        assert "a" not in store
        store.clear()
        assert len(store) == 0

    def test_repr_shows_fill_and_contents(self):
        store = EntryStore(capacity=3)
        assert repr(store) == "EntryStore(0/3) {}"
        store.set("a", _e(1))
        store.set("b", _e(2))
        assert repr(store) == "EntryStore(2/3) {'a': 1, 'b': 2}"
        store.get("a")
        assert repr(store) == "EntryStore(2/3) {'b': 2, 'a': 1}"

    @pytest.mark.parametrize("capacity", [-1, 1.5, "8", True])
    def test_rejects_bad_capacity(self, capacity):
        with pytest.raises(ConfigurationError):
            EntryStore(capacity=capacity)


class TestEntryStoreEviction:

    def test_oldest_evicted(self):
        store = EntryStore(capacity=2)
        store.set("a", _e(1))
        store.set("b", _e(2))
        store.set("c", _e(3))
        assert store.get("a") is None
        assert store.get("b").value == 2
        assert store.get("c").value == 3

    def test_read_updates_recency(self):
        store = EntryStore(capacity=2)
        store.set("a", _e(1))
        store.set("b", _e(2))
        store.get("a")
        store.set("c", _e(3))
        assert store.get("b") is None
        assert store.get("a").value == 1
        assert store.get("c").value == 3

    def test_peek_leaves_recency_alone(self):
        store = EntryStore(capacity=2)
        store.set("a", _e(1))
        store.set("b", _e(2))
        assert store.peek("a").value == 1
        store.set("c", _e(3))
        assert "a" not in store

    def test_overwrite_moves_to_end_without_eviction(self):
        evicted = []
        store = EntryStore(capacity=2, on_evict=lambda k, e: evicted.append(k))
        store.set("a", _e(1))
        store.set("b", _e(2))
        store.set("a", _e(10))
        assert evicted == []
        assert store.keys() == ["b", "a"]
        assert store.get("a").value == 10

    def test_ties_break_by_insertion_order(self):
        evicted = []
        store = EntryStore(capacity=3, on_evict=lambda k, e: evicted.append(k))
        for key in ("x", "y", "z", "w", "v"):
            store.set(key, _e(key))
        assert evicted == ["x", "y"]

    def test_zero_capacity_never_retains(self):
        evicted = []
        store = EntryStore(capacity=0, on_evict=lambda k, e: evicted.append(k))
        store.set("a", _e(1))
        assert len(store) == 0
        assert store.get("a") is None
        assert evicted == ["a"]

    def test_capacity_invariant_under_random_writes(self):
        rng = random.Random(7)
        store = EntryStore(capacity=5)
        for _ in range(500):
            key = rng.randint(0, 20)
            if rng.random() < 0.3:
                store.get(key)
            else:
                store.set(key, _e(key))
            assert len(store) <= 5

    def test_failing_listener_does_not_stop_eviction(self):
        def boom(key, entry):
            raise RuntimeError("listener failed")

        store = EntryStore(capacity=1, on_evict=boom)
        store.set("a", _e(1))
        store.set("b", _e(2))
        assert store.keys() == ["b"]


class TestEntryStoreMapping:

    def test_custom_backing_mapping(self):
        created = []

        class CountingDict(OrderedDict):
            def __init__(self, *args, **kwargs):
                super().__init__(*args, **kwargs)
                created.append(self)

        store = EntryStore(capacity=2, mapping=CountingDict)
        store.set("a", _e(1))
        assert len(created) == 1
        assert "a" in created[0]

    def test_plain_dict_keeps_lru_order(self):
        store = EntryStore(capacity=2, mapping=dict)
        store.set("a", _e(1))
        store.set("b", _e(2))
        store.get("a")
        store.set("c", _e(3))
        assert store.keys() == ["a", "c"]


class TestCacheEntry:

    def test_sliding_staleness(self):
        entry = CacheEntry(value=1, created_at=0.0, last_touched_at=0.0)
        assert entry.is_stale(50, ttl=100) is False
        assert entry.is_stale(100, ttl=100) is True
        entry.touch(80)
        assert entry.is_stale(150, ttl=100) is False
        assert entry.access_count == 1

    def test_zero_ttl_never_stale(self):
        entry = CacheEntry(value=1)
        assert entry.is_stale(10 ** 12, ttl=0) is False

    def test_absolute_deadline(self):
        entry = CacheEntry(value=1, expires_at=10.0)
        assert entry.is_stale(10.0, ttl=0) is True
        assert entry.age(25.0) == 25.0
        assert entry.idle(25.0) == 25.0
