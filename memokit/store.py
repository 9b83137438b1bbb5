"""
memokit Entry Store

Fixed-capacity, recency-ordered key → entry map with LRU eviction.

Design
──────

    Recency lives in the insertion order of the backing mapping: the head
    is the least recently touched key, the tail the most recent. A read
    re-inserts the key at the tail. An insert that pushes the size past
    capacity evicts from the head, so ties between equally old keys fall
    back to insertion order.

    Capacity 0 is legal: the inserted key is itself the head and is
    evicted straight away.

Usage
─────

    from memokit.store import CacheEntry, EntryStore

    store = EntryStore(capacity=2)
    store.set("a", CacheEntry(value=1))
    store.set("b", CacheEntry(value=2))
    store.set("c", CacheEntry(value=3))   # "a" is evicted
    store.get("a")                        # None

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass
from typing import (
    Any,
    Callable,
    Generic,
    Iterator,
    List,
    MutableMapping,
    Optional,
    Tuple,
    TypeVar,
)

from memokit.errors import ConfigurationError
from memokit.observability import MemoLayer, get_logger

K = TypeVar("K")
V = TypeVar("V")

EvictionListener = Callable[[Any, "CacheEntry[Any]"], None]


# ════════════════════════════════════════════════════════════════════════════
# CACHE ENTRY
# ════════════════════════════════════════════════════════════════════════════


@dataclass
class CacheEntry(Generic[V]):
    """A cached value with timing metadata (milliseconds)."""
    value: V
    created_at: float = 0.0
    last_touched_at: float = 0.0
    expires_at: Optional[float] = None
    scheduled_eviction: Any = None
    access_count: int = 0
    # resolved from an awaitable; hits hand the value back as an awaitable
    awaited: bool = False

    def touch(self, now: float) -> None:
        """Update access time and count."""
        self.last_touched_at = now
        self.access_count += 1

    def age(self, now: float) -> float:
        """Milliseconds since the entry was created."""
        return now - self.created_at

    def idle(self, now: float) -> float:
        """Milliseconds since the entry was last touched."""
        return now - self.last_touched_at

    def is_stale(self, now: float, ttl: float) -> bool:
        """Whether the entry outlived its sliding TTL or absolute deadline."""
        if self.expires_at is not None and now >= self.expires_at:
            return True
        if ttl > 0 and now - self.last_touched_at >= ttl:
            return True
        return False


# ════════════════════════════════════════════════════════════════════════════
# ENTRY STORE
# ════════════════════════════════════════════════════════════════════════════


class EntryStore(Generic[K, V]):
    """
    Least Recently Used store of CacheEntry objects.

    The backing mapping must preserve insertion order (dict, OrderedDict).
    ``on_evict`` is told about capacity evictions only; explicit deletes
    and ``clear`` are the caller's own doing.
    """

    def __init__(
        self,
        capacity: int = 128,
        mapping: Callable[[], MutableMapping[K, CacheEntry[V]]] = OrderedDict,
        on_evict: Optional[EvictionListener] = None,
    ):
        if isinstance(capacity, bool) or not isinstance(capacity, int) or capacity < 0:
            raise ConfigurationError("capacity", "must be an integer >= 0", capacity)

        self._capacity = capacity
        self._entries: MutableMapping[K, CacheEntry[V]] = mapping()
        self._on_evict = on_evict
        self._log = get_logger("entry_store", MemoLayer.STORE)

    @property
    def capacity(self) -> int:
        return self._capacity

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __iter__(self) -> Iterator[K]:
        return iter(list(self._entries))

    def __repr__(self) -> str:
        items = ", ".join(f"{k!r}: {e.value!r}" for k, e in self._entries.items())
        return f"{type(self).__name__}({len(self)}/{self._capacity}) {{{items}}}"

    def has(self, key: K) -> bool:
        return key in self._entries

    def get(self, key: K) -> Optional[CacheEntry[V]]:
        """Return the entry and mark it most recently used."""
        if key not in self._entries:
            return None
        entry = self._entries[key]
        del self._entries[key]
        self._entries[key] = entry
        return entry

    def peek(self, key: K) -> Optional[CacheEntry[V]]:
        """Return the entry without touching recency."""
        if key not in self._entries:
            return None
        return self._entries[key]

    def set(self, key: K, entry: CacheEntry[V]) -> "EntryStore[K, V]":
        """Insert or replace, evicting from the head when over capacity."""
        if key in self._entries:
            del self._entries[key]
            self._entries[key] = entry
            return self

        self._entries[key] = entry
        while len(self._entries) > self._capacity:
            self._evict_oldest()
        return self

    def delete(self, key: K) -> bool:
        if key in self._entries:
            del self._entries[key]
            return True
        return False

    def clear(self) -> None:
        self._entries.clear()

    def keys(self) -> List[K]:
        """All keys, least recently used first."""
        return list(self._entries)

    def items(self) -> List[Tuple[K, CacheEntry[V]]]:
        return [(k, self._entries[k]) for k in list(self._entries)]

    def _evict_oldest(self) -> None:
        key = next(iter(self._entries))
        entry = self._entries[key]
        del self._entries[key]

        if self._on_evict is not None:
            try:
                self._on_evict(key, entry)
            except Exception as exc:
                self._log.warning(
                    "Eviction listener failed",
                    error_code="CALLBACK_ERROR",
                    key=repr(key),
                    error=f"{type(exc).__name__}: {exc}",
                )


__all__ = ["CacheEntry", "EntryStore", "EvictionListener"]
