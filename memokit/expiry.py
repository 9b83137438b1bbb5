"""
memokit Expiry Engine

Applies a sliding time-to-live on top of an EntryStore.

Strategies
──────────

    passive   Staleness is checked when an entry is read. A stale entry is
              deleted and the read is a miss. No background work.

    active    Every write, and every read that hits, (re)schedules a timer
              for the TTL. When the timer fires and the entry is still the
              same object, untouched since scheduling, it is deleted.

    ttl == 0 disables expiry under both strategies. Reads also apply the
    staleness check under ``active``, so a late timer never serves stale
    data.

Timers fire on scheduler threads, so every operation on the wrapped store
is serialised by the engine's lock. Listener callbacks run outside it.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import threading
import time
from typing import Any, Callable, Generic, List, Optional, Tuple, TypeVar

from memokit.errors import ConfigurationError
from memokit.observability import MemoLayer, get_logger
from memokit.store import CacheEntry, EntryStore, EvictionListener

K = TypeVar("K")
V = TypeVar("V")

Clock = Callable[[], float]
Scheduler = Callable[[float, Callable[[], None]], Any]

PASSIVE = "passive"
ACTIVE = "active"


def monotonic_ms() -> float:
    """Default time source: monotonic clock in milliseconds."""
    return time.monotonic() * 1000.0


def threading_scheduler(delay_seconds: float, callback: Callable[[], None]) -> threading.Timer:
    """Default scheduler: a daemon threading.Timer, already started."""
    timer = threading.Timer(delay_seconds, callback)
    timer.daemon = True
    timer.name = "memokit-expiry"
    timer.start()
    return timer


class ExpiryEngine(Generic[K, V]):
    """
    TTL policy bound to exactly one EntryStore.

    Example:
        engine = ExpiryEngine(capacity=2, ttl=100, eviction="active")
        engine.insert("a", engine.new_entry(1))
        engine.lookup("a").value     # 1, timer rescheduled
    """

    def __init__(
        self,
        capacity: int = 128,
        ttl: float = 0,
        eviction: str = PASSIVE,
        store_factory: Callable[..., Any] = EntryStore,
        mapping: Optional[Callable[[], Any]] = None,
        clock: Clock = monotonic_ms,
        scheduler: Scheduler = threading_scheduler,
        on_evict: Optional[EvictionListener] = None,
        on_expire: Optional[EvictionListener] = None,
        on_refresh: Optional[EvictionListener] = None,
    ):
        if eviction not in (PASSIVE, ACTIVE):
            raise ConfigurationError("eviction", "must be 'passive' or 'active'", eviction)
        if isinstance(ttl, bool) or not isinstance(ttl, (int, float)) or ttl < 0:
            raise ConfigurationError("ttl", "must be a non-negative number of milliseconds", ttl)

        self._ttl = ttl
        self._eviction = eviction
        self._clock = clock
        self._scheduler = scheduler
        self._on_evict = on_evict
        self._on_expire = on_expire
        self._on_refresh = on_refresh
        self._lock = threading.RLock()
        self._log = get_logger("expiry_engine", MemoLayer.EXPIRY)

        # capacity evictions are collected under the lock and reported after
        self._pending_evictions: List[Tuple[Any, CacheEntry[V]]] = []
        store_kwargs = {"on_evict": self._capacity_evicted}
        if mapping is not None:
            store_kwargs["mapping"] = mapping
        self._store = store_factory(capacity, **store_kwargs)

    @property
    def store(self) -> Any:
        return self._store

    @property
    def ttl(self) -> float:
        return self._ttl

    @property
    def eviction(self) -> str:
        return self._eviction

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._eviction}, ttl={self._ttl}, store={self._store!r})"

    def new_entry(self, value: V) -> CacheEntry[V]:
        """Build an entry stamped with the current time, not yet stored."""
        now = self._clock()
        return CacheEntry(
            value=value,
            created_at=now,
            last_touched_at=now,
            expires_at=now + self._ttl if self._ttl > 0 else None,
        )

    def lookup(self, key: K) -> Optional[CacheEntry[V]]:
        """
        Read an entry, applying the expiry policy.

        A hit updates recency, slides the TTL and, under ``active``,
        reschedules the timer. A stale entry is removed and reported.
        """
        expired: Optional[CacheEntry[V]] = None
        refreshed: Optional[CacheEntry[V]] = None
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return None

            now = self._clock()
            if self._ttl > 0 and entry.is_stale(now, self._ttl):
                self._cancel(entry)
                self._store.delete(key)
                expired = entry
            else:
                handle = None
                if self._ttl > 0 and self._eviction == ACTIVE:
                    handle = self._start_timer(key, entry, entry.access_count + 1)
                entry.touch(now)
                if self._ttl > 0:
                    entry.expires_at = now + self._ttl
                    if handle is not None:
                        self._arm(entry, handle)
                    refreshed = entry

        if expired is not None:
            self._notify(self._on_expire, "on_expire", key, expired)
            return None
        if refreshed is not None:
            self._notify(self._on_refresh, "on_refresh", key, refreshed)
        return entry

    def insert(self, key: K, entry: CacheEntry[V]) -> CacheEntry[V]:
        """
        Store an entry, replacing (and un-scheduling) any previous one.

        Under ``active`` the timer is started before the store is touched,
        so a failing scheduler leaves the store as it was.
        """
        with self._lock:
            handle = None
            if self._eviction == ACTIVE and self._ttl > 0:
                handle = self._start_timer(key, entry, entry.access_count)

            previous = self._store.peek(key)
            if previous is not None:
                self._cancel(previous)
            if handle is not None:
                self._arm(entry, handle)

            try:
                self._store.set(key, entry)
            finally:
                evicted, self._pending_evictions = self._pending_evictions, []

        for evicted_key, evicted_entry in evicted:
            self._notify(self._on_evict, "on_evict", evicted_key, evicted_entry)
        if previous is not None and self._ttl > 0:
            self._notify(self._on_refresh, "on_refresh", key, entry)
        return entry

    def has(self, key: K) -> bool:
        """Presence check that honours the TTL but leaves recency alone."""
        expired: Optional[CacheEntry[V]] = None
        with self._lock:
            if not self._store.has(key):
                return False
            entry = self._store.peek(key)
            if entry is not None and self._ttl > 0 and entry.is_stale(self._clock(), self._ttl):
                self._cancel(entry)
                self._store.delete(key)
                expired = entry

        if expired is not None:
            self._notify(self._on_expire, "on_expire", key, expired)
            return False
        return True

    def delete(self, key: K) -> bool:
        with self._lock:
            entry = self._store.peek(key)
            if entry is not None:
                self._cancel(entry)
            return self._store.delete(key)

    def clear(self) -> None:
        """Remove every entry and cancel every pending timer."""
        with self._lock:
            for _, entry in self._store.items():
                self._cancel(entry)
            self._store.clear()

    def keys(self) -> List[K]:
        with self._lock:
            return list(self._store.keys())

    # ────────────────────────────────────────────────────────────────────
    # timers
    # ────────────────────────────────────────────────────────────────────

    def _start_timer(self, key: K, entry: CacheEntry[V], touches: int) -> Any:
        """Schedule expiry of ``entry`` as it will be after ``touches`` reads."""

        def fire() -> None:
            self._timer_fired(key, entry, touches)

        handle = self._scheduler(self._ttl / 1000.0, fire)
        if not callable(getattr(handle, "cancel", None)):
            raise ConfigurationError(
                "overrides.scheduler", "missing capability: cancel (on the returned handle)", handle
            )
        return handle

    def _arm(self, entry: CacheEntry[V], handle: Any) -> None:
        if entry.scheduled_eviction is not handle:
            self._cancel(entry)
        entry.scheduled_eviction = handle

    def _cancel(self, entry: CacheEntry[V]) -> None:
        handle = entry.scheduled_eviction
        if handle is not None:
            entry.scheduled_eviction = None
            handle.cancel()

    def _timer_fired(self, key: K, entry: CacheEntry[V], touches: int) -> None:
        with self._lock:
            current = self._store.peek(key)
            if current is not entry or entry.access_count != touches:
                return
            entry.scheduled_eviction = None
            self._store.delete(key)

        self._log.debug("Entry expired by timer", key=repr(key))
        self._notify(self._on_expire, "on_expire", key, entry)

    # ────────────────────────────────────────────────────────────────────
    # listeners
    # ────────────────────────────────────────────────────────────────────

    def _capacity_evicted(self, key: K, entry: CacheEntry[V]) -> None:
        self._cancel(entry)
        self._pending_evictions.append((key, entry))

    def _notify(
        self,
        listener: Optional[EvictionListener],
        name: str,
        key: K,
        entry: CacheEntry[V],
    ) -> None:
        if listener is None:
            return
        try:
            listener(key, entry)
        except Exception as exc:
            self._log.warning(
                f"Expiry listener {name} failed",
                error_code="CALLBACK_ERROR",
                key=repr(key),
                error=f"{type(exc).__name__}: {exc}",
            )


__all__ = [
    "ExpiryEngine",
    "Clock",
    "Scheduler",
    "PASSIVE",
    "ACTIVE",
    "monotonic_ms",
    "threading_scheduler",
]
