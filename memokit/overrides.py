"""
memokit Overrides

Dependency injection for the collaborators of a cached operation:

    store         EntryStore constructor, called as store(capacity, mapping=..., on_evict=...)
    mapping       backing map constructor (store contents and level 3 of the registry)
    weak_mapping  weak-binding container constructor (level 2 of the registry)
    clock         zero-argument time source returning milliseconds
    storage       level 1 container instance of the registry
    scheduler     scheduler(delay_seconds, fn) -> handle with cancel()

Overrides are checked by capability, not by type. Checks run once, on the
first invocation of the orchestrator that owns them, and a missing
capability raises ConfigurationError naming it.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import weakref
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Optional, Sequence

from memokit.errors import ConfigurationError
from memokit.expiry import Clock, Scheduler, monotonic_ms, threading_scheduler
from memokit.registry import WeakIdentityMap
from memokit.store import EntryStore

STORE_CAPABILITIES = ("has", "get", "peek", "set", "delete", "clear", "keys", "items", "__len__")
MAPPING_CAPABILITIES = (
    "get",
    "clear",
    "__getitem__",
    "__setitem__",
    "__delitem__",
    "__contains__",
    "__iter__",
    "__len__",
)
WEAK_MAPPING_CAPABILITIES = ("get", "__setitem__", "__contains__")
STORAGE_CAPABILITIES = ("get", "__setitem__")

# level 1 container shared by every orchestrator that does not override it
default_storage: "weakref.WeakKeyDictionary[Any, Any]" = weakref.WeakKeyDictionary()


def require_capabilities(obj: Any, name: str, members: Sequence[str]) -> None:
    """Raise ConfigurationError unless ``obj`` has every member as a callable."""
    missing = [m for m in members if not callable(getattr(obj, m, None))]
    if missing:
        raise ConfigurationError(
            f"overrides.{name}",
            f"missing capability: {', '.join(missing)}",
            obj,
        )


@dataclass(frozen=True)
class ResolvedOverrides:
    """Overrides with defaults filled in and capabilities checked."""
    store: Callable[..., Any]
    mapping: Callable[[], Any]
    weak_mapping: Callable[[], Any]
    clock: Clock
    storage: Any
    scheduler: Scheduler


@dataclass(frozen=True)
class Overrides:
    """User-supplied replacements; ``None`` keeps the default."""
    store: Optional[Callable[..., Any]] = None
    mapping: Optional[Callable[[], Any]] = None
    weak_mapping: Optional[Callable[[], Any]] = None
    clock: Optional[Clock] = None
    storage: Optional[Any] = None
    scheduler: Optional[Scheduler] = None

    def resolve(self) -> ResolvedOverrides:
        """Fill in defaults and check every supplied override."""
        mapping = self.mapping or OrderedDict
        store = self.store or EntryStore
        weak_mapping = self.weak_mapping or WeakIdentityMap
        clock = self.clock or monotonic_ms
        storage = self.storage if self.storage is not None else default_storage
        scheduler = self.scheduler or threading_scheduler

        if self.mapping is not None:
            require_capabilities(_construct(mapping, "mapping"), "mapping", MAPPING_CAPABILITIES)

        if self.store is not None:
            try:
                probe = store(0, mapping=mapping, on_evict=None)
            except TypeError as exc:
                raise ConfigurationError(
                    "overrides.store",
                    f"constructor must accept (capacity, mapping=, on_evict=): {exc}",
                    store,
                ) from exc
            require_capabilities(probe, "store", STORE_CAPABILITIES)

        if self.weak_mapping is not None:
            require_capabilities(
                _construct(weak_mapping, "weak_mapping"), "weak_mapping", WEAK_MAPPING_CAPABILITIES
            )

        if self.storage is not None:
            require_capabilities(storage, "storage", STORAGE_CAPABILITIES)

        if self.clock is not None:
            if not callable(clock):
                raise ConfigurationError("overrides.clock", "missing capability: __call__", clock)
            now = clock()
            if isinstance(now, bool) or not isinstance(now, (int, float)):
                raise ConfigurationError(
                    "overrides.clock", f"must return milliseconds as a number, got {now!r}", clock
                )

        if self.scheduler is not None and not callable(scheduler):
            raise ConfigurationError("overrides.scheduler", "missing capability: __call__", scheduler)

        return ResolvedOverrides(
            store=store,
            mapping=mapping,
            weak_mapping=weak_mapping,
            clock=clock,
            storage=storage,
            scheduler=scheduler,
        )


def _construct(factory: Callable[[], Any], name: str) -> Any:
    if not callable(factory):
        raise ConfigurationError(f"overrides.{name}", "must be a zero-argument constructor", factory)
    try:
        return factory()
    except TypeError as exc:
        raise ConfigurationError(
            f"overrides.{name}", f"must be a zero-argument constructor: {exc}", factory
        ) from exc


__all__ = [
    "Overrides",
    "ResolvedOverrides",
    "require_capabilities",
    "default_storage",
    "STORE_CAPABILITIES",
    "MAPPING_CAPABILITIES",
    "WEAK_MAPPING_CAPABILITIES",
    "STORAGE_CAPABILITIES",
]
