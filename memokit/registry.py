"""
memokit Lifetime Registry

Three-level home for per-owner cache stores:

    WeakKeyDictionary[owner type,             <- level 1 (weak)
      WeakIdentityMap[owner instance,         <- level 2 (weak, by identity)
        dict[operation name, store]           <- level 3 (strong)
      ]
    ]

A store is reachable only through its owner instance, so it is released
with the owner. There is no way to delete a store explicitly.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import threading
import weakref
from collections.abc import MutableMapping
from typing import Any, Callable, Dict, Iterator, Optional, Tuple

from memokit.errors import OwnerBindingError
from memokit.observability import MemoLayer, get_logger
from memokit.store import EntryStore

StoreFactory = Callable[[int], Any]


class WeakIdentityMap(MutableMapping):
    """
    Mapping with weakly held keys compared by identity.

    Unlike WeakKeyDictionary, owners that define ``__eq__``/``__hash__``
    (or are unhashable) still get a slot of their own.
    """

    def __init__(self) -> None:
        self._data: Dict[int, Tuple[weakref.ref, Any]] = {}

    def _ref(self, key: Any) -> weakref.ref:
        self_ref = weakref.ref(self)
        ident = id(key)

        def remove(ref: weakref.ref) -> None:
            mapping = self_ref()
            if mapping is not None:
                current = mapping._data.get(ident)
                if current is not None and current[0] is ref:
                    del mapping._data[ident]

        try:
            return weakref.ref(key, remove)
        except TypeError as exc:
            raise OwnerBindingError(
                f"{type(key).__name__} instances cannot be weakly referenced; "
                f"add '__weakref__' to __slots__ to cache their operations"
            ) from exc

    def _live(self, key: Any) -> Optional[Tuple[weakref.ref, Any]]:
        item = self._data.get(id(key))
        if item is None or item[0]() is not key:
            return None
        return item

    def __getitem__(self, key: Any) -> Any:
        item = self._live(key)
        if item is None:
            raise KeyError(key)
        return item[1]

    def __setitem__(self, key: Any, value: Any) -> None:
        item = self._live(key)
        ref = item[0] if item is not None else self._ref(key)
        self._data[id(key)] = (ref, value)

    def __delitem__(self, key: Any) -> None:
        if self._live(key) is None:
            raise KeyError(key)
        del self._data[id(key)]

    def __contains__(self, key: object) -> bool:
        return self._live(key) is not None

    def __iter__(self) -> Iterator[Any]:
        for ref, _ in list(self._data.values()):
            obj = ref()
            if obj is not None:
                yield obj

    def __len__(self) -> int:
        return sum(1 for ref, _ in list(self._data.values()) if ref() is not None)


class LifetimeRegistry:
    """
    Owner-scoped store lookup.

    Containers are pluggable so tests can count or inspect them; the
    defaults never keep an owner type or owner instance alive.
    """

    # shared by every registry so orchestrators over one storage agree
    _lock = threading.RLock()

    def __init__(
        self,
        storage: Optional[Any] = None,
        weak_mapping: Callable[[], Any] = WeakIdentityMap,
        mapping: Callable[[], Any] = dict,
    ):
        self._storage = storage if storage is not None else weakref.WeakKeyDictionary()
        self._weak_mapping = weak_mapping
        self._mapping = mapping
        self._log = get_logger("lifetime_registry", MemoLayer.REGISTRY)

    @property
    def storage(self) -> Any:
        return self._storage

    def get_or_create_store(
        self,
        owner_type: Any,
        owner: Any,
        operation_name: str,
        capacity: int,
        factory: Optional[StoreFactory] = None,
    ) -> Any:
        """Return the store at (owner type, owner, operation), creating it on first use."""
        with self._lock:
            instances = self._storage.get(owner_type)
            if instances is None:
                instances = self._weak_mapping()
                try:
                    self._storage[owner_type] = instances
                except TypeError as exc:
                    raise OwnerBindingError(
                        f"owner type {owner_type!r} cannot be weakly referenced"
                    ) from exc

            operations = instances.get(owner)
            if operations is None:
                operations = self._mapping()
                try:
                    instances[owner] = operations
                except OwnerBindingError:
                    raise
                except TypeError as exc:
                    raise OwnerBindingError(
                        f"{type(owner).__name__} instances cannot be weakly referenced"
                    ) from exc

            store = operations.get(operation_name)
            if store is None:
                if factory is None:
                    store = EntryStore(capacity, mapping=self._mapping)
                else:
                    store = factory(capacity)
                operations[operation_name] = store
                self._log.debug(
                    "Created store",
                    owner_type=getattr(owner_type, "__qualname__", repr(owner_type)),
                    operation=operation_name,
                    capacity=capacity,
                )
            return store

    def find_store(self, owner_type: Any, owner: Any, operation_name: str) -> Optional[Any]:
        """Return the store at a coordinate without creating anything."""
        with self._lock:
            instances = self._storage.get(owner_type)
            if instances is None:
                return None
            try:
                operations = instances.get(owner)
            except TypeError:
                return None
            if operations is None:
                return None
            return operations.get(operation_name)

    def stores_for(self, owner_type: Any, owner: Any) -> Dict[str, Any]:
        """Operation name → store for one owner."""
        with self._lock:
            instances = self._storage.get(owner_type)
            operations = instances.get(owner) if instances is not None else None
            if operations is None:
                return {}
            return {name: operations[name] for name in list(operations)}

    def owner_count(self, owner_type: Any) -> int:
        """Number of live owners of a type that have at least one store."""
        with self._lock:
            instances = self._storage.get(owner_type)
            return len(instances) if instances is not None else 0


__all__ = ["WeakIdentityMap", "LifetimeRegistry", "StoreFactory"]
