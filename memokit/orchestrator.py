"""
memokit Cache Orchestrator

Per-operation facade. An attachment layer (decorator, descriptor, proxy)
hands every intercepted call to ``invoke`` together with the owner type,
the owner instance, the operation name, the arguments and the original
function; the orchestrator returns the cached or freshly computed value.

Flow
────

    invoke(owner_type, owner, name, args, compute_fn)
      │
      ├─ registry.get_or_create_store(...)   store scoped to (owner, name)
      ├─ keygen.generate(args)                KeyGenerationError → caller
      ├─ engine.lookup(key)
      │    hit  → on_hit → transform(value)   transform errors → caller
      │    miss → on_miss → compute_fn(*args) compute errors → caller
      │           prepare(value) → insert → transform(value)
      │           awaitable result → returned awaitable stores it once settled
      └─ callbacks (on_*, inspect) never raise into the call

No lock is held while ``compute_fn`` runs, so a computation may call its
own cached operation recursively.

Usage
─────

    from memokit import create_orchestrator

    fib_cache = create_orchestrator(max_size=256)

    class Sequence:
        def fib(self, n):
            return fib_cache.invoke(Sequence, self, "fib", (n,), self._fib)

        def _fib(self, n):
            return n if n < 2 else self.fib(n - 1) + self.fib(n - 2)

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import asyncio
import inspect
import threading
import weakref
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Optional, Tuple

from memokit.errors import CallbackError, OwnerBindingError
from memokit.expiry import ExpiryEngine
from memokit.keys import CacheKey, KeyGenerator
from memokit.observability import CacheMetrics, MemoLayer, get_logger
from memokit.options import CacheOptions
from memokit.overrides import ResolvedOverrides
from memokit.registry import LifetimeRegistry
from memokit.store import CacheEntry


@dataclass(frozen=True)
class InspectedEntry:
    """Read-only view of an entry handed to the ``inspect`` callback."""
    key: CacheKey
    value: Any
    event: str
    created_at: float
    last_touched_at: float
    expires_at: Optional[float]
    access_count: int
    size: int
    capacity: int
    store: Any


async def _settle(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


class CacheOrchestrator:
    """
    Memoizing engine for one configured operation.

    Stores live in a LifetimeRegistry keyed by owner, so the same
    orchestrator can serve every instance of a class.
    """

    def __init__(
        self,
        options: Optional[CacheOptions] = None,
        registry: Optional[LifetimeRegistry] = None,
    ):
        self._options = options or CacheOptions()
        self._registry = registry
        self._keygen = KeyGenerator(self._options.key)
        self._metrics = CacheMetrics()
        self._resolved: Optional[Tuple[ResolvedOverrides, LifetimeRegistry]] = None
        self._inflight: Dict[Tuple[int, int, CacheKey], "asyncio.Future[CacheEntry[Any]]"] = {}
        self._lock = threading.RLock()
        self._log = get_logger("orchestrator", MemoLayer.ORCHESTRATOR)

    @property
    def options(self) -> CacheOptions:
        return self._options

    @property
    def metrics(self) -> CacheMetrics:
        """Snapshot of the hit/miss/eviction counters."""
        return self._metrics.snapshot()

    @property
    def registry(self) -> LifetimeRegistry:
        return self._resolve()[1]

    def _resolve(self) -> Tuple[ResolvedOverrides, LifetimeRegistry]:
        if self._resolved is None:
            with self._lock:
                if self._resolved is None:
                    resolved = self._options.overrides.resolve()
                    registry = self._registry or LifetimeRegistry(
                        storage=resolved.storage,
                        weak_mapping=resolved.weak_mapping,
                        mapping=resolved.mapping,
                    )
                    self._resolved = (resolved, registry)
        return self._resolved

    # ────────────────────────────────────────────────────────────────────
    # store scope
    # ────────────────────────────────────────────────────────────────────

    def scope(self, owner_type: Any, owner: Any, operation_name: str) -> ExpiryEngine:
        """The expiry-managed store for (owner, operation), created on first use."""
        resolved, registry = self._resolve()

        def factory(capacity: int) -> ExpiryEngine:
            try:
                owner_ref = weakref.ref(owner)
            except TypeError as exc:
                raise OwnerBindingError(
                    f"{type(owner).__name__} instances cannot be weakly referenced"
                ) from exc
            return ExpiryEngine(
                capacity=capacity,
                ttl=self._options.ttl,
                eviction=self._options.eviction,
                store_factory=resolved.store,
                mapping=resolved.mapping,
                clock=resolved.clock,
                scheduler=resolved.scheduler,
                on_evict=self._eviction_listener(owner_ref, "evictions"),
                on_expire=self._eviction_listener(owner_ref, "expirations"),
                on_refresh=self._refresh_listener(owner_ref),
            )

        return registry.get_or_create_store(
            owner_type, owner, operation_name, self._options.max_size, factory
        )

    def _eviction_listener(self, owner_ref: weakref.ref, metric: str) -> Callable[[Any, CacheEntry[Any]], None]:
        def listener(key: CacheKey, entry: CacheEntry[Any]) -> None:
            self._metrics.incr(metric)
            owner = owner_ref()
            if owner is not None:
                self._notify("on_evict", owner, entry.value, key, entry)
        return listener

    def _refresh_listener(self, owner_ref: weakref.ref) -> Callable[[Any, CacheEntry[Any]], None]:
        def listener(key: CacheKey, entry: CacheEntry[Any]) -> None:
            owner = owner_ref()
            if owner is not None:
                self._notify("on_refresh", owner, entry.value, key, entry)
        return listener

    # ────────────────────────────────────────────────────────────────────
    # invocation
    # ────────────────────────────────────────────────────────────────────

    def __call__(
        self,
        owner_type: Any,
        owner: Any,
        operation_name: str,
        args: Iterable[Any],
        compute_fn: Callable[..., Any],
        kwargs: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """Dispatch to ``ainvoke`` for coroutine functions, ``invoke`` otherwise."""
        if inspect.iscoroutinefunction(compute_fn):
            return self.ainvoke(owner_type, owner, operation_name, args, compute_fn, kwargs)
        return self.invoke(owner_type, owner, operation_name, args, compute_fn, kwargs)

    def invoke(
        self,
        owner_type: Any,
        owner: Any,
        operation_name: str,
        args: Iterable[Any],
        compute_fn: Callable[..., Any],
        kwargs: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """
        Return the cached result of ``compute_fn(*args, **kwargs)`` for this owner.

        When the computation returns an awaitable, the call returns an
        awaitable too: the resolved value is stored once it settles, and
        later hits on that key return a fresh awaitable of the stored value.
        """
        engine = self.scope(owner_type, owner, operation_name)
        args = tuple(args)
        kwargs = dict(kwargs or {})
        key = self._keygen.generate(args, kwargs, operation_name)

        entry = engine.lookup(key)
        if entry is not None:
            if entry.awaited:
                return _settle(self._hit(owner, engine, key, entry))
            return self._hit(owner, engine, key, entry)

        self._miss(owner, key)
        value = compute_fn(*args, **kwargs)
        if inspect.isawaitable(value):
            return self._afinish(owner, engine, key, value)
        entry = engine.new_entry(value)
        if self._options.prepare is not None:
            entry.value = self._options.prepare(value, key, entry)
        self._store(owner, engine, key, entry)
        return self._transform(key, entry)

    async def ainvoke(
        self,
        owner_type: Any,
        owner: Any,
        operation_name: str,
        args: Iterable[Any],
        compute_fn: Callable[..., Any],
        kwargs: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """
        Coroutine twin of ``invoke`` for asynchronous computations.

        Only resolved values are stored. With ``single_flight`` enabled,
        concurrent misses on one key await a single computation.
        """
        engine = self.scope(owner_type, owner, operation_name)
        args = tuple(args)
        kwargs = dict(kwargs or {})
        key = self._keygen.generate(args, kwargs, operation_name)

        entry = engine.lookup(key)
        if entry is not None:
            return await _settle(self._hit(owner, engine, key, entry))

        self._miss(owner, key)
        if not self._options.single_flight:
            entry = await self._acompute(owner, engine, key, compute_fn, args, kwargs)
            return await _settle(self._transform(key, entry))

        loop = asyncio.get_running_loop()
        token = (id(loop), id(engine), key)
        pending = self._inflight.get(token)
        if pending is not None:
            entry = await asyncio.shield(pending)
            return await _settle(self._transform(key, entry))

        future: "asyncio.Future[CacheEntry[Any]]" = loop.create_future()
        self._inflight[token] = future
        try:
            entry = await self._acompute(owner, engine, key, compute_fn, args, kwargs)
        except asyncio.CancelledError:
            future.cancel()
            raise
        except Exception as exc:
            future.set_exception(exc)
            future.exception()
            raise
        else:
            future.set_result(entry)
        finally:
            if self._inflight.get(token) is future:
                del self._inflight[token]
        return await _settle(self._transform(key, entry))

    async def _acompute(
        self,
        owner: Any,
        engine: ExpiryEngine,
        key: CacheKey,
        compute_fn: Callable[..., Any],
        args: Tuple[Any, ...],
        kwargs: Dict[str, Any],
    ) -> CacheEntry[Any]:
        value = await _settle(compute_fn(*args, **kwargs))
        entry = engine.new_entry(value)
        entry.awaited = True
        if self._options.prepare is not None:
            entry.value = await _settle(self._options.prepare(value, key, entry))
        return self._store(owner, engine, key, entry)

    async def _afinish(self, owner: Any, engine: ExpiryEngine, key: CacheKey, pending: Any) -> Any:
        entry = await self._acompute(owner, engine, key, lambda: pending, (), {})
        return await _settle(self._transform(key, entry))

    def _hit(self, owner: Any, engine: ExpiryEngine, key: CacheKey, entry: CacheEntry[Any]) -> Any:
        self._metrics.incr("hits")
        self._notify("on_hit", owner, entry.value, key, entry)
        self._inspect(owner, engine, key, entry, "hit")
        return self._transform(key, entry)

    def _miss(self, owner: Any, key: CacheKey) -> None:
        self._metrics.incr("misses")
        self._notify("on_miss", owner, key)

    def _store(self, owner: Any, engine: ExpiryEngine, key: CacheKey, entry: CacheEntry[Any]) -> CacheEntry[Any]:
        engine.insert(key, entry)
        self._metrics.incr("sets")
        self._inspect(owner, engine, key, entry, "store")
        return entry

    def _transform(self, key: CacheKey, entry: CacheEntry[Any]) -> Any:
        if self._options.transform is None:
            return entry.value
        return self._options.transform(entry.value, key, entry)

    # ────────────────────────────────────────────────────────────────────
    # callbacks
    # ────────────────────────────────────────────────────────────────────

    def _inspect(self, owner: Any, engine: ExpiryEngine, key: CacheKey, entry: CacheEntry[Any], event: str) -> None:
        if self._options.inspect is None:
            return
        view = InspectedEntry(
            key=key,
            value=entry.value,
            event=event,
            created_at=entry.created_at,
            last_touched_at=entry.last_touched_at,
            expires_at=entry.expires_at,
            access_count=entry.access_count,
            size=len(engine),
            capacity=self._options.max_size,
            store=engine,
        )
        self._notify("inspect", owner, view)

    def _notify(self, name: str, owner: Any, *args: Any) -> None:
        callback = getattr(self._options, name)
        if callback is None:
            return
        try:
            callback(owner, *args)
        except Exception as exc:
            error = CallbackError(name, exc)
            self._log.warning(
                str(error),
                error_code="CALLBACK_ERROR",
                callback=name,
                exc_info=(type(exc), exc, exc.__traceback__),
            )

    # ────────────────────────────────────────────────────────────────────
    # management
    # ────────────────────────────────────────────────────────────────────

    def clear(self, owner_type: Any, owner: Any, operation_name: str) -> bool:
        """Empty one owner's store, cancelling its timers. False if it never existed."""
        engine = self.registry.find_store(owner_type, owner, operation_name)
        if engine is None:
            return False
        engine.clear()
        return True

    def delete(
        self,
        owner_type: Any,
        owner: Any,
        operation_name: str,
        args: Iterable[Any],
        kwargs: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """Drop the entry a call with these arguments would hit."""
        engine = self.registry.find_store(owner_type, owner, operation_name)
        if engine is None:
            return False
        key = self._keygen.generate(tuple(args), dict(kwargs or {}), operation_name)
        removed = engine.delete(key)
        if removed:
            self._metrics.incr("deletes")
        return removed


def create_orchestrator(options: Optional[CacheOptions] = None, **kwargs: Any) -> CacheOrchestrator:
    """
    Build an orchestrator from options, or from keyword options layered
    over the process configuration defaults.
    """
    if options is None:
        options = CacheOptions.from_config(**kwargs)
    elif kwargs:
        raise TypeError("pass either a CacheOptions instance or keyword options, not both")
    return CacheOrchestrator(options)


__all__ = ["CacheOrchestrator", "InspectedEntry", "create_orchestrator"]
