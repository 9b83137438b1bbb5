"""
memokit — per-owner memoizing caches

Caches the results of an object's expensive, deterministic operations,
bounded by an LRU entry count and an optional sliding time-to-live, with
storage that lives exactly as long as the object it belongs to.

Architecture
────────────

    ┌─────────────────────────────────────────────────────────────────────────┐
    │                          CACHED OPERATION                               │
    │                                                                          │
    │  orchestrator.py  invoke(): key → lookup → compute → prepare → store    │
    │                                                                          │
    │  registry.py      owner type ⇢ owner ⇢ operation name → store (weak)     │
    │  expiry.py        passive / active sliding TTL, timers                  │
    │  store.py         fixed-capacity recency-ordered entries (LRU)          │
    │  keys.py          arguments → cache key                                 │
    │                                                                          │
    │  options.py  overrides.py  config.py  observability.py  errors.py       │
    │                                                                          │
    └─────────────────────────────────────────────────────────────────────────┘

Module Index
────────────

    keys.py           Cache key generation
    store.py          EntryStore / CacheEntry
    expiry.py         ExpiryEngine, clock and scheduler
    registry.py       LifetimeRegistry, WeakIdentityMap
    orchestrator.py   CacheOrchestrator, create_orchestrator
    options.py        CacheOptions
    overrides.py      Overrides (dependency injection)
    config.py         Process configuration (YAML, environment)
    observability.py  Structured logging, CacheMetrics
    errors.py         Exception types

Copyright (c) 2026 Momentum. All rights reserved.
"""

__version__ = "0.3.0"


# Lazy imports to avoid circular dependencies
def __getattr__(name):
    """Lazy import memokit modules on first access."""

    if name in ("CacheOrchestrator", "InspectedEntry", "create_orchestrator"):
        from memokit import orchestrator
        return getattr(orchestrator, name)

    if name in ("CacheOptions",):
        from memokit import options
        return getattr(options, name)

    if name in ("Overrides", "ResolvedOverrides"):
        from memokit import overrides
        return getattr(overrides, name)

    if name in ("CacheEntry", "EntryStore"):
        from memokit import store
        return getattr(store, name)

    if name in ("ExpiryEngine", "monotonic_ms", "threading_scheduler"):
        from memokit import expiry
        return getattr(expiry, name)

    if name in ("LifetimeRegistry", "WeakIdentityMap"):
        from memokit import registry
        return getattr(registry, name)

    if name in ("KeyGenerator", "default_key"):
        from memokit import keys
        return getattr(keys, name)

    if name in ("MemoError", "ConfigurationError", "KeyGenerationError",
                "OwnerBindingError", "CallbackError"):
        from memokit import errors
        return getattr(errors, name)

    if name in ("CacheMetrics", "get_logger"):
        from memokit import observability
        return getattr(observability, name)

    if name in ("ConfigManager", "get_config", "get_config_manager"):
        from memokit import config
        return getattr(config, name)

    raise AttributeError(f"module 'memokit' has no attribute '{name}'")


__all__ = [
    "__version__",
    # Orchestration
    "CacheOrchestrator",
    "InspectedEntry",
    "create_orchestrator",
    "CacheOptions",
    "Overrides",
    # Components
    "CacheEntry",
    "EntryStore",
    "ExpiryEngine",
    "LifetimeRegistry",
    "WeakIdentityMap",
    "KeyGenerator",
    "default_key",
    # Errors
    "MemoError",
    "ConfigurationError",
    "KeyGenerationError",
    "OwnerBindingError",
    "CallbackError",
    # Config / observability
    "CacheMetrics",
    "ConfigManager",
    "get_config",
]
