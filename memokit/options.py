"""
memokit Cache Options

Configuration object for one cached operation.

    max_size       entries per (owner, operation) store          128
    ttl            sliding time-to-live in ms, 0 = never expires  0
    eviction       "passive" or "active"                          "passive"
    key            key(*args, **kwargs) -> hashable key            structural JSON
                   (lists, tuples, sets, mappings are frozen)
    prepare        prepare(value, key, entry) before storing       identity
    transform      transform(value, key, entry) before returning   identity
    on_hit         on_hit(owner, value, key, entry)
    on_miss        on_miss(owner, key)
    on_evict       on_evict(owner, value, key, entry)
    on_refresh     on_refresh(owner, value, key, entry)
    inspect        inspect(owner, InspectedEntry)
    overrides      Overrides bundle
    single_flight  share one in-flight async computation per key   False

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Any, Callable, Dict, Optional

from memokit.config import EVICTION_STRATEGIES, get_config
from memokit.errors import ConfigurationError
from memokit.keys import Keygen
from memokit.overrides import Overrides

Transformer = Callable[[Any, Any, Any], Any]

_CALLABLE_FIELDS = (
    "key",
    "prepare",
    "transform",
    "on_hit",
    "on_miss",
    "on_evict",
    "on_refresh",
    "inspect",
)


@dataclass(frozen=True)
class CacheOptions:
    """Validated options for a cached operation."""
    max_size: int = 128
    ttl: int = 0
    eviction: str = "passive"
    key: Optional[Keygen] = None
    prepare: Optional[Transformer] = None
    transform: Optional[Transformer] = None
    on_hit: Optional[Callable[..., None]] = None
    on_miss: Optional[Callable[..., None]] = None
    on_evict: Optional[Callable[..., None]] = None
    on_refresh: Optional[Callable[..., None]] = None
    inspect: Optional[Callable[..., None]] = None
    overrides: Overrides = field(default_factory=Overrides)
    single_flight: bool = False

    def __post_init__(self) -> None:
        if isinstance(self.max_size, bool) or not isinstance(self.max_size, int) or self.max_size < 0:
            raise ConfigurationError("max_size", "must be an integer >= 0", self.max_size)
        if isinstance(self.ttl, bool) or not isinstance(self.ttl, (int, float)) or self.ttl < 0:
            raise ConfigurationError("ttl", "must be a non-negative number of milliseconds", self.ttl)
        if self.eviction not in EVICTION_STRATEGIES:
            raise ConfigurationError(
                "eviction", f"must be one of {', '.join(EVICTION_STRATEGIES)}", self.eviction
            )
        for name in _CALLABLE_FIELDS:
            value = getattr(self, name)
            if value is not None and not callable(value):
                raise ConfigurationError(name, "must be callable", value)
        if not isinstance(self.overrides, Overrides):
            raise ConfigurationError("overrides", "must be an Overrides instance", self.overrides)

    @classmethod
    def from_config(cls, **kwargs: Any) -> "CacheOptions":
        """Options whose unspecified fields come from the process configuration."""
        defaults = get_config().cache
        values: Dict[str, Any] = {
            "max_size": defaults.max_size.get(),
            "ttl": defaults.ttl_ms.get(),
            "eviction": defaults.eviction.get(),
            "single_flight": defaults.single_flight.get(),
        }
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(kwargs) - known)
        if unknown:
            raise ConfigurationError(unknown[0], "unknown cache option")
        if isinstance(kwargs.get("overrides"), dict):
            try:
                kwargs["overrides"] = Overrides(**kwargs["overrides"])
            except TypeError as exc:
                raise ConfigurationError("overrides", str(exc), kwargs["overrides"]) from exc
        values.update(kwargs)
        return cls(**values)


__all__ = ["CacheOptions", "Transformer"]
