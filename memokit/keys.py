"""
memokit Cache Keys

Turns a call's arguments into a cache key. The default key is compact,
sorted-key JSON of the positional arguments, so ``(1, 2)`` becomes
``"[1,2]"``. Keyword arguments, when present, are appended as a mapping.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import dataclasses
import json
from typing import Any, Callable, Dict, Hashable, Mapping, Optional, Tuple

from memokit.errors import KeyGenerationError
from memokit.observability import MemoLayer, get_logger

CacheKey = Hashable
Keygen = Callable[..., CacheKey]


def _normalize(obj: Any) -> Any:
    """Rewrite containers json cannot order deterministically."""
    if isinstance(obj, (list, tuple)):
        return [_normalize(o) for o in obj]
    if isinstance(obj, (set, frozenset)):
        items = [_normalize(o) for o in obj]
        return {"__set__": sorted(items, key=_encode)}
    if isinstance(obj, Mapping):
        if all(isinstance(k, str) for k in obj):
            return {k: _normalize(v) for k, v in obj.items()}
        pairs = [[_normalize(k), _normalize(v)] for k, v in obj.items()]
        return {"__map__": sorted(pairs, key=lambda p: _encode(p[0]))}
    if isinstance(obj, (bytes, bytearray)):
        return {"__bytes__": bytes(obj).hex()}
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return {type(obj).__qualname__: _normalize(dataclasses.asdict(obj))}
    return obj


def _fallback(obj: Any) -> str:
    return repr(obj)


def _encode(obj: Any) -> str:
    return json.dumps(
        obj,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=_fallback,
    )


def default_key(*args: Any, **kwargs: Any) -> str:
    """Stable structural serialization of the call arguments."""
    if kwargs:
        return _encode([_normalize(args), _normalize(kwargs)])
    return _encode(_normalize(args))


def freeze_key(obj: Any) -> Any:
    """
    Hashable form of a structured key.

    Lists and tuples become tuples, sets become frozensets and mappings
    become frozensets of (key, value) pairs, recursively. A list key and
    a tuple key with equal items therefore address the same entry.
    """
    if isinstance(obj, (list, tuple)):
        return tuple(freeze_key(o) for o in obj)
    if isinstance(obj, (set, frozenset)):
        return frozenset(freeze_key(o) for o in obj)
    if isinstance(obj, Mapping):
        return frozenset((freeze_key(k), freeze_key(v)) for k, v in obj.items())
    return obj


class KeyGenerator:
    """
    Cache key derivation for one cached operation.

    A custom key function may return any hashable value, or a structure
    of lists, tuples, sets and mappings, which is frozen first. Any
    exception from the key function, or a key that is still unhashable,
    is re-raised as KeyGenerationError before the store is touched.
    """

    def __init__(self, key: Optional[Keygen] = None, operation: str = ""):
        self._key = key or default_key
        self._operation = operation
        self._log = get_logger("key_generator", MemoLayer.KEYS)

    @property
    def is_default(self) -> bool:
        return self._key is default_key

    def generate(
        self,
        args: Tuple[Any, ...],
        kwargs: Optional[Dict[str, Any]] = None,
        operation: Optional[str] = None,
    ) -> CacheKey:
        try:
            key = freeze_key(self._key(*args, **(kwargs or {})))
            hash(key)
        except Exception as exc:
            error = KeyGenerationError(operation or self._operation, exc)
            self._log.error(str(error), error_code="KEY_GENERATION_ERROR", operation=error.operation)
            raise error from exc
        return key


__all__ = ["CacheKey", "Keygen", "KeyGenerator", "default_key", "freeze_key"]
