"""
memokit Error Taxonomy

Computation errors and prepare/transform hook errors are never wrapped:
they reach the caller unchanged. Only failures that belong to the caching
layer itself get a type here.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

from typing import Any, Optional


class MemoError(Exception):
    """Base exception for memokit."""
    pass


class ConfigurationError(MemoError):
    """An option or override is structurally unusable."""

    def __init__(self, name: str, message: str, value: Any = None):
        self.name = name
        self.message = message
        self.value = value
        super().__init__(f"{name}: {message}")


class KeyGenerationError(MemoError):
    """The key function raised; the cache was not consulted."""

    def __init__(self, operation: str, cause: BaseException):
        self.operation = operation
        self.cause = cause
        super().__init__(
            f"Key generation failed for '{operation}': {type(cause).__name__}: {cause}"
        )


class OwnerBindingError(MemoError, TypeError):
    """The owner instance or type cannot be held by a weak reference."""
    pass


class CallbackError(MemoError):
    """
    A suppressed failure inside an observation callback.

    Never raised to callers; built only so the failure can be logged
    with its callback name attached.
    """

    def __init__(self, callback: str, cause: BaseException, key: Optional[Any] = None):
        self.callback = callback
        self.cause = cause
        self.key = key
        super().__init__(f"Callback '{callback}' failed: {type(cause).__name__}: {cause}")


__all__ = [
    "MemoError",
    "ConfigurationError",
    "KeyGenerationError",
    "OwnerBindingError",
    "CallbackError",
]
