"""
memokit Observability

Structured logging and cache counters.

Architecture:
    ┌─────────────────────────────────────────────────────────┐
    │              Orchestrator / Store / Expiry               │
    │  logger.warning("msg", key=k)   metrics.hits += 1        │
    └───────────────────────┬─────────────────────────────────┘
                            │
    ┌───────────────────────▼─────────────────────────────────┐
    │                      MemoLogger                          │
    │        layer tagging, structured context fields          │
    └───────────────────────┬─────────────────────────────────┘
                            │
    ┌───────────────────────▼─────────────────────────────────┐
    │          StructuredHandler (JSON) │ text handler         │
    └─────────────────────────────────────────────────────────┘

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import json
import logging
import sys
import threading
import traceback
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


class LogLevel(Enum):
    """Log severity levels."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class MemoLayer(Enum):
    """memokit components, used to namespace loggers."""
    KEYS = "keys"
    STORE = "store"
    EXPIRY = "expiry"
    REGISTRY = "registry"
    ORCHESTRATOR = "orchestrator"
    CONFIG = "config"


@dataclass
class LogEvent:
    """Structured log event."""
    timestamp: str
    level: str
    logger: str
    message: str
    layer: str = ""
    operation: str = ""
    error_code: str = ""
    context: Dict[str, Any] = field(default_factory=dict)
    exception: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary, excluding empty values."""
        d = asdict(self)
        return {k: v for k, v in d.items() if v is not None and v != "" and v != {}}

    def to_json(self) -> str:
        """Convert to JSON string."""
        return json.dumps(self.to_dict(), default=str)


class StructuredHandler(logging.Handler):
    """Logging handler that outputs structured JSON."""

    def __init__(self, stream: Any = None):
        super().__init__()
        self.stream = stream or sys.stderr

    def emit(self, record: logging.LogRecord) -> None:
        try:
            event = LogEvent(
                timestamp=datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
                level=record.levelname.lower(),
                logger=record.name,
                message=record.getMessage(),
                layer=getattr(record, "layer", ""),
                operation=getattr(record, "operation", ""),
                error_code=getattr(record, "error_code", ""),
                context=getattr(record, "context", {}),
            )

            if record.exc_info:
                event.exception = "".join(traceback.format_exception(*record.exc_info))

            self.stream.write(event.to_json() + "\n")
            self.stream.flush()
        except Exception:
            self.handleError(record)


class TextHandler(logging.StreamHandler):
    """Plain text handler for the ``text`` log format."""

    def __init__(self, stream: Any = None):
        super().__init__(stream or sys.stderr)
        self.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s: %(message)s"
        ))


class MemoLogger:
    """
    Structured logger for memokit components.

    Tags every record with the component layer and keeps keyword
    arguments as a structured ``context`` field.
    """

    def __init__(
        self,
        name: str,
        layer: MemoLayer,
        level: Optional[LogLevel] = None,
        log_format: Optional[str] = None,
    ):
        if level is None or log_format is None:
            from memokit.config import get_config
            observability = get_config().observability
            if level is None:
                level = LogLevel(observability.log_level.get())
            if log_format is None:
                log_format = observability.log_format.get()

        self.name = name
        self.layer = layer
        self._logger = logging.getLogger(f"memokit.{layer.value}.{name}")
        self._logger.setLevel(getattr(logging, level.value.upper()))

        handler_type = StructuredHandler if log_format == "json" else TextHandler
        if not any(isinstance(h, (StructuredHandler, TextHandler)) for h in self._logger.handlers):
            self._logger.addHandler(handler_type())

    def _log(
        self,
        level: int,
        message: str,
        operation: str = "",
        error_code: str = "",
        exc_info: Any = False,
        **context: Any,
    ) -> None:
        """Internal log method."""
        extra = {
            "layer": self.layer.value,
            "operation": operation,
            "error_code": error_code,
            "context": context,
        }
        self._logger.log(level, message, extra=extra, exc_info=exc_info)

    def debug(self, message: str, **context: Any) -> None:
        """Log debug message."""
        self._log(logging.DEBUG, message, **context)

    def info(self, message: str, **context: Any) -> None:
        """Log info message."""
        self._log(logging.INFO, message, **context)

    def warning(self, message: str, **context: Any) -> None:
        """Log warning message."""
        self._log(logging.WARNING, message, **context)

    def error(
        self,
        message: str,
        error_code: str = "",
        exc_info: Any = False,
        **context: Any,
    ) -> None:
        """Log error message."""
        self._log(logging.ERROR, message, error_code=error_code, exc_info=exc_info, **context)

    @property
    def logger(self) -> logging.Logger:
        return self._logger


_loggers: Dict[str, MemoLogger] = {}
_loggers_lock = threading.Lock()


def get_logger(name: str, layer: MemoLayer) -> MemoLogger:
    """Get (or create) the logger for a memokit component."""
    qualified = f"{layer.value}.{name}"
    with _loggers_lock:
        logger = _loggers.get(qualified)
        if logger is None:
            logger = MemoLogger(name, layer)
            _loggers[qualified] = logger
        return logger


# ════════════════════════════════════════════════════════════════════════════
# CACHE METRICS
# ════════════════════════════════════════════════════════════════════════════


class CacheMetrics:
    """Cache performance counters with a lock around reads and increments."""

    _FIELDS = ("hits", "misses", "evictions", "expirations", "sets", "deletes")

    def __init__(
        self,
        hits: int = 0,
        misses: int = 0,
        evictions: int = 0,
        expirations: int = 0,
        sets: int = 0,
        deletes: int = 0,
    ):
        self._lock = threading.Lock()
        self.hits = hits
        self.misses = misses
        self.evictions = evictions
        self.expirations = expirations
        self.sets = sets
        self.deletes = deletes

    def incr(self, name: str, amount: int = 1) -> None:
        """Increment a counter by name."""
        if name not in self._FIELDS:
            raise AttributeError(f"Unknown cache metric: {name}")
        with self._lock:
            setattr(self, name, getattr(self, name) + amount)

    @property
    def total_requests(self) -> int:
        """Total cache lookups."""
        with self._lock:
            return self.hits + self.misses

    @property
    def hit_ratio(self) -> float:
        """Cache hit ratio (0.0 - 1.0)."""
        with self._lock:
            total = self.hits + self.misses
            if total == 0:
                return 0.0
            return self.hits / total

    def snapshot(self) -> "CacheMetrics":
        """Copy of the current counters."""
        with self._lock:
            return CacheMetrics(**{name: getattr(self, name) for name in self._FIELDS})

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        with self._lock:
            total = self.hits + self.misses
            data: Dict[str, Any] = {name: getattr(self, name) for name in self._FIELDS}
            data["total_requests"] = total
            data["hit_ratio"] = round(self.hits / total if total > 0 else 0.0, 4)
            return data


__all__ = [
    "LogLevel",
    "MemoLayer",
    "LogEvent",
    "StructuredHandler",
    "TextHandler",
    "MemoLogger",
    "get_logger",
    "CacheMetrics",
]
