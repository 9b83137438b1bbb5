"""
memokit Configuration System

Process-wide defaults for caches that do not spell out every option,
plus logging settings, loaded from YAML files and environment variables.

Configuration Sources (in order of precedence):
    1. Environment variables (MEMOKIT_*)
    2. Runtime overrides (ConfigManager.set)
    3. YAML files (~/.memokit/config.yaml, ./config/memokit.yaml, ./memokit.yaml)
    4. Default values

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import os
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Generic, List, Optional, TypeVar, Union

import yaml

from memokit.errors import ConfigurationError
from memokit.observability import MemoLayer, get_logger

T = TypeVar("T")

EVICTION_STRATEGIES = ("passive", "active")


@dataclass
class ConfigValue(Generic[T]):
    """
    A single configuration value with metadata.

    Supports default values, environment variable binding,
    validation, and change callbacks.
    """
    default: T
    env_var: Optional[str] = None
    description: str = ""
    validator: Optional[Callable[[T], bool]] = None
    _value: Optional[T] = field(default=None, repr=False)
    _callbacks: List[Callable[[Optional[T], T], None]] = field(default_factory=list, repr=False)

    def get(self) -> T:
        """Get the current value."""
        if self.env_var and self.env_var in os.environ:
            return self._coerce(os.environ[self.env_var])

        return self._value if self._value is not None else self.default

    def set(self, value: T) -> None:
        """Set the value with validation."""
        if self.validator and not self.validator(value):
            raise ConfigurationError(self.env_var or "config", f"invalid value {value!r}", value)

        old_value = self._value
        self._value = value

        for callback in self._callbacks:
            callback(old_value, value)

    def reset(self) -> None:
        """Drop any runtime value, falling back to the default."""
        self._value = None

    def _coerce(self, value: str) -> T:
        """Coerce string value to target type."""
        target_type = type(self.default)

        if target_type == bool:
            return value.strip().lower() in ("true", "1", "yes", "on")  # type: ignore
        elif target_type == int:
            return int(value)  # type: ignore
        elif target_type == float:
            return float(value)  # type: ignore
        else:
            return value  # type: ignore

    def on_change(self, callback: Callable[[Optional[T], T], None]) -> None:
        """Register a change callback."""
        self._callbacks.append(callback)


@dataclass
class CacheDefaultsConfig:
    """Defaults applied by CacheOptions.from_config()."""
    max_size: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=128,
        env_var="MEMOKIT_MAX_SIZE",
        description="Maximum number of entries per operation store",
        validator=lambda x: isinstance(x, int) and x >= 0,
    ))
    ttl_ms: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=0,
        env_var="MEMOKIT_TTL_MS",
        description="Sliding time-to-live in milliseconds (0 = never expires)",
        validator=lambda x: isinstance(x, int) and x >= 0,
    ))
    eviction: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="passive",
        env_var="MEMOKIT_EVICTION",
        description="Expiry strategy (passive, active)",
        validator=lambda x: x in EVICTION_STRATEGIES,
    ))
    single_flight: ConfigValue[bool] = field(default_factory=lambda: ConfigValue(
        default=False,
        env_var="MEMOKIT_SINGLE_FLIGHT",
        description="Share one in-flight async computation per key",
    ))


@dataclass
class ObservabilityConfig:
    """Configuration for logging."""
    log_level: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="warning",
        env_var="MEMOKIT_LOG_LEVEL",
        description="Log level (debug, info, warning, error)",
        validator=lambda x: x in ("debug", "info", "warning", "error", "critical"),
    ))
    log_format: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="json",
        env_var="MEMOKIT_LOG_FORMAT",
        description="Log format (json, text)",
        validator=lambda x: x in ("json", "text"),
    ))


@dataclass
class MemoConfig:
    """Root configuration for memokit."""
    cache: CacheDefaultsConfig = field(default_factory=CacheDefaultsConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        def extract_values(obj: Any) -> Any:
            if isinstance(obj, ConfigValue):
                return obj.get()
            elif hasattr(obj, "__dataclass_fields__"):
                return {k: extract_values(getattr(obj, k)) for k in obj.__dataclass_fields__}
            return obj

        return extract_values(self)

    def to_yaml(self) -> str:
        """Convert to YAML string."""
        return yaml.safe_dump(self.to_dict(), default_flow_style=False)


class ConfigManager:
    """
    Configuration manager with file loading and environment binding.

    Thread-safe singleton that manages configuration lifecycle.
    """

    _instance: Optional["ConfigManager"] = None
    _lock = threading.Lock()

    def __new__(cls) -> "ConfigManager":
        with cls._lock:
            if cls._instance is None:
                cls._instance = super().__new__(cls)
                cls._instance._initialized = False
            return cls._instance

    def __init__(self):
        if self._initialized:
            return

        self._config = MemoConfig()
        self._config_paths: List[Path] = []
        self._initialized = True

    @property
    def config(self) -> MemoConfig:
        """Get the current configuration."""
        return self._config

    def load_from_file(self, path: Union[str, Path]) -> None:
        """Load configuration from a YAML file."""
        path = Path(path)
        if not path.exists():
            raise ConfigurationError(str(path), "configuration file not found")

        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)

        if data is None:
            return
        if not isinstance(data, dict):
            raise ConfigurationError(str(path), "top-level YAML value must be a mapping")

        self._apply_dict(data)
        if path not in self._config_paths:
            self._config_paths.append(path)
        get_logger("config_manager", MemoLayer.CONFIG).info(
            "Loaded configuration", path=str(path), sections=sorted(data)
        )

    def load_defaults(self) -> None:
        """Load default configuration files if they exist, lowest precedence first."""
        default_paths = [
            Path.home() / ".memokit" / "config.yaml",
            Path("config/memokit.yaml"),
            Path("memokit.yaml"),
        ]

        for path in default_paths:
            if path.exists():
                self.load_from_file(path)

    def _apply_dict(self, data: Dict[str, Any]) -> None:
        """Apply dictionary values to configuration."""
        def apply_to_config(config_obj: Any, values: Dict[str, Any], prefix: str) -> None:
            for key, value in values.items():
                path = f"{prefix}{key}"
                if not hasattr(config_obj, key):
                    raise ConfigurationError(path, "unknown configuration key")
                attr = getattr(config_obj, key)
                if isinstance(attr, ConfigValue):
                    attr.set(value)
                elif hasattr(attr, "__dataclass_fields__") and isinstance(value, dict):
                    apply_to_config(attr, value, f"{path}.")
                else:
                    raise ConfigurationError(path, "expected a mapping")

        apply_to_config(self._config, data, "")

    def set(self, path: str, value: Any) -> None:
        """
        Set a configuration value by path.

        Example: manager.set("cache.max_size", 256)
        """
        attr = self._resolve(path)
        if not isinstance(attr, ConfigValue):
            raise ConfigurationError(path, "not a configuration value")
        attr.set(value)

    def get(self, path: str) -> Any:
        """
        Get a configuration value by path.

        Example: manager.get("cache.eviction")
        """
        obj = self._resolve(path)
        if isinstance(obj, ConfigValue):
            return obj.get()
        return obj

    def _resolve(self, path: str) -> Any:
        obj: Any = self._config
        for part in path.split("."):
            if not hasattr(obj, part):
                raise ConfigurationError(path, "invalid config path")
            obj = getattr(obj, part)
        return obj

    def reload(self) -> None:
        """Reload configuration from all loaded files."""
        for path in list(self._config_paths):
            if path.exists():
                self.load_from_file(path)

    def reset(self) -> None:
        """Discard runtime and file values."""
        self._config = MemoConfig()
        self._config_paths = []

    def validate(self) -> List[str]:
        """
        Validate all configuration values.

        Returns list of validation errors.
        """
        errors: List[str] = []

        def validate_config(obj: Any, path: str = "") -> None:
            if isinstance(obj, ConfigValue):
                try:
                    value = obj.get()
                    if obj.validator and not obj.validator(value):
                        errors.append(f"{path}: validation failed for value {value}")
                except ValueError as e:
                    errors.append(f"{path}: {e}")
            elif hasattr(obj, "__dataclass_fields__"):
                for field_name in obj.__dataclass_fields__:
                    field_path = f"{path}.{field_name}" if path else field_name
                    validate_config(getattr(obj, field_name), field_path)

        validate_config(self._config)
        return errors


def get_config() -> MemoConfig:
    """Get the current memokit configuration."""
    return ConfigManager().config


def get_config_manager() -> ConfigManager:
    """Get the configuration manager instance."""
    return ConfigManager()


__all__ = [
    "ConfigValue",
    "CacheDefaultsConfig",
    "ObservabilityConfig",
    "MemoConfig",
    "ConfigManager",
    "get_config",
    "get_config_manager",
    "EVICTION_STRATEGIES",
]
