"""Configuration resolver with 4-level priority.

Priority (highest to lowest):
1. CLI arguments
2. Environment variables (TREEPACK_*)
3. Config files (user > system)
4. Defaults
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from treepack.core.errors import ConfigError

ALLOWED_LOGGING_LEVELS = frozenset({"quiet", "normal", "verbose", "debug"})
DEFAULT_LOGGING_LEVEL = "normal"

ALLOWED_COMPRESSION_LEVELS = ("none", "best_speed", "best_compression")
DEFAULT_COMPRESSION_LEVEL = "best_speed"

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class LoggingPolicy:
    """Resolved, immutable logging policy."""

    level_name: str  # quiet | normal | verbose | debug
    emit_warning: bool
    emit_info: bool
    emit_debug: bool
    source: str


class ConfigResolver:
    """Resolve configuration with strict 4-level priority.

    Example:
        resolver = ConfigResolver(
            cli_args={'backups': {'write_limit': 50}},
            user_config_path=Path('~/.config/treepack/config.yaml')
        )

        limit, source = resolver.resolve('backups.write_limit')
        # limit = 50, source = 'cli'
    """

    def __init__(
        self,
        cli_args: dict[str, Any] | None = None,
        user_config_path: Path | None = None,
        system_config_path: Path | None = None,
        defaults: dict[str, Any] | None = None,
    ) -> None:
        """Initialize config resolver.

        Args:
            cli_args: Arguments from CLI (highest priority)
            user_config_path: Path to user config file
            system_config_path: Path to system config file
            defaults: Default values (lowest priority)
        """
        self.cli_args = cli_args or {}
        self.user_config_path = user_config_path or Path.home() / ".config/treepack/config.yaml"
        self.system_config_path = system_config_path or Path("/etc/treepack/config.yaml")
        self.defaults = defaults or self._default_config()

        self._user_config: dict[str, Any] | None = None
        self._system_config: dict[str, Any] | None = None

    def resolve(self, key: str) -> tuple[Any, str]:
        """Resolve config value with priority.

        Args:
            key: Config key (supports dot notation: 'backups.write_limit')

        Returns:
            (value, source) tuple

        Raises:
            ConfigError: If key not found in any source
        """
        lookups = (
            (self._from_cli, "cli"),
            (self._from_env, "env"),
            (self._from_user_config, "user_config"),
            (self._from_system_config, "system_config"),
            (self._from_defaults, "default"),
        )
        for lookup, source in lookups:
            value = lookup(key)
            if value is not None:
                return value, source

        raise ConfigError(f"Config key '{key}' not found in any source")

    def resolve_compression_level(self) -> str:
        """Resolve backups.compression_level.

        Unknown values fall back to best_speed instead of failing; backups must
        not be blocked by a typo in the compression setting.
        """
        value = self._try_resolve_value("backups.compression_level")
        if value is None:
            return DEFAULT_COMPRESSION_LEVEL
        norm = str(value[0]).strip().lower()
        if norm not in ALLOWED_COMPRESSION_LEVELS:
            return DEFAULT_COMPRESSION_LEVEL
        return norm

    def resolve_write_limit(self) -> float:
        """Resolve backups.write_limit in MiB/s (0 or less means unlimited).

        Raises:
            ConfigError: If the value is not a number.
        """
        key = "backups.write_limit"
        found = self._try_resolve_value(key)
        if found is None:
            return 0.0
        value, _src = found
        if isinstance(value, bool):
            raise ConfigError(f"Config key '{key}' must be a number, got bool")
        try:
            limit = float(value)
        except (TypeError, ValueError):
            raise ConfigError(
                f"Config key '{key}' must be a number, got {value!r}",
                "Use 0 to disable the write limit",
            ) from None
        return limit

    def resolve_buffer_size(self) -> int:
        """Resolve backups.buffer_size in bytes."""
        key = "backups.buffer_size"
        value, _src = self.resolve(key)
        if isinstance(value, bool):
            raise ConfigError(f"Config key '{key}' must be an int")
        if isinstance(value, str) and value.strip().isdigit():
            value = int(value.strip())
        if not isinstance(value, int) or value <= 0:
            raise ConfigError(f"Config key '{key}' must be a positive int, got {value!r}")
        return value

    def resolve_bool(self, key: str, default: bool = False) -> bool:
        """Resolve a boolean key, accepting the usual string spellings from env."""
        found = self._try_resolve_value(key)
        if found is None:
            return default
        value, _src = found
        if isinstance(value, bool):
            return value
        norm = str(value).strip().lower()
        if norm in _TRUE_VALUES:
            return True
        if norm in _FALSE_VALUES:
            return False
        raise ConfigError(f"Config key '{key}' must be a bool, got {value!r}")

    def resolve_logging_policy(self) -> LoggingPolicy:
        """Resolve canonical logging policy (side-effect free).

        Raises:
            ConfigError: If logging.level is not one of the allowed names.
        """
        level_name, source = self._resolve_logging_level_and_source()
        return LoggingPolicy(
            level_name=level_name,
            emit_warning=True,
            emit_info=level_name != "quiet",
            emit_debug=level_name in ("verbose", "debug"),
            source=source,
        )

    def _resolve_logging_level_and_source(self) -> tuple[str, str]:
        key = "logging.level"
        found = self._try_resolve_value(key)
        if found is None:
            return DEFAULT_LOGGING_LEVEL, "default"

        value, source = found
        if not isinstance(value, str):
            raise ConfigError(f"Config key '{key}' must be a string, got {type(value).__name__}")

        norm = value.strip().lower()
        if norm not in ALLOWED_LOGGING_LEVELS:
            allowed = ", ".join(sorted(ALLOWED_LOGGING_LEVELS))
            raise ConfigError(f"Invalid '{key}': {value!r}. Allowed values: {allowed}")
        return norm, source

    def _try_resolve_value(self, key: str) -> tuple[Any, str] | None:
        try:
            return self.resolve(key)
        except ConfigError as e:
            if "not found in any source" in str(e):
                return None
            raise

    def _from_cli(self, key: str) -> Any | None:
        return self._get_nested(self.cli_args, key)

    def _from_env(self, key: str) -> Any | None:
        """Get value from environment variables.

        Environment variable format: TREEPACK_KEY_NAME
        Example: TREEPACK_BACKUPS_WRITE_LIMIT
        """
        env_key = f"TREEPACK_{key.upper().replace('.', '_')}"
        return os.environ.get(env_key)

    def _from_user_config(self, key: str) -> Any | None:
        return self._get_nested(self._get_user_config(), key)

    def _from_system_config(self, key: str) -> Any | None:
        return self._get_nested(self._get_system_config(), key)

    def _from_defaults(self, key: str) -> Any | None:
        return self._get_nested(self.defaults, key)

    def _get_user_config(self) -> dict[str, Any]:
        """Load user config file (cached)."""
        if self._user_config is None:
            self._user_config = self._load_yaml(self.user_config_path)
        return self._user_config

    def _get_system_config(self) -> dict[str, Any]:
        """Load system config file (cached)."""
        if self._system_config is None:
            self._system_config = self._load_yaml(self.system_config_path)
        return self._system_config

    def _load_yaml(self, path: Path) -> dict[str, Any]:
        if not path.exists():
            return {}

        try:
            with open(path) as f:
                data = yaml.safe_load(f)
                return data if isinstance(data, dict) else {}
        except Exception as e:
            raise ConfigError(f"Failed to load config from {path}: {e}") from e

    def _get_nested(self, data: dict[str, Any], key: str) -> Any | None:
        """Get nested value using dot notation.

        Example:
            data = {'backups': {'write_limit': 10}}
            _get_nested(data, 'backups.write_limit') -> 10
        """
        current: Any = data

        for part in key.split("."):
            if not isinstance(current, dict):
                return None
            current = current.get(part)
            if current is None:
                return None

        return current

    @staticmethod
    def _default_config() -> dict[str, Any]:
        """Default configuration."""
        return {
            "backups": {
                "compression_level": DEFAULT_COMPRESSION_LEVEL,
                "write_limit": 0,
                "buffer_size": 4096,
            },
            "logging": {
                "level": DEFAULT_LOGGING_LEVEL,
                "color": True,
            },
            "diagnostics": {
                "enabled": False,
                "path": str(Path.home() / ".treepack" / "diagnostics.jsonl"),
            },
        }
