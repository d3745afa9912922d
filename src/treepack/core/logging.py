"""Console logging for treepack.

Four verbosity levels:
- QUIET (0): Warnings + errors
- NORMAL (1): Info + warnings + errors
- VERBOSE (2): Detailed info
- DEBUG (3): Everything including internal state

Every emitted record is also published on the LogBus, so an embedding host can
collect warnings without reading the console.

Usage:
    from treepack.core.logging import get_logger, set_verbosity

    logger = get_logger(__name__)
    set_verbosity(2)  # VERBOSE

    logger.verbose("Archiving file", path="data/world.dat")
    logger.warning("failed reading symlink target; skipping", path="logs/latest")
"""

from __future__ import annotations

import sys
from enum import IntEnum

from treepack.core.config import LoggingPolicy
from treepack.core.log_bus import LogRecord, get_log_bus


class VerbosityLevel(IntEnum):
    """Verbosity levels for treepack."""

    QUIET = 0  # Warnings + errors
    NORMAL = 1  # Info + warnings + errors
    VERBOSE = 2  # Detailed info
    DEBUG = 3  # Everything


_VERBOSITY: VerbosityLevel = VerbosityLevel.NORMAL

_USE_COLORS: bool = True


def set_verbosity(level: int | VerbosityLevel) -> None:
    """Set global verbosity level.

    Args:
        level: Verbosity level (0-3 or VerbosityLevel enum)
    """
    global _VERBOSITY

    if isinstance(level, int):
        level = VerbosityLevel(level)

    _VERBOSITY = level


def get_verbosity() -> VerbosityLevel:
    """Get current verbosity level."""
    return _VERBOSITY


def apply_logging_policy(policy: LoggingPolicy) -> None:
    """Apply a resolved LoggingPolicy to the global verbosity."""
    if policy.level_name == "debug":
        set_verbosity(VerbosityLevel.DEBUG)
    elif policy.level_name == "verbose":
        set_verbosity(VerbosityLevel.VERBOSE)
    elif policy.emit_info:
        set_verbosity(VerbosityLevel.NORMAL)
    else:
        set_verbosity(VerbosityLevel.QUIET)


def set_colors(enabled: bool) -> None:
    """Enable or disable colored output."""
    global _USE_COLORS
    _USE_COLORS = enabled


def _format_fields(fields: dict[str, object]) -> str:
    return " ".join(f"{key}={value!r}" for key, value in fields.items())


class TreepackLogger:
    """Logger with verbosity support and structured key=value fields."""

    # ANSI color codes
    COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "VERBOSE": "\033[34m",  # Blue
        "INFO": "\033[32m",  # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "RESET": "\033[0m",
    }

    def __init__(self, name: str):
        self.name = name

    def _format_message(self, level: str, message: str) -> str:
        if _USE_COLORS and sys.stderr.isatty():
            color = self.COLORS.get(level, "")
            reset = self.COLORS["RESET"]
            return f"{color}[{level.lower()}]{reset} {message}"
        return f"[{level.lower()}] {message}"

    def _log(
        self,
        level: VerbosityLevel,
        level_name: str,
        message: str,
        fields: dict[str, object],
    ) -> None:
        if level > _VERBOSITY:
            return

        if fields:
            message = f"{message} {_format_fields(fields)}"

        plain = f"[{level_name.lower()}] {message}"
        get_log_bus().publish(
            LogRecord(
                level_name=level_name,
                plain=plain,
                logger_name=self.name,
                fields={key: str(value) for key, value in fields.items()},
            )
        )

        # Progress bars own stdout, so all log output goes to stderr.
        print(self._format_message(level_name, message), file=sys.stderr)

    def debug(self, message: str, **fields: object) -> None:
        """Log debug message (verbosity >= DEBUG)."""
        self._log(VerbosityLevel.DEBUG, "DEBUG", message, fields)

    def verbose(self, message: str, **fields: object) -> None:
        """Log verbose message (verbosity >= VERBOSE)."""
        self._log(VerbosityLevel.VERBOSE, "VERBOSE", message, fields)

    def info(self, message: str, **fields: object) -> None:
        """Log info message (verbosity >= NORMAL)."""
        self._log(VerbosityLevel.NORMAL, "INFO", message, fields)

    def warning(self, message: str, **fields: object) -> None:
        """Log warning message (verbosity >= QUIET)."""
        self._log(VerbosityLevel.QUIET, "WARNING", message, fields)

    def error(self, message: str, **fields: object) -> None:
        """Log error message (always shown)."""
        self._log(VerbosityLevel.QUIET, "ERROR", message, fields)


_LOGGERS: dict[str, TreepackLogger] = {}


def get_logger(name: str = __name__) -> TreepackLogger:
    """Get logger instance for module.

    Args:
        name: Logger name (usually __name__)

    Returns:
        Logger instance
    """
    if name not in _LOGGERS:
        _LOGGERS[name] = TreepackLogger(name)

    return _LOGGERS[name]
