"""treepack core: configuration, logging, errors and diagnostics."""

from treepack.core.config import ConfigResolver, LoggingPolicy
from treepack.core.errors import (
    ArchiveCancelledError,
    ArchiveError,
    ArchiveOperation,
    ConfigError,
    FileError,
    TreepackError,
)
from treepack.core.events import EventBus, get_event_bus
from treepack.core.logging import (
    VerbosityLevel,
    get_logger,
    get_verbosity,
    set_colors,
    set_verbosity,
)
from treepack.core.units import format_bytes

__all__ = [
    # Config
    "ConfigResolver",
    "LoggingPolicy",
    # Errors
    "TreepackError",
    "ConfigError",
    "FileError",
    "ArchiveError",
    "ArchiveOperation",
    "ArchiveCancelledError",
    # Events
    "EventBus",
    "get_event_bus",
    # Logging
    "VerbosityLevel",
    "get_logger",
    "set_verbosity",
    "get_verbosity",
    "set_colors",
    # Units
    "format_bytes",
]
