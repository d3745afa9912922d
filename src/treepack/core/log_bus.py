"""In-process bus carrying log records to subscribers.

Hosts embedding treepack subscribe here to receive warnings (for example a
skipped symlink) as structured records instead of scraping console output.
Publishing is fail-safe: a raising subscriber never breaks the archiver.
"""

from __future__ import annotations

import contextlib
import sys
import traceback
from collections.abc import Callable
from dataclasses import dataclass, field

Subscriber = Callable[["LogRecord"], None]


@dataclass(frozen=True)
class LogRecord:
    level_name: str
    plain: str
    logger_name: str
    fields: dict[str, str] = field(default_factory=dict)

    @property
    def path(self) -> str | None:
        return self.fields.get("path")


class LogBus:
    def __init__(self) -> None:
        self._by_level: dict[str, list[Subscriber]] = {}
        self._all: list[Subscriber] = []

    def subscribe(self, level_name: str, cb: Subscriber) -> None:
        self._by_level.setdefault(level_name, []).append(cb)

    def subscribe_all(self, cb: Subscriber) -> None:
        self._all.append(cb)

    def publish(self, record: LogRecord) -> None:
        for cb in [*self._all, *self._by_level.get(record.level_name, [])]:
            try:
                cb(record)
            except Exception:
                # Never route through the core logger here; it publishes to us.
                with contextlib.suppress(Exception):
                    sys.stderr.write(
                        "LogBus subscriber raised; suppressed.\n" + traceback.format_exc()
                    )

    def clear(self) -> None:
        self._by_level.clear()
        self._all.clear()


_LOG_BUS: LogBus | None = None


def get_log_bus() -> LogBus:
    global _LOG_BUS
    if _LOG_BUS is None:
        _LOG_BUS = LogBus()
    return _LOG_BUS
