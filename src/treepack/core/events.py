"""Event bus for diagnostics.

Simple pub/sub used by the archiver to announce operation start/end envelopes
without depending on whoever listens.
"""

from __future__ import annotations

import traceback
from collections import defaultdict
from collections.abc import Callable
from typing import Any

from treepack.core.logging import get_logger

_logger = get_logger(__name__)


class EventBus:
    """Simple event bus.

    Example:
        bus = EventBus()

        def on_end(data):
            print(data["data"]["status"])

        bus.subscribe("operation.end", on_end)
        bus.publish("operation.end", {"data": {"status": "succeeded"}})
    """

    def __init__(self) -> None:
        self._subscribers: dict[str, list[Callable[[dict[str, Any]], None]]] = defaultdict(list)
        self._all_subscribers: list[Callable[[str, dict[str, Any]], None]] = []

    def subscribe(self, event: str, callback: Callable[[dict[str, Any]], None]) -> None:
        """Subscribe to an event.

        Args:
            event: Event name
            callback: Callback function (receives event data dict)
        """
        self._subscribers[event].append(callback)

    def subscribe_all(self, callback: Callable[[str, dict[str, Any]], None]) -> None:
        """Subscribe to all published events.

        Args:
            callback: Callback function (receives event name and event data dict)
        """
        self._all_subscribers.append(callback)

    def publish(self, event: str, data: dict[str, Any] | None = None) -> None:
        """Publish an event.

        Subscriber failures are logged and never propagate to the publisher.
        """
        data = data or {}

        for cb_event in list(self._subscribers.get(event, [])):
            try:
                cb_event(data)
            except Exception as e:
                _logger.error(
                    f"Error in event handler for '{event}': {type(e).__name__}: {e}\n"
                    f"{traceback.format_exc()}"
                )

        for cb_all in list(self._all_subscribers):
            try:
                cb_all(event, data)
            except Exception as e:
                _logger.error(
                    f"Error in all-event handler (event='{event}'): {type(e).__name__}: {e}\n"
                    f"{traceback.format_exc()}"
                )

    def clear(self) -> None:
        """Clear all subscribers."""
        self._subscribers.clear()
        self._all_subscribers.clear()


_global_bus: EventBus | None = None


def get_event_bus() -> EventBus:
    """Get global event bus instance."""
    global _global_bus
    if _global_bus is None:
        _global_bus = EventBus()
    return _global_bus
