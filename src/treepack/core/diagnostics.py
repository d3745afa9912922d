"""Diagnostics envelope + JSONL sink.

Every archive run publishes ``operation.start`` and ``operation.end`` envelopes
on the event bus. The JSONL sink, when enabled via ``diagnostics.enabled``,
appends them to ``diagnostics.path``.
"""

from __future__ import annotations

import json
import time
import traceback
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from treepack.core.config import ConfigResolver
from treepack.core.errors import ConfigError
from treepack.core.events import get_event_bus
from treepack.core.logging import get_logger

_logger = get_logger(__name__)

_REQUIRED_KEYS = {"event", "component", "operation", "timestamp", "data"}


def build_envelope(
    *,
    event: str,
    component: str,
    operation: str,
    data: dict[str, Any],
) -> dict[str, Any]:
    """Build the canonical diagnostics envelope.

    Schema:
        {
          "event": "<string>",
          "component": "<string>",
          "operation": "<string>",
          "timestamp": "<iso8601 utc>",
          "data": { ... }
        }

    Timestamp is emitted in UTC with a trailing 'Z'.
    """
    ts = datetime.now(UTC).replace(microsecond=0).isoformat().replace("+00:00", "Z")
    return {
        "event": event,
        "component": component,
        "operation": operation,
        "timestamp": ts,
        "data": data,
    }


def _short_traceback(*, max_lines: int = 20) -> str:
    tb_lines = traceback.format_exc().strip().splitlines()
    return "\n".join(tb_lines[-max_lines:])


def _safe_publish(event: str, payload: dict[str, Any]) -> None:
    try:
        get_event_bus().publish(event, payload)
    except Exception:
        # Diagnostics must never break an archive run.
        return


@contextmanager
def observe_operation(
    *,
    component: str,
    operation: str,
    base: dict[str, Any],
) -> Iterator[dict[str, Any]]:
    """Publish start/end envelopes around a block.

    The yielded dict is merged into the ``operation.end`` data on success.
    """
    start = time.perf_counter()
    _safe_publish(
        "operation.start",
        build_envelope(
            event="operation.start", component=component, operation=operation, data=dict(base)
        ),
    )

    summary: dict[str, Any] = {}
    try:
        yield summary
    except Exception as e:
        duration_ms = int((time.perf_counter() - start) * 1000)
        end_data = dict(base)
        end_data.update(
            {
                "status": "failed",
                "duration_ms": duration_ms,
                "error_type": type(e).__name__,
                "error_message": str(e),
                "traceback": _short_traceback(),
            }
        )
        _safe_publish(
            "operation.end",
            build_envelope(
                event="operation.end", component=component, operation=operation, data=end_data
            ),
        )
        raise
    else:
        duration_ms = int((time.perf_counter() - start) * 1000)
        end_data = dict(base)
        end_data.update(summary)
        end_data.update({"status": "succeeded", "duration_ms": duration_ms})
        _safe_publish(
            "operation.end",
            build_envelope(
                event="operation.end", component=component, operation=operation, data=end_data
            ),
        )


def _is_envelope(obj: Any) -> bool:
    return isinstance(obj, dict) and set(obj.keys()) == _REQUIRED_KEYS


_SINK_INSTALLED = False


def install_jsonl_sink(*, resolver: ConfigResolver) -> None:
    """Install the JSONL diagnostics sink subscriber.

    Idempotent; registers at most once per process. When diagnostics are
    disabled the subscriber performs no file IO.
    """
    global _SINK_INSTALLED
    if _SINK_INSTALLED:
        return

    def _on_any_event(event: str, data: dict[str, Any]) -> None:
        try:
            if not resolver.resolve_bool("diagnostics.enabled"):
                return
            out_path, _src = resolver.resolve("diagnostics.path")
        except ConfigError as e:
            _logger.warning(f"Diagnostics disabled: {e}")
            return

        payload = data
        if not _is_envelope(data):
            payload = build_envelope(
                event=event, component="unknown", operation="unknown", data=data
            )

        path = Path(str(out_path)).expanduser()
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            line = json.dumps(payload, ensure_ascii=True, separators=(",", ":"), sort_keys=True)
            with path.open("a", encoding="utf-8") as f:
                f.write(line)
                f.write("\n")
        except OSError as e:
            _logger.warning(f"Diagnostics sink write failed: {type(e).__name__}: {e}")

    get_event_bus().subscribe_all(_on_any_event)
    _SINK_INSTALLED = True
