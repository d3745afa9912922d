"""Progress tracking for archive writes.

A Progress either sits in the writer chain between the compressor and the
write limiter, counting the compressed bytes that reach the destination, or
is advanced by the builder with the uncompressed bytes it copies. The
archiving thread calls ``write``; a rendering thread may read
``written``/``total`` or call ``render`` at any time.
"""

from __future__ import annotations

import os
import threading
from pathlib import Path
from typing import Protocol

from treepack.archive.filters import Decision, EntryFilter, Unfiltered
from treepack.archive.walk import walk_tree
from treepack.core.units import format_bytes


class Writer(Protocol):
    def write(self, data: bytes, /) -> int | None: ...


class Progress:
    """Thread-safe byte counter with an optional downstream writer."""

    def __init__(self, total: int, writer: Writer | None = None) -> None:
        self._written = 0
        self._total = total
        self._lock = threading.Lock()
        self.writer = writer

    @property
    def written(self) -> int:
        """Bytes written so far."""
        return self._written

    @property
    def total(self) -> int:
        """Declared total size in bytes (advisory)."""
        return self._total

    def advance(self, count: int) -> None:
        """Add ``count`` bytes to the written total without forwarding anything."""
        with self._lock:
            self._written += count

    def write(self, data: bytes) -> int:
        """Count ``data`` then forward it downstream, if a writer is set."""
        n = len(data)
        self.advance(n)
        if self.writer is not None:
            result = self.writer.write(data)
            return n if result is None else result
        return n

    def flush(self) -> None:
        flush = getattr(self.writer, "flush", None)
        if flush is not None:
            flush()

    def render(self, width: int) -> str:
        """Return a ``width``-tick bar followed by ``written / total``.

        Ticks are truncated, never rounded, so the bar cannot exceed ``width``.
        """
        current = self.written
        total = self.total

        ticks = 0
        if total > 0:
            ticks = current * width // total
        ticks = max(0, min(ticks, width))

        bar = "=" * ticks + " " * (width - ticks)
        return f"[{bar}] {format_bytes(current)} / {format_bytes(total)}"


def estimate_total(base: Path | str, entry_filter: EntryFilter | None = None) -> int:
    """Sum the sizes of regular files under ``base`` that the filter admits."""
    entry_filter = entry_filter or Unfiltered()
    total = 0
    for entry in walk_tree(
        base, prune=lambda e: entry_filter.decide(e) is not Decision.INCLUDE
    ):
        if entry.is_dir or entry.is_symlink:
            continue
        if entry_filter.decide(entry) is not Decision.INCLUDE:
            continue
        try:
            total += os.lstat(entry.path).st_size
        except FileNotFoundError:
            continue
    return total
