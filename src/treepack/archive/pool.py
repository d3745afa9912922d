"""Reusable fixed-size copy buffers.

Large file bodies are copied through buffers borrowed from a pool so that an
archive run allocates O(buffer size) memory regardless of file sizes.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Iterator
from contextlib import contextmanager

DEFAULT_BUFFER_SIZE = 4 * 1024


class BufferPool:
    """Free-list of equally sized bytearrays.

    ``deque.append`` and ``deque.pop`` are atomic, so several archive jobs may
    share one pool without a lock. A buffer belongs to a single borrower until
    it is released.
    """

    def __init__(self, size: int = DEFAULT_BUFFER_SIZE) -> None:
        if size <= 0:
            raise ValueError("buffer size must be > 0")
        self.size = size
        self._free: deque[bytearray] = deque()
        self.allocated = 0

    def acquire(self) -> bytearray:
        """Return a buffer of exactly ``size`` bytes; contents are stale."""
        try:
            return self._free.pop()
        except IndexError:
            self.allocated += 1
            return bytearray(self.size)

    def release(self, buf: bytearray) -> None:
        if len(buf) != self.size:
            raise ValueError(f"buffer of {len(buf)} bytes does not belong to a {self.size} pool")
        self._free.append(buf)

    @contextmanager
    def borrow(self) -> Iterator[bytearray]:
        buf = self.acquire()
        try:
            yield buf
        finally:
            self.release(buf)

    def __len__(self) -> int:
        return len(self._free)


_DEFAULT_POOL: BufferPool | None = None


def default_pool() -> BufferPool:
    """Process-wide pool for hosts that do not manage their own."""
    global _DEFAULT_POOL
    if _DEFAULT_POOL is None:
        _DEFAULT_POOL = BufferPool()
    return _DEFAULT_POOL
