"""Token-bucket write limiter.

When a write limit is configured the destination file is wrapped so that the
sustained rate of compressed bytes reaching disk never exceeds the limit.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from typing import BinaryIO

MIB = 1024 * 1024


class TokenBucket:
    """Bucket refilled at ``rate`` tokens per second up to ``capacity``.

    ``wait`` may take more tokens than are available; the bucket then goes
    into debt and the caller sleeps until the debt is repaid.
    """

    def __init__(
        self,
        rate: float,
        capacity: float,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if rate <= 0:
            raise ValueError("rate must be > 0")
        if capacity <= 0:
            raise ValueError("capacity must be > 0")
        self.rate = float(rate)
        self.capacity = float(capacity)
        self._clock = clock
        self._sleep = sleep
        self._tokens = float(capacity)
        self._last = clock()
        self._lock = threading.Lock()

    def _refill(self) -> None:
        now = self._clock()
        elapsed = now - self._last
        self._last = now
        if elapsed > 0:
            self._tokens = min(self.capacity, self._tokens + elapsed * self.rate)

    def take(self, count: int) -> float:
        """Take ``count`` tokens and return how long the caller must wait."""
        with self._lock:
            self._refill()
            self._tokens -= count
            if self._tokens >= 0:
                return 0.0
            return -self._tokens / self.rate

    def wait(self, count: int) -> float:
        """Take ``count`` tokens, sleeping as needed. Returns seconds slept."""
        delay = self.take(count)
        if delay > 0:
            self._sleep(delay)
        return delay


class RateLimitedWriter:
    """File-like writer that paces ``write`` calls through a TokenBucket."""

    def __init__(self, fileobj: BinaryIO, bucket: TokenBucket) -> None:
        self.fileobj = fileobj
        self.bucket = bucket

    def write(self, data: bytes) -> int:
        self.bucket.wait(len(data))
        return self.fileobj.write(data)

    def flush(self) -> None:
        self.fileobj.flush()


def limit_writer(fileobj: BinaryIO, write_limit_mib: float) -> BinaryIO | RateLimitedWriter:
    """Wrap ``fileobj`` when ``write_limit_mib`` > 0, else return it unchanged.

    Capacity and refill rate both equal the limit expressed in bytes.
    """
    if write_limit_mib <= 0:
        return fileobj
    limit = max(1, int(write_limit_mib * MIB))
    return RateLimitedWriter(fileobj, TokenBucket(limit, limit))
