"""Tests for BufferPool, TokenBucket and the rate-limited writer."""

from __future__ import annotations

import io

import pytest

from treepack.archive.limiter import MIB, RateLimitedWriter, TokenBucket, limit_writer
from treepack.archive.pool import DEFAULT_BUFFER_SIZE, BufferPool, default_pool


class TestBufferPool:
    def test_acquire_returns_fixed_size(self):
        pool = BufferPool(size=16)
        assert len(pool.acquire()) == 16

    def test_release_recycles_same_buffer(self):
        pool = BufferPool(size=16)
        buf = pool.acquire()
        pool.release(buf)

        assert pool.acquire() is buf
        assert pool.allocated == 1

    def test_borrow_releases_on_error(self):
        pool = BufferPool(size=16)
        with pytest.raises(RuntimeError):
            with pool.borrow():
                raise RuntimeError("boom")

        assert len(pool) == 1

    def test_rejects_foreign_buffer(self):
        pool = BufferPool(size=16)
        with pytest.raises(ValueError):
            pool.release(bytearray(8))

    def test_default_pool_is_shared(self):
        assert default_pool() is default_pool()
        assert default_pool().size == DEFAULT_BUFFER_SIZE


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0
        self.slept: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.slept.append(seconds)
        self.now += seconds


class TestTokenBucket:
    def test_burst_within_capacity_does_not_sleep(self):
        clock = FakeClock()
        bucket = TokenBucket(100, 100, clock=clock, sleep=clock.sleep)

        assert bucket.wait(100) == 0.0
        assert clock.slept == []

    def test_debt_is_repaid_by_sleeping(self):
        clock = FakeClock()
        bucket = TokenBucket(100, 100, clock=clock, sleep=clock.sleep)
        bucket.wait(100)

        assert bucket.wait(50) == pytest.approx(0.5)
        assert clock.slept == [pytest.approx(0.5)]

    def test_refill_is_capped(self):
        clock = FakeClock()
        bucket = TokenBucket(10, 10, clock=clock, sleep=clock.sleep)
        bucket.wait(10)
        clock.now += 100.0

        assert bucket.wait(10) == 0.0
        assert bucket.wait(10) == pytest.approx(1.0)

    def test_invalid_rate(self):
        with pytest.raises(ValueError):
            TokenBucket(0, 10)


class TestLimitWriter:
    def test_unlimited_returns_file(self):
        f = io.BytesIO()
        assert limit_writer(f, 0) is f
        assert limit_writer(f, -1) is f

    def test_limited_wraps_with_bucket_in_bytes(self):
        f = io.BytesIO()
        w = limit_writer(f, 2)

        assert isinstance(w, RateLimitedWriter)
        assert w.bucket.rate == 2 * MIB
        assert w.bucket.capacity == 2 * MIB
        w.write(b"data")
        assert f.getvalue() == b"data"

    def test_writer_waits_per_write(self):
        clock = FakeClock()
        f = io.BytesIO()
        w = RateLimitedWriter(f, TokenBucket(4, 4, clock=clock, sleep=clock.sleep))
        w.write(b"abcd")
        w.write(b"efgh")

        assert f.getvalue() == b"abcdefgh"
        assert clock.slept == [pytest.approx(1.0)]
