"""Archive builder: walk a tree and stream it into a .tar.gz file.

Writer chain, in the order a write call travels:

    tar stream -> gzip -> progress (optional) -> limiter (optional) -> file

Progress therefore counts compressed bytes, i.e. what the limiter paces and
what lands on disk.

Failure model:
- entries that vanish between the walk and the read are skipped silently;
- unreadable or dangling symlinks are skipped (unexpected errors are logged);
- every other I/O failure aborts the run with an ArchiveError naming the
  operation and the relative path. The partial destination is left for the
  caller to discard.
"""

from __future__ import annotations

import gzip
import os
import stat
import tarfile
import threading
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from typing import BinaryIO

from treepack.archive.filters import Decision, EntryFilter, build_filter
from treepack.archive.limiter import limit_writer
from treepack.archive.pool import DEFAULT_BUFFER_SIZE, BufferPool, default_pool
from treepack.archive.progress import Progress
from treepack.archive.tarstream import TarStreamError, TarStreamWriter, tarinfo_from_stat
from treepack.archive.walk import FsEntry, walk_tree
from treepack.core.config import ConfigResolver
from treepack.core.diagnostics import observe_operation
from treepack.core.errors import ArchiveCancelledError, ArchiveError, ArchiveOperation
from treepack.core.logging import get_logger

_logger = get_logger(__name__)

DESTINATION_MODE = 0o600


class CompressionLevel(StrEnum):
    NONE = "none"
    BEST_SPEED = "best_speed"
    BEST_COMPRESSION = "best_compression"

    @property
    def gzip_level(self) -> int:
        return {"none": 0, "best_speed": 1, "best_compression": 9}[self.value]

    @classmethod
    def parse(cls, value: str | None) -> CompressionLevel:
        """Map a configured name to a level; unknown names mean best_speed."""
        norm = (value or "").strip().lower()
        for level in cls:
            if level.value == norm:
                return level
        return cls.BEST_SPEED


class ArchiveState(StrEnum):
    IDLE = "idle"
    OPENING = "opening"
    WALKING = "walking"
    CLOSING = "closing"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class ArchiveJob:
    """What to archive.

    ``files`` (absolute or relative to ``base_path``) takes priority over
    ``ignore``; with neither set the whole tree is archived.

    ``progress`` counts compressed bytes on their way to the destination.
    ``read_progress`` counts uncompressed file bytes as they are copied in,
    which is the scale ``estimate_total`` measures.
    """

    base_path: str
    ignore: str = ""
    files: tuple[str, ...] = ()
    progress: Progress | None = None
    read_progress: Progress | None = None

    def entry_filter(self) -> EntryFilter:
        return build_filter(self.base_path, self.files, self.ignore)


@dataclass(frozen=True)
class ArchiveResult:
    dst: str
    entries: int
    skipped: int
    bytes_read: int
    bytes_written: int
    warnings: list[str]


@dataclass
class _Tally:
    entries: int = 0
    skipped: int = 0
    bytes_read: int = 0
    warnings: list[str] = field(default_factory=list)


class ArchiveBuilder:
    """Create one compressed archive from ``job``.

    A builder is single-use in spirit but may be re-run; ``state`` reflects
    the most recent ``create`` call.
    """

    def __init__(
        self,
        job: ArchiveJob,
        *,
        compression: CompressionLevel = CompressionLevel.BEST_SPEED,
        write_limit_mib: float = 0.0,
        pool: BufferPool | None = None,
        cancel: threading.Event | None = None,
    ) -> None:
        self.job = job
        self.compression = compression
        self.write_limit_mib = write_limit_mib
        self.pool = pool if pool is not None else default_pool()
        self.cancel = cancel
        self.state = ArchiveState.IDLE
        self._base = os.path.abspath(job.base_path)
        self._filter = job.entry_filter()
        self._dst_id: tuple[int, int] | None = None

    @classmethod
    def from_config(
        cls,
        job: ArchiveJob,
        resolver: ConfigResolver,
        *,
        pool: BufferPool | None = None,
        cancel: threading.Event | None = None,
    ) -> ArchiveBuilder:
        """Build with compression, write limit and buffer size from config."""
        if pool is None:
            size = resolver.resolve_buffer_size()
            pool = default_pool() if size == DEFAULT_BUFFER_SIZE else BufferPool(size)
        return cls(
            job,
            compression=CompressionLevel.parse(resolver.resolve_compression_level()),
            write_limit_mib=resolver.resolve_write_limit(),
            pool=pool,
            cancel=cancel,
        )

    def create(self, dst: Path | str) -> ArchiveResult:
        """Write the archive to ``dst`` (created 0600, truncated if present).

        Raises:
            ArchiveError: on the first fatal I/O failure.
            ArchiveCancelledError: when the cancel event is set mid-run.
        """
        dst_path = os.fspath(dst)
        base = {"base_path": self._base, "dst": dst_path, "compression": self.compression.value}
        tally = _Tally()

        with observe_operation(
            component="archive", operation="archive.create", base=base
        ) as summary:
            try:
                self._create(dst_path, tally)
            except BaseException:
                self.state = ArchiveState.FAILED
                raise
            self.state = ArchiveState.DONE

            result = ArchiveResult(
                dst=dst_path,
                entries=tally.entries,
                skipped=tally.skipped,
                bytes_read=tally.bytes_read,
                bytes_written=os.stat(dst_path).st_size,
                warnings=list(tally.warnings),
            )
            summary.update(
                {
                    "entries": result.entries,
                    "skipped": result.skipped,
                    "bytes_read": result.bytes_read,
                    "bytes_written": result.bytes_written,
                }
            )

        _logger.info(
            "archive created",
            dst=dst_path,
            entries=result.entries,
            skipped=result.skipped,
            bytes_written=result.bytes_written,
        )
        return result

    def _create(self, dst_path: str, tally: _Tally) -> None:
        self.state = ArchiveState.OPENING
        try:
            fd = os.open(dst_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, DESTINATION_MODE)
        except OSError as e:
            raise ArchiveError(ArchiveOperation.DESTINATION, dst_path, e) from e

        with os.fdopen(fd, "wb") as f:
            dst_st = os.fstat(f.fileno())
            self._dst_id = (dst_st.st_dev, dst_st.st_ino)
            sink = limit_writer(f, self.write_limit_mib)
            progress = self.job.progress
            if progress is not None:
                progress.writer = sink
                sink = progress

            gz = gzip.GzipFile(
                filename="",
                mode="wb",
                compresslevel=self.compression.gzip_level,
                fileobj=sink,
                mtime=0,
            )
            tw = TarStreamWriter(gz)
            try:
                self.state = ArchiveState.WALKING
                self._walk(tw, tally)
                self.state = ArchiveState.CLOSING
                try:
                    tw.close()
                    gz.close()
                except OSError as e:
                    raise ArchiveError(ArchiveOperation.CLOSE, dst_path, e) from e
            except BaseException:
                # Flush what we have; the host discards the partial file.
                try:
                    gz.close()
                except OSError as close_err:
                    _logger.debug("gzip close after failure raised", error=str(close_err))
                raise

    def _walk(self, tw: TarStreamWriter, tally: _Tally) -> None:
        entries = walk_tree(
            self._base,
            prune=lambda e: self._filter.decide(e) is not Decision.INCLUDE,
        )
        for entry in entries:
            # Directories produce no header; their contents carry the path.
            if entry.is_dir:
                continue
            if self._filter.decide(entry) is not Decision.INCLUDE:
                continue
            self._add_entry(entry, tw, tally)

    def _skip(self, tally: _Tally, entry: FsEntry, reason: str) -> None:
        tally.skipped += 1
        _logger.debug(f"skipping entry: {reason}", path=entry.rel_path)

    def _add_entry(self, entry: FsEntry, tw: TarStreamWriter, tally: _Tally) -> None:
        rel = entry.rel_path

        # lstat: inspect links as links so nothing outside the tree is pulled in.
        try:
            st = os.lstat(entry.path)
        except FileNotFoundError:
            self._skip(tally, entry, "vanished before stat")
            return
        except OSError as e:
            raise ArchiveError(ArchiveOperation.LSTAT, rel, e) from e

        if stat.S_ISSOCK(st.st_mode) or stat.S_ISDIR(st.st_mode):
            return

        # Never archive the archive being written, whatever path reaches it.
        if (st.st_dev, st.st_ino) == self._dst_id:
            return

        target = ""
        if stat.S_ISLNK(st.st_mode):
            resolved = self._read_link(entry, tally)
            if resolved is None:
                return
            target = resolved

        info = tarinfo_from_stat(st, rel, linkname=target)
        if info is None:
            return

        if info.size < 1:
            self._write_header(tw, info, rel)
            tally.entries += 1
            return

        if self.cancel is not None and self.cancel.is_set():
            raise ArchiveCancelledError(rel)

        try:
            src = open(entry.path, "rb")
        except FileNotFoundError:
            self._skip(tally, entry, "vanished before open")
            return
        except OSError as e:
            raise ArchiveError(ArchiveOperation.OPEN, rel, e) from e

        with src:
            self._write_header(tw, info, rel)
            self._copy_body(src, tw, info.size, rel)
        tally.entries += 1
        tally.bytes_read += info.size

    def _read_link(self, entry: FsEntry, tally: _Tally) -> str | None:
        """Return the raw link target, or None when the link is skipped."""
        try:
            target = os.readlink(entry.path)
            # Dangling links carry nothing worth restoring.
            os.stat(entry.path)
        except FileNotFoundError:
            self._skip(tally, entry, "symlink target does not exist")
            return None
        except OSError as e:
            tally.skipped += 1
            tally.warnings.append(f"{entry.rel_path}: {e}")
            _logger.warning(
                "failed reading symlink for target path; skipping...",
                path=entry.rel_path,
                readlink_err=str(e),
            )
            return None
        if os.sep != "/":
            target = target.replace(os.sep, "/")
        return target

    def _write_header(self, tw: TarStreamWriter, info: tarfile.TarInfo, rel: str) -> None:
        try:
            tw.write_header(info)
        except (OSError, ValueError) as e:
            raise ArchiveError(ArchiveOperation.HEADER, rel, e) from e

    def _copy_body(self, src: BinaryIO, tw: TarStreamWriter, size: int, rel: str) -> None:
        """Copy exactly ``size`` bytes using a buffer of at most pool size."""
        pooled = size >= self.pool.size
        buf = self.pool.acquire() if pooled else bytearray(size)
        try:
            with memoryview(buf) as view:
                remaining = size
                while remaining > 0:
                    chunk = view[: min(remaining, len(view))]
                    n = src.readinto(chunk)
                    if not n:
                        raise TarStreamError(f"file shrank by {remaining} bytes while copying")
                    tw.write(chunk[:n])
                    if self.job.read_progress is not None:
                        self.job.read_progress.advance(n)
                    remaining -= n
        except OSError as e:
            raise ArchiveError(ArchiveOperation.COPY, rel, e) from e
        finally:
            if pooled:
                self.pool.release(buf)
