"""Sequential tar writer for non-seekable sinks.

``tarfile.TarFile.addfile`` insists on copying a whole file object with its
own buffer. The archiver needs to push bodies through pooled buffers and to
write a header before knowing whether the body copy will succeed, so the
container framing is done here while header encoding stays with ``tarfile``.
"""

from __future__ import annotations

import grp
import os
import pwd
import stat
import tarfile
from typing import Protocol

NUL = b"\0"
BLOCKSIZE = tarfile.BLOCKSIZE
RECORDSIZE = tarfile.RECORDSIZE


class TarStreamError(OSError):
    """Body length does not match what the header declared."""


class _Sink(Protocol):
    def write(self, data: bytes, /) -> int | None: ...


def tarinfo_from_stat(st: os.stat_result, name: str, linkname: str = "") -> tarfile.TarInfo | None:
    """Build a header for ``name`` from an lstat result.

    Returns None for directories, sockets and any other type the tar format
    cannot carry.
    """
    mode = st.st_mode
    size = 0
    if stat.S_ISREG(mode):
        kind = tarfile.REGTYPE
        size = st.st_size
    elif stat.S_ISLNK(mode):
        kind = tarfile.SYMTYPE
    elif stat.S_ISFIFO(mode):
        kind = tarfile.FIFOTYPE
    elif stat.S_ISCHR(mode):
        kind = tarfile.CHRTYPE
    elif stat.S_ISBLK(mode):
        kind = tarfile.BLKTYPE
    else:
        return None

    info = tarfile.TarInfo(name)
    info.type = kind
    info.mode = stat.S_IMODE(mode)
    info.uid = st.st_uid
    info.gid = st.st_gid
    info.size = size
    info.mtime = int(st.st_mtime)
    info.linkname = linkname
    if kind in (tarfile.CHRTYPE, tarfile.BLKTYPE):
        info.devmajor = os.major(st.st_rdev)
        info.devminor = os.minor(st.st_rdev)
    try:
        info.uname = pwd.getpwuid(st.st_uid).pw_name
    except KeyError:
        pass
    try:
        info.gname = grp.getgrgid(st.st_gid).gr_name
    except KeyError:
        pass
    return info


class TarStreamWriter:
    """Write tar headers and bodies to ``fileobj`` strictly in order."""

    def __init__(
        self,
        fileobj: _Sink,
        *,
        format: int = tarfile.PAX_FORMAT,
        encoding: str = "utf-8",
    ) -> None:
        self.fileobj = fileobj
        self.format = format
        self.encoding = encoding
        self.offset = 0
        self.closed = False
        self._remaining = 0
        self._padding = 0

    def _write(self, data: bytes | memoryview) -> None:
        self.fileobj.write(data)
        self.offset += len(data)

    def _finish_entry(self) -> None:
        if self._remaining:
            raise TarStreamError(f"missed writing {self._remaining} bytes of the previous entry")
        if self._padding:
            self._write(NUL * self._padding)
            self._padding = 0

    def write_header(self, info: tarfile.TarInfo) -> None:
        if self.closed:
            raise ValueError("write to closed tar stream")
        self._finish_entry()
        self._write(info.tobuf(self.format, self.encoding, "surrogateescape"))
        if info.isreg():
            self._remaining = info.size
            self._padding = -info.size % BLOCKSIZE

    def write(self, data: bytes | memoryview) -> int:
        n = len(data)
        if n > self._remaining:
            raise TarStreamError(f"write of {n} bytes exceeds the {self._remaining} declared")
        self._write(data)
        self._remaining -= n
        return n

    def close(self) -> None:
        """Write the end-of-archive marker padded to a full record."""
        if self.closed:
            return
        self._finish_entry()
        self._write(NUL * (BLOCKSIZE * 2))
        remainder = self.offset % RECORDSIZE
        if remainder:
            self._write(NUL * (RECORDSIZE - remainder))
        self.closed = True
