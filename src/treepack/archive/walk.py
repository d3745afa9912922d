"""Lazy depth-first walk of a directory tree.

Symbolic links are reported, never followed. Directories are yielded before
their contents; a ``prune`` callback decides whether to descend.
"""

from __future__ import annotations

import os
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from pathlib import Path

from treepack.core.errors import ArchiveError, ArchiveOperation


@dataclass(frozen=True)
class FsEntry:
    """Filesystem entry seen during the walk (snapshot, not re-validated)."""

    path: str
    rel_path: str
    is_dir: bool
    is_symlink: bool


def relative_path(base: str, path: str) -> str:
    """Strip ``base`` from ``path`` and normalize separators to '/'."""
    prefix = base.rstrip(os.sep) + os.sep
    rel = path[len(prefix) :] if path.startswith(prefix) else path
    if os.sep != "/":
        rel = rel.replace(os.sep, "/")
    return rel


def walk_tree(
    base: Path | str,
    *,
    prune: Callable[[FsEntry], bool] | None = None,
) -> Iterator[FsEntry]:
    """Yield every entry below ``base`` (unsorted, single pass).

    Raises:
        ArchiveError: READDIR when a directory cannot be listed for any reason
            other than having disappeared. A missing ``base`` is always fatal.
    """
    root = os.path.abspath(os.fspath(base))
    stack = [root]

    while stack:
        current = stack.pop()
        try:
            with os.scandir(current) as it:
                for de in it:
                    is_symlink = de.is_symlink()
                    entry = FsEntry(
                        path=de.path,
                        rel_path=relative_path(root, de.path),
                        is_dir=not is_symlink and de.is_dir(follow_symlinks=False),
                        is_symlink=is_symlink,
                    )
                    yield entry
                    if entry.is_dir and not (prune is not None and prune(entry)):
                        stack.append(entry.path)
        except FileNotFoundError as e:
            if current == root:
                raise ArchiveError(ArchiveOperation.READDIR, ".", e) from e
            continue
        except OSError as e:
            rel = "." if current == root else relative_path(root, current)
            raise ArchiveError(ArchiveOperation.READDIR, rel, e) from e
