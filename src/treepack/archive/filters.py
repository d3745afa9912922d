"""Per-entry inclusion decisions.

Exactly one filter is active per archive job:

- ExplicitList: only the requested paths (and the directories leading to them).
- IgnorePatterns: everything except paths matching gitignore-style patterns.
- Unfiltered: everything.

Filters look at paths only; they never read file contents.
"""

from __future__ import annotations

import os
from collections.abc import Iterable
from enum import StrEnum
from typing import Protocol

import pathspec

from treepack.archive.walk import FsEntry


class Decision(StrEnum):
    INCLUDE = "include"
    EXCLUDE = "exclude"
    # Excluded directory whose contents must not be visited either.
    PRUNE = "prune"


class EntryFilter(Protocol):
    def decide(self, entry: FsEntry) -> Decision: ...


class Unfiltered:
    """Include every entry."""

    def decide(self, entry: FsEntry) -> Decision:
        return Decision.INCLUDE


def _reject(entry: FsEntry) -> Decision:
    return Decision.PRUNE if entry.is_dir else Decision.EXCLUDE


class ExplicitList:
    """Include only the requested paths.

    A requested path may be absolute or relative to ``base``. An entry is
    included when it is a requested path, an ancestor directory of one (so
    the walk can reach it), or anything below a requested directory.
    """

    def __init__(self, base: str, files: Iterable[str]) -> None:
        self.base = os.path.abspath(base)
        self.files = tuple(self._absolute(f) for f in files if f)

    def _absolute(self, path: str) -> str:
        if not os.path.isabs(path):
            path = os.path.join(self.base, path)
        return os.path.normpath(path)

    def decide(self, entry: FsEntry) -> Decision:
        path = entry.path
        as_dir = path.rstrip(os.sep) + os.sep
        for requested in self.files:
            if path == requested:
                return Decision.INCLUDE
            if requested.startswith(as_dir):
                return Decision.INCLUDE
            if path.startswith(requested.rstrip(os.sep) + os.sep):
                return Decision.INCLUDE
        return _reject(entry)


class IgnorePatterns:
    """Exclude entries whose relative path matches gitignore-style patterns."""

    def __init__(self, text: str) -> None:
        self.text = text
        self.spec = pathspec.GitIgnoreSpec.from_lines(text.splitlines())

    def matches(self, rel_path: str, *, is_dir: bool = False) -> bool:
        if is_dir:
            rel_path = rel_path.rstrip("/") + "/"
        return self.spec.match_file(rel_path)

    def decide(self, entry: FsEntry) -> Decision:
        if self.matches(entry.rel_path, is_dir=entry.is_dir):
            return _reject(entry)
        return Decision.INCLUDE


def build_filter(
    base: str,
    files: Iterable[str] | None = None,
    ignore: str | None = None,
) -> EntryFilter:
    """Select the filter for a job: explicit files win over ignore patterns."""
    files = [f for f in (files or ()) if f]
    if files:
        return ExplicitList(base, files)
    if ignore:
        return IgnorePatterns(ignore)
    return Unfiltered()
