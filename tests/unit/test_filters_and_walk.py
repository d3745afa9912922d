"""Tests for entry filters and the tree walk."""

from __future__ import annotations

import os

import pytest

from treepack.archive.filters import (
    Decision,
    ExplicitList,
    IgnorePatterns,
    Unfiltered,
    build_filter,
)
from treepack.archive.walk import FsEntry, relative_path, walk_tree
from treepack.core.errors import ArchiveError, ArchiveOperation

BASE = os.path.abspath("/srv/data")


def _entry(rel: str, *, is_dir: bool = False) -> FsEntry:
    return FsEntry(
        path=os.path.join(BASE, *rel.split("/")),
        rel_path=rel,
        is_dir=is_dir,
        is_symlink=False,
    )


class TestExplicitList:
    def test_exact_match(self):
        f = ExplicitList(BASE, ["a/b.txt"])
        assert f.decide(_entry("a/b.txt")) is Decision.INCLUDE

    def test_ancestor_directory_is_traversed(self):
        f = ExplicitList(BASE, ["a/deep/b.txt"])
        assert f.decide(_entry("a", is_dir=True)) is Decision.INCLUDE
        assert f.decide(_entry("a/deep", is_dir=True)) is Decision.INCLUDE

    def test_sibling_excluded_and_other_directories_pruned(self):
        f = ExplicitList(BASE, ["a/b.txt"])
        assert f.decide(_entry("a/other.txt")) is Decision.EXCLUDE
        assert f.decide(_entry("z", is_dir=True)) is Decision.PRUNE

    def test_prefix_is_per_component(self):
        f = ExplicitList(BASE, ["a/b.txt"])
        assert f.decide(_entry("ab", is_dir=True)) is Decision.PRUNE

    def test_requested_directory_includes_contents(self):
        f = ExplicitList(BASE, [os.path.join(BASE, "world")])
        assert f.decide(_entry("world/region/r.mca")) is Decision.INCLUDE


class TestIgnorePatterns:
    def test_glob(self):
        f = IgnorePatterns("*.log")
        assert f.decide(_entry("server.log")) is Decision.EXCLUDE
        assert f.decide(_entry("keep/server.log.txt")) is Decision.INCLUDE

    def test_negation(self):
        f = IgnorePatterns("*.log\n!important.log\n")
        assert f.decide(_entry("debug.log")) is Decision.EXCLUDE
        assert f.decide(_entry("important.log")) is Decision.INCLUDE

    def test_directory_only_pattern(self):
        f = IgnorePatterns("cache/\n")
        assert f.decide(_entry("cache", is_dir=True)) is Decision.PRUNE
        assert f.decide(_entry("cache")) is Decision.INCLUDE

    def test_comments_and_blank_lines(self):
        f = IgnorePatterns("# comment\n\n*.tmp\n")
        assert f.matches("x.tmp")
        assert not f.matches("# comment")


class TestBuildFilter:
    def test_files_win(self):
        assert isinstance(build_filter(BASE, ["a"], "*.log"), ExplicitList)

    def test_ignore_when_no_files(self):
        assert isinstance(build_filter(BASE, [], "*.log"), IgnorePatterns)

    def test_unfiltered(self):
        f = build_filter(BASE)
        assert isinstance(f, Unfiltered)
        assert f.decide(_entry("anything")) is Decision.INCLUDE


class TestWalk:
    def test_yields_all_entries_with_relative_paths(self, tree):
        rels = {e.rel_path for e in walk_tree(tree)}
        assert rels == {
            "server.properties",
            "world",
            "world/level.dat",
            "world/region",
            "world/region/r.0.0.mca",
            "logs",
            "logs/latest.log",
            "empty.txt",
        }

    def test_prune_skips_descent(self, tree):
        rels = {e.rel_path for e in walk_tree(tree, prune=lambda e: e.rel_path == "world")}
        assert "world" in rels
        assert not any(r.startswith("world/") for r in rels)

    def test_symlinks_not_followed(self, tree):
        os.symlink(tree / "world", tree / "alias")
        entries = {e.rel_path: e for e in walk_tree(tree)}

        assert entries["alias"].is_symlink
        assert not entries["alias"].is_dir
        assert not any(r.startswith("alias/") for r in entries)

    def test_missing_base(self, tmp_path):
        with pytest.raises(ArchiveError) as exc:
            list(walk_tree(tmp_path / "missing"))
        assert exc.value.operation is ArchiveOperation.READDIR
        assert exc.value.path == "."

    def test_is_lazy(self, tree):
        it = walk_tree(tree)
        first = next(it)
        assert isinstance(first, FsEntry)


def test_relative_path_normalizes():
    assert relative_path(BASE, os.path.join(BASE, "a", "b.txt")) == "a/b.txt"
    assert relative_path(BASE + os.sep, os.path.join(BASE, "c")) == "c"
