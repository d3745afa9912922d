"""Tests for the treepack command line."""

from __future__ import annotations

import tarfile

import pytest

import treepack.core.logging as treepack_logging
from treepack.cli import build_parser, main


@pytest.fixture(autouse=True)
def _no_user_config(tmp_path, monkeypatch):
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    for key in (
        "TREEPACK_BACKUPS_WRITE_LIMIT",
        "TREEPACK_DIAGNOSTICS_ENABLED",
        "TREEPACK_LOGGING_COLOR",
    ):
        monkeypatch.delenv(key, raising=False)


def test_create_archive(tree, tmp_path, capsys):
    dst = tmp_path / "out.tar.gz"
    rc = main(["--no-color", "create", str(tree), str(dst)])

    assert rc == 0
    assert "5 entries" in capsys.readouterr().out
    with tarfile.open(dst, "r:gz") as tf:
        assert "world/level.dat" in tf.getnames()


def test_create_with_ignore_file_and_progress(tree, tmp_path, capsys):
    ignore = tmp_path / ".backupignore"
    ignore.write_text("logs/\n*.dat\n")
    dst = tmp_path / "out.tar.gz"

    rc = main(
        [
            "--no-color",
            "create",
            str(tree),
            str(dst),
            "--ignore-file",
            str(ignore),
            "--progress",
            "--compression-level",
            "best_compression",
        ]
    )

    assert rc == 0
    out = capsys.readouterr().out
    final_bar = out.rsplit("\r", 1)[-1]
    assert final_bar.startswith("[" + "=" * 25 + "] ")
    with tarfile.open(dst, "r:gz") as tf:
        names = set(tf.getnames())
    assert names == {"server.properties", "world/region/r.0.0.mca", "empty.txt"}


def test_create_with_explicit_files(tree, tmp_path):
    dst = tmp_path / "out.tar.gz"
    rc = main(["create", str(tree), str(dst), "--file", "logs/latest.log"])

    assert rc == 0
    with tarfile.open(dst, "r:gz") as tf:
        assert tf.getnames() == ["logs/latest.log"]


def test_missing_base_returns_error(tmp_path, capsys):
    rc = main(["--no-color", "create", str(tmp_path / "nope"), str(tmp_path / "o.tar.gz")])

    assert rc == 1
    assert "not a directory" in capsys.readouterr().err


def test_parser_rejects_unknown_compression_level():
    with pytest.raises(SystemExit):
        build_parser().parse_args(["create", "a", "b", "--compression-level", "max"])


def test_progress_bar_fills_for_compressible_data(tmp_path, capsys):
    root = tmp_path / "flat"
    root.mkdir()
    (root / "zeros.bin").write_bytes(b"a" * (2 * 1024 * 1024))

    rc = main(["--no-color", "create", str(root), str(tmp_path / "o.tar.gz"), "--progress"])

    assert rc == 0
    final_bar = capsys.readouterr().out.rsplit("\r", 1)[-1]
    assert final_bar.startswith("[" + "=" * 25 + "] 2.0 MiB / 2.0 MiB")


def test_negative_write_limit_means_unlimited(tree, tmp_path):
    dst = tmp_path / "out.tar.gz"
    rc = main(["create", str(tree), str(dst), "--write-limit", "-1"])

    assert rc == 0
    with tarfile.open(dst, "r:gz") as tf:
        assert "server.properties" in tf.getnames()


def test_color_follows_config(tree, tmp_path, monkeypatch):
    monkeypatch.setattr(treepack_logging, "_USE_COLORS", True)
    monkeypatch.setenv("TREEPACK_LOGGING_COLOR", "off")

    assert main(["create", str(tree), str(tmp_path / "out.tar.gz")]) == 0
    assert treepack_logging._USE_COLORS is False
