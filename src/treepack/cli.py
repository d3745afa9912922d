"""Command line entry point.

    treepack create BASE DEST [--ignore-file F] [--file P ...] [--progress]
"""

from __future__ import annotations

import argparse
import sys
import threading
from pathlib import Path

from treepack.archive.builder import ArchiveBuilder, ArchiveJob
from treepack.archive.progress import Progress, estimate_total
from treepack.core.config import ALLOWED_COMPRESSION_LEVELS, ConfigResolver
from treepack.core.diagnostics import install_jsonl_sink
from treepack.core.errors import TreepackError
from treepack.core.logging import apply_logging_policy, get_logger, set_colors
from treepack.core.units import format_bytes

_logger = get_logger(__name__)

PROGRESS_WIDTH = 25
PROGRESS_INTERVAL = 0.5


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="treepack", description="Back up a directory tree.")
    ap.add_argument("--config", type=Path, default=None, help="User config file (YAML)")
    verbosity = ap.add_mutually_exclusive_group()
    verbosity.add_argument("-v", "--verbose", action="count", default=0)
    verbosity.add_argument("-q", "--quiet", action="store_true")
    ap.add_argument("--no-color", action="store_true")

    sub = ap.add_subparsers(dest="command", required=True)

    create = sub.add_parser("create", help="Create a .tar.gz archive of BASE at DEST")
    create.add_argument("base", type=Path)
    create.add_argument("dest", type=Path)
    create.add_argument(
        "--ignore-file",
        type=Path,
        default=None,
        help="gitignore-style file of patterns to exclude",
    )
    create.add_argument(
        "--file",
        dest="files",
        action="append",
        default=[],
        help="Archive only this path (repeatable). Overrides --ignore-file",
    )
    create.add_argument("--compression-level", choices=ALLOWED_COMPRESSION_LEVELS, default=None)
    create.add_argument(
        "--write-limit",
        type=float,
        default=None,
        metavar="MIB",
        help="Maximum write rate in MiB/s (0 = unlimited)",
    )
    create.add_argument("--progress", action="store_true", help="Render a progress bar")
    return ap


def _cli_args(args: argparse.Namespace) -> dict[str, object]:
    backups: dict[str, object] = {}
    if getattr(args, "compression_level", None) is not None:
        backups["compression_level"] = args.compression_level
    if getattr(args, "write_limit", None) is not None:
        backups["write_limit"] = args.write_limit

    cli: dict[str, object] = {}
    if backups:
        cli["backups"] = backups
    logging_args: dict[str, object] = {}
    if args.quiet:
        logging_args["level"] = "quiet"
    elif args.verbose:
        logging_args["level"] = "debug" if args.verbose > 1 else "verbose"
    if args.no_color:
        logging_args["color"] = False
    if logging_args:
        cli["logging"] = logging_args
    return cli


def _render_loop(progress: Progress, done: threading.Event) -> None:
    while not done.wait(PROGRESS_INTERVAL):
        sys.stdout.write("\r" + progress.render(PROGRESS_WIDTH))
        sys.stdout.flush()
    sys.stdout.write("\r" + progress.render(PROGRESS_WIDTH) + "\n")
    sys.stdout.flush()


def _run_create(args: argparse.Namespace, resolver: ConfigResolver) -> int:
    ignore = ""
    if args.ignore_file is not None:
        try:
            ignore = args.ignore_file.read_text(encoding="utf-8")
        except OSError as e:
            raise TreepackError(f"Cannot read ignore file {args.ignore_file}: {e}") from e

    base = args.base.resolve()
    if not base.is_dir():
        raise TreepackError(f"Base path is not a directory: {base}")

    job = ArchiveJob(base_path=str(base), ignore=ignore, files=tuple(args.files))
    progress: Progress | None = None
    if args.progress:
        progress = Progress(estimate_total(base, job.entry_filter()))
        # The estimate sums uncompressed sizes, so the bar follows bytes read.
        job = ArchiveJob(
            base_path=job.base_path, ignore=job.ignore, files=job.files, read_progress=progress
        )

    builder = ArchiveBuilder.from_config(job, resolver)

    done = threading.Event()
    renderer: threading.Thread | None = None
    if progress is not None:
        renderer = threading.Thread(
            target=_render_loop, args=(progress, done), name="treepack-progress", daemon=True
        )
        renderer.start()
    try:
        result = builder.create(args.dest)
    finally:
        done.set()
        if renderer is not None:
            renderer.join()

    print(
        f"{result.dst}: {result.entries} entries, {format_bytes(result.bytes_read)} read, "
        f"{format_bytes(result.bytes_written)} written"
    )
    return 0


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    resolver = ConfigResolver(cli_args=_cli_args(args), user_config_path=args.config)
    try:
        apply_logging_policy(resolver.resolve_logging_policy())
        set_colors(resolver.resolve_bool("logging.color", default=True))
        install_jsonl_sink(resolver=resolver)
        if args.command == "create":
            return _run_create(args, resolver)
    except TreepackError as e:
        _logger.error(str(e))
        return 1
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        return 130
    return 2


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
