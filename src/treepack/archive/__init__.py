"""Directory-tree archiving: walk, filter, and stream into .tar.gz."""

from treepack.archive.builder import (
    ArchiveBuilder,
    ArchiveJob,
    ArchiveResult,
    ArchiveState,
    CompressionLevel,
)
from treepack.archive.filters import (
    Decision,
    EntryFilter,
    ExplicitList,
    IgnorePatterns,
    Unfiltered,
    build_filter,
)
from treepack.archive.limiter import RateLimitedWriter, TokenBucket, limit_writer
from treepack.archive.pool import DEFAULT_BUFFER_SIZE, BufferPool, default_pool
from treepack.archive.progress import Progress, estimate_total
from treepack.archive.walk import FsEntry, walk_tree

__all__ = [
    # Builder
    "ArchiveBuilder",
    "ArchiveJob",
    "ArchiveResult",
    "ArchiveState",
    "CompressionLevel",
    # Filters
    "Decision",
    "EntryFilter",
    "ExplicitList",
    "IgnorePatterns",
    "Unfiltered",
    "build_filter",
    # Limiter
    "TokenBucket",
    "RateLimitedWriter",
    "limit_writer",
    # Pool
    "BufferPool",
    "DEFAULT_BUFFER_SIZE",
    "default_pool",
    # Progress
    "Progress",
    "estimate_total",
    # Walk
    "FsEntry",
    "walk_tree",
]
