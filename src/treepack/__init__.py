"""treepack - bounded-memory, rate-limited .tar.gz backups of directory trees."""

__version__ = "1.0.0"
