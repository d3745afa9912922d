"""Error handling with friendly messages."""

from __future__ import annotations

from enum import StrEnum


class TreepackError(Exception):
    """Base exception for all treepack errors."""

    def __init__(self, message: str, suggestion: str | None = None) -> None:
        self.message = message
        self.suggestion = suggestion
        super().__init__(message)

    def __str__(self) -> str:
        if self.suggestion:
            return f"{self.message}\nSuggestion: {self.suggestion}"
        return self.message


class ConfigError(TreepackError):
    """Configuration error."""

    pass


class FileError(TreepackError):
    """File operation error."""

    pass


class ArchiveOperation(StrEnum):
    """Step of archive creation that failed."""

    DESTINATION = "destination"
    READDIR = "readdir"
    LSTAT = "lstat"
    HEADER = "header"
    OPEN = "open"
    COPY = "copy"
    CLOSE = "close"


class ArchiveError(FileError):
    """Fatal I/O failure while creating an archive.

    Carries the failed operation, the path relative to the archive base and the
    underlying exception so hosts can branch on them without parsing messages.
    """

    def __init__(
        self,
        operation: ArchiveOperation,
        path: str,
        cause: BaseException | None = None,
    ) -> None:
        self.operation = operation
        self.path = path
        self.cause = cause
        message = f"{operation.value} failed for '{path}'"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)


class ArchiveCancelledError(TreepackError):
    """Archive creation was cancelled by the host."""

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(
            f"Archive creation cancelled before '{path}'",
            "The destination file is incomplete and should be removed",
        )
