"""Exception taxonomy shared by the extraction and materialization layers."""

from __future__ import annotations

from typing import Sequence


class BlockdropError(Exception):
    """Base exception for blockdrop operations."""


class NoInputError(BlockdropError):
    """Raised when an input source has nothing to offer."""


class NoBlocksFoundError(BlockdropError):
    """Raised when the input text contains no extractable file blocks."""


class BackupFailedError(BlockdropError):
    """Raised when an existing file could not be moved aside before overwrite."""

    def __init__(self, path: str, detail: str) -> None:
        super().__init__(f"backup of {path} failed: {detail}")
        self.path = path
        self.detail = detail


class ValidationFailedError(BlockdropError):
    """Raised when an external syntax checker rejects a file."""

    def __init__(self, path: str, detail: str) -> None:
        super().__init__(f"validation of {path} failed: {detail}")
        self.path = path
        self.detail = detail


class WriteFailedError(BlockdropError):
    """Raised when a file cannot be written to its destination."""

    def __init__(self, path: str, detail: str) -> None:
        super().__init__(f"write {path}: {detail}")
        self.path = path
        self.detail = detail


class CommitFailedError(BlockdropError):
    """Raised when the commit collaborator could not record written files."""


class WatchSourceUnavailableError(BlockdropError):
    """Raised when a watched source can no longer be read."""


class MaterializationError(BlockdropError):
    """Raised when one or more files of a batch failed to write.

    Attributes:
        succeeded: Number of files written successfully.
        failed: Number of files that failed.
        reasons: The first few failure reasons, in extraction order.
    """

    MAX_REASONS = 3

    def __init__(self, succeeded: int, failed: int, reasons: Sequence[str]) -> None:
        self.succeeded = succeeded
        self.failed = failed
        self.reasons = list(reasons)[: self.MAX_REASONS]
        summary = f"{succeeded} succeeded, {failed} failed"
        if self.reasons:
            summary = f"{summary}: " + "; ".join(self.reasons)
            if failed > len(self.reasons):
                summary += f" (and {failed - len(self.reasons)} more)"
        super().__init__(summary)


__all__ = [
    "BlockdropError",
    "NoInputError",
    "NoBlocksFoundError",
    "BackupFailedError",
    "ValidationFailedError",
    "WriteFailedError",
    "CommitFailedError",
    "WatchSourceUnavailableError",
    "MaterializationError",
]
