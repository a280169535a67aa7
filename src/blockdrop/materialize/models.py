"""Outcome and planning models for materialization runs."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from blockdrop.errors import MaterializationError

FileStatus = Literal["created", "updated", "failed", "skipped"]
DEFAULT_COMMIT_MESSAGE = "chore(scaffold): import AI files"


class MaterializeOptions(BaseModel):
    """Immutable options for a single materialization run.

    Attributes:
        root: Directory that relative file specs are resolved against.
        concurrency: Maximum number of files processed at once.
        backup: Move existing destinations aside before overwriting them.
        validate_files: Run registered validators before writing.
        commit: Hand written paths to the commit collaborator afterwards.
        commit_message: Message passed to the commit collaborator.
    """

    model_config = ConfigDict(frozen=True)

    root: Path = Field(default_factory=Path.cwd)
    concurrency: int = Field(default=4, ge=1)
    backup: bool = True
    validate_files: bool = True
    commit: bool = False
    commit_message: str = DEFAULT_COMMIT_MESSAGE


class BackupRecord(BaseModel):
    """Where an existing file was moved before being overwritten."""

    original_path: Path
    backup_path: Path
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class FileOutcome(BaseModel):
    """Result of processing one file spec.

    Attributes:
        index: Position of the file spec in extraction order.
        path: Relative destination path as extracted.
        status: ``created``, ``updated``, ``failed`` or ``skipped``.
        reason: Failure or skip reason.
        bytes_written: Size of the written content.
        backup: Backup taken before overwrite, if any.
        warnings: Advisory problems (backup or validation) that did not stop the write.
    """

    index: int
    path: str
    status: FileStatus
    reason: Optional[str] = None
    bytes_written: int = 0
    backup: Optional[BackupRecord] = None
    warnings: List[str] = Field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.status in ("created", "updated")


class Stats(BaseModel):
    """Aggregate counters for the files written in one run."""

    total_files: int = 0
    total_bytes: int = 0
    extensions: Dict[str, int] = Field(default_factory=dict)

    def add(self, size: int, extension: str) -> None:
        """Count one written file."""
        self.total_files += 1
        self.total_bytes += size
        key = extension or "unknown"
        self.extensions[key] = self.extensions.get(key, 0) + 1


class PipelineOutcome(BaseModel):
    """Aggregated result of a materialization run.

    Outcomes are kept in extraction order regardless of completion order.
    """

    outcomes: List[FileOutcome] = Field(default_factory=list)
    stats: Stats = Field(default_factory=Stats)
    committed: bool = False
    commit_error: Optional[str] = None

    @property
    def succeeded(self) -> List[FileOutcome]:
        return [outcome for outcome in self.outcomes if outcome.succeeded]

    @property
    def failed(self) -> List[FileOutcome]:
        return [outcome for outcome in self.outcomes if outcome.status == "failed"]

    @property
    def skipped(self) -> List[FileOutcome]:
        return [outcome for outcome in self.outcomes if outcome.status == "skipped"]

    @property
    def written_paths(self) -> List[str]:
        return [outcome.path for outcome in self.succeeded]

    @property
    def backups(self) -> List[BackupRecord]:
        return [outcome.backup for outcome in self.outcomes if outcome.backup is not None]

    @property
    def ok(self) -> bool:
        """Return True when no file failed to write."""
        return not self.failed

    def error(self) -> MaterializationError | None:
        """Return the aggregate error for failed files, or None when all writes succeeded."""
        failed = self.failed
        if not failed:
            return None
        reasons = [f"{item.path}: {item.reason}" for item in failed]
        return MaterializationError(len(self.succeeded), len(failed), reasons)

    def raise_for_failures(self) -> None:
        """Raise `MaterializationError` when any file failed to write."""
        error = self.error()
        if error is not None:
            raise error


class PlannedAction(BaseModel):
    """Dry-run preview of what materialization would do for one spec."""

    path: str
    action: Literal["create", "update", "skip"]
    size_bytes: int
    reason: Optional[str] = None


__all__ = [
    "DEFAULT_COMMIT_MESSAGE",
    "FileStatus",
    "MaterializeOptions",
    "BackupRecord",
    "FileOutcome",
    "Stats",
    "PipelineOutcome",
    "PlannedAction",
]
