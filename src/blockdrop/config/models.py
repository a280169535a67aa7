"""Configuration models describing blockdrop settings."""

from __future__ import annotations

import re
from datetime import timedelta
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

_RETENTION_PATTERN = re.compile(r"^\s*(\d+)\s*([smhdw])\s*$")
_RETENTION_UNITS = {
    "s": "seconds",
    "m": "minutes",
    "h": "hours",
    "d": "days",
    "w": "weeks",
}


def parse_retention(value: str) -> timedelta:
    """Convert a retention string such as ``7d`` or ``12h`` into a timedelta.

    Args:
        value: Retention window made of an integer and a unit (s, m, h, d, w).

    Returns:
        timedelta: Parsed retention window.

    Raises:
        ValueError: If the string does not follow the expected format.
    """

    match = _RETENTION_PATTERN.match(value or "")
    if match is None:
        raise ValueError(f"Invalid retention {value!r}; expected forms like '7d', '12h' or '30m'.")
    amount, unit = match.groups()
    return timedelta(**{_RETENTION_UNITS[unit]: int(amount)})


class BlockdropBaseModel(BaseModel):
    """Shared configuration for blockdrop Pydantic models."""

    model_config = ConfigDict(extra="forbid")


class ProcessingOptions(BlockdropBaseModel):
    """Options governing how extracted files are materialized.

    Attributes:
        concurrency: Maximum number of files processed in parallel.
        validate_files: Whether registered validators run before writes.
    """

    concurrency: int = Field(default=4, ge=1)
    validate_files: bool = True


class BackupSettings(BlockdropBaseModel):
    """Backup behavior for files that are about to be overwritten.

    Attributes:
        enabled: Whether existing files are moved aside before overwrite.
        directory: Backup root, relative to the import root unless absolute.
        retention: Age after which `blockdrop backups prune` removes backups.
    """

    enabled: bool = True
    directory: str = ".blockdrop-backup"
    retention: str = "7d"

    @field_validator("retention")
    @classmethod
    def _check_retention(cls, value: str) -> str:
        parse_retention(value)
        return value

    @property
    def retention_window(self) -> timedelta:
        """Return the retention setting as a timedelta."""
        return parse_retention(self.retention)


class GitSettings(BlockdropBaseModel):
    """Commit collaborator settings.

    Attributes:
        auto_commit: Whether imports commit written files by default.
        auto_init: Whether a repository is initialized when none exists.
        default_branch: Initial branch name used with `auto_init`.
        commit_message: Message recorded for import commits.
    """

    auto_commit: bool = False
    auto_init: bool = False
    default_branch: str = "main"
    commit_message: str = "chore(scaffold): import AI files"


class ValidatorCommand(BlockdropBaseModel):
    """External syntax checker bound to a file extension.

    Attributes:
        extension: File extension without the leading dot (case-sensitive).
        command: Executable to invoke.
        args: Arguments; ``{path}`` is replaced with the file under check,
            otherwise the path is appended.
    """

    extension: str
    command: str
    args: List[str] = Field(default_factory=list)

    @field_validator("extension")
    @classmethod
    def _strip_dot(cls, value: str) -> str:
        value = value.strip().lstrip(".")
        if not value:
            raise ValueError("extension must not be empty")
        return value


class ValidationSettings(BlockdropBaseModel):
    """Validator registry configuration.

    Attributes:
        timeout_seconds: Wall-clock bound for each validator invocation.
        validators: Extension to command bindings.
    """

    timeout_seconds: float = Field(default=30.0, gt=0)
    validators: List[ValidatorCommand] = Field(default_factory=list)


class WatchSettings(BlockdropBaseModel):
    """Watch-mode behavior.

    Attributes:
        interval_seconds: Delay between fingerprint polls.
        use_events: Whether filesystem events wake the loop early for file sources.
    """

    interval_seconds: float = Field(default=5.0, gt=0)
    use_events: bool = True


class LoggingSettings(BlockdropBaseModel):
    """Runtime logging configuration.

    Attributes:
        level: Logging verbosity level.
        file: Optional log file path; rotated when it grows past `max_size_mb`.
        max_size_mb: Maximum log size before rotation.
        backup_count: Number of historical log files to retain.
    """

    level: str = "WARNING"
    file: Optional[str] = None
    max_size_mb: int = 10
    backup_count: int = 3


class CLIOptions(BlockdropBaseModel):
    """CLI presentation defaults.

    Attributes:
        quiet_default: Whether commands suppress non-error output by default.
        summary_default: Whether commands only print summary lines by default.
    """

    quiet_default: bool = False
    summary_default: bool = False


class BlockdropConfig(BlockdropBaseModel):
    """Top-level configuration struct for blockdrop."""

    processing: ProcessingOptions = Field(default_factory=ProcessingOptions)
    backup: BackupSettings = Field(default_factory=BackupSettings)
    git: GitSettings = Field(default_factory=GitSettings)
    validation: ValidationSettings = Field(default_factory=ValidationSettings)
    watch: WatchSettings = Field(default_factory=WatchSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    cli: CLIOptions = Field(default_factory=CLIOptions)


__all__ = [
    "BlockdropBaseModel",
    "ProcessingOptions",
    "BackupSettings",
    "GitSettings",
    "ValidatorCommand",
    "ValidationSettings",
    "WatchSettings",
    "LoggingSettings",
    "CLIOptions",
    "BlockdropConfig",
    "parse_retention",
]
