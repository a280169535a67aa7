"""Materialization of extracted file specs onto disk."""

from .backup import BACKUP_SUFFIX, DEFAULT_BACKUP_DIRNAME, BackupManager
from .engine import MaterializationEngine, resolve_destination, write_file
from .models import (
    DEFAULT_COMMIT_MESSAGE,
    BackupRecord,
    FileOutcome,
    MaterializeOptions,
    PipelineOutcome,
    PlannedAction,
    Stats,
)
from .validators import CommandValidator, Validator, ValidatorRegistry

__all__ = [
    "BACKUP_SUFFIX",
    "DEFAULT_BACKUP_DIRNAME",
    "DEFAULT_COMMIT_MESSAGE",
    "BackupManager",
    "BackupRecord",
    "CommandValidator",
    "FileOutcome",
    "MaterializationEngine",
    "MaterializeOptions",
    "PipelineOutcome",
    "PlannedAction",
    "Stats",
    "Validator",
    "ValidatorRegistry",
    "resolve_destination",
    "write_file",
]
