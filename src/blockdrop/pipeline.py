"""Extraction and materialization wired together as one repeatable run."""

from __future__ import annotations

import logging
import threading
from functools import partial
from pathlib import Path
from typing import List, Optional

from blockdrop.config.models import BlockdropConfig
from blockdrop.errors import NoBlocksFoundError, NoInputError
from blockdrop.extraction import BlockExtractor, FileSpec
from blockdrop.materialize import (
    BackupManager,
    MaterializationEngine,
    MaterializeOptions,
    PipelineOutcome,
    PlannedAction,
    ValidatorRegistry,
)
from blockdrop.vcs import GitCommitter

LOGGER = logging.getLogger(__name__)


class ImportPipeline:
    """Run text through the extractor and the materialization engine."""

    def __init__(
        self,
        engine: MaterializationEngine,
        options: MaterializeOptions,
        *,
        extractor: Optional[BlockExtractor] = None,
    ) -> None:
        self.engine = engine
        self.options = options
        self.extractor = extractor or BlockExtractor()

    @classmethod
    def from_config(
        cls,
        config: BlockdropConfig,
        *,
        root: Path,
        backup: Optional[bool] = None,
        validate_files: Optional[bool] = None,
        commit: Optional[bool] = None,
        concurrency: Optional[int] = None,
    ) -> "ImportPipeline":
        """Build a pipeline from configuration, letting explicit arguments win.

        Args:
            config: Effective configuration.
            root: Directory that extracted paths are written under.
            backup: Overrides ``backup.enabled`` when not None.
            validate_files: Overrides ``processing.validate_files`` when not None.
            commit: Overrides ``git.auto_commit`` when not None.
            concurrency: Overrides ``processing.concurrency`` when not None.
        """
        resolved_root = root.expanduser().resolve()
        options = MaterializeOptions(
            root=resolved_root,
            concurrency=concurrency or config.processing.concurrency,
            backup=config.backup.enabled if backup is None else backup,
            validate_files=(
                config.processing.validate_files if validate_files is None else validate_files
            ),
            commit=config.git.auto_commit if commit is None else commit,
            commit_message=config.git.commit_message,
        )
        engine = MaterializationEngine(
            validators=ValidatorRegistry.from_settings(config.validation),
            committer=GitCommitter(
                resolved_root,
                auto_init=config.git.auto_init,
                default_branch=config.git.default_branch,
            ),
            backup_factory=partial(BackupManager, directory=config.backup.directory),
        )
        return cls(engine, options)

    def extract(self, text: str) -> List[FileSpec]:
        """Return the file specs in ``text``.

        Raises:
            NoInputError: If ``text`` is blank.
            NoBlocksFoundError: If no block could be extracted.
        """
        if not text or not text.strip():
            raise NoInputError("input is empty")
        specs = self.extractor.extract(text)
        if not specs:
            raise NoBlocksFoundError("no valid code blocks found")
        LOGGER.info("Found %d file(s) in input.", len(specs))
        return specs

    def run(self, text: str, *, cancel: Optional[threading.Event] = None) -> PipelineOutcome:
        """Extract and materialize ``text``; write failures are reported on the outcome."""
        specs = self.extract(text)
        return self.engine.process(specs, self.options, cancel=cancel)

    def preview(self, text: str) -> List[PlannedAction]:
        """Return the actions a run would take, without side effects."""
        return self.engine.plan(self.extract(text), self.options.root)


__all__ = ["ImportPipeline"]
