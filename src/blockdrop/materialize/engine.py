"""Concurrent backup, validate, and write of extracted file specs."""

from __future__ import annotations

import logging
import os
import queue
import threading
from pathlib import Path, PurePosixPath, PureWindowsPath
from typing import Callable, Iterable, List, Optional, Tuple

from blockdrop.errors import (
    BackupFailedError,
    CommitFailedError,
    ValidationFailedError,
    WriteFailedError,
)
from blockdrop.extraction.models import FileSpec, extension_of
from blockdrop.vcs import Committer

from .backup import BackupManager
from .models import (
    BackupRecord,
    FileOutcome,
    MaterializeOptions,
    PipelineOutcome,
    PlannedAction,
    Stats,
)
from .validators import ValidatorRegistry

LOGGER = logging.getLogger(__name__)

Writer = Callable[[Path, str], None]
_WorkItem = Optional[Tuple[int, FileSpec]]


def write_file(path: Path, code: str) -> None:
    """Write ``code`` to ``path`` as UTF-8 without newline translation."""
    path.write_bytes(code.encode("utf-8"))


def resolve_destination(root: Path, relative: str) -> Path | None:
    """Return the absolute destination for ``relative``, or None if it leaves ``root``."""
    if PurePosixPath(relative).is_absolute() or PureWindowsPath(relative).drive:
        return None
    candidate = Path(os.path.normpath(root / relative))
    try:
        candidate.relative_to(root)
    except ValueError:
        return None
    if candidate == root:
        return None
    return candidate


def _failed(
    index: int,
    error: WriteFailedError,
    backup: BackupRecord | None,
    warnings: List[str],
) -> FileOutcome:
    LOGGER.error("%s", error)
    return FileOutcome(
        index=index,
        path=error.path,
        status="failed",
        reason=error.detail,
        backup=backup,
        warnings=warnings,
    )


class MaterializationEngine:
    """Write file specs to disk through a fixed-size worker pool.

    Workers drain a queue of specs and push one `FileOutcome` per spec onto a
    results queue; the calling thread is the only consumer of that queue and
    the only writer of `Stats`. Two specs that share a destination race and
    the last write to finish wins.
    """

    def __init__(
        self,
        *,
        validators: ValidatorRegistry | None = None,
        committer: Committer | None = None,
        backup_factory: Callable[[Path], BackupManager] | None = None,
        writer: Writer | None = None,
    ) -> None:
        """Initialize the engine.

        Args:
            validators: Registry consulted when validation is enabled.
            committer: Collaborator used when a run requests a commit.
            backup_factory: Builds the backup manager for a run from its root.
                A fresh manager is built per run so records never outlive it.
            writer: Function that writes content to a path (tests instrument it).
        """
        self._validators = validators
        self._committer = committer
        self._backup_factory = backup_factory or BackupManager
        self._writer = writer or write_file

    def process(
        self,
        specs: Iterable[FileSpec],
        options: MaterializeOptions | None = None,
        *,
        cancel: threading.Event | None = None,
    ) -> PipelineOutcome:
        """Materialize ``specs`` and return per-file outcomes plus stats.

        Args:
            specs: File specs in extraction order.
            options: Run options; defaults apply when omitted.
            cancel: Once set, files not yet started are reported as skipped.

        Returns:
            PipelineOutcome: Outcomes in extraction order. Write failures are
            recorded there, never raised; call ``raise_for_failures`` to turn
            them into an error.
        """
        options = options or MaterializeOptions()
        items = list(specs)
        if not items:
            return PipelineOutcome()

        root = options.root.expanduser().resolve()
        backups = self._backup_factory(root)

        work: queue.Queue[_WorkItem] = queue.Queue()
        results: queue.Queue[FileOutcome] = queue.Queue()
        for index, spec in enumerate(items):
            work.put((index, spec))

        worker_count = min(options.concurrency, len(items))
        for _ in range(worker_count):
            work.put(None)

        threads = [
            threading.Thread(
                target=self._drain,
                args=(work, results, root, options, backups, cancel),
                name=f"blockdrop-worker-{number}",
                daemon=True,
            )
            for number in range(worker_count)
        ]
        for thread in threads:
            thread.start()

        collected = [results.get() for _ in items]
        for thread in threads:
            thread.join()

        collected.sort(key=lambda outcome: outcome.index)
        stats = Stats()
        for outcome in collected:
            if outcome.succeeded:
                stats.add(outcome.bytes_written, extension_of(outcome.path))

        result = PipelineOutcome(outcomes=collected, stats=stats)
        LOGGER.info(
            "Materialized %d file(s): %d succeeded, %d failed, %d skipped.",
            len(collected),
            len(result.succeeded),
            len(result.failed),
            len(result.skipped),
        )

        if options.commit:
            self._commit(result, options)
        return result

    def plan(self, specs: Iterable[FileSpec], root: Path) -> List[PlannedAction]:
        """Describe what `process` would do without touching the filesystem."""
        base = root.expanduser().resolve()
        actions: List[PlannedAction] = []
        for spec in specs:
            destination = resolve_destination(base, spec.path)
            if destination is None:
                actions.append(
                    PlannedAction(
                        path=spec.path,
                        action="skip",
                        size_bytes=spec.size,
                        reason="path escapes the import root",
                    )
                )
                continue
            action = "update" if destination.exists() else "create"
            actions.append(PlannedAction(path=spec.path, action=action, size_bytes=spec.size))
        return actions

    def _drain(
        self,
        work: queue.Queue[_WorkItem],
        results: queue.Queue[FileOutcome],
        root: Path,
        options: MaterializeOptions,
        backups: BackupManager,
        cancel: threading.Event | None,
    ) -> None:
        while True:
            item = work.get()
            if item is None:
                return
            index, spec = item
            if cancel is not None and cancel.is_set():
                results.put(
                    FileOutcome(index=index, path=spec.path, status="skipped", reason="cancelled")
                )
                continue
            try:
                outcome = self._process_one(index, spec, root, options, backups)
            except Exception as exc:  # pragma: no cover - keeps the aggregator from blocking
                LOGGER.exception("Unexpected error while processing %s", spec.path)
                outcome = FileOutcome(index=index, path=spec.path, status="failed", reason=str(exc))
            results.put(outcome)

    def _process_one(
        self,
        index: int,
        spec: FileSpec,
        root: Path,
        options: MaterializeOptions,
        backups: BackupManager,
    ) -> FileOutcome:
        destination = resolve_destination(root, spec.path)
        if destination is None:
            LOGGER.warning("Skipping %s: path escapes %s", spec.path, root)
            return FileOutcome(
                index=index, path=spec.path, status="skipped", reason="path escapes the import root"
            )

        warnings: List[str] = []
        existed = destination.exists()
        backup: BackupRecord | None = None

        if options.backup and existed:
            try:
                backup = backups.backup(destination)
            except BackupFailedError as exc:
                LOGGER.warning("%s; overwriting without a safety copy", exc)
                warnings.append(str(exc))

        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            detail = f"cannot create {destination.parent}: {exc.strerror or exc}"
            return _failed(index, WriteFailedError(spec.path, detail), backup, warnings)

        if options.validate_files and self._validators is not None:
            validator = self._validators.resolve(spec.path)
            if validator is not None:
                try:
                    validator.validate(spec.path, spec.code)
                except ValidationFailedError as exc:
                    LOGGER.warning("%s", exc)
                    warnings.append(str(exc))
                except Exception as exc:  # any validator error is a warning
                    LOGGER.warning("Validator for %s raised %r", spec.path, exc)
                    warnings.append(str(ValidationFailedError(spec.path, str(exc))))

        try:
            self._writer(destination, spec.code)
        except OSError as exc:
            error = WriteFailedError(spec.path, exc.strerror or str(exc))
            return _failed(index, error, backup, warnings)

        LOGGER.debug("Wrote %s (%d bytes)", spec.path, spec.size)
        return FileOutcome(
            index=index,
            path=spec.path,
            status="updated" if existed else "created",
            bytes_written=spec.size,
            backup=backup,
            warnings=warnings,
        )

    def _commit(self, result: PipelineOutcome, options: MaterializeOptions) -> None:
        paths = result.written_paths
        if not paths:
            LOGGER.info("Skipping commit; no files were written.")
            return
        if self._committer is None:
            result.commit_error = "no commit collaborator configured"
            LOGGER.warning("Commit requested but %s.", result.commit_error)
            return
        try:
            self._committer.commit(paths, options.commit_message)
        except CommitFailedError as exc:
            result.commit_error = str(exc)
            LOGGER.warning("Commit failed: %s", exc)
            return
        result.committed = True


__all__ = ["MaterializationEngine", "resolve_destination", "write_file"]
