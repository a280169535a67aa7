"""Move existing files aside before they are overwritten."""

from __future__ import annotations

import logging
import re
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, List, Optional

from blockdrop.errors import BackupFailedError

from .models import BackupRecord

LOGGER = logging.getLogger(__name__)

DEFAULT_BACKUP_DIRNAME = ".blockdrop-backup"
BACKUP_SUFFIX = ".backup"
_STAMP_FORMAT = "%Y%m%dT%H%M%S%fZ"
_BACKUP_NAME = re.compile(r"^(?P<name>.+)\.(?P<stamp>\d{8}T\d{12}Z)(?:-(?P<counter>\d+))?\.backup$")


class BackupManager:
    """Rename files into a backup root, keeping their relative layout.

    ``src/app.py`` under the import root becomes
    ``<backup root>/src/app.py.<timestamp>.backup``. The move is a single
    rename: either the original is gone and the backup exists, or nothing
    changed. Backups are never deleted unless `prune` is called.
    """

    def __init__(
        self,
        root: Path,
        directory: str | Path = DEFAULT_BACKUP_DIRNAME,
        *,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._root = root.expanduser().resolve()
        backup_dir = Path(directory).expanduser()
        self._backup_root = backup_dir if backup_dir.is_absolute() else self._root / backup_dir
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._lock = threading.Lock()
        self._records: List[BackupRecord] = []

    @property
    def root(self) -> Path:
        """Return the directory that relative paths are resolved against."""
        return self._root

    @property
    def backup_root(self) -> Path:
        """Return the directory holding backups."""
        return self._backup_root

    def backup(self, path: Path) -> BackupRecord | None:
        """Move ``path`` into the backup root if it exists.

        Args:
            path: File about to be overwritten (absolute or relative to the root).

        Returns:
            BackupRecord | None: Where the file went, or ``None`` when there was
            nothing to back up.

        Raises:
            BackupFailedError: If the backup directory or the rename failed; the
                original file is left in place.
        """
        source = path if path.is_absolute() else self._root / path
        if not source.is_file():
            return None

        timestamp = self._clock()
        relative = self._relative(source)
        target = self._target_for(relative, timestamp)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            source.rename(target)
        except OSError as exc:
            raise BackupFailedError(relative.as_posix(), exc.strerror or str(exc)) from exc

        record = BackupRecord(original_path=source, backup_path=target, timestamp=timestamp)
        with self._lock:
            self._records.append(record)
        LOGGER.debug("Backed up %s to %s", source, target)
        return record

    def records(self) -> List[BackupRecord]:
        """Return the backups taken through this manager, oldest first."""
        with self._lock:
            return list(self._records)

    def list_backups(self) -> List[BackupRecord]:
        """Scan the backup root and return every recognisable backup, oldest first."""
        if not self._backup_root.is_dir():
            return []

        found: List[BackupRecord] = []
        for candidate in self._backup_root.rglob(f"*{BACKUP_SUFFIX}"):
            if not candidate.is_file():
                continue
            match = _BACKUP_NAME.match(candidate.name)
            if match is None:
                continue
            stamp = datetime.strptime(match.group("stamp"), _STAMP_FORMAT).replace(
                tzinfo=timezone.utc
            )
            relative_parent = candidate.parent.relative_to(self._backup_root)
            found.append(
                BackupRecord(
                    original_path=self._root / relative_parent / match.group("name"),
                    backup_path=candidate,
                    timestamp=stamp,
                )
            )
        found.sort(key=lambda record: (record.timestamp, str(record.backup_path)))
        return found

    def prune(
        self,
        retention: timedelta,
        *,
        now: Optional[datetime] = None,
        dry_run: bool = False,
    ) -> List[BackupRecord]:
        """Delete backups older than ``retention``.

        Args:
            retention: Maximum age of backups to keep.
            now: Reference time; defaults to the manager clock.
            dry_run: Report what would be removed without deleting anything.

        Returns:
            list[BackupRecord]: Backups that were (or would be) removed.
        """
        cutoff = (now or self._clock()) - retention
        expired = [record for record in self.list_backups() if record.timestamp < cutoff]
        if dry_run:
            return expired

        removed: List[BackupRecord] = []
        for record in expired:
            try:
                record.backup_path.unlink()
            except OSError as exc:
                LOGGER.warning("Could not remove backup %s: %s", record.backup_path, exc)
                continue
            removed.append(record)
        return removed

    def _relative(self, source: Path) -> Path:
        try:
            return (source.parent.resolve() / source.name).relative_to(self._root)
        except ValueError:
            return Path(source.name)

    def _target_for(self, relative: Path, timestamp: datetime) -> Path:
        stamp = timestamp.astimezone(timezone.utc).strftime(_STAMP_FORMAT)
        base = self._backup_root / relative.parent
        target = base / f"{relative.name}.{stamp}{BACKUP_SUFFIX}"
        counter = 1
        while target.exists():
            target = base / f"{relative.name}.{stamp}-{counter}{BACKUP_SUFFIX}"
            counter += 1
        return target


__all__ = ["BackupManager", "BACKUP_SUFFIX", "DEFAULT_BACKUP_DIRNAME"]
