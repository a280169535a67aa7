"""Tests for moving files aside before overwrite."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from blockdrop.errors import BackupFailedError
from blockdrop.materialize import BACKUP_SUFFIX, BackupManager


def _fixed_clock(moment: datetime):
    return lambda: moment


def test_backup_missing_file_is_noop(tmp_path: Path) -> None:
    manager = BackupManager(tmp_path)

    assert manager.backup(tmp_path / "absent.txt") is None
    assert not manager.backup_root.exists()
    assert manager.records() == []


def test_backup_moves_file_preserving_relative_layout(tmp_path: Path) -> None:
    source = tmp_path / "src" / "app.py"
    source.parent.mkdir()
    source.write_text("old", encoding="utf-8")
    moment = datetime(2024, 5, 1, 12, 30, tzinfo=timezone.utc)
    manager = BackupManager(tmp_path, clock=_fixed_clock(moment))

    record = manager.backup(source)

    assert record is not None
    assert not source.exists()
    assert record.backup_path.read_text(encoding="utf-8") == "old"
    assert record.backup_path.parent == manager.backup_root / "src"
    assert manager.backup_root == tmp_path.resolve() / ".blockdrop-backup"
    assert record.backup_path.name.startswith("app.py.20240501T123000")
    assert record.backup_path.name.endswith(BACKUP_SUFFIX)
    assert record.original_path == source
    assert manager.records() == [record]


def test_backup_accepts_relative_paths_and_custom_directory(tmp_path: Path) -> None:
    (tmp_path / "notes.md").write_text("v1", encoding="utf-8")
    manager = BackupManager(tmp_path, "archive")

    record = manager.backup(Path("notes.md"))

    assert record is not None
    assert record.backup_path.parent == tmp_path.resolve() / "archive"


def test_repeated_backups_in_same_instant_do_not_collide(tmp_path: Path) -> None:
    target = tmp_path / "config.yaml"
    moment = datetime(2024, 5, 1, tzinfo=timezone.utc)
    manager = BackupManager(tmp_path, clock=_fixed_clock(moment))

    paths = []
    for version in ("a", "b", "c"):
        target.write_text(version, encoding="utf-8")
        record = manager.backup(target)
        assert record is not None
        paths.append(record.backup_path)

    assert len(set(paths)) == 3
    assert [path.read_text(encoding="utf-8") for path in paths] == ["a", "b", "c"]


def test_backup_failure_leaves_original_untouched(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    source = tmp_path / "keep.txt"
    source.write_text("precious", encoding="utf-8")
    manager = BackupManager(tmp_path)

    def _refuse(self: Path, target: Path) -> Path:
        raise OSError(18, "Invalid cross-device link")

    monkeypatch.setattr(Path, "rename", _refuse)

    with pytest.raises(BackupFailedError) as excinfo:
        manager.backup(source)

    assert excinfo.value.path == "keep.txt"
    assert "cross-device" in excinfo.value.detail
    assert source.read_text(encoding="utf-8") == "precious"
    assert manager.records() == []


def test_list_backups_recovers_original_paths(tmp_path: Path) -> None:
    older = datetime(2024, 1, 1, tzinfo=timezone.utc)
    newer = datetime(2024, 2, 1, tzinfo=timezone.utc)
    (tmp_path / "pkg").mkdir()
    for moment, name in ((newer, "pkg/b.py"), (older, "a.py")):
        (tmp_path / name).write_text(name, encoding="utf-8")
        BackupManager(tmp_path, clock=_fixed_clock(moment)).backup(tmp_path / name)
    (tmp_path / ".blockdrop-backup" / "stray.txt").write_text("ignored", encoding="utf-8")

    records = BackupManager(tmp_path).list_backups()

    assert [record.original_path for record in records] == [
        tmp_path.resolve() / "a.py",
        tmp_path.resolve() / "pkg" / "b.py",
    ]
    assert [record.timestamp for record in records] == [older, newer]


def test_prune_removes_only_expired_backups(tmp_path: Path) -> None:
    now = datetime(2024, 3, 10, tzinfo=timezone.utc)
    for age_days, name in ((30, "old.txt"), (1, "fresh.txt")):
        (tmp_path / name).write_text(name, encoding="utf-8")
        BackupManager(tmp_path, clock=_fixed_clock(now - timedelta(days=age_days))).backup(
            tmp_path / name
        )
    manager = BackupManager(tmp_path)

    preview = manager.prune(timedelta(days=7), now=now, dry_run=True)
    assert [record.original_path.name for record in preview] == ["old.txt"]
    assert len(manager.list_backups()) == 2

    removed = manager.prune(timedelta(days=7), now=now)

    assert [record.original_path.name for record in removed] == ["old.txt"]
    remaining = manager.list_backups()
    assert [record.original_path.name for record in remaining] == ["fresh.txt"]
