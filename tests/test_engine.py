"""Tests for the concurrent materialization engine."""

from __future__ import annotations

import sys
import threading
import time
from pathlib import Path
from typing import List, Sequence

import pytest

from blockdrop.errors import CommitFailedError, MaterializationError, ValidationFailedError
from blockdrop.extraction import FileSpec
from blockdrop.materialize import (
    BackupManager,
    CommandValidator,
    MaterializationEngine,
    MaterializeOptions,
    ValidatorRegistry,
    resolve_destination,
    write_file,
)


def _options(root: Path, **overrides) -> MaterializeOptions:
    return MaterializeOptions(root=root, **overrides)


class _FakeCommitter:
    def __init__(self, error: Exception | None = None) -> None:
        self.calls: List[tuple[List[str], str]] = []
        self._error = error

    def commit(self, paths: Sequence[str], message: str) -> None:
        self.calls.append((list(paths), message))
        if self._error is not None:
            raise self._error


class _RejectingValidator:
    def validate(self, path: str, code: str) -> None:
        raise ValidationFailedError(path, "unexpected token")


class _CrashingValidator:
    def validate(self, path: str, code: str) -> None:
        raise RuntimeError("checker crashed")


def test_round_trip_writes_exact_content(tmp_path: Path) -> None:
    specs = [
        FileSpec(path="cmd/main.go", code="package main\n\nfunc main() {}"),
        FileSpec(path="README", code="héllo wörld"),
        FileSpec(path="deep/nested/dir/config.yaml", code="key: value"),
    ]

    outcome = MaterializationEngine().process(specs, _options(tmp_path))

    assert outcome.ok
    for spec in specs:
        assert (tmp_path / spec.path).read_bytes() == spec.code.encode("utf-8")
    assert [item.status for item in outcome.outcomes] == ["created", "created", "created"]
    assert outcome.stats.total_files == 3
    assert outcome.stats.total_bytes == sum(spec.size for spec in specs)
    assert outcome.stats.extensions == {"go": 1, "unknown": 1, "yaml": 1}


def test_second_run_creates_exactly_one_backup(tmp_path: Path) -> None:
    spec = FileSpec(path="a/hello.go", code="package main\nfunc main(){}")
    engine = MaterializationEngine()

    first = engine.process([spec], _options(tmp_path))
    second = engine.process([spec], _options(tmp_path))

    assert first.backups == []
    assert first.outcomes[0].status == "created"
    assert len(second.backups) == 1
    assert second.outcomes[0].status == "updated"
    assert (tmp_path / "a" / "hello.go").read_text(encoding="utf-8") == spec.code
    assert second.backups[0].backup_path.read_text(encoding="utf-8") == spec.code
    assert len(BackupManager(tmp_path).list_backups()) == 1


def test_backup_disabled_overwrites_in_place(tmp_path: Path) -> None:
    (tmp_path / "app.py").write_text("old", encoding="utf-8")

    outcome = MaterializationEngine().process(
        [FileSpec(path="app.py", code="new")], _options(tmp_path, backup=False)
    )

    assert outcome.backups == []
    assert outcome.outcomes[0].status == "updated"
    assert not (tmp_path / ".blockdrop-backup").exists()


def test_failed_backup_still_overwrites_with_warning(tmp_path: Path) -> None:
    (tmp_path / ".blockdrop-backup").write_text("not a directory", encoding="utf-8")
    (tmp_path / "a.py").write_text("old", encoding="utf-8")

    outcome = MaterializationEngine().process(
        [FileSpec(path="a.py", code="new")], _options(tmp_path)
    )

    result = outcome.outcomes[0]
    assert result.status == "updated"
    assert result.backup is None
    assert len(result.warnings) == 1
    assert result.warnings[0].startswith("backup of a.py failed:")
    assert outcome.ok
    assert (tmp_path / "a.py").read_text(encoding="utf-8") == "new"


def test_each_run_gets_its_own_backup_manager(tmp_path: Path) -> None:
    managers: List[BackupManager] = []

    def _factory(root: Path) -> BackupManager:
        managers.append(BackupManager(root))
        return managers[-1]

    engine = MaterializationEngine(backup_factory=_factory)
    spec = FileSpec(path="a.py", code="x = 1")
    for _ in range(3):
        engine.process([spec], _options(tmp_path))

    assert len(managers) == 3
    assert [len(manager.records()) for manager in managers] == [0, 1, 1]
    assert len(BackupManager(tmp_path).list_backups()) == 2


def test_partial_failure_reports_aggregate(tmp_path: Path) -> None:
    (tmp_path / "blocker").write_text("a file, not a directory", encoding="utf-8")
    specs = [
        FileSpec(path="ok_one.py", code="a = 1"),
        FileSpec(path="blocker/child.py", code="b = 2"),
        FileSpec(path="ok_two.txt", code="c"),
    ]

    outcome = MaterializationEngine().process(specs, _options(tmp_path))

    assert not outcome.ok
    assert [item.status for item in outcome.outcomes] == ["created", "failed", "created"]
    assert outcome.failed[0].path == "blocker/child.py"
    assert outcome.stats.total_files == 2
    assert outcome.stats.extensions == {"py": 1, "txt": 1}
    assert (tmp_path / "ok_one.py").exists()
    assert (tmp_path / "ok_two.txt").exists()

    with pytest.raises(MaterializationError) as excinfo:
        outcome.raise_for_failures()
    assert excinfo.value.succeeded == 2
    assert excinfo.value.failed == 1
    assert "blocker/child.py" in str(excinfo.value)


def test_writer_failure_is_isolated(tmp_path: Path) -> None:
    def _flaky_writer(path: Path, code: str) -> None:
        if path.name == "bad.txt":
            raise PermissionError(13, "Permission denied")
        write_file(path, code)

    specs = [FileSpec(path=f"{name}.txt", code=name) for name in ("good", "bad", "fine")]

    outcome = MaterializationEngine(writer=_flaky_writer).process(specs, _options(tmp_path))

    assert [item.status for item in outcome.outcomes] == ["created", "failed", "created"]
    assert outcome.failed[0].reason == "Permission denied"


def test_concurrency_limit_is_respected(tmp_path: Path) -> None:
    lock = threading.Lock()
    active = 0
    peak = 0

    def _slow_writer(path: Path, code: str) -> None:
        nonlocal active, peak
        with lock:
            active += 1
            peak = max(peak, active)
        time.sleep(0.02)
        write_file(path, code)
        with lock:
            active -= 1

    specs = [FileSpec(path=f"file_{index}.txt", code=str(index)) for index in range(12)]

    outcome = MaterializationEngine(writer=_slow_writer).process(
        specs, _options(tmp_path, concurrency=3)
    )

    assert outcome.ok
    assert 1 <= peak <= 3
    assert [item.index for item in outcome.outcomes] == list(range(12))


def test_cancelled_run_skips_unstarted_files(tmp_path: Path) -> None:
    cancel = threading.Event()
    cancel.set()
    specs = [FileSpec(path=f"f{index}.txt", code="x") for index in range(4)]

    outcome = MaterializationEngine().process(specs, _options(tmp_path), cancel=cancel)

    assert [item.status for item in outcome.outcomes] == ["skipped"] * 4
    assert all(item.reason == "cancelled" for item in outcome.outcomes)
    assert outcome.ok
    assert not any(tmp_path.iterdir())


def test_validation_failure_is_a_warning(tmp_path: Path) -> None:
    registry = ValidatorRegistry()
    registry.register("py", _RejectingValidator())
    spec = FileSpec(path="broken.py", code="def (")

    outcome = MaterializationEngine(validators=registry).process([spec], _options(tmp_path))

    result = outcome.outcomes[0]
    assert result.status == "created"
    assert result.warnings == ["validation of broken.py failed: unexpected token"]
    assert (tmp_path / "broken.py").read_text(encoding="utf-8") == "def ("


def test_non_utf8_checker_output_still_writes_file(tmp_path: Path) -> None:
    script = "import sys; sys.stderr.buffer.write(b'\\xff\\xfe bad'); sys.exit(1)"
    registry = ValidatorRegistry()
    registry.register("py", CommandValidator("py", sys.executable, ["-c", script]))

    outcome = MaterializationEngine(validators=registry).process(
        [FileSpec(path="a.py", code="x = 1")], _options(tmp_path)
    )

    result = outcome.outcomes[0]
    assert result.status == "created"
    assert len(result.warnings) == 1
    assert result.warnings[0].startswith("validation of a.py failed:")
    assert (tmp_path / "a.py").read_text(encoding="utf-8") == "x = 1"


def test_unexpected_validator_error_is_a_warning(tmp_path: Path) -> None:
    registry = ValidatorRegistry()
    registry.register("py", _CrashingValidator())

    outcome = MaterializationEngine(validators=registry).process(
        [FileSpec(path="a.py", code="x = 1")], _options(tmp_path)
    )

    result = outcome.outcomes[0]
    assert result.status == "created"
    assert result.warnings == ["validation of a.py failed: checker crashed"]
    assert outcome.ok


def test_validation_can_be_disabled(tmp_path: Path) -> None:
    registry = ValidatorRegistry()
    registry.register("py", _RejectingValidator())

    outcome = MaterializationEngine(validators=registry).process(
        [FileSpec(path="broken.py", code="def (")], _options(tmp_path, validate_files=False)
    )

    assert outcome.outcomes[0].warnings == []


def test_paths_escaping_root_are_skipped(tmp_path: Path) -> None:
    root = tmp_path / "root"
    root.mkdir()
    specs = [
        FileSpec(path="../outside.txt", code="nope"),
        FileSpec(path="/etc/absolute.txt", code="nope"),
        FileSpec(path="inside.txt", code="yes"),
    ]

    outcome = MaterializationEngine().process(specs, _options(root))

    assert [item.status for item in outcome.outcomes] == ["skipped", "skipped", "created"]
    assert not (tmp_path / "outside.txt").exists()


def test_commit_receives_written_paths(tmp_path: Path) -> None:
    committer = _FakeCommitter()
    (tmp_path / "blocker").write_text("x", encoding="utf-8")
    specs = [
        FileSpec(path="a.py", code="a = 1"),
        FileSpec(path="blocker/b.py", code="b = 2"),
    ]

    outcome = MaterializationEngine(committer=committer).process(
        specs, _options(tmp_path, commit=True, commit_message="import files")
    )

    assert outcome.committed
    assert committer.calls == [(["a.py"], "import files")]


def test_commit_failure_is_reported_not_raised(tmp_path: Path) -> None:
    committer = _FakeCommitter(CommitFailedError("not a git repository"))

    outcome = MaterializationEngine(committer=committer).process(
        [FileSpec(path="a.py", code="a = 1")], _options(tmp_path, commit=True)
    )

    assert outcome.ok
    assert not outcome.committed
    assert outcome.commit_error == "not a git repository"


def test_commit_not_attempted_without_request_or_writes(tmp_path: Path) -> None:
    committer = _FakeCommitter()
    engine = MaterializationEngine(committer=committer)

    engine.process([FileSpec(path="a.py", code="a = 1")], _options(tmp_path))
    engine.process([FileSpec(path="../escape.py", code="x")], _options(tmp_path, commit=True))

    assert committer.calls == []


def test_empty_input_returns_empty_outcome(tmp_path: Path) -> None:
    outcome = MaterializationEngine().process([], _options(tmp_path))

    assert outcome.outcomes == []
    assert outcome.stats.total_files == 0
    assert outcome.error() is None


def test_plan_describes_actions_without_writing(tmp_path: Path) -> None:
    (tmp_path / "existing.md").write_text("old", encoding="utf-8")
    specs = [
        FileSpec(path="existing.md", code="new"),
        FileSpec(path="fresh/file.py", code="print(1)"),
        FileSpec(path="../escape.txt", code="x"),
    ]

    actions = MaterializationEngine().plan(specs, tmp_path)

    assert [(action.path, action.action) for action in actions] == [
        ("existing.md", "update"),
        ("fresh/file.py", "create"),
        ("../escape.txt", "skip"),
    ]
    assert actions[1].size_bytes == 8
    assert not (tmp_path / "fresh").exists()
    assert (tmp_path / "existing.md").read_text(encoding="utf-8") == "old"


@pytest.mark.parametrize(
    ("relative", "expected"),
    [
        ("src/app.py", "src/app.py"),
        ("src/../app.py", "app.py"),
        ("../app.py", None),
        ("/abs/app.py", None),
        ("C:/win/app.py", None),
        (".", None),
    ],
)
def test_resolve_destination(tmp_path: Path, relative: str, expected: str | None) -> None:
    resolved = resolve_destination(tmp_path, relative)

    if expected is None:
        assert resolved is None
    else:
        assert resolved == tmp_path / expected
