"""Commit written files with the git CLI."""

from __future__ import annotations

import logging
import os
import subprocess
from pathlib import Path
from typing import Callable, List, Optional, Protocol, Sequence

from blockdrop.errors import CommitFailedError

LOGGER = logging.getLogger(__name__)

Runner = Callable[[List[str], Path, Optional[dict]], str]


class Committer(Protocol):
    """Protocol implemented by commit collaborators."""

    def commit(self, paths: Sequence[str], message: str) -> None:
        """Record ``paths`` under ``message`` or raise `CommitFailedError`."""


class GitCommitter:
    """Stage and commit paths inside a git working tree.

    Args:
        root: Working tree root; paths are interpreted relative to it.
        auto_init: Run ``git init`` when ``root`` is not yet a repository.
        default_branch: Initial branch name used with ``auto_init``.
        runner: Command runner override, mainly for tests.
    """

    def __init__(
        self,
        root: Path,
        *,
        auto_init: bool = False,
        default_branch: str = "main",
        runner: Runner | None = None,
    ) -> None:
        self._root = root
        self._auto_init = auto_init
        self._default_branch = default_branch
        self._runner = runner or _run_git

    def commit(self, paths: Sequence[str], message: str) -> None:
        if not paths:
            return
        self._ensure_repository()

        env = os.environ.copy()
        env.setdefault("GIT_AUTHOR_NAME", "blockdrop")
        env.setdefault("GIT_AUTHOR_EMAIL", "blockdrop@localhost")
        env.setdefault("GIT_COMMITTER_NAME", env["GIT_AUTHOR_NAME"])
        env.setdefault("GIT_COMMITTER_EMAIL", env["GIT_AUTHOR_EMAIL"])

        self._run(["git", "add", "--", *paths])
        status = self._run(["git", "status", "--porcelain", "--", *paths])
        if not status.strip():
            LOGGER.info("Nothing to commit; written files match the index.")
            return
        self._run(["git", "commit", "-m", message, "--", *paths], env=env)
        LOGGER.info("Committed %d file(s): %s", len(paths), message)

    def _ensure_repository(self) -> None:
        if (self._root / ".git").exists():
            return
        if not self._auto_init:
            raise CommitFailedError(f"{self._root} is not a git repository")
        self._run(["git", "init", "-b", self._default_branch])

    def _run(self, args: List[str], env: Optional[dict] = None) -> str:
        try:
            return self._runner(args, self._root, env)
        except subprocess.CalledProcessError as exc:
            detail = (exc.stderr or exc.stdout or "").strip() or f"exit status {exc.returncode}"
            raise CommitFailedError(f"{' '.join(args[:2])} failed: {detail}") from exc
        except OSError as exc:
            raise CommitFailedError(f"could not run git: {exc}") from exc


def _run_git(args: List[str], cwd: Path, env: Optional[dict]) -> str:
    completed = subprocess.run(
        args,
        cwd=cwd,
        env=env,
        check=True,
        capture_output=True,
        text=True,
    )
    return completed.stdout


__all__ = ["Committer", "GitCommitter"]
