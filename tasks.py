"""Invoke tasks for developing blockdrop.

Every task shells out to `uv` so local runs match CI.
"""

from __future__ import annotations

import shlex
import shutil
from collections.abc import Sequence
from pathlib import Path

from invoke import Collection, Context, task

PROJECT_ROOT = Path(__file__).parent
DIST_DIR = PROJECT_ROOT / "dist"
SOURCES = ("src", "tests", "tasks.py")


def _uv(ctx: Context, args: Sequence[str], *, echo: bool = True) -> None:
    """Run ``uv`` with ``args`` from the project root."""
    with ctx.cd(str(PROJECT_ROOT)):
        ctx.run(shlex.join(("uv", *args)), echo=echo, pty=True)


@task
def sync(ctx: Context, dev: bool = True) -> None:
    """Install the project and, by default, its dev extra into the uv environment."""
    args = ["sync"]
    if dev:
        args.extend(["--extra", "dev"])
    _uv(ctx, args)


@task(help={"clean": "Empty dist/ before building."})
def build(ctx: Context, clean: bool = False) -> None:
    """Build the sdist and wheel into dist/."""
    if clean and DIST_DIR.exists():
        shutil.rmtree(DIST_DIR)
    _uv(ctx, ["build"])


@task(
    help={
        "k": "pytest -k expression.",
        "path": "Test path (defaults to tests/).",
        "options": "Extra pytest flags, passed through verbatim.",
    }
)
def tests(ctx: Context, k: str = "", path: str = "tests", options: str = "") -> None:
    """Run the pytest suite."""
    args = ["run", "pytest"]
    if k:
        args.extend(["-k", k])
    if options:
        args.extend(shlex.split(options))
    args.append(path)
    _uv(ctx, args)


@task(help={"fix": "Let ruff apply safe fixes."})
def lint(ctx: Context, fix: bool = False) -> None:
    """Check formatting and lint rules with ruff."""
    _uv(ctx, ["run", "ruff", "format", "--check", *SOURCES])
    args = ["run", "ruff", "check", *SOURCES]
    if fix:
        args.append("--fix")
    _uv(ctx, args)


@task
def mypy(ctx: Context) -> None:
    """Type-check the blockdrop package."""
    _uv(ctx, ["run", "mypy", "src/blockdrop"])


@task(help={"all_files": "Run hooks on every file instead of the staged diff."})
def precommit(ctx: Context, all_files: bool = False) -> None:
    """Run the pre-commit hooks."""
    args = ["run", "pre-commit", "run"]
    if all_files:
        args.append("--all-files")
    _uv(ctx, args)


@task(help={"chat": "Chat transcript to preview (defaults to the clipboard)."})
def preview(ctx: Context, chat: str = "") -> None:
    """Dry-run an import into the working directory."""
    args = ["run", "blockdrop", "import", "--dry-run"]
    if chat:
        args.extend(["--input", chat])
    _uv(ctx, args)


@task
def ci(ctx: Context) -> None:
    """Run lint, type checks, and tests the way CI does."""
    ctx.invoke(lint)
    ctx.invoke(mypy)
    ctx.invoke(tests)


namespace = Collection(sync, build, tests, lint, mypy, precommit, preview, ci)
