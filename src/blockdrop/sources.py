"""Input sources that hand raw chat text to the pipeline.

Each source can also produce a cheap fingerprint so watch mode can tell
whether anything changed since the last poll.
"""

from __future__ import annotations

import hashlib
import logging
import subprocess
import sys
from pathlib import Path
from typing import Callable, List, Optional, Protocol, Sequence, TextIO, Union

from blockdrop.errors import NoInputError, WatchSourceUnavailableError

LOGGER = logging.getLogger(__name__)

Fingerprint = Union[int, str]
ClipboardRunner = Callable[[Sequence[str]], str]

_CLIPBOARD_COMMANDS = {
    "darwin": [["pbpaste"]],
    "win32": [["powershell", "-NoProfile", "-Command", "Get-Clipboard"]],
    "linux": [
        ["xclip", "-selection", "clipboard", "-o"],
        ["xsel", "--clipboard", "--output"],
        ["wl-paste", "--no-newline"],
    ],
}


class InputSource(Protocol):
    """Protocol implemented by input sources."""

    name: str

    def read(self) -> str:
        """Return the current text or raise `NoInputError`."""

    def fingerprint(self) -> Fingerprint:
        """Return a comparable change marker or raise `WatchSourceUnavailableError`."""


def _digest(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


class TextSource:
    """Fixed text, mainly for programmatic use and tests."""

    def __init__(self, text: str, name: str = "text") -> None:
        self.name = name
        self._text = text

    def read(self) -> str:
        if not self._text.strip():
            raise NoInputError(f"{self.name} is empty")
        return self._text

    def fingerprint(self) -> Fingerprint:
        return _digest(self._text)


class FileSource:
    """A file on disk, fingerprinted by modification time."""

    def __init__(self, path: Path) -> None:
        self.path = path.expanduser()
        self.name = str(self.path)

    def read(self) -> str:
        try:
            return self.path.read_text(encoding="utf-8")
        except FileNotFoundError as exc:
            raise NoInputError(f"input file not found: {self.path}") from exc
        except UnicodeDecodeError as exc:
            raise NoInputError(f"{self.path} is not UTF-8 text: {exc.reason}") from exc
        except OSError as exc:
            raise NoInputError(f"cannot read {self.path}: {exc.strerror or exc}") from exc

    def fingerprint(self) -> Fingerprint:
        try:
            return self.path.stat().st_mtime_ns
        except OSError as exc:
            raise WatchSourceUnavailableError(
                f"cannot stat {self.path}: {exc.strerror or exc}"
            ) from exc


class StdinSource:
    """Standard input; readable once, never watchable."""

    name = "stdin"

    def __init__(self, stream: Optional[TextIO] = None) -> None:
        self._stream = stream

    def read(self) -> str:
        stream = self._stream or sys.stdin
        if stream is None or stream.isatty():
            raise NoInputError("no data on stdin")
        try:
            return stream.read()
        except UnicodeDecodeError as exc:
            raise NoInputError(f"stdin is not UTF-8 text: {exc.reason}") from exc

    def fingerprint(self) -> Fingerprint:
        raise WatchSourceUnavailableError("stdin cannot be watched")


def _run_clipboard_command(argv: Sequence[str]) -> str:
    completed = subprocess.run(
        list(argv),
        capture_output=True,
        text=True,
        encoding="utf-8",
        errors="replace",
        check=True,
        timeout=10,
    )
    return completed.stdout


class ClipboardSource:
    """The system clipboard, read through the platform's paste command."""

    name = "clipboard"

    def __init__(
        self,
        *,
        platform: Optional[str] = None,
        runner: Optional[ClipboardRunner] = None,
    ) -> None:
        self._platform = platform or sys.platform
        self._runner = runner or _run_clipboard_command
        self._pending: Optional[str] = None

    def commands(self) -> List[List[str]]:
        """Return the paste commands tried for this platform, in order."""
        for prefix, commands in _CLIPBOARD_COMMANDS.items():
            if self._platform.startswith(prefix):
                return commands
        return _CLIPBOARD_COMMANDS["linux"]

    def read(self) -> str:
        """Return the clipboard text.

        Text captured by the last `fingerprint` call is returned once, so a
        poll imports exactly the content it fingerprinted.
        """
        if self._pending is not None:
            text, self._pending = self._pending, None
            return text
        return self._paste()

    def _paste(self) -> str:
        failures: List[str] = []
        for argv in self.commands():
            try:
                return self._runner(argv)
            except (OSError, subprocess.SubprocessError) as exc:
                LOGGER.debug("Clipboard command %s failed: %s", argv[0], exc)
                failures.append(f"{argv[0]}: {exc}")
        raise NoInputError("clipboard unavailable (" + "; ".join(failures) + ")")

    def fingerprint(self) -> Fingerprint:
        try:
            self._pending = self._paste()
        except NoInputError as exc:
            self._pending = None
            raise WatchSourceUnavailableError(str(exc)) from exc
        return _digest(self._pending)


def resolve_source(
    *,
    clipboard: bool = False,
    input_path: Optional[str] = None,
    stdin: Optional[TextIO] = None,
    clipboard_source: Optional[ClipboardSource] = None,
) -> InputSource:
    """Pick the input source.

    Priority is the clipboard flag, then a file (``-`` for stdin), then a
    non-empty clipboard.

    Raises:
        NoInputError: If no source was requested and the clipboard is empty or unavailable.
    """
    board = clipboard_source or ClipboardSource()
    if clipboard:
        return board
    if input_path:
        if input_path == "-":
            return StdinSource(stdin)
        return FileSource(Path(input_path))

    try:
        text = board.read()
    except NoInputError as exc:
        raise NoInputError("no input source specified and the clipboard is unavailable") from exc
    if not text.strip():
        raise NoInputError("no input source specified and the clipboard is empty")
    LOGGER.debug("Using clipboard contents as input.")
    return TextSource(text, name="clipboard")


__all__ = [
    "Fingerprint",
    "InputSource",
    "TextSource",
    "FileSource",
    "StdinSource",
    "ClipboardSource",
    "resolve_source",
]
