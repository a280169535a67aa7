"""External syntax checkers keyed by file extension."""

from __future__ import annotations

import logging
import subprocess
import tempfile
from pathlib import Path, PurePosixPath
from typing import Dict, Iterable, List, Optional, Protocol, Sequence

from blockdrop.config.models import ValidationSettings, ValidatorCommand
from blockdrop.errors import ValidationFailedError
from blockdrop.extraction.models import extension_of

LOGGER = logging.getLogger(__name__)

PATH_PLACEHOLDER = "{path}"
DEFAULT_TIMEOUT_SECONDS = 30.0
_MAX_DETAIL_CHARS = 500


class Validator(Protocol):
    """Protocol implemented by syntax validators."""

    def validate(self, path: str, code: str) -> None:
        """Raise `ValidationFailedError` when ``code`` is rejected."""


class CommandValidator:
    """Run an external command against a temporary copy of the code.

    The code is written to a scratch directory under its original file name,
    so checkers that care about names (package layout, module names) see the
    same name the real file will have.
    """

    def __init__(
        self,
        extension: str,
        command: str,
        args: Sequence[str] = (),
        *,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self.extension = extension
        self.command = command
        self.args = list(args)
        self.timeout = timeout

    def argv(self, target: Path) -> List[str]:
        """Return the command line used to check ``target``."""
        if any(PATH_PLACEHOLDER in arg for arg in self.args):
            return [
                self.command,
                *(arg.replace(PATH_PLACEHOLDER, str(target)) for arg in self.args),
            ]
        return [self.command, *self.args, str(target)]

    def validate(self, path: str, code: str) -> None:
        name = PurePosixPath(path).name or f"snippet.{self.extension}"
        with tempfile.TemporaryDirectory(prefix="blockdrop-validate-") as scratch:
            target = Path(scratch) / name
            target.write_text(code, encoding="utf-8")
            argv = self.argv(target)
            LOGGER.debug("Validating %s with %s", path, argv)
            try:
                completed = subprocess.run(
                    argv,
                    capture_output=True,
                    text=True,
                    encoding="utf-8",
                    errors="replace",
                    timeout=self.timeout,
                    check=False,
                )
            except FileNotFoundError as exc:
                raise ValidationFailedError(path, f"command not found: {self.command}") from exc
            except subprocess.TimeoutExpired as exc:
                raise ValidationFailedError(path, f"timed out after {self.timeout:g}s") from exc
            except OSError as exc:
                raise ValidationFailedError(path, str(exc)) from exc

        if completed.returncode != 0:
            output = (completed.stderr or completed.stdout or "").strip()
            detail = output or f"exit status {completed.returncode}"
            raise ValidationFailedError(path, detail[:_MAX_DETAIL_CHARS])

    def __repr__(self) -> str:
        return f"CommandValidator(extension={self.extension!r}, command={self.command!r})"


class ValidatorRegistry:
    """Map extensions (case-sensitive, no leading dot) to validators."""

    def __init__(
        self,
        commands: Iterable[ValidatorCommand] = (),
        *,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self._validators: Dict[str, Validator] = {}
        for entry in commands:
            validator = CommandValidator(
                entry.extension, entry.command, entry.args, timeout=timeout
            )
            self.register(entry.extension, validator)

    @classmethod
    def from_settings(cls, settings: ValidationSettings) -> "ValidatorRegistry":
        """Build a registry from the ``validation`` configuration section."""
        return cls(settings.validators, timeout=settings.timeout_seconds)

    def register(self, extension: str, validator: Validator) -> None:
        """Bind ``validator`` to ``extension``, replacing any previous binding."""
        self._validators[extension.lstrip(".")] = validator

    def resolve(self, path: str) -> Optional[Validator]:
        """Return the validator for ``path``'s extension, or None when unregistered."""
        extension = extension_of(path)
        if not extension:
            return None
        return self._validators.get(extension)

    @property
    def extensions(self) -> List[str]:
        return sorted(self._validators)

    def __len__(self) -> int:
        return len(self._validators)


__all__ = [
    "Validator",
    "CommandValidator",
    "ValidatorRegistry",
    "PATH_PLACEHOLDER",
    "DEFAULT_TIMEOUT_SECONDS",
]
