"""Data models produced by block extraction."""

from __future__ import annotations

from pathlib import PurePosixPath
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def extension_of(path: str) -> str:
    """Return the extension of a slash-separated path without the leading dot."""
    return PurePosixPath(path).suffix[1:]


class FileSpec(BaseModel):
    """A destination path paired with the code to write there.

    Attributes:
        path: Relative, slash-normalized destination path.
        code: File content with surrounding whitespace trimmed.
    """

    model_config = ConfigDict(frozen=True)

    path: str
    code: str

    @field_validator("path")
    @classmethod
    def _single_line_path(cls, value: str) -> str:
        value = value.strip()
        if not value or "\n" in value:
            raise ValueError("path must be a single non-empty line")
        return value

    @field_validator("code")
    @classmethod
    def _non_blank_code(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("code must not be blank")
        return value

    @property
    def extension(self) -> str:
        """Return the extension without its dot (empty when there is none)."""
        return extension_of(self.path)

    @property
    def size(self) -> int:
        """Return the UTF-8 encoded size of the code."""
        return len(self.code.encode("utf-8"))


class ExtractionResult(BaseModel):
    """Ordered file specs together with the grammar that produced them."""

    grammar: Optional[str] = None
    files: List[FileSpec] = Field(default_factory=list)

    def __len__(self) -> int:
        return len(self.files)

    def __bool__(self) -> bool:
        return bool(self.files)


__all__ = ["FileSpec", "ExtractionResult", "extension_of"]
