"""Block grammars recognised in chat transcripts.

Each grammar is an isolated strategy: it scans the whole document and returns
every well-formed block it understands, or an empty list. The extractor tries
them in priority order and keeps the first non-empty result.
"""

from __future__ import annotations

import logging
import re
from typing import List, Protocol

from .models import FileSpec

LOGGER = logging.getLogger(__name__)


def normalize_path(raw: str) -> str:
    """Return a slash-separated relative path with ``./`` prefixes removed."""
    path = raw.strip().replace("\\", "/")
    while path.startswith("./"):
        path = path[2:]
    return re.sub(r"/{2,}", "/", path)


class Grammar(Protocol):
    """Protocol implemented by block grammars."""

    name: str

    def parse(self, text: str) -> List[FileSpec]:
        """Return every block recognised in ``text`` in order of appearance."""


def _build_spec(grammar: str, raw_path: str, body: str) -> FileSpec | None:
    path = normalize_path(raw_path)
    if not path:
        LOGGER.debug("%s: dropping block with empty path", grammar)
        return None
    if not body.strip():
        LOGGER.debug("%s: dropping blank block for %s", grammar, path)
        return None
    return FileSpec(path=path, code=body)


class FencedPathGrammar:
    """Fences that carry the destination on their opening line.

    Example::

        ```go path:cmd/main.go
        package main
        ```

    The body ends at the first closing fence; nested fences are not counted.
    """

    name = "fenced"

    _PATTERN = re.compile(
        r"```(?:[\w+#.-]+[ \t]+|[ \t]*)path:[ \t]*(?P<path>[^\s`]*)[^\n]*\n(?P<body>.*?)```",
        re.DOTALL,
    )

    def parse(self, text: str) -> List[FileSpec]:
        specs: List[FileSpec] = []
        for match in self._PATTERN.finditer(text):
            spec = _build_spec(self.name, match.group("path"), match.group("body"))
            if spec is not None:
                specs.append(spec)
        return specs


class HeaderGrammar:
    """A path-bearing delimiter line followed by a plain fenced block.

    Recognised delimiters::

        --- src/app.py ---
        === src/app.py ===
        ### File: src/app.py

    Paths may be wrapped in backticks. Blank lines may separate the
    delimiter from the fence; any other content breaks the association.
    """

    name = "header"

    _PATTERN = re.compile(
        r"^[ \t]*"
        r"(?:"
        r"(?:-{3,}|={3,})[ \t]*(?:(?:file|path):[ \t]*)?`?(?P<rule_path>[^\s`=-][^\s`]*)`?"
        r"[ \t]*(?:-{3,}|={3,})?"
        r"|"
        r"\#{1,6}[ \t]+(?:file|path):[ \t]*`?(?P<heading_path>[^\s`]+)`?"
        r")[ \t]*\n"
        r"(?:[ \t]*\n)*"
        r"[ \t]*```[^\n]*\n(?P<body>.*?)```",
        re.MULTILINE | re.DOTALL | re.IGNORECASE,
    )

    def parse(self, text: str) -> List[FileSpec]:
        specs: List[FileSpec] = []
        for match in self._PATTERN.finditer(text):
            raw_path = match.group("rule_path") or match.group("heading_path") or ""
            spec = _build_spec(self.name, raw_path, match.group("body"))
            if spec is not None:
                specs.append(spec)
        return specs


DEFAULT_GRAMMARS: tuple[Grammar, ...] = (FencedPathGrammar(), HeaderGrammar())


__all__ = [
    "Grammar",
    "FencedPathGrammar",
    "HeaderGrammar",
    "DEFAULT_GRAMMARS",
    "normalize_path",
]
