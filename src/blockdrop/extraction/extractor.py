"""Turn raw chat text into an ordered list of file specs."""

from __future__ import annotations

import logging
from collections import Counter
from typing import Iterable, List, Sequence

from .grammars import DEFAULT_GRAMMARS, Grammar
from .models import ExtractionResult, FileSpec

LOGGER = logging.getLogger(__name__)


class BlockExtractor:
    """Try each grammar in priority order; the first non-empty result wins.

    Results are never merged across grammars: if the fenced grammar finds a
    single block, header-style blocks in the same document are ignored.
    """

    def __init__(self, grammars: Iterable[Grammar] | None = None) -> None:
        self._grammars: Sequence[Grammar] = (
            tuple(grammars) if grammars is not None else DEFAULT_GRAMMARS
        )

    @property
    def grammars(self) -> Sequence[Grammar]:
        """Return the grammars in the order they are attempted."""
        return self._grammars

    def extract(self, text: str) -> List[FileSpec]:
        """Return the file specs found in ``text``; empty when nothing matches."""
        return list(self.extract_result(text).files)

    def extract_result(self, text: str) -> ExtractionResult:
        """Return the file specs together with the name of the grammar that matched."""
        if not text or not text.strip():
            return ExtractionResult()

        normalized = text.replace("\r\n", "\n").replace("\r", "\n")
        for grammar in self._grammars:
            try:
                specs = grammar.parse(normalized)
            except Exception:  # pragma: no cover - a faulty grammar must not break extraction
                LOGGER.exception("Grammar %s failed; trying the next one.", grammar.name)
                continue
            if specs:
                LOGGER.debug("Grammar %s matched %d block(s).", grammar.name, len(specs))
                self._warn_duplicates(specs)
                return ExtractionResult(grammar=grammar.name, files=specs)

        return ExtractionResult()

    def _warn_duplicates(self, specs: Sequence[FileSpec]) -> None:
        counts = Counter(spec.path for spec in specs)
        for path, count in counts.items():
            if count > 1:
                LOGGER.warning(
                    "%s appears %d times in the input; the last write to finish wins.", path, count
                )


def extract(text: str) -> List[FileSpec]:
    """Extract file specs from ``text`` with the default grammars."""
    return BlockExtractor().extract(text)


__all__ = ["BlockExtractor", "extract"]
