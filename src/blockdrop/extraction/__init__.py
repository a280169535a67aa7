"""Block extraction from chat transcripts."""

from .extractor import BlockExtractor, extract
from .grammars import DEFAULT_GRAMMARS, FencedPathGrammar, Grammar, HeaderGrammar, normalize_path
from .models import ExtractionResult, FileSpec, extension_of

__all__ = [
    "BlockExtractor",
    "extract",
    "Grammar",
    "FencedPathGrammar",
    "HeaderGrammar",
    "DEFAULT_GRAMMARS",
    "normalize_path",
    "ExtractionResult",
    "FileSpec",
    "extension_of",
]
