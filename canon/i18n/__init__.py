"""
Translation building blocks.

Design:
1. Mask what must not be translated (extractor)
2. Screen the result for structural drift (similarity)
3. Cache validated AI payloads by source hash (cache)
4. Drive tasks through the pipeline one at a time (generator)

Usage:
    from canon.i18n import extract, restore, analyze

    result = extract(body)
    translated = restore(ai_output, result.placeholders)
    report = analyze(body, translated)
"""

from canon.i18n.extractor import (
    ExtractionResult,
    extract,
    restore,
    missing_tokens,
)
from canon.i18n.similarity import (
    SimilarityReport,
    analyze,
)
from canon.i18n.languages import (
    Language,
    LANGUAGE_NAMES,
    get_language_name,
    normalize_language_code,
)
from canon.i18n.cache import ResponseCache

__all__ = [
    # Masking
    "ExtractionResult",
    "extract",
    "restore",
    "missing_tokens",
    # Screening
    "SimilarityReport",
    "analyze",
    # Cache
    "ResponseCache",
    # Language utilities
    "Language",
    "LANGUAGE_NAMES",
    "get_language_name",
    "normalize_language_code",
]
