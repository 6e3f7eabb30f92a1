"""
Supported languages and utilities.

The pipeline deliberately handles a small fixed set of languages; the
active subset comes from settings (SUPPORTED_LANGUAGES).
"""

from __future__ import annotations

from enum import Enum


class Language(str, Enum):
    """Languages the pipeline knows how to name."""

    EN = "en"  # English
    DE = "de"  # German
    FR = "fr"  # French
    ES = "es"  # Spanish


# Human-readable names
LANGUAGE_NAMES: dict[str, str] = {
    "en": "English",
    "de": "German",
    "fr": "French",
    "es": "Spanish",
}


_VARIANTS: dict[str, str] = {
    "english": "en",
    "german": "de",
    "deutsch": "de",
    "french": "fr",
    "spanish": "es",
}


# =============================================================================
# Utilities
# =============================================================================


def get_language_name(code: str) -> str:
    """Get human-readable language name."""
    return LANGUAGE_NAMES.get(code.lower(), code)


def normalize_language_code(code: str) -> str:
    """Normalize language code to standard form (en-US -> en, German -> de)."""
    code = code.lower().strip()
    if code in _VARIANTS:
        return _VARIANTS[code]
    return code.split("-")[0].split("_")[0]


def validate_languages(codes: list[str]) -> list[str]:
    """
    Normalize configured languages and reject unknown ones.

    Raises:
        ValueError: a code is not in Language
    """
    known = {lang.value for lang in Language}
    result: list[str] = []
    for code in codes:
        normalized = normalize_language_code(code)
        if normalized not in known:
            raise ValueError(f"Unsupported language: {code}")
        if normalized not in result:
            result.append(normalized)
    return result


def target_languages(source: str, supported: list[str]) -> list[str]:
    """Every supported language except the source, in configured order."""
    return [lang for lang in supported if lang != source]


def language_from_path(path: str, supported: list[str]) -> str | None:
    """Language named by a path segment, e.g. life/de/post.md -> de."""
    for segment in path.split("/")[:-1]:
        if segment in supported:
            return segment
    return None


def translated_path(path: str, source: str, target: str) -> str:
    """
    Output path for a translation of path.

    Replaces the first segment equal to the source language; without one,
    the target language is inserted after the collection directory.
    """
    parts = path.split("/")
    for index, segment in enumerate(parts[:-1]):
        if segment == source:
            parts[index] = target
            return "/".join(parts)
    if len(parts) == 1:
        return f"{target}/{parts[0]}"
    return "/".join([parts[0], target, *parts[1:]])


def split_collection_slug(path: str) -> tuple[str, str]:
    """(collection, slug) of a content path; the slug is the file stem."""
    parts = path.split("/")
    name = parts[-1].rsplit(".", 1)[0]
    return parts[0] if len(parts) > 1 else "", name
