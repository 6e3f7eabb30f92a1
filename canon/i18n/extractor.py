"""
Placeholder masking for Markdown/MDX.

Spans the model must not touch (code, imports, components, link targets)
are swapped for sentinel tokens before translation and swapped back after.
The patterns are regex based and best effort; the extract/restore contract
is what callers rely on:

    result = extract(text)
    assert restore(result.masked, result.placeholders) == text
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field


SENTINEL_PREFIX = "__PRESERVED"

# Applied in order; later patterns see the tokens left by earlier ones.
PATTERNS: list[tuple[str, re.Pattern]] = [
    (
        "fenced-code",
        re.compile(r"^(`{3,}|~{3,})[^\n]*\n.*?^\1[ \t]*$", re.MULTILINE | re.DOTALL),
    ),
    (
        "import",
        re.compile(
            r"^import\s+(?:[^\n]*?\s+from\s+)?['\"][^'\"\n]+['\"];?[ \t]*$",
            re.MULTILINE,
        ),
    ),
    (
        "component",
        re.compile(r"</?[A-Z][A-Za-z0-9_.]*(?:\s[^<>]*?)?/?>"),
    ),
    (
        "inline-code",
        re.compile(r"``[^\n]+?``|`[^`\n]+`"),
    ),
    (
        "link-target",
        re.compile(r"(?<=\])\([^()\s]*(?:\s+\"[^\"\n]*\")?\)"),
    ),
]


@dataclass
class ExtractionResult:
    """Masked text plus the token -> original span map, in creation order."""

    masked: str
    placeholders: dict[str, str] = field(default_factory=dict)

    @property
    def tokens(self) -> list[str]:
        return list(self.placeholders)


def _choose_prefix(content: str) -> str:
    # A token ending in "__" can join with following text, so the bare
    # core must be absent, not just the underscored prefix.
    prefix = SENTINEL_PREFIX
    while prefix.lstrip("_") + "_" in content:
        prefix += "X"
    return prefix


def extract(content: str) -> ExtractionResult:
    """
    Replace non-translatable spans with __PRESERVED_<n>__ tokens.

    If the content already contains the sentinel prefix, the prefix is
    lengthened (__PRESERVEDX_<n>__, ...) so tokens stay unambiguous.
    """
    prefix = _choose_prefix(content)
    placeholders: dict[str, str] = {}

    def mask(match: re.Match) -> str:
        token = f"{prefix}_{len(placeholders)}__"
        placeholders[token] = match.group(0)
        return token

    masked = content
    for _, pattern in PATTERNS:
        masked = pattern.sub(mask, masked)

    return ExtractionResult(masked=masked, placeholders=placeholders)


def restore(text: str, placeholders: dict[str, str]) -> str:
    """
    Put the original spans back.

    Tokens are substituted in reverse creation order, so a token whose
    original contains an earlier token is expanded before that one.
    Every occurrence is replaced.
    """
    for token in reversed(list(placeholders)):
        text = text.replace(token, placeholders[token])
    return text


def missing_tokens(text: str, placeholders: dict[str, str]) -> list[str]:
    """
    Top-level tokens that do not appear in text.

    Tokens nested inside another placeholder's original are not expected
    in model output and are ignored.
    """
    nested = {
        token
        for token in placeholders
        if any(token in original for original in placeholders.values())
    }
    return [token for token in placeholders if token not in nested and token not in text]
