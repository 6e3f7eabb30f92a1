"""
YAML frontmatter codec for Markdown/MDX content files.

Splits a file into its metadata mapping and its body. The body is kept
byte-for-byte, so rewriting metadata never changes the content hash.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any

import yaml

from canon.core.errors import MalformedSource


_OPEN = re.compile(r"\A---[ \t]*\r?\n")
_CLOSE = re.compile(r"^---[ \t]*(?:\r?\n|\Z)", re.MULTILINE)


@dataclass
class Document:
    """A parsed content file."""

    frontmatter: dict[str, Any] = field(default_factory=dict)
    body: str = ""

    @property
    def canonical_id(self) -> str | None:
        value = self.frontmatter.get("canonicalId")
        return str(value) if value else None

    @property
    def translation_of(self) -> str | None:
        value = self.frontmatter.get("translationOf")
        return str(value) if value else None

    @property
    def language(self) -> str | None:
        value = self.frontmatter.get("language")
        return str(value).lower() if value else None

    @property
    def title(self) -> str | None:
        value = self.frontmatter.get("title")
        return str(value) if value else None

    @property
    def word_count(self) -> int:
        return len(self.body.split())


def parse(text: str, path: str = "<memory>") -> Document:
    """
    Split text into frontmatter and body.

    Files without a leading '---' line have empty frontmatter.

    Raises:
        MalformedSource: unterminated block, invalid YAML, or non-mapping YAML
    """
    if text.startswith("\ufeff"):
        text = text[1:]

    opening = _OPEN.match(text)
    if not opening:
        return Document(frontmatter={}, body=text)

    closing = _CLOSE.search(text, opening.end())
    if not closing:
        raise MalformedSource(path, "frontmatter block is not terminated")

    try:
        data = yaml.safe_load(text[opening.end():closing.start()])
    except yaml.YAMLError as e:
        raise MalformedSource(path, f"invalid YAML frontmatter ({e})") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise MalformedSource(path, "frontmatter is not a mapping")

    return Document(frontmatter=data, body=text[closing.end():])


def dump(frontmatter: dict[str, Any], body: str) -> str:
    """Serialize frontmatter and body back into file text."""
    if not frontmatter:
        return body
    header = yaml.safe_dump(
        frontmatter,
        sort_keys=False,
        allow_unicode=True,
        default_flow_style=False,
        width=4096,
    )
    return f"---\n{header}---\n{body}"


def validate_translation_frontmatter(
    frontmatter: dict[str, Any],
    supported_languages: list[str],
) -> list[str]:
    """
    Check a translated file's metadata.

    Returns a list of error messages (empty if valid).
    """
    errors: list[str] = []

    if not frontmatter.get("title"):
        errors.append("Missing required field: title")
    if str(frontmatter.get("language", "")).lower() not in supported_languages:
        errors.append("Invalid or missing language field")

    history = frontmatter.get("translationHistory")
    if history is not None:
        if not isinstance(history, list):
            errors.append("translationHistory must be an array")
        else:
            for index, entry in enumerate(history):
                if not isinstance(entry, dict):
                    errors.append(f"translationHistory[{index}]: not a mapping")
                    continue
                for required in ("sourceSha", "timestamp", "status"):
                    if not entry.get(required):
                        errors.append(f"translationHistory[{index}]: missing {required}")

    score = frontmatter.get("ai_textscore")
    if score is not None and (not isinstance(score, dict) or not score.get("timestamp")):
        errors.append("ai_textscore: missing timestamp")

    return errors
