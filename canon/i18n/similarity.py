"""
Structural similarity between a source document and its translation.

A cheap, deterministic screen for hallucinated output: a faithful
translation keeps the same headings, code blocks and links, and stays in
a plausible length band. It says nothing about translation quality.
"""

from __future__ import annotations

import math
import re

from pydantic import BaseModel, Field

from canon.i18n.extractor import PATTERNS


HEADING = re.compile(r"^#{1,6}\s+.+$", re.MULTILINE)
CODE_BLOCK = dict(PATTERNS)["fenced-code"]
LINK = re.compile(r"\[([^\]]+)\]\(([^)]+)\)")

HEADING_PENALTY = 20
CODE_BLOCK_PENALTY = 15
LINK_PENALTY = 10
LENGTH_PENALTY = 25

MIN_LENGTH_RATIO = 0.5
MAX_LENGTH_RATIO = 1.5


class SimilarityReport(BaseModel):
    """Result of comparing a translation against its source."""

    heading_delta: int = 0
    code_block_delta: int = 0
    link_delta: int = 0
    length_ratio: float = 1.0
    score: int = 100
    issues: list[str] = Field(default_factory=list)
    is_hallucination: bool = False


def _length_ratio(source: str, translated: str) -> float:
    if not source:
        return 1.0 if not translated else math.inf
    return len(translated) / len(source)


def analyze(
    source: str,
    translated: str,
    extra_issues: list[str] | None = None,
    min_score: int = 60,
    max_issues: int = 2,
) -> SimilarityReport:
    """
    Score a translation from 0 to 100.

    Args:
        source: Source body
        translated: Translated body with placeholders restored
        extra_issues: Issues found elsewhere (e.g. dropped placeholders);
            they count toward the issue total but cost no points
        min_score: Scores below this are hallucinations
        max_issues: More issues than this are hallucinations

    Returns:
        SimilarityReport
    """
    score = 100
    issues: list[str] = []

    heading_delta = len(HEADING.findall(translated)) - len(HEADING.findall(source))
    if heading_delta:
        score -= HEADING_PENALTY
        issues.append(
            f"Heading count mismatch: {len(HEADING.findall(source))} in source, "
            f"{len(HEADING.findall(translated))} in translation"
        )

    code_block_delta = len(CODE_BLOCK.findall(translated)) - len(CODE_BLOCK.findall(source))
    if code_block_delta:
        score -= CODE_BLOCK_PENALTY
        issues.append(f"Code block count differs by {code_block_delta:+d}")

    link_delta = len(LINK.findall(translated)) - len(LINK.findall(source))
    if link_delta:
        score -= LINK_PENALTY
        issues.append(f"Link count differs by {link_delta:+d}")

    ratio = _length_ratio(source, translated)
    if ratio > MAX_LENGTH_RATIO or ratio < MIN_LENGTH_RATIO:
        score -= LENGTH_PENALTY
        issues.append(f"Length ratio {ratio:.2f} outside [{MIN_LENGTH_RATIO}, {MAX_LENGTH_RATIO}]")

    issues.extend(extra_issues or [])
    score = max(score, 0)

    return SimilarityReport(
        heading_delta=heading_delta,
        code_block_delta=code_block_delta,
        link_delta=link_delta,
        length_ratio=ratio,
        score=score,
        issues=issues,
        is_hallucination=score < min_score or len(issues) > max_issues,
    )
