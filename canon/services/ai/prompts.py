"""
Prompt text for translation calls.
"""

from __future__ import annotations

from canon.core.utils import iso_timestamp
from canon.i18n.languages import get_language_name


def translation_system_prompt(source_language: str, target_language: str, sentinel: str) -> str:
    """System prompt asking for one JSON object with the translated body."""
    source = get_language_name(source_language)
    target = get_language_name(target_language)

    return f"""You are a precise translator. Given a markdown document in {source}:

1. Translate ONLY the human-readable text content into {target}
2. NEVER translate: import statements, component tags, code blocks, URLs, technical terms, or tag arrays
3. PRESERVE ALL markdown structure exactly (headings, lists, formatting)
4. Preserve placeholders like {sentinel}_0__ exactly as they are, each one exactly once
5. Generate a 3-4 sentence TLDR in {target}
6. Evaluate translation quality (0-100) and original clarity (0-100)
7. Flag any problematic segments in review_issues as {{"section", "issue", "suggestion"}}

Output exactly one JSON object and nothing else:
{{
  "translated_markdown": "...full markdown with preserved placeholders...",
  "ai_tldr": "...3-4 sentence summary...",
  "ai_textscore": {{
    "translationQuality": 0,
    "originalClarity": 0,
    "timestamp": "{iso_timestamp()}",
    "notes": []
  }},
  "review_issues": []
}}"""


def title_system_prompt(source_language: str, target_language: str) -> str:
    source = get_language_name(source_language)
    target = get_language_name(target_language)
    return (
        f"Translate the title you are given from {source} to {target}. "
        'Answer with one JSON object: {"title": "..."}'
    )
