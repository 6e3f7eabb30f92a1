"""
Shared fixtures: a temporary content tree, fixed clock, and a scripted AI provider.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path

import pytest

from canon.config import Settings
from canon.core import frontmatter
from canon.core.registry import RegistryStore
from canon.i18n.cache import ResponseCache
from canon.i18n.generator import TranslationGenerator
from canon.ledgers.progress import ProgressLedger
from canon.ledgers.tokens import TokenLedger
from canon.services.ai.provider import AIProvider, ProviderResult
from canon.services.assigner import CanonicalIdAssigner
from canon.services.conflicts import ConflictReporter, LocalConflictSink
from canon.services.detector import TaskDetector
from canon.storage.git import NullVersionControl
from canon.storage.local import LocalContentStorage


FIXED_NOW = datetime(2026, 10, 16, 12, 0, tzinfo=timezone.utc)


def fixed_clock() -> datetime:
    return FIXED_NOW


EXAMPLE_BODY = """
# Example

This is an example post about keeping translations in step with their sources.
It has enough words to count as real content rather than a placeholder, which
matters when the scanner decides which file in a group is the original one.

## Setup

Install the tool with `pip install canon` and read the [guide](https://example.com/guide).

```bash
canon scan
canon detect -o tasks.json
```

That is all there is to it, really. Everything else follows from the registry.
"""


def write_doc(root: Path, key: str, metadata: dict, body: str) -> Path:
    path = root / key
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(frontmatter.dump(metadata, body), encoding="utf-8")
    return path


def payload_json(markdown: str, quality: int = 90, review_issues: list | None = None) -> str:
    return json.dumps(
        {
            "translated_markdown": markdown,
            "ai_tldr": "Ein Beispielbeitrag.",
            "ai_textscore": {
                "translationQuality": quality,
                "originalClarity": 85,
                "timestamp": "2026-10-16T12:00:00Z",
                "notes": [],
            },
            "review_issues": review_issues or [],
        }
    )


class FakeProvider(AIProvider):
    """
    Scripted provider.

    Translation calls pop the next scripted response: a raw string, an
    exception to raise, or a callable taking the masked content. With the
    script exhausted it echoes the masked content back as the translation.
    Title calls always answer with `title`.
    """

    def __init__(self, responses=None, model: str = "gpt-4o-mini", title: str = "Beispiel"):
        self.responses = list(responses or [])
        self.model = model
        self.title = title
        self.calls: list[tuple[str, str]] = []

    @property
    def translation_calls(self) -> list[tuple[str, str]]:
        return [c for c in self.calls if not c[0].startswith("Translate the title")]

    def complete(self, system_prompt: str, user_content: str) -> ProviderResult:
        self.calls.append((system_prompt, user_content))

        if system_prompt.startswith("Translate the title"):
            return ProviderResult(
                raw=json.dumps({"title": self.title}),
                model=self.model,
                input_tokens=20,
                output_tokens=5,
            )

        response = self.responses.pop(0) if self.responses else payload_json
        if isinstance(response, Exception):
            raise response
        if callable(response):
            response = response(user_content)
        return ProviderResult(raw=response, model=self.model, input_tokens=1000, output_tokens=800)


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def workspace(tmp_path) -> Path:
    (tmp_path / "src" / "content").mkdir(parents=True)
    (tmp_path / "data").mkdir()
    return tmp_path


@pytest.fixture
def content_root(workspace) -> Path:
    return workspace / "src" / "content"


@pytest.fixture
def settings(workspace) -> Settings:
    return Settings(
        content_root=str(workspace / "src" / "content"),
        registry_path=str(workspace / "data" / "content-registry.json"),
        token_ledger_path=str(workspace / "data" / "token-usage.json"),
        conflicts_path=str(workspace / "data" / "conflicts.json"),
        progress_path=str(workspace / ".translation-progress.jsonl"),
        cache_dir=str(workspace / ".translation-cache"),
        override_path=str(workspace / "translation.override.yml"),
        pause_file=str(workspace / "TRANSLATION_PAUSE"),
        supported_languages="en,de",
        request_delay=0,
        sentry_dsn="",
    )


@pytest.fixture
def storage(content_root) -> LocalContentStorage:
    return LocalContentStorage(content_root)


@pytest.fixture
def store(settings) -> RegistryStore:
    return RegistryStore(settings.registry_path, clock=fixed_clock)


@pytest.fixture
def assigner(store, storage, settings) -> CanonicalIdAssigner:
    return CanonicalIdAssigner(
        store,
        storage,
        settings.collections_list,
        settings.extensions_list,
        settings.languages_list,
        clock=fixed_clock,
    )


@pytest.fixture
def detector(storage, settings) -> TaskDetector:
    return TaskDetector(storage, settings.languages_list, now=FIXED_NOW)


@pytest.fixture
def example(content_root) -> Path:
    """An English original without a canonical ID."""
    return write_doc(
        content_root,
        "life/en/example.md",
        {"title": "Example", "language": "en", "tags": ["meta"]},
        EXAMPLE_BODY,
    )


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def sink(settings) -> LocalConflictSink:
    return LocalConflictSink(settings.conflicts_path)


@pytest.fixture
def make_generator(settings, store, storage, sink):
    """Build a generator over the current registry file."""

    def build(provider: AIProvider, vcs=None, **kwargs) -> TranslationGenerator:
        return TranslationGenerator(
            store=store,
            registry=store.load(),
            storage=storage,
            provider=provider,
            progress=ProgressLedger(settings.progress_path, clock=fixed_clock),
            tokens=TokenLedger(settings.token_ledger_path, settings.daily_token_cap, clock=fixed_clock),
            reporter=ConflictReporter(sink, storage, clock=fixed_clock),
            vcs=vcs or NullVersionControl(),
            cache=ResponseCache(settings.cache_dir),
            settings=settings,
            clock=fixed_clock,
            **kwargs,
        )

    return build
