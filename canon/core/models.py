"""
Core data models for the translation pipeline.

These models represent the persisted entities: the content registry with
its translation records, translation tasks, ledger records, and the
structured AI response. Field names are snake_case in Python and
camelCase on disk, so the JSON files stay readable by the site tooling.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Iterator

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from canon.core.errors import RegistryCorruption
from canon.core.utils import iso_timestamp, utc_now


REGISTRY_VERSION = "1.0.0"


class CamelModel(BaseModel):
    """Base model serialized with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# =============================================================================
# Enums
# =============================================================================


class TranslationStatus(str, Enum):
    """Status of a translation relative to its source."""

    CURRENT = "current"  # Produced from the current source body
    STALE = "stale"  # Source changed since the translation was made
    MISSING = "missing"  # Placeholder or deleted file


class TaskReason(str, Enum):
    """Why a translation task was emitted."""

    MISSING = "missing"
    STALE = "stale"


class TaskPriority(str, Enum):
    """Priority of a translation task."""

    HIGH = "high"  # Source edited since the last registry scan
    NORMAL = "normal"

    @property
    def rank(self) -> int:
        return 0 if self is TaskPriority.HIGH else 1


class TaskState(str, Enum):
    """States a translation task moves through in the generator."""

    PENDING = "pending"
    EXTRACTING = "extracting"
    REQUESTING = "requesting"
    VALIDATING = "validating"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    COMMITTED = "committed"  # Terminal: translation written and committed
    REPORTED = "reported"  # Terminal: rejected and surfaced as a report
    SKIPPED = "skipped"  # Terminal: nothing to do (resumed, paused, outdated)
    FAILED = "failed"  # Terminal: retryable or source error


class ConflictKind(str, Enum):
    """Kinds of externally visible reports."""

    CONFLICT = "conflict"  # Stale translation waiting for resolution
    HALLUCINATION = "hallucination"  # Rejected AI output
    QUALITY = "quality"  # Committed, but the model flagged problems


# =============================================================================
# Registry
# =============================================================================


class TranslationRecord(CamelModel):
    """One translation of a content unit, keyed by language in its entry."""

    path: str
    status: TranslationStatus = TranslationStatus.CURRENT
    last_translated: datetime = Field(default_factory=utc_now)
    translation_hash: str = ""

    # Source body hash the translation was produced from
    source_hash: str | None = None


class ContentUnit(CamelModel):
    """
    A content unit with a stable identity.

    The canonical ID never changes once minted; paths and titles may.
    """

    canonical_id: str
    original_path: str
    original_language: str
    title: str = ""
    content_hash: str
    last_modified: datetime = Field(default_factory=utc_now)


class RegistryEntry(ContentUnit):
    """A content unit together with its translations."""

    translations: dict[str, TranslationRecord] = Field(default_factory=dict)

    def mark_source_changed(self, content_hash: str, when: datetime | None = None) -> list[str]:
        """
        Record a new source body hash and flip translations to stale.

        Returns:
            Languages whose records were flipped
        """
        self.content_hash = content_hash
        self.last_modified = when or utc_now()

        flipped: list[str] = []
        for language, record in sorted(self.translations.items()):
            if record.status == TranslationStatus.CURRENT:
                record.status = TranslationStatus.STALE
                flipped.append(language)
        return flipped


class ContentRegistry(CamelModel):
    """
    Map of canonical IDs to content units and their translations.

    Persisted as data/content-registry.json by RegistryStore.
    """

    version: str = REGISTRY_VERSION
    last_updated: datetime = Field(default_factory=utc_now)
    entries: dict[str, RegistryEntry] = Field(default_factory=dict)

    def get(self, canonical_id: str) -> RegistryEntry | None:
        return self.entries.get(canonical_id)

    def require(self, canonical_id: str) -> RegistryEntry:
        entry = self.entries.get(canonical_id)
        if entry is None:
            raise RegistryCorruption(f"Canonical ID '{canonical_id}' not found")
        return entry

    def iter_entries(self) -> Iterator[RegistryEntry]:
        """Entries in canonical ID order."""
        for canonical_id in sorted(self.entries):
            yield self.entries[canonical_id]

    def find_by_path(self, path: str) -> RegistryEntry | None:
        """Find the entry whose original lives at path."""
        for entry in self.entries.values():
            if entry.original_path == path:
                return entry
        return None

    def register(self, entry: RegistryEntry) -> None:
        """Add a new content unit. Canonical IDs are never reassigned."""
        if entry.canonical_id in self.entries:
            raise RegistryCorruption(
                f"Canonical ID '{entry.canonical_id}' is already registered",
                context={"path": entry.original_path},
            )
        self.entries[entry.canonical_id] = entry

    def record_translation(
        self,
        canonical_id: str,
        language: str,
        record: TranslationRecord,
    ) -> TranslationRecord | None:
        """
        Create or overwrite the translation record for a language.

        Returns:
            The record that was replaced, if any
        """
        entry = self.require(canonical_id)
        if language == entry.original_language:
            raise RegistryCorruption(
                f"'{canonical_id}' cannot be a translation of itself ({language})"
            )

        previous = entry.translations.get(language)
        entry.translations[language] = record
        return previous

    def restore_translation(
        self,
        canonical_id: str,
        language: str,
        previous: TranslationRecord | None,
    ) -> None:
        """Undo record_translation: put back the previous record, or drop the new one."""
        entry = self.require(canonical_id)
        if previous is None:
            entry.translations.pop(language, None)
        else:
            entry.translations[language] = previous

    def mark_translations_stale(
        self,
        canonical_id: str,
        content_hash: str,
        when: datetime | None = None,
    ) -> list[str]:
        """Record a new source hash for an entry; see RegistryEntry.mark_source_changed."""
        return self.require(canonical_id).mark_source_changed(content_hash, when)


# =============================================================================
# Translation tasks
# =============================================================================


class TranslationTask(CamelModel):
    """
    One unit of translation work emitted by the detector.

    The identity key includes the source hash, so editing the source
    produces a different task and any earlier completion no longer applies.
    """

    canonical_id: str
    source_path: str
    source_language: str
    target_language: str
    source_content_hash: str
    existing_translation_hash: str | None = None
    reason: TaskReason
    output_path: str
    priority: TaskPriority = TaskPriority.NORMAL

    @property
    def key(self) -> str:
        return f"{self.canonical_id}:{self.target_language}:{self.source_content_hash}"

    @property
    def short_sha(self) -> str:
        return self.source_content_hash[:7]

    def sort_key(self) -> tuple[int, str, str]:
        return (self.priority.rank, self.canonical_id, self.target_language)


# =============================================================================
# Ledgers
# =============================================================================


class ProgressEntry(CamelModel):
    """A completed task, as recorded in the progress ledger."""

    key: str
    canonical_id: str
    target_language: str
    source_content_hash: str
    completed_at: datetime = Field(default_factory=utc_now)


class TokenUsageRecord(CamelModel):
    """Token usage, cost, and CO2 estimate for one AI call."""

    operation: str
    canonical_id: str
    model: str
    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0
    cost: float = 0.0
    co2: float = 0.0
    timestamp: datetime = Field(default_factory=utc_now)
    source_language: str = ""
    target_language: str = ""


# =============================================================================
# Structured AI response
# =============================================================================


class AITextScore(CamelModel):
    """Self-reported translation quality."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    translation_quality: float | None = None
    original_clarity: float | None = None
    timestamp: str | None = None
    notes: list[Any] = Field(default_factory=list)


class ReviewIssue(BaseModel):
    """A segment the model flagged for human review."""

    section: str = "Unknown"
    issue: str = "Unknown issue"
    suggestion: str = "No suggestion"


class TranslationPayload(BaseModel):
    """The structured object the translation prompt asks the model for."""

    model_config = ConfigDict(extra="ignore")

    translated_markdown: str
    ai_tldr: str | None = None
    ai_textscore: AITextScore | None = None
    review_issues: list[ReviewIssue] = Field(default_factory=list)

    @field_validator("translated_markdown")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("translated_markdown is empty")
        return value

    @field_validator("review_issues", mode="before")
    @classmethod
    def _coerce_issues(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, list):
            return [{"issue": item} if isinstance(item, str) else item for item in value]
        return value

    @property
    def quality(self) -> float | None:
        return self.ai_textscore.translation_quality if self.ai_textscore else None


# =============================================================================
# Frontmatter history
# =============================================================================


class TranslationHistoryEntry(CamelModel):
    """One line of a translated file's translationHistory."""

    language: str
    translator: str
    model: str | None = None
    source_sha: str
    timestamp: str
    status: str = "ai-translated"  # ai-translated, human-reviewed, ai+human
    reviewer: str | None = None

    @classmethod
    def create(
        cls,
        language: str,
        source_sha: str,
        model: str,
        reviewer: str | None = None,
        when: datetime | None = None,
    ) -> TranslationHistoryEntry:
        return cls(
            language=language,
            translator=f"AI+Human ({model})" if reviewer else f"AI ({model})",
            model=model,
            source_sha=source_sha,
            timestamp=iso_timestamp(when),
            status="ai+human" if reviewer else "ai-translated",
            reviewer=reviewer,
        )


# =============================================================================
# Reports and outcomes
# =============================================================================


class ConflictReport(CamelModel):
    """An externally visible, deduplicated report."""

    key: str
    kind: ConflictKind
    title: str
    body: str
    labels: list[str] = Field(default_factory=list)
    canonical_id: str
    language: str
    created_at: datetime = Field(default_factory=utc_now)

    @staticmethod
    def make_key(kind: ConflictKind, canonical_id: str, language: str) -> str:
        return f"{kind.value}:{canonical_id}:{language}"


class TaskOutcome(BaseModel):
    """Final state of one task in a generator run."""

    key: str
    canonical_id: str
    target_language: str
    state: TaskState
    error_code: str | None = None
    message: str = ""


class RunSummary(BaseModel):
    """Aggregated result of a generator run."""

    outcomes: list[TaskOutcome] = Field(default_factory=list)

    def _count(self, state: TaskState) -> int:
        return sum(1 for o in self.outcomes if o.state == state)

    @property
    def processed(self) -> int:
        return self._count(TaskState.COMMITTED)

    @property
    def rejected(self) -> int:
        return self._count(TaskState.REPORTED)

    @property
    def failed(self) -> int:
        return self._count(TaskState.FAILED)

    @property
    def skipped(self) -> int:
        return self._count(TaskState.SKIPPED)

    @property
    def total(self) -> int:
        return len(self.outcomes)
