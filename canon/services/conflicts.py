"""
Conflict and quality reporting.

Rejected translations, low self-reported quality, and stale translations
are surfaced as reports in an external sink (a JSON file or GitHub
issues). Each report has a dedup key `<kind>:<canonicalId>:<language>`;
while a report with that key is open, no second one is created.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path

from pydantic import ValidationError

from canon.core import frontmatter
from canon.core.errors import MalformedSource, PersistenceFailure
from canon.core.hashing import content_hash
from canon.core.models import (
    ConflictKind,
    ConflictReport,
    ContentRegistry,
    RegistryEntry,
    ReviewIssue,
    TaskReason,
    TranslationStatus,
    TranslationTask,
)
from canon.core.utils import Clock, utc_now
from canon.i18n.similarity import SimilarityReport
from canon.integrations import sentry
from canon.storage.base import ContentStorage
from canon.storage.local import write_json_atomic

logger = logging.getLogger(__name__)


BASE_LABEL = "translation"

KIND_LABELS: dict[ConflictKind, list[str]] = {
    ConflictKind.CONFLICT: [BASE_LABEL, "conflict"],
    ConflictKind.HALLUCINATION: [BASE_LABEL, "hallucination", "translation-quality"],
    ConflictKind.QUALITY: [BASE_LABEL, "translation-quality"],
}


# =============================================================================
# Sinks
# =============================================================================


class ConflictSink(ABC):
    """Somewhere reports can be looked up and filed."""

    @abstractmethod
    def find_open(self, key: str) -> str | None:
        """Reference of the open report with this key, if any."""
        pass

    @abstractmethod
    def create(self, report: ConflictReport) -> str:
        """File a report and return its reference."""
        pass


class LocalConflictSink(ConflictSink):
    """Open reports kept in a JSON object keyed by report key."""

    def __init__(self, path: str | Path = "data/conflicts.json"):
        self.path = Path(path)

    def _load(self) -> dict[str, ConflictReport]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            return {key: ConflictReport.model_validate(value) for key, value in data.items()}
        except (OSError, json.JSONDecodeError, AttributeError, ValidationError) as e:
            raise PersistenceFailure(f"Conflict file {self.path} is unreadable: {e}") from e

    def _save(self, reports: dict[str, ConflictReport]) -> None:
        write_json_atomic(
            self.path,
            {key: reports[key].to_json_dict() for key in sorted(reports)},
        )

    def open_reports(self) -> list[ConflictReport]:
        return [report for _, report in sorted(self._load().items())]

    def find_open(self, key: str) -> str | None:
        return key if key in self._load() else None

    def create(self, report: ConflictReport) -> str:
        reports = self._load()
        reports[report.key] = report
        self._save(reports)
        return report.key

    def resolve(self, key: str) -> bool:
        """Close a report. Returns False if it was not open."""
        reports = self._load()
        if reports.pop(key, None) is None:
            return False
        self._save(reports)
        logger.info(f"Resolved {key}")
        return True


# =============================================================================
# Reporter
# =============================================================================


class ConflictReporter:
    """
    Build reports and file them through a sink, once per key.

    Usage:
        reporter = ConflictReporter(LocalConflictSink(), storage)
        reporter.report_hallucination(task, similarity)
        reporter.scan(registry)
    """

    def __init__(
        self,
        sink: ConflictSink,
        storage: ContentStorage | None = None,
        clock: Clock = utc_now,
    ):
        self.sink = sink
        self.storage = storage
        self.clock = clock

    def submit(self, report: ConflictReport) -> str | None:
        """File report unless one with the same key is open. Returns the new reference."""
        existing = self.sink.find_open(report.key)
        if existing is not None:
            logger.info(f"Report {report.key} already open ({existing})")
            return None

        ref = self.sink.create(report)
        logger.info(f"Filed report {report.key} ({ref})")
        return ref

    def _report(
        self,
        kind: ConflictKind,
        canonical_id: str,
        language: str,
        title: str,
        body: str,
    ) -> ConflictReport:
        return ConflictReport(
            key=ConflictReport.make_key(kind, canonical_id, language),
            kind=kind,
            title=title,
            body=body,
            labels=list(KIND_LABELS[kind]),
            canonical_id=canonical_id,
            language=language,
            created_at=self.clock(),
        )

    # =========================================================================
    # Report builders
    # =========================================================================

    def report_hallucination(self, task: TranslationTask, similarity: SimilarityReport) -> str | None:
        issues = "\n".join(f"- {issue}" for issue in similarity.issues) or "- (none)"
        body = (
            "## Hallucination Analysis\n\n"
            f"**Canonical ID**: {task.canonical_id}\n"
            f"**Source**: {task.source_path} ({task.source_language})\n"
            f"**Target Language**: {task.target_language}\n"
            f"**Source SHA**: {task.short_sha}\n"
            f"**Similarity Score**: {similarity.score}/100\n\n"
            f"**Issues Detected**:\n{issues}\n\n"
            "**Recommendation**: Manual review and retranslation required.\n"
        )
        report = self._report(
            ConflictKind.HALLUCINATION,
            task.canonical_id,
            task.target_language,
            f"Translation hallucination detected: {task.canonical_id} -> {task.target_language}",
            body,
        )
        sentry.capture_message(
            report.title,
            level="warning",
            canonical_id=task.canonical_id,
            language=task.target_language,
            score=similarity.score,
        )
        return self.submit(report)

    def report_quality(
        self,
        task: TranslationTask,
        quality: float | None,
        issues: list[ReviewIssue],
        threshold: int = 70,
    ) -> str | None:
        lines = [
            "## Translation Quality Review\n",
            f"**Canonical ID**: {task.canonical_id}",
            f"**Output**: {task.output_path}",
            f"**Target Language**: {task.target_language}",
            f"**Self-reported quality**: {quality if quality is not None else 'n/a'} "
            f"(threshold {threshold})",
            "",
        ]
        if issues:
            lines.append("**Flagged segments**:")
            for issue in issues:
                lines.append(f"- **{issue.section}**: {issue.issue} (suggestion: {issue.suggestion})")
        report = self._report(
            ConflictKind.QUALITY,
            task.canonical_id,
            task.target_language,
            f"Translation needs review: {task.canonical_id} -> {task.target_language}",
            "\n".join(lines) + "\n",
        )
        return self.submit(report)

    def report_stale(self, entry: RegistryEntry, language: str, current_hash: str) -> str | None:
        record = entry.translations.get(language)
        body = (
            "## Stale Translation\n\n"
            f"The {entry.original_language} original changed after the {language} "
            "translation was produced.\n\n"
            f"**Canonical ID**: {entry.canonical_id}\n"
            f"**Original**: {entry.original_path}\n"
            f"**Translation**: {record.path if record else 'n/a'}\n"
            f"**Current source SHA**: {current_hash[:7]}\n"
            f"**Translated from**: {(record.source_hash or entry.content_hash)[:7] if record else 'n/a'}\n"
        )
        report = self._report(
            ConflictKind.CONFLICT,
            entry.canonical_id,
            language,
            f"Translation out of date: {entry.canonical_id} ({language})",
            body,
        )
        return self.submit(report)

    def report_stale_tasks(
        self,
        tasks: list[TranslationTask],
        registry: ContentRegistry,
    ) -> list[str]:
        """File a conflict report for every stale task in a task list."""
        refs: list[str] = []
        for task in tasks:
            if task.reason != TaskReason.STALE:
                continue
            entry = registry.get(task.canonical_id)
            if entry is None:
                logger.warning(f"Task for unknown content {task.canonical_id}")
                continue
            ref = self.report_stale(entry, task.target_language, task.source_content_hash)
            if ref:
                refs.append(ref)
        return refs

    # =========================================================================
    # Periodic scan
    # =========================================================================

    def scan(self, registry: ContentRegistry) -> list[str]:
        """Compare translation status with current source hashes and report drift."""
        if self.storage is None:
            raise ValueError("ConflictReporter.scan needs content storage")

        refs: list[str] = []
        for entry in registry.iter_entries():
            try:
                text = self.storage.read_text(entry.original_path)
                current_hash = content_hash(frontmatter.parse(text, entry.original_path).body)
            except (FileNotFoundError, MalformedSource, UnicodeDecodeError) as e:
                logger.warning(f"{entry.canonical_id}: cannot read original ({e})")
                continue

            for language, record in sorted(entry.translations.items()):
                if record.status == TranslationStatus.MISSING:
                    continue
                stale = (
                    record.status == TranslationStatus.STALE
                    or (record.source_hash or entry.content_hash) != current_hash
                )
                if stale:
                    ref = self.report_stale(entry, language, current_hash)
                    if ref:
                        refs.append(ref)

        logger.info(f"Conflict scan filed {len(refs)} new reports")
        return refs
