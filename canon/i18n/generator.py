"""
Translation generator.

Consumes a task list and drives each task through a small state machine:

    pending -> extracting -> requesting -> validating -> accepted -> committed
                                                      \\-> rejected -> reported
    (any pre-check)                                   -> skipped
    (retryable or source error)                       -> failed

Tasks run strictly one after another. A crash at any point is safe to
resume from: the registry and the progress ledger decide what is left,
and the response cache keeps a retried task from paying twice.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable

from pydantic import ValidationError

from canon.config import Settings, get_settings
from canon.core import frontmatter
from canon.core.errors import (
    CanonError,
    HallucinationDetected,
    MalformedAIResponse,
    MalformedSource,
    PersistenceFailure,
    ProviderError,
    RegistryCorruption,
)
from canon.core.frontmatter import Document
from canon.core.hashing import content_hash
from canon.core.models import (
    ContentRegistry,
    RunSummary,
    TaskOutcome,
    TaskState,
    TokenUsageRecord,
    TranslationHistoryEntry,
    TranslationPayload,
    TranslationRecord,
    TranslationStatus,
    TranslationTask,
)
from canon.core.registry import RegistryStore
from canon.core.utils import Clock, iso_timestamp, utc_now
from canon.i18n.cache import ResponseCache
from canon.i18n.extractor import ExtractionResult, extract, missing_tokens, restore
from canon.i18n.similarity import SimilarityReport, analyze
from canon.ledgers.progress import ProgressLedger
from canon.ledgers.tokens import TokenLedger
from canon.services.ai.prompts import title_system_prompt, translation_system_prompt
from canon.services.ai.provider import AIProvider, ProviderResult
from canon.services.conflicts import ConflictReporter
from canon.services.overrides import OverridePolicy
from canon.storage.base import ContentStorage, VersionControl
from canon.storage.git import NullVersionControl

logger = logging.getLogger(__name__)


class TranslationGenerator:
    """
    Run translation tasks.

    Usage:
        generator = TranslationGenerator(
            store=store, registry=store.load(), storage=storage, provider=provider,
            progress=progress, tokens=tokens, reporter=reporter, vcs=GitVersionControl(),
        )
        summary = generator.run(read_tasks("tasks.json"))
    """

    def __init__(
        self,
        store: RegistryStore,
        registry: ContentRegistry,
        storage: ContentStorage,
        provider: AIProvider,
        progress: ProgressLedger,
        tokens: TokenLedger,
        reporter: ConflictReporter,
        vcs: VersionControl | None = None,
        cache: ResponseCache | None = None,
        policy: OverridePolicy | None = None,
        settings: Settings | None = None,
        clock: Clock = utc_now,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.store = store
        self.registry = registry
        self.storage = storage
        self.provider = provider
        self.progress = progress
        self.tokens = tokens
        self.reporter = reporter
        self.vcs = vcs or NullVersionControl()
        self.settings = settings or get_settings()
        self.cache = cache or ResponseCache(self.settings.cache_dir)
        self.policy = policy or OverridePolicy()
        self.clock = clock
        self.sleep = sleep

        self._requested = False

    # =========================================================================
    # Run
    # =========================================================================

    def run(self, tasks: list[TranslationTask]) -> RunSummary:
        """
        Process tasks in order.

        Raises:
            RegistryCorruption: the registry can no longer be trusted
        """
        summary = RunSummary()
        logger.info(f"Processing {len(tasks)} translation tasks")

        for index, task in enumerate(tasks, start=1):
            logger.info(f"[{index}/{len(tasks)}] {task.canonical_id} -> {task.target_language}")
            outcome = self.process(task)
            summary.outcomes.append(outcome)
            suffix = f" ({outcome.message})" if outcome.message else ""
            logger.info(f"{task.key}: {outcome.state.value}{suffix}")

        logger.info(
            f"Run complete: {summary.processed} processed, {summary.failed} failed, "
            f"{summary.skipped} skipped, {summary.rejected} rejected"
        )
        return summary

    def process(self, task: TranslationTask) -> TaskOutcome:
        """Drive one task to a terminal state. Only RegistryCorruption escapes."""
        try:
            return self._process(task)
        except RegistryCorruption:
            raise
        except HallucinationDetected as e:
            logger.warning(f"{task.key}: rejected, {e}")
            return self._outcome(task, TaskState.REPORTED, str(e), e)
        except MalformedAIResponse as e:
            logger.error(f"{task.key}: {e}\nRaw AI response:\n{e.raw}")
            return self._outcome(task, TaskState.FAILED, str(e), e)
        except CanonError as e:
            logger.error(f"{task.key}: {e}")
            return self._outcome(task, TaskState.FAILED, str(e), e)

    # =========================================================================
    # State machine
    # =========================================================================

    def _process(self, task: TranslationTask) -> TaskOutcome:
        # pending
        if self.progress.is_completed(task):
            return self._outcome(task, TaskState.SKIPPED, "Already completed")

        reason = self.policy.skip_reason(task.canonical_id, task.source_path, self.clock())
        if reason:
            return self._outcome(task, TaskState.SKIPPED, reason)

        if self.tokens.is_cap_reached():
            return self._outcome(
                task,
                TaskState.SKIPPED,
                f"Daily token cap of {self.tokens.daily_cap:,} reached",
            )

        source = self._load_source(task)
        if content_hash(source.body) != task.source_content_hash:
            return self._outcome(
                task, TaskState.SKIPPED, "Source changed since detection; re-run detect"
            )

        entry = self.registry.get(task.canonical_id)
        if entry is None:
            return self._outcome(
                task, TaskState.SKIPPED, "Content is not in the registry; re-run scan"
            )

        record = entry.translations.get(task.target_language)
        if (
            record is not None
            and record.status == TranslationStatus.CURRENT
            and record.source_hash == task.source_content_hash
            and self.storage.exists(record.path)
        ):
            # Committed by an earlier run that died before the ledger append
            self._mark_completed(task)
            return self._outcome(task, TaskState.SKIPPED, "Already translated; progress recorded")

        self._transition(task, TaskState.EXTRACTING)
        extraction = extract(source.body)

        self._transition(task, TaskState.REQUESTING)
        payload, usage = self._request_translation(task, extraction)

        self._transition(task, TaskState.VALIDATING)
        translated = restore(payload.translated_markdown, extraction.placeholders)
        similarity = self._screen(source.body, translated, payload, extraction)

        if similarity.is_hallucination:
            self._transition(task, TaskState.REJECTED)
            self.cache.evict(task.source_content_hash, task.target_language)
            self.reporter.report_hallucination(task, similarity)
            raise HallucinationDetected(
                f"Similarity score {similarity.score}/100: {'; '.join(similarity.issues)}",
                report=similarity,
            )

        self._transition(task, TaskState.ACCEPTED)
        title, title_usage = self._translate_title(task, source, entry.title)
        text = self._render(task, source, payload, translated, title, usage, title_usage)
        self._persist(task, text, translated)

        self._report_quality(task, payload)
        return self._outcome(task, TaskState.COMMITTED, f"Wrote {task.output_path}")

    def _transition(self, task: TranslationTask, state: TaskState) -> None:
        logger.debug(f"{task.key} -> {state.value}")

    def _outcome(
        self,
        task: TranslationTask,
        state: TaskState,
        message: str = "",
        error: CanonError | None = None,
        error_code: str | None = None,
    ) -> TaskOutcome:
        return TaskOutcome(
            key=task.key,
            canonical_id=task.canonical_id,
            target_language=task.target_language,
            state=state,
            error_code=error.code if error else error_code,
            message=message,
        )

    def _load_source(self, task: TranslationTask) -> Document:
        try:
            text = self.storage.read_text(task.source_path)
        except FileNotFoundError as e:
            raise MalformedSource(task.source_path, "file not found") from e
        except UnicodeDecodeError as e:
            raise MalformedSource(task.source_path, f"not valid UTF-8 ({e.reason})") from e
        return frontmatter.parse(text, task.source_path)

    # =========================================================================
    # Requesting / validating
    # =========================================================================

    def _complete(self, system_prompt: str, content: str) -> ProviderResult:
        return self.provider.complete(system_prompt, content)

    def _request_translation(
        self,
        task: TranslationTask,
        extraction: ExtractionResult,
    ) -> tuple[TranslationPayload, TokenUsageRecord | None]:
        cached = self.cache.get(task.source_content_hash, task.target_language)
        if cached is not None:
            try:
                return TranslationPayload.model_validate(cached), None
            except ValidationError:
                logger.warning(f"Cached payload for {task.key} is invalid, requesting again")
                self.cache.evict(task.source_content_hash, task.target_language)

        if self._requested and self.settings.request_delay > 0:
            self.sleep(self.settings.request_delay)
        self._requested = True

        sentinel = next(iter(extraction.placeholders), "__PRESERVED_0__").rsplit("_", 3)[0]
        result = self._complete(
            translation_system_prompt(task.source_language, task.target_language, sentinel),
            extraction.masked,
        )
        usage = self.tokens.record(
            "translation",
            task.canonical_id,
            result.model,
            result.input_tokens,
            result.output_tokens,
            source_language=task.source_language,
            target_language=task.target_language,
        )

        try:
            payload = TranslationPayload.model_validate(result.data)
        except ValidationError as e:
            raise MalformedAIResponse(
                f"AI response is missing required fields: {e.error_count()} errors",
                raw=result.raw,
            ) from e

        self.cache.put(
            task.source_content_hash,
            task.target_language,
            payload.model_dump(mode="json", by_alias=True, exclude_none=True),
        )
        return payload, usage

    def _screen(
        self,
        source_body: str,
        translated: str,
        payload: TranslationPayload,
        extraction: ExtractionResult,
    ) -> SimilarityReport:
        dropped = missing_tokens(payload.translated_markdown, extraction.placeholders)
        return analyze(
            source_body,
            translated,
            extra_issues=[f"Preserved element {token} missing from translation" for token in dropped],
            min_score=self.settings.hallucination_min_score,
            max_issues=self.settings.hallucination_max_issues,
        )

    def _translate_title(
        self,
        task: TranslationTask,
        source: Document,
        fallback: str,
    ) -> tuple[str, TokenUsageRecord | None]:
        title = source.title or fallback
        if not title:
            return title, None

        try:
            result = self._complete(
                title_system_prompt(task.source_language, task.target_language), title
            )
        except ProviderError as e:
            logger.warning(f"Title translation failed for {task.key}, keeping source title: {e}")
            return title, None

        usage = self.tokens.record(
            "title-translation",
            task.canonical_id,
            result.model,
            result.input_tokens,
            result.output_tokens,
            source_language=task.source_language,
            target_language=task.target_language,
        )

        try:
            translated = result.data.get("title")
        except MalformedAIResponse as e:
            logger.warning(f"Title response for {task.key} unusable, keeping source title: {e}")
            return title, usage

        if not isinstance(translated, str) or not translated.strip():
            return title, usage
        return translated.strip().strip('"'), usage

    # =========================================================================
    # Accepted: render, persist, report
    # =========================================================================

    def _render(
        self,
        task: TranslationTask,
        source: Document,
        payload: TranslationPayload,
        body: str,
        title: str,
        usage: TokenUsageRecord | None,
        title_usage: TokenUsageRecord | None,
    ) -> str:
        now = self.clock()
        model = usage.model if usage else self.provider.model

        metadata = {k: v for k, v in source.frontmatter.items() if k != "originalLanguage"}
        metadata.update(
            {
                "title": title,
                "language": task.target_language,
                "canonicalId": task.canonical_id,
                "translationOf": task.canonical_id,
                "sourceLanguage": task.source_language,
            }
        )

        entry = TranslationHistoryEntry.create(
            task.target_language, task.short_sha, model, when=now
        )
        metadata["translationHistory"] = [entry.to_json_dict(), *self._previous_history(task)]

        if payload.ai_tldr and payload.ai_tldr.strip():
            metadata["ai_tldr"] = payload.ai_tldr.strip()
        if payload.ai_textscore is not None:
            score = payload.ai_textscore.to_json_dict()
            score.setdefault("timestamp", iso_timestamp(now))
            metadata["ai_textscore"] = score

        status = metadata.get("status")
        metadata["status"] = {**(status if isinstance(status, dict) else {}), "translation": "AI"}

        ai_metadata = metadata.get("ai_metadata")
        metadata["ai_metadata"] = {
            **(ai_metadata if isinstance(ai_metadata, dict) else {}),
            "tokenUsage": {
                "translation": _usage_summary(usage),
                "title": _usage_summary(title_usage),
                "total": _usage_summary(usage, title_usage),
            },
        }

        return frontmatter.dump(metadata, body)

    def _previous_history(self, task: TranslationTask) -> list[Any]:
        if not self.storage.exists(task.output_path):
            return []
        try:
            existing = frontmatter.parse(self.storage.read_text(task.output_path), task.output_path)
        except (MalformedSource, UnicodeDecodeError) as e:
            logger.warning(f"Ignoring history of unreadable {task.output_path}: {e}")
            return []
        history = existing.frontmatter.get("translationHistory")
        return list(history) if isinstance(history, list) else []

    def _persist(self, task: TranslationTask, text: str, body: str) -> None:
        """
        Write the translation, update and save the registry, commit, then
        mark the task completed. On failure the file and the registry
        record are put back and the progress ledger is not touched.
        """
        previous_text = (
            self.storage.read_text(task.output_path)
            if self.storage.exists(task.output_path)
            else None
        )
        previous = self.registry.record_translation(
            task.canonical_id,
            task.target_language,
            TranslationRecord(
                path=task.output_path,
                status=TranslationStatus.CURRENT,
                last_translated=self.clock(),
                translation_hash=content_hash(body),
                source_hash=task.source_content_hash,
            ),
        )

        try:
            written = self.storage.write_text(task.output_path, text)
            self.store.save(self.registry)
            self.vcs.commit(
                [written, self.store.path, self.tokens.path],
                f"AI: translate {task.canonical_id} to {task.target_language} ({task.short_sha})",
            )
        except (OSError, PersistenceFailure) as e:
            self._roll_back(task, previous, previous_text)
            if isinstance(e, PersistenceFailure):
                raise
            raise PersistenceFailure(f"Could not persist {task.output_path}: {e}") from e

        self._transition(task, TaskState.COMMITTED)
        self._mark_completed(task)

    def _roll_back(
        self,
        task: TranslationTask,
        previous: TranslationRecord | None,
        previous_text: str | None,
    ) -> None:
        self.registry.restore_translation(task.canonical_id, task.target_language, previous)
        try:
            self.store.save(self.registry)
        except OSError as e:
            raise RegistryCorruption(
                f"Could not restore registry after failed commit of {task.key}: {e}"
            ) from e

        try:
            if previous_text is None:
                self.storage.path_for(task.output_path).unlink(missing_ok=True)
            else:
                self.storage.write_text(task.output_path, previous_text)
        except OSError as e:
            logger.error(f"Could not restore {task.output_path}: {e}")

    def _mark_completed(self, task: TranslationTask) -> None:
        try:
            self.progress.mark_completed(task)
        except OSError as e:
            raise PersistenceFailure(f"Could not append to progress ledger: {e}") from e

    def _report_quality(self, task: TranslationTask, payload: TranslationPayload) -> None:
        quality = payload.quality
        low = quality is not None and quality < self.settings.quality_threshold
        if not low and not payload.review_issues:
            return
        try:
            self.reporter.report_quality(
                task, quality, payload.review_issues, self.settings.quality_threshold
            )
        except CanonError as e:
            # The translation is committed; the report can be raised by a later scan
            logger.error(f"Could not file quality report for {task.key}: {e}")


def _usage_summary(*records: TokenUsageRecord | None) -> dict[str, Any]:
    present = [r for r in records if r is not None]
    return {
        "tokens": sum(r.total_tokens for r in present),
        "cost": round(sum(r.cost for r in present), 8),
        "co2": round(sum(r.co2 for r in present), 6),
    }
