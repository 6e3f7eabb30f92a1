"""
Tests for the translation generator state machine.

Each test builds a small content tree, scans and detects it, and runs the
generator against a scripted provider.
"""

import re
import shutil
from pathlib import Path

import pytest

from canon.core import frontmatter
from canon.core.errors import HallucinationDetected, PersistenceFailure, ProviderError
from canon.core.hashing import content_hash
from canon.core.models import TaskReason, TaskState, TranslationStatus
from canon.ledgers.progress import ProgressLedger
from canon.ledgers.tokens import TokenLedger
from canon.services.overrides import OverridePolicy
from canon.storage.base import VersionControl
from canon.storage.git import NullVersionControl

from conftest import EXAMPLE_BODY, FakeProvider, fixed_clock, payload_json, write_doc


class FailingVersionControl(VersionControl):
    def commit(self, paths, message):
        raise PersistenceFailure("git commit failed")


class TitleFailingProvider(FakeProvider):
    def complete(self, system_prompt, user_content):
        if system_prompt.startswith("Translate the title"):
            self.calls.append((system_prompt, user_content))
            raise ProviderError("title endpoint down")
        return super().complete(system_prompt, user_content)


class CrashingProvider(FakeProvider):
    """Dies like a killed process on the given translation call."""

    def __init__(self, crash_on: int):
        super().__init__()
        self.crash_on = crash_on

    def complete(self, system_prompt, user_content):
        if (
            not system_prompt.startswith("Translate the title")
            and len(self.translation_calls) + 1 == self.crash_on
        ):
            raise RuntimeError("killed")
        return super().complete(system_prompt, user_content)


SECOND_BODY = EXAMPLE_BODY + "\nThe second post adds one more paragraph of its own.\n"
THIRD_BODY = EXAMPLE_BODY + "\nThe third post closes the series with a short note.\n"


def drop_placeholders(content: str) -> str:
    return payload_json(re.sub(r"__PRESERVED_\d+__", "", content))


@pytest.fixture
def scan_and_detect(assigner, detector, store):
    def run():
        assigner.scan()
        return detector.detect(store.load())

    return run


@pytest.fixture
def tasks(scan_and_detect, example):
    return scan_and_detect()


def edit_body(path, extra: str) -> None:
    document = frontmatter.parse(path.read_text(encoding="utf-8"))
    path.write_text(frontmatter.dump(document.frontmatter, document.body + extra), encoding="utf-8")


def progress_keys(settings) -> set[str]:
    return ProgressLedger(settings.progress_path).completed_keys()


def usage_records(settings):
    return TokenLedger(settings.token_ledger_path).records()


# =============================================================================
# Happy path
# =============================================================================


class TestCommit:
    def test_end_to_end(self, make_generator, provider, tasks, store, content_root, settings, scan_and_detect):
        vcs = NullVersionControl()
        task = tasks[0]

        summary = make_generator(provider, vcs=vcs).run(tasks)

        assert summary.processed == 1
        assert summary.failed == 0
        assert summary.outcomes[0].state == TaskState.COMMITTED

        document = frontmatter.parse((content_root / "life/de/example.md").read_text())
        assert document.body == EXAMPLE_BODY
        meta = document.frontmatter
        assert meta["title"] == "Beispiel"
        assert meta["language"] == "de"
        assert meta["canonicalId"] == task.canonical_id
        assert meta["translationOf"] == task.canonical_id
        assert meta["sourceLanguage"] == "en"
        assert meta["tags"] == ["meta"]
        assert "originalLanguage" not in meta
        assert meta["status"] == {"translation": "AI"}
        assert meta["ai_tldr"] == "Ein Beispielbeitrag."
        assert meta["ai_textscore"]["translationQuality"] == 90

        history = meta["translationHistory"]
        assert len(history) == 1
        assert history[0]["sourceSha"] == task.source_content_hash[:7]
        assert history[0]["translator"] == "AI (gpt-4o-mini)"
        assert history[0]["status"] == "ai-translated"
        assert history[0]["timestamp"] == "2026-10-16T12:00:00Z"

        usage = meta["ai_metadata"]["tokenUsage"]
        assert usage["translation"]["tokens"] == 1800
        assert usage["title"]["tokens"] == 25
        assert usage["total"]["tokens"] == 1825

        record = store.load().get(task.canonical_id).translations["de"]
        assert record.status == TranslationStatus.CURRENT
        assert record.source_hash == task.source_content_hash
        assert record.translation_hash == content_hash(EXAMPLE_BODY)

        assert progress_keys(settings) == {task.key}
        assert [r.operation for r in usage_records(settings)] == ["translation", "title-translation"]

        paths, message = vcs.commits[0]
        assert message == f"AI: translate {task.canonical_id} to de ({task.source_content_hash[:7]})"
        assert store.path in paths
        assert content_root / "life/de/example.md" in paths

        # Nothing left to do
        assert scan_and_detect() == []

    def test_placeholders_reach_the_model_masked(self, make_generator, provider, tasks):
        make_generator(provider).run(tasks)

        system_prompt, user_content = provider.translation_calls[0]
        assert "__PRESERVED_0__" in system_prompt
        assert "canon scan" not in user_content
        assert "https://example.com/guide" not in user_content
        assert "# Example" in user_content

    def test_source_edit_produces_stale_task_and_keeps_history(
        self, make_generator, provider, tasks, example, content_root, scan_and_detect
    ):
        make_generator(provider).run(tasks)
        edit_body(example, "\nA new closing paragraph.\n")

        stale = scan_and_detect()

        assert len(stale) == 1
        assert stale[0].reason == TaskReason.STALE
        assert stale[0].existing_translation_hash == content_hash(EXAMPLE_BODY)

        summary = make_generator(provider).run(stale)

        assert summary.processed == 1
        history = frontmatter.parse((content_root / "life/de/example.md").read_text()).frontmatter[
            "translationHistory"
        ]
        assert [h["sourceSha"] for h in history] == [
            stale[0].source_content_hash[:7],
            tasks[0].source_content_hash[:7],
        ]

    def test_title_failure_keeps_source_title(self, make_generator, tasks, content_root):
        summary = make_generator(TitleFailingProvider()).run(tasks)

        assert summary.processed == 1
        meta = frontmatter.parse((content_root / "life/de/example.md").read_text()).frontmatter
        assert meta["title"] == "Example"
        assert meta["ai_metadata"]["tokenUsage"]["title"]["tokens"] == 0

    def test_low_quality_is_committed_and_reported(self, make_generator, tasks, sink):
        issues = [{"section": "Setup", "issue": "Unclear idiom", "suggestion": "Rephrase"}]
        provider = FakeProvider([lambda content: payload_json(content, quality=40, review_issues=issues)])

        summary = make_generator(provider).run(tasks)

        assert summary.processed == 1
        reports = sink.open_reports()
        assert [r.key for r in reports] == [f"quality:{tasks[0].canonical_id}:de"]
        assert "Unclear idiom" in reports[0].body

    def test_request_delay_between_calls(self, make_generator, provider, settings, content_root, example, scan_and_detect):
        write_doc(content_root, "books/en/second.md", {"title": "Second"}, SECOND_BODY)
        tasks = scan_and_detect()
        assert len(tasks) == 2

        settings.request_delay = 0.5
        sleeps = []
        summary = make_generator(provider, sleep=sleeps.append).run(tasks)

        assert summary.processed == 2
        assert sleeps == [0.5]


# =============================================================================
# Resume after a crash
# =============================================================================


class TestResume:
    def test_restart_processes_only_the_remaining_tasks(
        self, make_generator, store, content_root, workspace, example, scan_and_detect, tmp_path_factory
    ):
        write_doc(content_root, "books/en/second.md", {"title": "Second"}, SECOND_BODY)
        write_doc(content_root, "lab/en/third.md", {"title": "Third"}, THIRD_BODY)
        tasks = scan_and_detect()
        assert len(tasks) == 3
        snapshot = tmp_path_factory.mktemp("snapshot") / "workspace"
        shutil.copytree(workspace, snapshot)

        # Killed during the second task, after one commit
        crashing = CrashingProvider(crash_on=2)
        with pytest.raises(RuntimeError):
            make_generator(crashing).run(tasks)
        assert len(crashing.translation_calls) == 1

        provider = FakeProvider()
        summary = make_generator(provider).run(tasks)

        assert summary.processed == 2
        assert summary.skipped == 1
        assert summary.outcomes[0].message == "Already completed"
        assert len(provider.translation_calls) == 2
        resumed_registry = store.load().model_dump()
        resumed_files = {t.output_path: (content_root / t.output_path).read_text(encoding="utf-8") for t in tasks}

        # Same tasks from the same starting point, without the crash
        shutil.rmtree(workspace)
        shutil.copytree(snapshot, workspace)
        clean = FakeProvider()
        clean_summary = make_generator(clean).run(tasks)

        assert clean_summary.processed == 3
        assert len(clean.translation_calls) == 3
        assert store.load().model_dump() == resumed_registry
        assert {
            t.output_path: (content_root / t.output_path).read_text(encoding="utf-8") for t in tasks
        } == resumed_files


# =============================================================================
# Skips
# =============================================================================


class TestSkip:
    def test_completed_task_is_skipped(self, make_generator, provider, tasks):
        make_generator(provider).run(tasks)
        calls = len(provider.calls)

        summary = make_generator(provider).run(tasks)

        assert summary.skipped == 1
        assert summary.outcomes[0].message == "Already completed"
        assert len(provider.calls) == calls

    def test_commit_without_progress_entry_is_recovered(self, make_generator, provider, tasks, settings):
        make_generator(provider).run(tasks)
        Path(settings.progress_path).unlink()
        calls = len(provider.calls)

        summary = make_generator(provider).run(tasks)

        assert summary.skipped == 1
        assert len(provider.calls) == calls
        assert progress_keys(settings) == {tasks[0].key}

    def test_source_changed_after_detection(self, make_generator, provider, tasks, example):
        edit_body(example, "Late edit.\n")

        summary = make_generator(provider).run(tasks)

        assert summary.skipped == 1
        assert "re-run detect" in summary.outcomes[0].message
        assert provider.calls == []

    def test_override_pause(self, make_generator, provider, tasks):
        policy = OverridePolicy(global_pause=True)

        summary = make_generator(provider, policy=policy).run(tasks)

        assert summary.skipped == 1
        assert provider.calls == []

    def test_daily_cap(self, make_generator, provider, tasks, settings):
        settings.daily_token_cap = 1000
        TokenLedger(settings.token_ledger_path, clock=fixed_clock).record(
            "translation", "earlier", "gpt-4o-mini", 700, 300
        )

        summary = make_generator(provider).run(tasks)

        assert summary.skipped == 1
        assert "Daily token cap" in summary.outcomes[0].message
        assert provider.calls == []

    def test_missing_source_fails(self, make_generator, provider, tasks, example):
        example.unlink()

        summary = make_generator(provider).run(tasks)

        assert summary.failed == 1
        assert summary.outcomes[0].error_code == "SRC_001"


# =============================================================================
# Rejections and failures
# =============================================================================


class TestReject:
    def test_hallucination_is_reported_not_written(self, make_generator, tasks, store, settings, sink, content_root):
        provider = FakeProvider([payload_json("Völlig anderer Text ohne Struktur.")])

        summary = make_generator(provider).run(tasks)

        outcome = summary.outcomes[0]
        assert outcome.state == TaskState.REPORTED
        assert outcome.error_code == HallucinationDetected.code == "AI_003"
        assert outcome.message.startswith("Similarity score")
        assert summary.rejected == 1

        assert not (content_root / "life/de/example.md").exists()
        assert store.load().get(tasks[0].canonical_id).translations == {}
        assert progress_keys(settings) == set()
        assert [r.key for r in sink.open_reports()] == [f"hallucination:{tasks[0].canonical_id}:de"]

        # Paid for, even though rejected
        assert [r.operation for r in usage_records(settings)] == ["translation"]

    def test_rejected_response_is_not_cached(self, make_generator, tasks):
        provider = FakeProvider([payload_json("Kaputt."), payload_json("Wieder kaputt.")])

        make_generator(provider).run(tasks)
        make_generator(provider).run(tasks)

        assert len(provider.translation_calls) == 2

    def test_dropped_placeholders_are_rejected(self, make_generator, tasks, content_root):
        provider = FakeProvider([drop_placeholders])

        summary = make_generator(provider).run(tasks)

        assert summary.rejected == 1
        assert not (content_root / "life/de/example.md").exists()

    def test_malformed_response(self, make_generator, tasks, store, settings, content_root):
        provider = FakeProvider(["Sure! Here is your translation."])

        summary = make_generator(provider).run(tasks)

        outcome = summary.outcomes[0]
        assert outcome.state == TaskState.FAILED
        assert outcome.error_code == "AI_002"
        assert store.load().get(tasks[0].canonical_id).translations == {}
        assert not (content_root / "life/de/example.md").exists()
        assert progress_keys(settings) == set()
        assert len(usage_records(settings)) == 1

    def test_missing_required_field(self, make_generator, tasks):
        provider = FakeProvider(['{"ai_tldr": "no body"}'])
        assert make_generator(provider).run(tasks).outcomes[0].error_code == "AI_002"

    def test_provider_error(self, make_generator, tasks, settings):
        provider = FakeProvider([ProviderError("timed out")])

        summary = make_generator(provider).run(tasks)

        assert summary.outcomes[0].error_code == "AI_001"
        assert usage_records(settings) == []

    def test_one_failure_does_not_stop_the_run(self, make_generator, content_root, example, scan_and_detect):
        write_doc(content_root, "books/en/second.md", {"title": "Second"}, SECOND_BODY)
        tasks = scan_and_detect()
        provider = FakeProvider([ProviderError("timed out")])

        summary = make_generator(provider).run(tasks)

        assert summary.failed == 1
        assert summary.processed == 1


class TestPersistenceFailure:
    def test_new_translation_is_rolled_back(self, make_generator, provider, tasks, store, settings, content_root):
        summary = make_generator(provider, vcs=FailingVersionControl()).run(tasks)

        assert summary.outcomes[0].error_code == "IO_001"
        assert not (content_root / "life/de/example.md").exists()
        assert store.load().get(tasks[0].canonical_id).translations == {}
        assert progress_keys(settings) == set()

    def test_retry_uses_cached_response(self, make_generator, provider, tasks):
        make_generator(provider, vcs=FailingVersionControl()).run(tasks)
        assert len(provider.translation_calls) == 1

        summary = make_generator(provider).run(tasks)

        assert summary.processed == 1
        assert len(provider.translation_calls) == 1

    def test_retranslation_restores_previous_file(
        self, make_generator, provider, tasks, store, example, content_root, scan_and_detect
    ):
        make_generator(provider).run(tasks)
        target = content_root / "life/de/example.md"
        before = target.read_text()

        edit_body(example, "\nMore.\n")
        stale = scan_and_detect()
        record_before = store.load().get(tasks[0].canonical_id).translations["de"]

        summary = make_generator(provider, vcs=FailingVersionControl()).run(stale)

        assert summary.failed == 1
        assert target.read_text() == before
        record = store.load().get(tasks[0].canonical_id).translations["de"]
        assert record == record_before
        assert record.status == TranslationStatus.STALE
