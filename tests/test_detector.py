"""
Tests for translation task detection and task list files.
"""

import json

import pytest

from canon.core import frontmatter
from canon.core.errors import MalformedSource
from canon.core.hashing import content_hash
from canon.core.models import TaskPriority, TaskReason, TranslationRecord, TranslationStatus
from canon.services.detector import TaskDetector, dump_tasks, read_tasks, write_tasks
from canon.services.overrides import OverridePolicy

from conftest import EXAMPLE_BODY, FIXED_NOW, write_doc


@pytest.fixture
def registered(assigner, store, example):
    """Scan the example and return its canonical ID."""
    return assigner.scan().registered[0]


# =============================================================================
# Detection
# =============================================================================


class TestDetect:
    def test_missing_translation(self, detector, store, registered):
        tasks = detector.detect(store.load())

        assert len(tasks) == 1
        task = tasks[0]
        assert task.canonical_id == registered
        assert task.source_path == "life/en/example.md"
        assert task.source_language == "en"
        assert task.target_language == "de"
        assert task.reason == TaskReason.MISSING
        assert task.output_path == "life/de/example.md"
        assert task.source_content_hash == content_hash(EXAMPLE_BODY)
        assert task.existing_translation_hash is None
        assert task.priority == TaskPriority.NORMAL

    def test_placeholder_counts_as_missing(self, detector, assigner, store, content_root, example):
        write_doc(content_root, "life/de/example.md", {"title": "Beispiel"}, "Bald.\n")
        assigner.scan()

        tasks = detector.detect(store.load())

        assert [t.reason for t in tasks] == [TaskReason.MISSING]
        assert tasks[0].output_path == "life/de/example.md"

    def test_detection_is_deterministic(self, detector, store, content_root, assigner, example):
        write_doc(content_root, "books/en/zebra.md", {"title": "Zebra"}, EXAMPLE_BODY)
        write_doc(content_root, "books/en/aardvark.md", {"title": "Aardvark"}, EXAMPLE_BODY)
        assigner.scan()

        first = dump_tasks(detector.detect(store.load()))
        second = dump_tasks(detector.detect(store.load()))

        assert first == second
        ids = [t["canonicalId"] for t in json.loads(first)]
        assert ids == sorted(ids)

    def test_current_translation_yields_nothing(self, detector, store, registered):
        registry = store.load()
        registry.record_translation(
            registered,
            "de",
            _record("life/de/example.md", content_hash(EXAMPLE_BODY)),
        )
        detector.storage.write_text("life/de/example.md", "---\ntitle: B\n---\nText\n")

        assert detector.detect(registry) == []

    def test_edited_source_is_stale_and_high_priority(self, detector, store, registered, example):
        registry = store.load()
        registry.record_translation(registered, "de", _record("life/de/example.md", content_hash(EXAMPLE_BODY)))
        detector.storage.write_text("life/de/example.md", "---\ntitle: B\n---\nText\n")

        # Edited after the last scan: registry still holds the old hash
        document = frontmatter.parse(example.read_text())
        example.write_text(frontmatter.dump(document.frontmatter, document.body + "More.\n"))

        tasks = detector.detect(registry)

        assert len(tasks) == 1
        assert tasks[0].reason == TaskReason.STALE
        assert tasks[0].priority == TaskPriority.HIGH
        assert tasks[0].source_content_hash == content_hash(EXAMPLE_BODY + "More.\n")
        assert tasks[0].existing_translation_hash == content_hash("Text\n")

    def test_stale_after_rescan_is_normal_priority(self, detector, assigner, store, registered, example):
        registry = store.load()
        registry.record_translation(registered, "de", _record("life/de/example.md", content_hash(EXAMPLE_BODY)))
        store.save(registry)
        detector.storage.write_text("life/de/example.md", "---\ntitle: B\n---\nText\n")

        document = frontmatter.parse(example.read_text())
        example.write_text(frontmatter.dump(document.frontmatter, document.body + "More.\n"))
        assigner.scan()

        registry = store.load()
        assert registry.get(registered).translations["de"].status == TranslationStatus.STALE

        tasks = detector.detect(registry)
        assert tasks[0].reason == TaskReason.STALE
        assert tasks[0].priority == TaskPriority.NORMAL

    def test_deleted_translation_file_is_missing(self, detector, store, registered):
        registry = store.load()
        registry.record_translation(registered, "de", _record("life/de/example.md", content_hash(EXAMPLE_BODY)))

        tasks = detector.detect(registry)

        assert tasks[0].reason == TaskReason.MISSING

    def test_missing_original_is_skipped(self, detector, store, registered, example):
        example.unlink()
        assert detector.detect(store.load()) == []

    def test_override_suppresses_tasks(self, storage, settings, store, registered):
        policy = OverridePolicy(skip_translation_keys=[registered])
        detector = TaskDetector(storage, settings.languages_list, policy=policy, now=FIXED_NOW)
        assert detector.detect(store.load()) == []

    def test_path_override_uses_original_path(self, storage, settings, store, registered):
        policy = OverridePolicy(skip_file_paths=["life/en/"])
        detector = TaskDetector(storage, settings.languages_list, policy=policy, now=FIXED_NOW)
        assert detector.detect(store.load()) == []

    def test_more_languages_more_tasks(self, storage, store, registered):
        detector = TaskDetector(storage, ["en", "de", "fr"], now=FIXED_NOW)
        tasks = detector.detect(store.load())
        assert [(t.target_language, t.output_path) for t in tasks] == [
            ("de", "life/de/example.md"),
            ("fr", "life/fr/example.md"),
        ]


def _record(path, source_hash):
    return TranslationRecord(path=path, source_hash=source_hash, last_translated=FIXED_NOW)


# =============================================================================
# Task list files
# =============================================================================


class TestTaskFiles:
    def test_write_and_read(self, tmp_path, detector, store, registered):
        tasks = detector.detect(store.load())
        path = tmp_path / "tasks.json"

        write_tasks(path, tasks)

        data = json.loads(path.read_text())
        assert data[0]["targetLanguage"] == "de"
        assert data[0]["sourceContentHash"] == tasks[0].source_content_hash
        assert "existingTranslationHash" not in data[0]
        assert read_tasks(path) == tasks

    def test_empty_list(self, tmp_path):
        path = tmp_path / "tasks.json"
        write_tasks(path, [])
        assert path.read_text() == "[]\n"
        assert read_tasks(path) == []

    def test_garbage_is_malformed(self, tmp_path):
        path = tmp_path / "tasks.json"
        path.write_text('[{"canonicalId": "x"}]')
        with pytest.raises(MalformedSource):
            read_tasks(path)
