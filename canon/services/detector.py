"""
Translation task detection.

Compares the registry against the current source bodies and emits the
translation work still to do. Detection is read-only and deterministic:
over unchanged content it produces the same task list, byte for byte.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path

from pydantic import TypeAdapter, ValidationError

from canon.core import frontmatter
from canon.core.errors import MalformedSource
from canon.core.hashing import content_hash
from canon.core.models import (
    ContentRegistry,
    RegistryEntry,
    TaskPriority,
    TaskReason,
    TranslationStatus,
    TranslationTask,
)
from canon.i18n.languages import target_languages, translated_path
from canon.services.overrides import OverridePolicy
from canon.storage.base import ContentStorage
from canon.storage.local import write_text_atomic

logger = logging.getLogger(__name__)


_TASK_LIST = TypeAdapter(list[TranslationTask])


class TaskDetector:
    """
    Usage:
        detector = TaskDetector(storage, languages, policy)
        tasks = detector.detect(store.load())
    """

    def __init__(
        self,
        storage: ContentStorage,
        languages: list[str],
        policy: OverridePolicy | None = None,
        now: datetime | None = None,
    ):
        self.storage = storage
        self.languages = languages
        self.policy = policy or OverridePolicy()
        self.now = now

    def detect(self, registry: ContentRegistry) -> list[TranslationTask]:
        """Tasks sorted by (priority, canonical ID, target language)."""
        tasks: list[TranslationTask] = []

        for entry in registry.iter_entries():
            current_hash = self._current_hash(entry)
            if current_hash is None:
                continue

            reason = self.policy.skip_reason(entry.canonical_id, entry.original_path, self.now)
            entry_tasks = self._tasks_for(entry, current_hash)
            if reason and entry_tasks:
                logger.info(f"Skipping {entry.canonical_id}: {reason}")
                continue
            tasks.extend(entry_tasks)

        tasks.sort(key=TranslationTask.sort_key)
        logger.info(f"Detected {len(tasks)} translation tasks")
        return tasks

    def _current_hash(self, entry: RegistryEntry) -> str | None:
        try:
            text = self.storage.read_text(entry.original_path)
            return content_hash(frontmatter.parse(text, entry.original_path).body)
        except FileNotFoundError:
            logger.warning(f"{entry.canonical_id}: original {entry.original_path} is missing")
        except (MalformedSource, UnicodeDecodeError) as e:
            logger.warning(f"{entry.canonical_id}: {e}")
        return None

    def _tasks_for(self, entry: RegistryEntry, current_hash: str) -> list[TranslationTask]:
        priority = TaskPriority.HIGH if current_hash != entry.content_hash else TaskPriority.NORMAL
        tasks: list[TranslationTask] = []

        for language in target_languages(entry.original_language, self.languages):
            record = entry.translations.get(language)
            existing_hash: str | None = None

            if (
                record is None
                or record.status == TranslationStatus.MISSING
                or not self.storage.exists(record.path)
            ):
                reason = TaskReason.MISSING
            elif (
                record.status == TranslationStatus.STALE
                or (record.source_hash or entry.content_hash) != current_hash
            ):
                reason = TaskReason.STALE
                existing_hash = self._translation_hash(record.path)
            else:
                continue

            tasks.append(
                TranslationTask(
                    canonical_id=entry.canonical_id,
                    source_path=entry.original_path,
                    source_language=entry.original_language,
                    target_language=language,
                    source_content_hash=current_hash,
                    existing_translation_hash=existing_hash,
                    reason=reason,
                    output_path=record.path
                    if record
                    else translated_path(entry.original_path, entry.original_language, language),
                    priority=priority,
                )
            )
        return tasks

    def _translation_hash(self, path: str) -> str | None:
        try:
            return content_hash(frontmatter.parse(self.storage.read_text(path), path).body)
        except (FileNotFoundError, MalformedSource, UnicodeDecodeError):
            return None


# =============================================================================
# Task list files
# =============================================================================


def dump_tasks(tasks: list[TranslationTask]) -> str:
    """Pretty JSON array with camelCase keys."""
    data = [task.to_json_dict() for task in tasks]
    return json.dumps(data, indent=2, ensure_ascii=False) + "\n"


def write_tasks(path: str | Path, tasks: list[TranslationTask]) -> None:
    write_text_atomic(Path(path), dump_tasks(tasks))


def read_tasks(path: str | Path) -> list[TranslationTask]:
    """
    Load a task list written by write_tasks.

    Raises:
        MalformedSource: the file is not a task list
    """
    try:
        return _TASK_LIST.validate_json(Path(path).read_text(encoding="utf-8"))
    except ValidationError as e:
        raise MalformedSource(str(path), f"not a task list ({e.error_count()} errors)") from e
