"""
Append-only log of completed translation tasks.

One JSON object per line. The generator appends after a task is committed,
so on restart every key in the ledger is work that is already durable.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from pydantic import ValidationError

from canon.core.models import ProgressEntry, TranslationTask
from canon.core.utils import Clock, utc_now
from canon.storage.local import append_jsonl

logger = logging.getLogger(__name__)


class ProgressLedger:
    """
    Completed-keys log backed by a JSON Lines file.

    Usage:
        ledger = ProgressLedger(".translation-progress.jsonl")
        if not ledger.is_completed(task):
            ...
            ledger.mark_completed(task)
    """

    def __init__(self, path: str | Path, clock: Clock = utc_now):
        self.path = Path(path)
        self.clock = clock
        self._keys: set[str] | None = None

    def entries(self) -> list[ProgressEntry]:
        """Read every entry; a torn or invalid line is skipped with a warning."""
        if not self.path.exists():
            return []

        entries: list[ProgressEntry] = []
        with open(self.path, encoding="utf-8") as f:
            for number, line in enumerate(f, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    entries.append(ProgressEntry.model_validate(json.loads(line)))
                except (json.JSONDecodeError, ValidationError):
                    logger.warning(f"Ignoring unreadable line {number} in {self.path}")
        return entries

    def completed_keys(self) -> set[str]:
        if self._keys is None:
            self._keys = {entry.key for entry in self.entries()}
        return self._keys

    def is_completed(self, task: TranslationTask) -> bool:
        return task.key in self.completed_keys()

    def mark_completed(self, task: TranslationTask) -> ProgressEntry:
        """Append an entry for task and fsync it."""
        entry = ProgressEntry(
            key=task.key,
            canonical_id=task.canonical_id,
            target_language=task.target_language,
            source_content_hash=task.source_content_hash,
            completed_at=self.clock(),
        )
        self._ensure_line_boundary()
        append_jsonl(self.path, entry.to_json_dict())
        self.completed_keys().add(entry.key)
        logger.debug(f"Marked {entry.key} completed")
        return entry

    def _ensure_line_boundary(self) -> None:
        # A crash mid-append can leave a line without its newline
        if not self.path.exists() or self.path.stat().st_size == 0:
            return
        with open(self.path, "rb+") as f:
            f.seek(-1, 2)
            if f.read(1) != b"\n":
                f.write(b"\n")
