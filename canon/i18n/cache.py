"""
Response cache for translations.

Caches validated AI payloads by source body hash and target language, so
a task retried after a later failure (commit, title call) does not pay
for the same translation twice.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from canon.storage.local import write_json_atomic

logger = logging.getLogger(__name__)


class ResponseCache:
    """
    One JSON file per (source hash, language) under a cache directory.

    Usage:
        cache = ResponseCache(".translation-cache")
        payload = cache.get(source_hash, "de")
        if payload is None:
            ...
            cache.put(source_hash, "de", payload)
    """

    def __init__(self, cache_dir: str | Path = ".translation-cache"):
        self.cache_dir = Path(cache_dir)

    def _path(self, source_hash: str, language: str) -> Path:
        return self.cache_dir / f"{source_hash}-{language}.json"

    def get(self, source_hash: str, language: str) -> dict[str, Any] | None:
        """Get a cached payload; an unreadable entry is dropped."""
        path = self._path(source_hash, language)
        if not path.exists():
            return None

        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Dropping unreadable cache entry {path.name}: {e}")
            self.evict(source_hash, language)
            return None

        if not isinstance(data, dict):
            self.evict(source_hash, language)
            return None

        logger.info(f"Using cached translation for {source_hash[:7]}-{language}")
        return data

    def put(self, source_hash: str, language: str, payload: dict[str, Any]) -> None:
        """Cache a payload."""
        write_json_atomic(self._path(source_hash, language), payload)

    def evict(self, source_hash: str, language: str) -> None:
        self._path(source_hash, language).unlink(missing_ok=True)

    def clear(self) -> None:
        """Remove every cached payload."""
        if self.cache_dir.is_dir():
            for path in self.cache_dir.glob("*.json"):
                path.unlink()
