"""
Persistence for the content registry.

The registry is one JSON file owned by one pipeline process at a time.
Components never reach for it globally: a RegistryStore is created at the
process boundary, loaded once, passed around, and saved after each change.
"""

from __future__ import annotations

import json
import logging
import os
import shutil
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from pydantic import ValidationError

from canon.core.errors import RegistryCorruption, RegistryLocked
from canon.core.models import ContentRegistry
from canon.core.utils import Clock, utc_now
from canon.storage.local import write_json_atomic

logger = logging.getLogger(__name__)


class RegistryStore:
    """
    Load/save the registry file.

    Usage:
        store = RegistryStore("data/content-registry.json")
        with store.lock():
            registry = store.load()
            ...
            store.save(registry)
    """

    def __init__(self, path: str | Path, clock: Clock = utc_now, backup: bool = True):
        self.path = Path(path)
        self.clock = clock
        self.backup = backup

    @property
    def lock_path(self) -> Path:
        return self.path.with_name(self.path.name + ".lock")

    @property
    def backup_path(self) -> Path:
        return self.path.with_name(self.path.name + ".bak")

    # =========================================================================
    # Load / Save
    # =========================================================================

    def load(self) -> ContentRegistry:
        """
        Load the registry.

        A missing file yields an empty registry.

        Raises:
            RegistryCorruption: the file is not valid registry JSON
        """
        if not self.path.exists():
            logger.info(f"No registry at {self.path}, starting empty")
            return ContentRegistry(last_updated=self.clock())

        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            registry = ContentRegistry.model_validate(data)
        except (OSError, json.JSONDecodeError, ValidationError) as e:
            raise RegistryCorruption(
                f"Registry {self.path} is unreadable; restore it from version control",
                context={"error": str(e)},
            ) from e

        for canonical_id, entry in registry.entries.items():
            if canonical_id != entry.canonical_id:
                raise RegistryCorruption(
                    f"Registry key '{canonical_id}' does not match entry '{entry.canonical_id}'"
                )
            if entry.original_language in entry.translations:
                raise RegistryCorruption(
                    f"'{canonical_id}' lists its original language as a translation"
                )

        return registry

    def save(self, registry: ContentRegistry) -> None:
        """Stamp lastUpdated, keep one backup, and write atomically."""
        registry.last_updated = self.clock()
        data = registry.to_json_dict()
        data["entries"] = {key: data["entries"][key] for key in sorted(data["entries"])}

        if self.backup and self.path.exists():
            shutil.copyfile(self.path, self.backup_path)

        write_json_atomic(self.path, data)
        logger.debug(f"Saved registry with {len(registry.entries)} entries")

    # =========================================================================
    # Single-writer lock
    # =========================================================================

    @contextmanager
    def lock(self) -> Iterator[None]:
        """
        Hold an exclusive lock file for the duration of a run.

        Raises:
            RegistryLocked: another process holds the lock
        """
        self.lock_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            fd = os.open(self.lock_path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError as e:
            holder = self.lock_path.read_text(encoding="utf-8").strip() or "unknown"
            raise RegistryLocked(
                f"Registry is locked by process {holder}; remove {self.lock_path} if it is stale",
                context={"lock": str(self.lock_path)},
            ) from e

        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(str(os.getpid()))

        try:
            yield
        finally:
            self.lock_path.unlink(missing_ok=True)
