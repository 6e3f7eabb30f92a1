"""
Operator overrides for translation work.

Editors can pause the pipeline or hold back individual content without
touching the registry:

    # translation.override.yml
    global_pause: false
    skip_translation_keys: [my-post-20261016-1a2b3c4d]
    skip_file_paths: [drafts/, life/en/wip.md]
    temporary_overrides:
      - translation_key: other-post-20261001-9f8e7d6c
        expires: 2026-12-31T00:00:00Z
        reason: waiting for editorial review

A TRANSLATION_PAUSE file in the working directory pauses everything.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, time, timezone
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from canon.core.utils import parse_timestamp, utc_now

logger = logging.getLogger(__name__)


class TemporaryOverride(BaseModel):
    """Hold back one canonical ID until a deadline."""

    translation_key: str
    expires: datetime
    reason: str | None = None

    @field_validator("expires", mode="before")
    @classmethod
    def _parse_expires(cls, value: Any) -> Any:
        if isinstance(value, date) and not isinstance(value, datetime):
            return datetime.combine(value, time(), tzinfo=timezone.utc)
        if isinstance(value, (str, datetime)):
            return parse_timestamp(value)
        return value

    def is_active(self, now: datetime) -> bool:
        return self.expires > now


class OverridePolicy(BaseModel):
    """Parsed override file plus the pause sentinel."""

    global_pause: bool = False
    skip_translation_keys: list[str] = Field(default_factory=list)
    skip_file_paths: list[str] = Field(default_factory=list)
    temporary_overrides: list[TemporaryOverride] = Field(default_factory=list)

    # Why global_pause is set, when it did not come from the file itself
    pause_reason: str | None = None

    @field_validator("skip_translation_keys", "skip_file_paths", "temporary_overrides", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return [] if value is None else value

    @classmethod
    def load(
        cls,
        path: str | Path = "translation.override.yml",
        pause_file: str | Path = "TRANSLATION_PAUSE",
    ) -> OverridePolicy:
        """
        Load the policy.

        A missing file is an empty policy. An unreadable one pauses
        everything, so a typo never turns into unplanned AI spend.
        """
        path = Path(path)
        policy = cls()

        if path.exists():
            try:
                data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
                if not isinstance(data, dict):
                    raise ValueError("top level must be a mapping")
                policy = cls.model_validate(data)
            except (OSError, yaml.YAMLError, ValueError, ValidationError) as e:
                logger.error(f"Failed to parse {path}, pausing all translations: {e}")
                return cls(global_pause=True, pause_reason=f"Override file {path} is invalid")

        if Path(pause_file).exists():
            policy.global_pause = True
            policy.pause_reason = f"{pause_file} file is present"

        return policy

    def skip_reason(
        self,
        canonical_id: str,
        path: str | None = None,
        now: datetime | None = None,
    ) -> str | None:
        """Why canonical_id (stored at path) must not be translated, or None."""
        if self.global_pause:
            return self.pause_reason or "Global translation pause is active"

        if canonical_id in self.skip_translation_keys:
            return f"Translation key '{canonical_id}' is in skip list"

        if path and any(skip in path or path.endswith(skip) for skip in self.skip_file_paths):
            return f"File path '{path}' is in skip list"

        now = now or utc_now()
        for override in self.temporary_overrides:
            if override.translation_key == canonical_id and override.is_active(now):
                return override.reason or f"Temporary override until {override.expires.isoformat()}"

        return None

    def should_skip(
        self,
        canonical_id: str,
        path: str | None = None,
        now: datetime | None = None,
    ) -> bool:
        return self.skip_reason(canonical_id, path, now) is not None
