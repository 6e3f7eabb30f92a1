"""
Shared utility functions for the pipeline.

This module contains common utilities used across the codebase.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from pathlib import PurePosixPath
from typing import Callable

Clock = Callable[[], datetime]

_SLUG_STRIP = re.compile(r"[^a-z0-9-]+")


def utc_now() -> datetime:
    """Get current UTC datetime."""
    return datetime.now(timezone.utc)


def iso_timestamp(moment: datetime | None = None) -> str:
    """ISO-8601 timestamp in UTC with a trailing Z."""
    moment = moment or utc_now()
    return moment.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def parse_timestamp(value: str | datetime) -> datetime:
    """
    Parse an ISO-8601 timestamp, accepting a trailing Z.

    Naive values are assumed to be UTC.
    """
    if isinstance(value, datetime):
        moment = value
    else:
        moment = datetime.fromisoformat(str(value).strip().replace("Z", "+00:00"))
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment


def slugify(name: str) -> str:
    """
    Reduce a file stem to a lowercase [a-z0-9-] slug.

    Args:
        name: File name or stem (extension is stripped)

    Returns:
        A slug like "my-first-post", or "" if nothing survives
    """
    stem = PurePosixPath(name).stem.lower().replace("_", "-").replace(" ", "-")
    return _SLUG_STRIP.sub("", stem).strip("-")


def to_posix(path: str) -> str:
    """Normalize a relative path to forward slashes."""
    return path.replace("\\", "/")
