"""
Content hashing and canonical ID minting.

Hashes cover the body only (everything after the frontmatter), so
editing tags or status never triggers a retranslation. Comparison is
exact: a whitespace edit counts as a change.
"""

from __future__ import annotations

import hashlib
from datetime import datetime

from canon.core.utils import slugify, utc_now


def sha256_hex(text: str) -> str:
    """SHA-256 hex digest of UTF-8 text."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def content_hash(body: str) -> str:
    """Hash of a document body, excluding frontmatter."""
    return sha256_hex(body)


def has_changed(previous_hash: str | None, body: str) -> bool:
    """True unless the body hashes to exactly previous_hash."""
    return previous_hash != content_hash(body)


def mint_canonical_id(path: str, raw_content: str, today: datetime | None = None) -> str:
    """
    Mint a canonical ID for a file seen for the first time.

    Format is <slug>-YYYYMMDD-<hash8>, where hash8 is the first eight hex
    characters of SHA-256(path + raw content).

    Args:
        path: Path relative to the content root
        raw_content: Full file text, frontmatter included
        today: Date stamp (defaults to now, UTC)

    Returns:
        A canonical ID like "example-20261016-1a2b3c4d"
    """
    slug = slugify(path.rsplit("/", 1)[-1]) or "slug"
    date = (today or utc_now()).strftime("%Y%m%d")
    digest = sha256_hex(path + raw_content)[:8]
    return f"{slug}-{date}-{digest}"
