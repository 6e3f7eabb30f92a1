"""
Storage layer.

Content files, JSON state files, and version control are reached through
the interfaces in canon.storage.base.
"""

from canon.storage.base import ContentStorage, VersionControl
from canon.storage.local import (
    LocalContentStorage,
    append_json_array,
    append_jsonl,
    write_json_atomic,
    write_text_atomic,
)
from canon.storage.git import GitVersionControl, NullVersionControl

__all__ = [
    "ContentStorage",
    "VersionControl",
    "LocalContentStorage",
    "GitVersionControl",
    "NullVersionControl",
    "append_json_array",
    "append_jsonl",
    "write_json_atomic",
    "write_text_atomic",
]
