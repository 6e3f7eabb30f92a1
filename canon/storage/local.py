"""
Local filesystem storage.

Content files live under a content root; registry and ledgers are plain
JSON files written atomically or appended in place.
"""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any

from canon.core.errors import PersistenceFailure
from canon.core.utils import to_posix
from canon.storage.base import ContentStorage


# =============================================================================
# File helpers
# =============================================================================


def write_text_atomic(path: Path, text: str) -> None:
    """Write text to a temp file in the same directory, then rename over path."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
            f.write(text)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise


def write_json_atomic(path: Path, data: Any) -> None:
    """Pretty-print data as JSON and write it atomically."""
    write_text_atomic(path, json.dumps(data, indent=2, ensure_ascii=False) + "\n")


def append_jsonl(path: Path, record: dict[str, Any]) -> None:
    """Append one JSON object as a line and fsync it."""
    path.parent.mkdir(parents=True, exist_ok=True)
    line = json.dumps(record, ensure_ascii=False, sort_keys=True)
    with open(path, "a", encoding="utf-8") as f:
        f.write(line + "\n")
        f.flush()
        os.fsync(f.fileno())


def append_json_array(path: Path, record: dict[str, Any]) -> None:
    """
    Append one element to a JSON array file without rewriting it.

    Seeks back over the closing bracket and writes ",<record>]" in its place,
    so the cost does not grow with the size of the ledger.

    Raises:
        PersistenceFailure: the file does not end with a JSON array
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    item = json.dumps(record, indent=2, ensure_ascii=False)
    item = "\n".join("  " + line for line in item.splitlines()).encode("utf-8")

    if not path.exists() or path.stat().st_size == 0:
        with open(path, "wb") as f:
            f.write(b"[\n" + item + b"\n]\n")
            f.flush()
            os.fsync(f.fileno())
        return

    with open(path, "r+b") as f:
        bracket = _last_non_space(f, f.seek(0, os.SEEK_END))
        if bracket < 0 or _byte_at(f, bracket) != b"]":
            raise PersistenceFailure(f"{path} is not a JSON array", context={"path": str(path)})

        before = _last_non_space(f, bracket)
        empty = before >= 0 and _byte_at(f, before) == b"["

        f.seek(bracket)
        f.truncate()
        f.write((b"\n" if empty else b",\n") + item + b"\n]\n")
        f.flush()
        os.fsync(f.fileno())


def _byte_at(f, offset: int) -> bytes:
    f.seek(offset)
    return f.read(1)


def _last_non_space(f, end: int) -> int:
    """Offset of the last non-whitespace byte before end, or -1."""
    offset = end - 1
    while offset >= 0:
        if _byte_at(f, offset) not in b" \t\r\n":
            return offset
        offset -= 1
    return -1


# =============================================================================
# Local Filesystem Content Storage
# =============================================================================


class LocalContentStorage(ContentStorage):
    """Store content on local filesystem."""

    def __init__(self, base_path: str | Path = "./src/content"):
        self.base_path = Path(base_path)

    def path_for(self, key: str) -> Path:
        return self.base_path / key

    def read_text(self, key: str) -> str:
        path = self.path_for(key)
        if not path.is_file():
            raise FileNotFoundError(f"Content not found: {key}")
        # newline="" keeps CRLF bodies byte for byte
        with open(path, encoding="utf-8", newline="") as f:
            return f.read()

    def write_text(self, key: str, text: str) -> Path:
        path = self.path_for(key)
        write_text_atomic(path, text)
        return path

    def exists(self, key: str) -> bool:
        return self.path_for(key).is_file()

    def list_documents(self, collections: list[str], extensions: list[str]) -> list[str]:
        keys: list[str] = []
        for collection in collections:
            root = self.base_path / collection
            if not root.is_dir():
                continue
            for path in root.rglob("*"):
                if path.is_file() and path.suffix.lower() in extensions:
                    keys.append(to_posix(str(path.relative_to(self.base_path))))
        return sorted(keys)
