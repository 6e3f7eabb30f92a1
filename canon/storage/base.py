"""
Storage abstraction layer.

All access to the content tree and to version control goes through these
interfaces. Components receive them explicitly, which keeps the pipeline
testable against a temporary directory and a no-op commit backend.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path


# =============================================================================
# Storage Interfaces
# =============================================================================


class ContentStorage(ABC):
    """
    Storage for Markdown/MDX content files.

    Keys are POSIX paths relative to the content root, e.g. "life/en/example.md".
    """

    @abstractmethod
    def read_text(self, key: str) -> str:
        """Read a file. Raises FileNotFoundError if it does not exist."""
        pass

    @abstractmethod
    def write_text(self, key: str, text: str) -> Path:
        """Write a file atomically, creating parent directories. Returns its path."""
        pass

    @abstractmethod
    def exists(self, key: str) -> bool:
        """Check whether a file exists."""
        pass

    @abstractmethod
    def list_documents(self, collections: list[str], extensions: list[str]) -> list[str]:
        """List content files under the given collections, sorted."""
        pass

    @abstractmethod
    def path_for(self, key: str) -> Path:
        """Filesystem path of a key (used for commits)."""
        pass


class VersionControl(ABC):
    """
    Commits a set of files as one logical unit.

    Implementation: git CLI (GitVersionControl) or nothing (NullVersionControl).
    """

    @abstractmethod
    def commit(self, paths: list[Path], message: str) -> str | None:
        """Stage paths and commit them. Returns the commit ID, if any."""
        pass
