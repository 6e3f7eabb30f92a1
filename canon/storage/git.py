"""
Version control backends.

A successful translation is committed together with the registry and the
token ledger, one commit per translation, so history doubles as an audit log.
"""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path

from canon.core.errors import PersistenceFailure
from canon.storage.base import VersionControl

logger = logging.getLogger(__name__)


class GitVersionControl(VersionControl):
    """Commit through the git CLI."""

    def __init__(self, repo_root: str | Path = "."):
        self.repo_root = Path(repo_root)

    def _git(self, *args: str, check: bool = True) -> subprocess.CompletedProcess:
        try:
            return subprocess.run(
                ["git", *args],
                cwd=self.repo_root,
                capture_output=True,
                text=True,
                check=check,
            )
        except FileNotFoundError as e:
            raise PersistenceFailure("git executable not found") from e
        except subprocess.CalledProcessError as e:
            raise PersistenceFailure(
                f"git {args[0]} failed: {e.stderr.strip() or e.stdout.strip()}",
                context={"args": list(args)},
            ) from e

    def commit(self, paths: list[Path], message: str) -> str | None:
        existing = [str(p) for p in paths if p.exists()]
        if not existing:
            return None

        self._git("add", "--", *existing)

        # Exit status 0 means nothing staged
        if self._git("diff", "--cached", "--quiet", check=False).returncode == 0:
            logger.info(f"Nothing to commit for: {message}")
            return None

        self._git("commit", "-m", message)
        commit_id = self._git("rev-parse", "HEAD").stdout.strip()
        logger.info(f"Committed {commit_id[:7]}: {message}")
        return commit_id


class NullVersionControl(VersionControl):
    """Skip commits (dry runs, tests, repositories without git)."""

    def __init__(self):
        self.commits: list[tuple[list[Path], str]] = []

    def commit(self, paths: list[Path], message: str) -> str | None:
        self.commits.append((list(paths), message))
        return None
