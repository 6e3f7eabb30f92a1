"""
Error taxonomy for the translation pipeline.

Every failure the pipeline knows how to handle is a CanonError subtype.
Per-task errors are caught by the generator and turned into task outcomes;
only registry errors are allowed to end a run.
"""

from __future__ import annotations

from typing import Any


class CanonError(Exception):
    """
    Base exception for all pipeline errors.

    Attributes:
        code: Machine-readable error code (e.g. "AI_001")
        retryable: Whether the same task may succeed on a later run
        fatal: Whether the whole run must stop
        context: Additional context data for debugging
    """

    code: str = "CANON_000"
    retryable: bool = False
    fatal: bool = False

    def __init__(
        self,
        message: str,
        code: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        if code is not None:
            self.code = code
        self.context = context or {}


# =============================================================================
# Source content
# =============================================================================


class MalformedSource(CanonError):
    """A content file could not be read or parsed. Skip it, keep scanning."""

    code = "SRC_001"

    def __init__(self, path: str, reason: str, **kwargs: Any) -> None:
        super().__init__(f"Malformed source {path}: {reason}", **kwargs)
        self.path = path
        self.reason = reason


# =============================================================================
# AI provider
# =============================================================================


class ProviderError(CanonError):
    """The AI provider call failed (network, timeout, quota)."""

    code = "AI_001"
    retryable = True


class MalformedAIResponse(CanonError):
    """The provider answered, but not with the structured object we asked for."""

    code = "AI_002"
    retryable = True

    def __init__(self, message: str, raw: str = "", **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.raw = raw


class HallucinationDetected(CanonError):
    """The translation drifted structurally from its source."""

    code = "AI_003"

    def __init__(self, message: str, report: Any = None, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.report = report


# =============================================================================
# Persistence
# =============================================================================


class PersistenceFailure(CanonError):
    """Writing a content file, ledger, or commit failed for one task."""

    code = "IO_001"
    retryable = True


class RegistryCorruption(CanonError):
    """The registry cannot be trusted. Repair it from version control."""

    code = "REG_001"
    fatal = True


class RegistryLocked(CanonError):
    """Another pipeline process holds the registry lock."""

    code = "REG_002"
    fatal = True
