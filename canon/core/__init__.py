"""
Core module - data models, hashing, and registry persistence.

This module contains:
- models: Registry, task, ledger, and AI response models
- errors: The CanonError hierarchy
- hashing: Content hashes and canonical ID minting
- frontmatter: YAML frontmatter codec
- utils: Shared utility functions
"""

from canon.core.errors import (
    CanonError,
    MalformedSource,
    ProviderError,
    MalformedAIResponse,
    HallucinationDetected,
    PersistenceFailure,
    RegistryCorruption,
    RegistryLocked,
)

from canon.core.models import (
    ContentRegistry,
    ContentUnit,
    RegistryEntry,
    TranslationRecord,
    TranslationStatus,
    TranslationTask,
    TaskReason,
    TaskPriority,
    TaskState,
    TaskOutcome,
    RunSummary,
    ProgressEntry,
    TokenUsageRecord,
    TranslationPayload,
    TranslationHistoryEntry,
    ConflictKind,
    ConflictReport,
)

from canon.core.hashing import (
    content_hash,
    has_changed,
    mint_canonical_id,
)

from canon.core.utils import utc_now

__all__ = [
    # Errors
    "CanonError",
    "MalformedSource",
    "ProviderError",
    "MalformedAIResponse",
    "HallucinationDetected",
    "PersistenceFailure",
    "RegistryCorruption",
    "RegistryLocked",
    # Models
    "ContentRegistry",
    "ContentUnit",
    "RegistryEntry",
    "TranslationRecord",
    "TranslationStatus",
    "TranslationTask",
    "TaskReason",
    "TaskPriority",
    "TaskState",
    "TaskOutcome",
    "RunSummary",
    "ProgressEntry",
    "TokenUsageRecord",
    "TranslationPayload",
    "TranslationHistoryEntry",
    "ConflictKind",
    "ConflictReport",
    # Hashing
    "content_hash",
    "has_changed",
    "mint_canonical_id",
    # Utils
    "utc_now",
]
