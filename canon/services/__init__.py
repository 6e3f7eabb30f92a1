"""
Pipeline services: ID assignment, task detection, overrides, reporting.
"""

from canon.services.assigner import CanonicalIdAssigner, ScanReport, ValidationResult
from canon.services.detector import TaskDetector, read_tasks, write_tasks
from canon.services.overrides import OverridePolicy
from canon.services.conflicts import ConflictReporter, ConflictSink, LocalConflictSink

__all__ = [
    "CanonicalIdAssigner",
    "ScanReport",
    "ValidationResult",
    "TaskDetector",
    "read_tasks",
    "write_tasks",
    "OverridePolicy",
    "ConflictReporter",
    "ConflictSink",
    "LocalConflictSink",
]
