"""
Versioning primitives for state trees.

Provides structural diffs, named snapshots, an undo/redo timeline and
path-addressed validation.
"""

from .serialization import (
    CIRCULAR_MARKER,
    Clock,
    JsonSerializer,
    Serializer,
    canonical_equal,
    deep_clone,
    serialized_size,
)

from .diff import (
    ChangeType,
    DiffEntry,
    apply_diff,
    compute_diff,
    count_by_kind,
    format_diff,
    summarize_diff,
)

from .snapshot import Snapshot, SnapshotInfo, create_snapshot_id

from .snapshot_store import (
    SnapshotNotFoundError,
    SnapshotStats,
    SnapshotStore,
)

from .timeline import HistoryEntry, HistoryStats, HistoryTimeline

from .validator import (
    RuleViolation,
    StateValidator,
    ValidationResult,
    get_value_by_path,
)

__all__ = [
    # Serialization
    "CIRCULAR_MARKER",
    "Clock",
    "JsonSerializer",
    "Serializer",
    "canonical_equal",
    "deep_clone",
    "serialized_size",
    # Diff
    "ChangeType",
    "DiffEntry",
    "apply_diff",
    "compute_diff",
    "count_by_kind",
    "format_diff",
    "summarize_diff",
    # Snapshots
    "Snapshot",
    "SnapshotInfo",
    "create_snapshot_id",
    "SnapshotNotFoundError",
    "SnapshotStats",
    "SnapshotStore",
    # History
    "HistoryEntry",
    "HistoryStats",
    "HistoryTimeline",
    # Validation
    "RuleViolation",
    "StateValidator",
    "ValidationResult",
    "get_value_by_path",
]
