"""
Stateline: versioned snapshots, structural diffs, undo/redo history and
transactional or batched execution for JSON-like state trees.
"""

__version__ = "0.1.0"

from stateline.config import Config, config
from stateline.errors import StatelineError
from stateline.execution import (
    BatchExecutor,
    BatchOptions,
    BatchResult,
    NoTransactionOpenError,
    TransactionAlreadyOpenError,
    TransactionCoordinator,
    TransactionStateError,
)
from stateline.manager import StateHistoryManager
from stateline.providers import CallbackStateProvider, DictStateProvider, StateProvider
from stateline.versioning import (
    ChangeType,
    DiffEntry,
    HistoryEntry,
    HistoryTimeline,
    Snapshot,
    SnapshotNotFoundError,
    SnapshotStore,
    StateValidator,
    ValidationResult,
    apply_diff,
    compute_diff,
)

__all__ = [
    "__version__",
    "Config",
    "config",
    "StatelineError",
    "BatchExecutor",
    "BatchOptions",
    "BatchResult",
    "NoTransactionOpenError",
    "TransactionAlreadyOpenError",
    "TransactionCoordinator",
    "TransactionStateError",
    "StateHistoryManager",
    "CallbackStateProvider",
    "DictStateProvider",
    "StateProvider",
    "ChangeType",
    "DiffEntry",
    "HistoryEntry",
    "HistoryTimeline",
    "Snapshot",
    "SnapshotNotFoundError",
    "SnapshotStore",
    "StateValidator",
    "ValidationResult",
    "apply_diff",
    "compute_diff",
]
