"""
Schemas for batch execution.

Provides dataclasses for queued operations, batch options, per-operation
outcomes and batch statistics.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

OperationFn = Callable[[], Union[None, Any, Awaitable[Any]]]


class BatchStatus(Enum):
    """Outcome of a batch run."""

    COMPLETED = "completed"
    PARTIAL = "partial"
    FAILED = "failed"
    SKIPPED = "skipped"


class OperationStatus(Enum):
    """Outcome of a single operation."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class BatchOperation:
    """
    A queued operation.

    Attributes:
        fn: Zero-argument callable; may return an awaitable
        priority: Higher runs first when sorting by priority
        rollback: Optional compensating callable (not run by the executor)
        timestamp: When the operation was queued
    """

    fn: OperationFn
    priority: float = 0
    rollback: Optional[Callable[[], Any]] = None
    timestamp: float = 0.0


@dataclass
class BatchOptions:
    """Per-batch execution options."""

    auto_execute: bool = False
    auto_execute_delay_ms: int = 0
    sort_by_priority: bool = True
    max_batch_size: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "auto_execute": self.auto_execute,
            "auto_execute_delay_ms": self.auto_execute_delay_ms,
            "sort_by_priority": self.sort_by_priority,
            "max_batch_size": self.max_batch_size,
        }


@dataclass
class OperationResult:
    """Result of running one operation of a batch."""

    index: int
    priority: float
    status: OperationStatus
    duration_ms: float = 0.0
    error_message: Optional[str] = None
    error_type: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status == OperationStatus.SUCCEEDED

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "index": self.index,
            "priority": self.priority,
            "status": self.status.value,
            "duration_ms": self.duration_ms,
            "error_message": self.error_message,
            "error_type": self.error_type,
        }


@dataclass
class BatchResult:
    """
    Summary of one batch run.

    ``deferred`` counts operations left queued because the run hit the
    batch's ``max_batch_size``.
    """

    batch_id: str
    status: BatchStatus
    started_at: Optional[float] = None
    completed_at: Optional[float] = None
    results: List[OperationResult] = field(default_factory=list)
    deferred: int = 0

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def succeeded(self) -> int:
        return sum(1 for result in self.results if result.succeeded)

    @property
    def failed(self) -> int:
        return sum(1 for result in self.results if not result.succeeded)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "batch_id": self.batch_id,
            "status": self.status.value,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
            "total": self.total,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "deferred": self.deferred,
            "results": [result.to_dict() for result in self.results],
        }


@dataclass
class BatchInfo:
    """Pending state of one named batch."""

    id: str
    operation_count: int
    is_executing: bool
    has_auto_execute: bool


@dataclass
class BatchStats:
    """Pending work across batches."""

    batch_count: int
    total_operations: int
    executing_count: int
    batches: List[BatchInfo] = field(default_factory=list)
